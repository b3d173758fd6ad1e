"""Command line interface for prodcov."""
