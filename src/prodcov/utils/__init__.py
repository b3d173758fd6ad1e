"""Shared utilities (logging, encoding primitives, node rendering)."""
