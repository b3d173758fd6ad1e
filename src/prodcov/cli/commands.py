"""
CLI Command Handlers Facade.

Re-exports handlers from `prodcov.cli.handlers` so the entry point (and tests
patching it) have a single import location.
"""

from prodcov.cli.handlers.decode import handle_decode
from prodcov.cli.handlers.instrument import handle_instrument

__all__ = [
  "handle_decode",
  "handle_instrument",
]
