"""
Pytest Configuration and Fixtures.

Includes:
- Syspath patching for local imports.
- A runtime hook source fixture used to build instrumentable programs.
- Console capture for asserting on log output.
"""

import sys
from pathlib import Path

import pytest
from rich.console import Console

# Add src to path so we can import 'prodcov' without installing it
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from prodcov.utils.console import reset_console, set_console  # noqa: E402

HOOK_SOURCE = '''"""Runtime coverage hook."""


class InstrumentCode:
    def __init__(self):
        self.seen = []

    def instrument_code(self, identifier, line):
        self.seen.append((identifier, line))


instrument_code_instance = InstrumentCode()
'''


@pytest.fixture
def hook_source() -> str:
  """Source of a minimal runtime hook file."""
  return HOOK_SOURCE


@pytest.fixture
def recorded_console():
  """Redirects console and logging output into a recording Console."""
  capture = Console(record=True, width=200)
  set_console(capture)
  yield capture
  reset_console()
