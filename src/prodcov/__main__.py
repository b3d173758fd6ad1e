"""
Entry point for module execution (``python -m prodcov``).
"""

import sys
from prodcov.cli.__main__ import main

if __name__ == "__main__":
  sys.exit(main())
