"""
Main Entry Point for the prodcov CLI.

This module handles argument parsing and dispatches to the command handlers
exposed by `prodcov.cli.commands`.
"""

import argparse
from pathlib import Path
from typing import List, Optional

from prodcov import __version__
from prodcov.cli import commands


def main(argv: Optional[List[str]] = None) -> int:
  """
  Main CLI entry point.

  Args:
      argv: Optional list of command line arguments (defaults to sys.argv).

  Returns:
      int: Exit code (0 for success, non-zero for failure).
  """
  parser = argparse.ArgumentParser(description="prodcov: Production Coverage Instrumentation")
  parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

  subparsers = parser.add_subparsers(dest="command", required=True)

  # --- Command: INSTRUMENT ---
  cmd_inst = subparsers.add_parser("instrument", help="Inject coverage calls into a program")
  cmd_inst.add_argument(
    "paths",
    type=Path,
    nargs="+",
    help="Source files or directories, in program order (the hook file must come first)",
  )
  cmd_inst.add_argument("--out", type=Path, required=True, help="Output directory for instrumented sources")
  cmd_inst.add_argument("--mapping", type=Path, required=True, help="Destination of the identifier mapping file")
  cmd_inst.add_argument("--hook-file", default=None, help="Runtime hook file name (default: from toml)")
  cmd_inst.add_argument(
    "--no-inject-import",
    action="store_false",
    dest="inject_import",
    default=None,
    help="Do not import the hook namespace in instrumented files (Overrides config)",
  )
  cmd_inst.add_argument(
    "--no-lambdas",
    action="store_false",
    dest="lambdas",
    default=None,
    help="Do not instrument lambda expressions (Overrides config)",
  )
  cmd_inst.add_argument(
    "--json-trace", type=Path, default=None, help="Dump full execution trace (events) to a JSON file."
  )

  # --- Command: DECODE ---
  cmd_dec = subparsers.add_parser("decode", help="Translate identifiers back into source coordinates")
  cmd_dec.add_argument("mapping", type=Path, help="Mapping file written by 'instrument'")
  cmd_dec.add_argument("identifiers", nargs="*", help="Identifiers to decode (default: all)")

  args = parser.parse_args(argv)

  if args.command == "instrument":
    return commands.handle_instrument(
      args.paths,
      args.out,
      args.mapping,
      hook_file=args.hook_file,
      inject_import=args.inject_import,
      instrument_lambdas=args.lambdas,
      json_trace_path=args.json_trace,
    )

  if args.command == "decode":
    return commands.handle_decode(args.mapping, args.identifiers)

  return 1
