"""
Instrument Command Handler.

This module implements the `prodcov instrument` command. It orchestrates:
1. Collection of source files in program order.
2. Configuration loading (pyproject.toml + CLI overrides).
3. Instrumentation via the Engine.
4. Output writing (instrumented sources and the mapping file) and trace logging.

Nothing is written when the run fails.
"""

import json
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional

from pydantic import ValidationError
from rich.table import Table

from prodcov.config import InstrumentationConfig
from prodcov.core.engine import InstrumentationEngine, InstrumentationResult, SourceUnit
from prodcov.utils.console import console, log_error, log_info, log_success, log_warning


def collect_sources(paths: List[Path]) -> Dict[str, Path]:
  """
  Expands CLI paths into named source files, preserving command-line order.

  Files are named by their path as given (POSIX form, relative to the working
  directory when they lie below it); files found in a directory are named by
  their POSIX path relative to that directory, in sorted order.

  Args:
      paths: Files and/or directories.

  Returns:
      Dict[str, Path]: Unit name -> file path, in program order.

  Raises:
      ValueError: If a path is missing or two files resolve to the same name.
  """
  sources: Dict[str, Path] = {}
  for path in paths:
    if path.is_file():
      entries = [(_unit_name(path), path)]
    elif path.is_dir():
      entries = [(f.relative_to(path).as_posix(), f) for f in sorted(path.rglob("*.py"))]
    else:
      raise ValueError(f"Input not found: {path}")

    for name, file_path in entries:
      if name in sources:
        raise ValueError(f"Duplicate source name '{name}' ({sources[name]} and {file_path})")
      sources[name] = file_path
  return sources


def _unit_name(path: Path) -> str:
  cwd = Path.cwd()
  if path.is_absolute() and path.is_relative_to(cwd):
    return path.relative_to(cwd).as_posix()
  return path.as_posix()


def _output_path(output_dir: Path, unit_name: str) -> Path:
  """Destination of a unit below `output_dir`, ignoring any root or '..' parts of its name."""
  parts = [part for part in PurePosixPath(unit_name).parts if part not in ("/", "..")]
  return output_dir.joinpath(*parts)


def handle_instrument(
  paths: List[Path],
  output_dir: Path,
  mapping_path: Path,
  hook_file: Optional[str] = None,
  inject_import: Optional[bool] = None,
  instrument_lambdas: Optional[bool] = None,
  json_trace_path: Optional[Path] = None,
) -> int:
  """
  Handles the 'instrument' command execution.

  Args:
      paths: Input files/directories in program order.
      output_dir: Directory receiving the instrumented sources.
      mapping_path: Destination of the identifier mapping file.
      hook_file: Override for the runtime hook file name.
      inject_import: Override for hook import injection.
      instrument_lambdas: Override for lambda instrumentation.
      json_trace_path: Optional path to dump execution trace JSON.

  Returns:
      int: Exit code (0 for success, 1 for failure).
  """
  try:
    sources = collect_sources(paths)
  except ValueError as e:
    log_error(str(e))
    return 1

  if not sources:
    log_warning("No .py files found.")
    return 0

  first = paths[0]
  try:
    config = InstrumentationConfig.load(
      search_path=first if first.is_dir() else first.parent,
      hook_file_name=hook_file,
      inject_hook_import=inject_import,
      instrument_lambdas=instrument_lambdas,
    )
  except ValidationError as e:
    log_error(f"Invalid configuration: {e}")
    return 1

  units = []
  for name, file_path in sources.items():
    with open(file_path, "rt", encoding="utf-8") as f:
      units.append(SourceUnit(name=name, code=f.read()))

  log_info(f"Instrumenting {len(units)} files...")
  result = InstrumentationEngine(config).run(units)

  if json_trace_path and result.trace_events:
    json_trace_path.parent.mkdir(parents=True, exist_ok=True)
    with open(json_trace_path, "wt", encoding="utf-8") as f:
      json.dump(result.trace_events, f, indent=2, default=str)
    log_info(f"Trace saved to [path]{json_trace_path}[/path]")

  if not result.success:
    for error in result.errors:
      log_error(error)
    return 1

  for unit in result.units:
    dest = _output_path(output_dir, unit.name)
    dest.parent.mkdir(parents=True, exist_ok=True)
    with open(dest, "wt", encoding="utf-8") as f:
      f.write(unit.code)

  result.mapping.save(mapping_path)
  log_success(f"Mapping written to [path]{mapping_path}[/path]")

  _print_summary(result)
  return 0


def _print_summary(result: InstrumentationResult) -> None:
  table = Table(title="Instrumentation Summary")
  table.add_column("File", style="cyan")
  table.add_column("Functions", justify="right")

  for unit in result.units:
    table.add_row(unit.name, str(unit.site_count))

  console.print(table)
