"""
Decode Command Handler.

Translates identifiers reported by instrumented programs back into
(file, function, kind) coordinates using a mapping file.
"""

from pathlib import Path
from typing import List

from rich.table import Table

from prodcov.core.mapping import InstrumentationMapping
from prodcov.errors import MappingFormatError, UnknownIdentifierError
from prodcov.utils.console import console, log_error, log_warning


def handle_decode(mapping_path: Path, identifiers: List[str]) -> int:
  """
  Handles the 'decode' command execution.

  Args:
      mapping_path: Mapping file written by `prodcov instrument`.
      identifiers: Identifiers to decode. All rows are listed if empty.

  Returns:
      int: 0 if every identifier was decoded, 1 otherwise.
  """
  if not mapping_path.is_file():
    log_error(f"Mapping not found: {mapping_path}")
    return 1

  try:
    mapping = InstrumentationMapping.load(mapping_path)
  except MappingFormatError as e:
    log_error(f"Invalid mapping file {mapping_path}: {e}")
    return 1

  targets = identifiers or list(mapping.entries)

  table = Table(title=f"Coverage Identifiers ({mapping_path.name})")
  table.add_column("Identifier", style="bold magenta")
  table.add_column("File", style="cyan")
  table.add_column("Function")
  table.add_column("Kind", style="dim")

  missing = 0
  for identifier in targets:
    try:
      coord = mapping.decode(identifier)
    except UnknownIdentifierError:
      log_warning(f"Unknown identifier: {identifier}")
      missing += 1
      continue
    except MappingFormatError as e:
      log_error(str(e))
      missing += 1
      continue
    table.add_row(identifier, coord.file_name, coord.function_name, coord.kind)

  console.print(table)
  return 1 if missing else 0
