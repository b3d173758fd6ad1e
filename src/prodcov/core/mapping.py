"""
Parameter Mapping Artifact.

This module defines the finalized, immutable table produced by the identifier
registry at the end of a compilation, and its flat-file representation.

File format (one row per line, sorted by key)::

     FileNames:["a.py", "b.py"]
     FunctionNames:["f", "g", "h"]
     Types:["Type.FUNCTION"]
    C:AAA
    E:ACA
    G:CEA

The three reserved rows carry a leading space in their key, which sorts them
ahead of every identifier (identifiers only use the base64 alphabet). Their
values are JSON arrays whose positions are the namespace indices. Every other
row maps an identifier observed at runtime to the composite key of its
`(file, function, kind)` indices. Backslash, colon and newline are escaped with
a backslash in both keys and values.
"""

import json
from pathlib import Path
from typing import Annotated, Dict, List, Literal, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from prodcov.enums import ReservedRowName
from prodcov.errors import MappingFormatError, UnknownIdentifierError
from prodcov.utils import vlq

SEPARATOR = ":"
RESERVED_KEY_PREFIX = " "


class Coordinate(BaseModel):
  """
  Provenance of one instrumentation site.
  """

  model_config = ConfigDict(frozen=True)

  file_name: str
  function_name: str
  kind: str


class ReservedRow(BaseModel):
  """
  Auxiliary row listing one namespace in index order.
  """

  model_config = ConfigDict(frozen=True)

  row_type: Literal["reserved"] = "reserved"
  name: ReservedRowName
  values: Tuple[str, ...] = ()

  @property
  def key(self) -> str:
    return f"{RESERVED_KEY_PREFIX}{self.name.value}"

  @property
  def value(self) -> str:
    return json.dumps(list(self.values), ensure_ascii=False)


class CoordinateRow(BaseModel):
  """
  Row mapping a runtime identifier back to its composite key.
  """

  model_config = ConfigDict(frozen=True)

  row_type: Literal["coordinate"] = "coordinate"
  identifier: str
  composite_key: str

  @property
  def key(self) -> str:
    return self.identifier

  @property
  def value(self) -> str:
    return self.composite_key


MappingRow = Annotated[Union[ReservedRow, CoordinateRow], Field(discriminator="row_type")]


class InstrumentationMapping(BaseModel):
  """
  Finalized identifier -> coordinate table.

  Instances are immutable. Build them through
  `ParameterMapping.materialize()` or `InstrumentationMapping.load()`.
  """

  model_config = ConfigDict(frozen=True)

  rows: Tuple[MappingRow, ...]

  @model_validator(mode="after")
  def _check_rows(self) -> "InstrumentationMapping":
    seen = set()
    for row in self.rows:
      if row.key in seen:
        raise ValueError(f"Duplicate mapping key {row.key!r}")
      seen.add(row.key)
    for name in ReservedRowName:
      if f"{RESERVED_KEY_PREFIX}{name.value}" not in seen:
        raise ValueError(f"Missing reserved row {name.value!r}")
    return self

  def _reserved(self, name: ReservedRowName) -> Tuple[str, ...]:
    for row in self.rows:
      if isinstance(row, ReservedRow) and row.name == name:
        return row.values
    return ()

  @property
  def file_names(self) -> Tuple[str, ...]:
    return self._reserved(ReservedRowName.FILE_NAMES)

  @property
  def function_names(self) -> Tuple[str, ...]:
    return self._reserved(ReservedRowName.FUNCTION_NAMES)

  @property
  def kinds(self) -> Tuple[str, ...]:
    return self._reserved(ReservedRowName.TYPES)

  @property
  def entries(self) -> Dict[str, str]:
    """Identifier -> composite key, for coordinate rows only."""
    return {row.identifier: row.composite_key for row in self.rows if isinstance(row, CoordinateRow)}

  def sorted_rows(self) -> List[MappingRow]:
    return sorted(self.rows, key=lambda row: row.key)

  def decode_indices(self, identifier: str) -> Tuple[int, int, int]:
    """
    Resolves an identifier to its `(file, function, kind)` namespace indices.

    Raises:
        UnknownIdentifierError: If the identifier has no row.
        MappingFormatError: If the composite key is not three VLQ values.
    """
    entries = self.entries
    if identifier not in entries:
      raise UnknownIdentifierError(identifier)
    try:
      indices = vlq.decode_all(entries[identifier])
    except vlq.VLQError as e:
      raise MappingFormatError(f"Corrupt composite key for {identifier!r}: {e}") from e
    if len(indices) != 3:
      raise MappingFormatError(f"Composite key for {identifier!r} holds {len(indices)} values, expected 3")
    return indices[0], indices[1], indices[2]

  def decode(self, identifier: str) -> Coordinate:
    """
    Resolves an identifier observed at runtime to its Coordinate.

    Raises:
        UnknownIdentifierError: If the identifier has no row.
        MappingFormatError: If an index points outside its namespace row.
    """
    file_idx, function_idx, kind_idx = self.decode_indices(identifier)
    try:
      return Coordinate(
        file_name=self.file_names[file_idx],
        function_name=self.function_names[function_idx],
        kind=self.kinds[kind_idx],
      )
    except IndexError as e:
      raise MappingFormatError(f"Identifier {identifier!r} references a missing namespace entry") from e

  def coordinates(self) -> Dict[str, Coordinate]:
    """Decodes every coordinate row, keyed by identifier."""
    return {identifier: self.decode(identifier) for identifier in self.entries}

  def to_text(self) -> str:
    """Serializes the mapping as sorted `key:value` lines."""
    lines = [f"{_escape(row.key)}{SEPARATOR}{_escape(row.value)}\n" for row in self.sorted_rows()]
    return "".join(lines)

  def save(self, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wt", encoding="utf-8") as f:
      f.write(self.to_text())

  @classmethod
  def from_text(cls, text: str) -> "InstrumentationMapping":
    """
    Parses the flat-file representation.

    Raises:
        MappingFormatError: On malformed lines, unknown reserved rows,
            invalid JSON lists or missing reserved rows.
    """
    rows: List[Union[ReservedRow, CoordinateRow]] = []
    for line_no, line in enumerate(text.split("\n"), start=1):
      if not line:
        continue
      key, value = _split_line(line, line_no)
      if key.startswith(RESERVED_KEY_PREFIX):
        rows.append(_parse_reserved(key, value, line_no))
      else:
        rows.append(CoordinateRow(identifier=key, composite_key=value))

    try:
      return cls(rows=tuple(rows))
    except ValidationError as e:
      raise MappingFormatError(f"Invalid mapping: {e}") from e

  @classmethod
  def load(cls, path: Path) -> "InstrumentationMapping":
    with open(path, "rt", encoding="utf-8") as f:
      return cls.from_text(f.read())


def _escape(text: str) -> str:
  return text.replace("\\", "\\\\").replace(":", "\\:").replace("\n", "\\n")


def _split_line(line: str, line_no: int) -> Tuple[str, str]:
  """Splits a line at its first unescaped separator, unescaping both halves."""
  parts: List[List[str]] = [[]]
  chars = iter(line)
  for char in chars:
    if char == "\\":
      escaped = next(chars, None)
      if escaped is None:
        raise MappingFormatError(f"Line {line_no}: dangling escape character")
      parts[-1].append("\n" if escaped == "n" else escaped)
    elif char == SEPARATOR and len(parts) == 1:
      parts.append([])
    else:
      parts[-1].append(char)

  if len(parts) != 2:
    raise MappingFormatError(f"Line {line_no}: missing '{SEPARATOR}' separator")
  return "".join(parts[0]), "".join(parts[1])


def _parse_reserved(key: str, value: str, line_no: int) -> ReservedRow:
  try:
    name = ReservedRowName(key[len(RESERVED_KEY_PREFIX) :])
  except ValueError as e:
    raise MappingFormatError(f"Line {line_no}: unknown reserved row {key!r}") from e

  try:
    values = json.loads(value)
  except json.JSONDecodeError as e:
    raise MappingFormatError(f"Line {line_no}: reserved row {name.value} is not valid JSON") from e
  if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
    raise MappingFormatError(f"Line {line_no}: reserved row {name.value} must be a list of strings")
  return ReservedRow(name=name, values=tuple(values))
