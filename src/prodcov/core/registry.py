"""
Identifier Registry.

`ParameterMapping` assigns compact identifiers to instrumentation coordinates.
Each of the three coordinate fields (file, function, kind) owns a namespace in
which strings receive dense indices in first-seen order. A coordinate's
composite key is the Base64 VLQ encoding of its three indices; every distinct
composite key receives the next unique identifier (1, 2, 3, ...), which is
VLQ-encoded again and embedded in the instrumented program.

Example:
    >>> registry = ParameterMapping()
    >>> registry.encode("a.py", "f", "Type.FUNCTION")  # indices [0, 0, 0] -> key "AAA"
    'C'
    >>> registry.encode("a.py", "g", "Type.FUNCTION")  # indices [0, 1, 0] -> key "ACA"
    'E'
    >>> registry.encode("a.py", "f", "Type.FUNCTION")
    'C'

A registry belongs to exactly one compilation and is not safe for concurrent
use: index assignment reads and writes the namespace tables non-atomically.
"""

import io
from typing import Dict, Tuple

from prodcov.core.mapping import CoordinateRow, InstrumentationMapping, ReservedRow
from prodcov.enums import ReservedRowName
from prodcov.errors import CapacityExceededError, InternalInvariantError, RegistryFinalizedError
from prodcov.utils import vlq


class ParameterMapping:
  """
  Deduplicating coordinate -> identifier table for one compilation.

  Lifecycle: construction, any number of `encode` calls, one `materialize` call.
  """

  def __init__(self) -> None:
    # Composite key (e.g. "ACA") -> encoded unique identifier (e.g. "E").
    # Inverted by materialize() so the output reads "E:ACA".
    self._param_value_encodings: Dict[str, str] = {}

    # Dicts preserve insertion order, which is the index order.
    self._file_name_to_index: Dict[str, int] = {}
    self._function_name_to_index: Dict[str, int] = {}
    self._type_to_index: Dict[str, int] = {}

    self._next_unique_identifier = 0
    self._materialized = False

  @property
  def file_names(self) -> Tuple[str, ...]:
    return tuple(self._file_name_to_index)

  @property
  def function_names(self) -> Tuple[str, ...]:
    return tuple(self._function_name_to_index)

  @property
  def kinds(self) -> Tuple[str, ...]:
    return tuple(self._type_to_index)

  @property
  def identifier_count(self) -> int:
    """Number of unique identifiers allocated so far."""
    return len(self._param_value_encodings)

  def encode(self, file_name: str, function_name: str, kind: str) -> str:
    """
    Returns the encoded unique identifier for a coordinate, allocating one on
    first sight of its composite key.

    Args:
        file_name: Source file of the instrumented site.
        function_name: Resolved name of the enclosing function.
        kind: Instrumentation kind tag (e.g. "Type.FUNCTION").

    Returns:
        str: Base64 VLQ encoding of the identifier.

    Raises:
        CapacityExceededError: If a new identifier would exceed 2**31 - 1.
        InternalInvariantError: If the VLQ primitive rejects a value.
        RegistryFinalizedError: If called after `materialize()`.
    """
    if self._materialized:
      raise RegistryFinalizedError("Cannot encode parameters after the mapping was materialized")

    self._file_name_to_index.setdefault(file_name, len(self._file_name_to_index))
    self._function_name_to_index.setdefault(function_name, len(self._function_name_to_index))
    self._type_to_index.setdefault(kind, len(self._type_to_index))

    buf = io.StringIO()
    try:
      vlq.encode_into(buf, self._file_name_to_index[file_name])
      vlq.encode_into(buf, self._function_name_to_index[function_name])
      vlq.encode_into(buf, self._type_to_index[kind])
    except vlq.VLQError as e:
      raise InternalInvariantError(str(e)) from e

    encoded_param = buf.getvalue()

    if encoded_param not in self._param_value_encodings:
      unique_identifier = self._generate_unique_identifier()
      if unique_identifier > vlq.INT32_MAX:
        raise CapacityExceededError(
          "Unique Identifier exceeds the signed 32-bit maximum, could not encode with Base64 VLQ"
        )
      try:
        self._param_value_encodings[encoded_param] = vlq.encode(unique_identifier)
      except vlq.VLQError as e:
        raise InternalInvariantError(str(e)) from e

    return self._param_value_encodings[encoded_param]

  def _generate_unique_identifier(self) -> int:
    self._next_unique_identifier += 1
    return self._next_unique_identifier

  def materialize(self) -> InstrumentationMapping:
    """
    Finalizes the table into its identifier -> coordinate form.

    The three namespace listings become reserved rows; every composite key
    row is inverted so that the identifier seen at runtime is the lookup key.

    Raises:
        RegistryFinalizedError: If called more than once.
    """
    if self._materialized:
      raise RegistryFinalizedError("The mapping was already materialized")
    self._materialized = True

    reserved = [
      ReservedRow(name=ReservedRowName.FILE_NAMES, values=self.file_names),
      ReservedRow(name=ReservedRowName.FUNCTION_NAMES, values=self.function_names),
      ReservedRow(name=ReservedRowName.TYPES, values=self.kinds),
    ]
    inverted = [
      CoordinateRow(identifier=identifier, composite_key=composite_key)
      for composite_key, identifier in self._param_value_encodings.items()
    ]
    return InstrumentationMapping(rows=tuple(reserved + inverted))
