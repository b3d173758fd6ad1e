"""
Enumerations for prodcov.

This module defines the instrumentation kinds understood by the identifier
registry. Kinds form their own namespace in the mapping, so new granularities
can be added without changing the serialized format.
"""

from enum import Enum


class InstrumentationKind(str, Enum):
  """
  Code-shape tag attached to every instrumentation site.

  The value is the literal string stored in the ` Types` row of the mapping.
  """

  FUNCTION = "Type.FUNCTION"  # Function entry


class ReservedRowName(str, Enum):
  """
  Names of the auxiliary rows listing the namespace contents.
  """

  FILE_NAMES = "FileNames"
  FUNCTION_NAMES = "FunctionNames"
  TYPES = "Types"
