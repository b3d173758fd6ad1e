"""
Exception Taxonomy for prodcov.

Every failure raised by the instrumentation core is terminal for the current
compilation. The classes below mix in the closest builtin exception so callers
can catch either the prodcov base class or the conventional Python category
(e.g. `ArithmeticError` for counter exhaustion).
"""


class InstrumentationError(Exception):
  """Base class for all prodcov errors."""


class CapacityExceededError(InstrumentationError, ArithmeticError):
  """
  Raised when the unique identifier counter leaves the signed 32-bit range
  that Base64 VLQ can represent.
  """


class InternalInvariantError(InstrumentationError, AssertionError):
  """
  Raised when a condition that cannot occur with in-memory buffers occurs anyway
  (e.g. the VLQ primitive rejecting an index produced by the registry).
  """


class RegistryFinalizedError(InstrumentationError, RuntimeError):
  """Raised when a registry is used after its mapping was materialized."""


class MappingFormatError(InstrumentationError, ValueError):
  """Raised when a serialized mapping cannot be parsed."""


class UnknownIdentifierError(InstrumentationError, KeyError):
  """Raised when decoding an identifier absent from the mapping."""
