"""
Base64 Variable-Length Quantity encoding.

This is the integer encoding used by JavaScript source maps: each value is
converted to a sign-magnitude form (sign in the lowest bit) and emitted in
5-bit groups, least significant first, with bit 6 as the continuation flag.
Every group maps to one character of the standard base64 alphabet.

Examples:
    >>> encode(0)
    'A'
    >>> encode(1)
    'C'
    >>> encode(-1)
    'D'
    >>> decode_all("ACA")
    [0, 1, 0]
"""

import io
from typing import List, TextIO, Tuple

BASE64_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_BASE64_INDEX = {char: index for index, char in enumerate(BASE64_ALPHABET)}

VLQ_BASE_SHIFT = 5
VLQ_BASE = 1 << VLQ_BASE_SHIFT
VLQ_BASE_MASK = VLQ_BASE - 1
VLQ_CONTINUATION_BIT = VLQ_BASE

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


class VLQError(ValueError):
  """Raised for values outside the signed 32-bit range or malformed input."""


def _to_vlq_signed(value: int) -> int:
  if value < 0:
    return ((-value) << 1) + 1
  return value << 1


def _from_vlq_signed(value: int) -> int:
  negate = (value & 1) == 1
  value >>= 1
  return -value if negate else value


def encode_into(out: TextIO, value: int) -> None:
  """
  Writes the VLQ encoding of `value` to a text stream.

  Args:
      out: Destination stream (typically `io.StringIO`).
      value: Signed 32-bit integer.

  Raises:
      VLQError: If `value` is not an int within the signed 32-bit range.
  """
  if isinstance(value, bool) or not isinstance(value, int):
    raise VLQError(f"VLQ values must be integers, got {type(value).__name__}")
  if value < INT32_MIN or value > INT32_MAX:
    raise VLQError(f"VLQ value {value} is outside the signed 32-bit range")

  vlq = _to_vlq_signed(value)
  while True:
    digit = vlq & VLQ_BASE_MASK
    vlq >>= VLQ_BASE_SHIFT
    if vlq > 0:
      digit |= VLQ_CONTINUATION_BIT
    out.write(BASE64_ALPHABET[digit])
    if vlq <= 0:
      break


def encode(value: int) -> str:
  """Returns the VLQ encoding of a single value."""
  buf = io.StringIO()
  encode_into(buf, value)
  return buf.getvalue()


def decode(text: str, pos: int = 0) -> Tuple[int, int]:
  """
  Decodes one value starting at `pos`.

  Returns:
      Tuple[int, int]: The decoded value and the position after it.

  Raises:
      VLQError: On characters outside the alphabet or a truncated value.
  """
  result = 0
  shift = 0
  while True:
    if pos >= len(text):
      raise VLQError(f"Truncated VLQ sequence in {text!r}")
    char = text[pos]
    pos += 1
    if char not in _BASE64_INDEX:
      raise VLQError(f"Invalid base64 character {char!r} in {text!r}")
    digit = _BASE64_INDEX[char]
    result += (digit & VLQ_BASE_MASK) << shift
    shift += VLQ_BASE_SHIFT
    if not digit & VLQ_CONTINUATION_BIT:
      break
  return _from_vlq_signed(result), pos


def decode_all(text: str) -> List[int]:
  """Decodes a concatenation of VLQ values."""
  values = []
  pos = 0
  while pos < len(text):
    value, pos = decode(text, pos)
    values.append(value)
  return values
