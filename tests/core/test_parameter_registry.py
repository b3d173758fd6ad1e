"""
Tests for the Identifier Registry (ParameterMapping).

Verifies:
1.  Determinism and deduplication of identifiers.
2.  First-seen index assignment per namespace.
3.  Capacity and internal-error handling.
4.  Materialization into the inverted mapping.
"""

from unittest.mock import patch

import pytest

from prodcov.core.registry import ParameterMapping
from prodcov.errors import CapacityExceededError, InternalInvariantError, RegistryFinalizedError
from prodcov.utils import vlq

FN = "Type.FUNCTION"


def test_same_triple_yields_same_identifier():
  registry = ParameterMapping()
  first = registry.encode("a.py", "f", FN)
  second = registry.encode("a.py", "f", FN)
  assert first == second == "C"
  assert registry.identifier_count == 1


def test_distinct_triples_get_consecutive_identifiers():
  registry = ParameterMapping()
  assert registry.encode("a.py", "f", FN) == "C"  # 1
  assert registry.encode("a.py", "g", FN) == "E"  # 2
  assert registry.encode("b.py", "h", FN) == "G"  # 3


def test_dedup_monotonicity_over_many_triples():
  registry = ParameterMapping()
  triples = [(f"file{i % 3}.py", f"fn{i}", FN) for i in range(40)]

  identifiers = [registry.encode(*t) for t in triples]
  assert [vlq.decode_all(i) for i in identifiers] == [[n] for n in range(1, 41)]

  # Re-encoding in another order allocates nothing new
  again = [registry.encode(*t) for t in reversed(triples)]
  assert again == list(reversed(identifiers))
  assert registry.identifier_count == 40


def test_namespace_indices_follow_first_seen_order():
  registry = ParameterMapping()
  registry.encode("b.py", "main", FN)
  registry.encode("a.py", "main", FN)
  registry.encode("b.py", "helper", FN)
  registry.encode("c.py", "main", "Type.BRANCH")

  assert registry.file_names == ("b.py", "a.py", "c.py")
  assert registry.function_names == ("main", "helper")
  assert registry.kinds == (FN, "Type.BRANCH")


def test_composite_keys_encode_namespace_indices():
  registry = ParameterMapping()
  registry.encode("a.py", "f", FN)
  registry.encode("a.py", "g", FN)
  registry.encode("b.py", "h", FN)

  mapping = registry.materialize()
  assert mapping.entries == {"C": "AAA", "E": "ACA", "G": "CEA"}


def test_round_trip_through_materialized_mapping():
  registry = ParameterMapping()
  expected = {}
  for file_name, fn_name in [("a.py", "f"), ("b.py", "g"), ("a.py", "g"), ("c.py", "f")]:
    identifier = registry.encode(file_name, fn_name, FN)
    expected[identifier] = (
      registry.file_names.index(file_name),
      registry.function_names.index(fn_name),
      0,
    )

  mapping = registry.materialize()
  for identifier, indices in expected.items():
    assert mapping.decode_indices(identifier) == indices


def test_materialize_adds_reserved_rows():
  registry = ParameterMapping()
  registry.encode("a.py", "f", FN)
  mapping = registry.materialize()

  assert mapping.file_names == ("a.py",)
  assert mapping.function_names == ("f",)
  assert mapping.kinds == (FN,)


def test_materialize_empty_registry():
  mapping = ParameterMapping().materialize()
  assert mapping.entries == {}
  assert mapping.file_names == ()


def test_materialize_only_once():
  registry = ParameterMapping()
  registry.materialize()
  with pytest.raises(RegistryFinalizedError):
    registry.materialize()


def test_encode_after_materialize_rejected():
  registry = ParameterMapping()
  registry.materialize()
  with pytest.raises(RegistryFinalizedError):
    registry.encode("a.py", "f", FN)


def test_capacity_limit_is_fatal():
  registry = ParameterMapping()
  registry._next_unique_identifier = vlq.INT32_MAX - 1

  last = registry.encode("a.py", "f", FN)
  assert vlq.decode_all(last) == [vlq.INT32_MAX]

  with pytest.raises(CapacityExceededError) as exc_info:
    registry.encode("a.py", "g", FN)
  assert isinstance(exc_info.value, ArithmeticError)

  # Known triples are still resolvable
  assert registry.encode("a.py", "f", FN) == last


def test_vlq_failure_becomes_internal_error():
  registry = ParameterMapping()
  with patch("prodcov.utils.vlq.encode_into", side_effect=vlq.VLQError("boom")):
    with pytest.raises(InternalInvariantError) as exc_info:
      registry.encode("a.py", "f", FN)
  assert isinstance(exc_info.value, AssertionError)
