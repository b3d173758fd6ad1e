"""
Tests for the Instrumentation Engine.

Covers the end-to-end pipeline: program order, identifier sharing across
files, fatal error handling, hook import injection, and the behaviour of the
instrumented program when it is imported and run.
"""

import importlib
import sys
from unittest.mock import patch

import pytest

import prodcov
from prodcov.config import InstrumentationConfig
from prodcov.core.engine import InstrumentationEngine, SourceUnit
from prodcov.core.mapping import Coordinate
from prodcov.core.registry import ParameterMapping
from prodcov.errors import CapacityExceededError

from tests.conftest import HOOK_SOURCE

HOOK = "instrument_code.instrument_code_instance.instrument_code"

A_PY = "def f():\n    return 1\n\n\ndef g():\n    return 2\n"
B_PY = "def h():\n    return 3\n"


def units(*pairs):
  return [SourceUnit(name=name, code=code) for name, code in pairs]


def test_program_with_hook_first():
  program = units(("instrument_code.py", HOOK_SOURCE), ("a.py", A_PY), ("b.py", B_PY))
  result = InstrumentationEngine().run(program)

  assert result.success
  assert [u.name for u in result.units] == ["instrument_code.py", "a.py", "b.py"]
  assert [u.site_count for u in result.units] == [0, 2, 1]

  mapping = result.mapping
  assert mapping.file_names == ("a.py", "b.py")
  assert mapping.function_names == ("f", "g", "h")
  assert mapping.kinds == ("Type.FUNCTION",)
  assert mapping.decode("C") == Coordinate(file_name="a.py", function_name="f", kind="Type.FUNCTION")
  assert mapping.decode("E") == Coordinate(file_name="a.py", function_name="g", kind="Type.FUNCTION")
  assert mapping.decode("G") == Coordinate(file_name="b.py", function_name="h", kind="Type.FUNCTION")
  assert mapping.entries["G"] == "CEA"

  assert result.code_for("b.py") == f'import instrument_code\ndef h():\n    {HOOK}("G", 2)\n    return 3\n'


def test_program_with_file_before_hook():
  program = units(("a.py", A_PY), ("instrument_code.py", HOOK_SOURCE), ("b.py", B_PY))
  result = InstrumentationEngine().run(program)

  assert result.success
  assert result.code_for("a.py") == A_PY
  assert result.mapping.file_names == ("b.py",)
  assert result.mapping.function_names == ("h",)
  assert result.mapping.entries == {"C": "AAA"}


def test_identical_names_in_two_files_get_distinct_identifiers():
  program = units(("instrument_code.py", HOOK_SOURCE), ("a.py", B_PY), ("b.py", B_PY))
  result = InstrumentationEngine().run(program)

  assert [s.identifier for s in result.sites] == ["C", "E"]
  assert result.mapping.function_names == ("h",)


def test_runs_are_deterministic():
  program = units(("instrument_code.py", HOOK_SOURCE), ("a.py", A_PY), ("b.py", B_PY))
  first = InstrumentationEngine().run(program)
  second = InstrumentationEngine().run(program)

  assert [u.code for u in first.units] == [u.code for u in second.units]
  assert first.mapping.to_text() == second.mapping.to_text()


def test_parse_error_aborts_run():
  program = units(("instrument_code.py", HOOK_SOURCE), ("bad.py", "def broken(:\n"))
  result = InstrumentationEngine().run(program)

  assert not result.success
  assert result.units == []
  assert result.mapping is None
  assert result.errors[0].startswith("Parse Error in bad.py")


def test_capacity_error_aborts_run():
  program = units(("instrument_code.py", HOOK_SOURCE), ("a.py", A_PY))

  with patch.object(ParameterMapping, "encode", side_effect=CapacityExceededError("Identifier space exhausted")):
    result = InstrumentationEngine().run(program)

  assert not result.success
  assert result.units == []
  assert result.sites == []
  assert result.mapping is None
  assert result.errors == ["CapacityExceededError: Identifier space exhausted"]


def test_missing_hook_file_warns(recorded_console):
  result = InstrumentationEngine().run(units(("a.py", A_PY)))

  assert result.success
  assert result.sites == []
  assert result.mapping.entries == {}
  assert "was not found" in recorded_console.export_text()


def test_trace_contains_phases_and_mutations():
  result = InstrumentationEngine().run(units(("instrument_code.py", HOOK_SOURCE), ("b.py", B_PY)))

  descriptions = [e["description"] for e in result.trace_events]
  assert "Instrumentation Pipeline" in descriptions
  assert "Instrumenting b.py" in descriptions
  assert "Materializing Mapping" in descriptions
  assert "Instrumented h" in descriptions


def test_inject_hook_import():
  config = InstrumentationConfig(inject_hook_import=True)
  program = units(
    ("instrument_code.py", HOOK_SOURCE),
    ("a.py", '"""Module doc."""\nfrom __future__ import annotations\n\nimport os\n\n\ndef f():\n    return os.sep\n'),
    ("plain.py", "X = 1\n"),
  )
  result = InstrumentationEngine(config).run(program)

  assert result.code_for("a.py").startswith(
    '"""Module doc."""\nfrom __future__ import annotations\nimport instrument_code\n\nimport os\n'
  )
  assert result.code_for("plain.py") == "X = 1\n"
  assert result.code_for("instrument_code.py") == HOOK_SOURCE


def test_inject_hook_import_is_deduplicated():
  config = InstrumentationConfig(inject_hook_import=True)
  code = "import instrument_code\n\n\ndef f():\n    pass\n"
  result = InstrumentationEngine(config).run(units(("instrument_code.py", HOOK_SOURCE), ("a.py", code)))

  assert result.code_for("a.py").count("import instrument_code") == 1


def test_inject_dotted_namespace():
  config = InstrumentationConfig(inject_hook_import=True, hook_namespace="runtime.instrument_code")
  result = InstrumentationEngine(config).run(
    units(("runtime/instrument_code.py", HOOK_SOURCE), ("a.py", "def f():\n    pass\n"))
  )
  code = result.code_for("a.py")
  assert code.startswith("import runtime.instrument_code\n")
  assert 'runtime.instrument_code.instrument_code_instance.instrument_code("C", 2)' in code


def test_package_level_instrument_accepts_tuples():
  result = prodcov.instrument([("instrument_code.py", HOOK_SOURCE), ("b.py", B_PY)])
  assert result.success
  assert result.mapping.decode("C").function_name == "h"


def test_hook_import_can_be_disabled():
  config = InstrumentationConfig(inject_hook_import=False)
  result = InstrumentationEngine(config).run(units(("instrument_code.py", HOOK_SOURCE), ("b.py", B_PY)))
  assert result.code_for("b.py") == f'def h():\n    {HOOK}("C", 2)\n    return 3\n'


APP_PY = (
  "def add(a, b):\n"  # 1
  "    return a + b\n"  # 2
  "\n"
  "\n"
  "double = lambda x: x * 2\n"  # 5
  "\n"
  "\n"
  "def count(n):\n"  # 8
  "    for i in range(n):\n"  # 9
  "        yield i\n"
  "\n"
  "\n"
  "class Greeter:\n"  # 13
  '    """Greets."""\n'
  "\n"
  "    def greet(self, name):\n"  # 16
  '        """Say hi."""\n'  # 17
  '        return f"hi {name}"\n'
  "\n"
  "\n"
  "def b():\n"  # 21
  "    'doc'; return 2\n"  # 22
)


@pytest.fixture
def load_program(tmp_path, monkeypatch):
  """Writes instrumented units to disk and imports the given modules from there."""
  loaded = []

  def _load(result, *module_names):
    for unit in result.units:
      dest = tmp_path / unit.name
      dest.parent.mkdir(parents=True, exist_ok=True)
      dest.write_text(unit.code, encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))
    for name in module_names:
      sys.modules.pop(name, None)
    loaded.extend(module_names)
    return [importlib.import_module(name) for name in module_names]

  yield _load
  for name in loaded:
    sys.modules.pop(name, None)


def test_instrumented_program_runs(load_program):
  result = prodcov.instrument([("instrument_code.py", HOOK_SOURCE), ("covered_app.py", APP_PY)])
  assert result.success

  hook, app = load_program(result, "instrument_code", "covered_app")

  assert app.add(1, 2) == 3
  assert app.double(3) == 6
  assert list(app.count(3)) == [0, 1, 2]
  assert app.Greeter().greet("ada") == "hi ada"
  assert app.b() == 2

  assert hook.instrument_code_instance.seen == [("C", 2), ("E", 5), ("G", 9), ("I", 17), ("K", 22)]
  assert [site.function_name for site in result.sites] == ["add", "double", "count", "Greeter.greet", "b"]


def test_instrumented_program_keeps_docstrings(load_program):
  result = prodcov.instrument([("instrument_code.py", HOOK_SOURCE), ("documented_app.py", APP_PY)])
  _, app = load_program(result, "instrument_code", "documented_app")

  assert app.Greeter.__doc__ == "Greets."
  assert app.Greeter.greet.__doc__ == "Say hi."
  assert app.b.__doc__ == "doc"


def test_generator_reports_on_first_iteration(load_program):
  result = prodcov.instrument([("instrument_code.py", HOOK_SOURCE), ("lazy_app.py", APP_PY)])
  hook, app = load_program(result, "instrument_code", "lazy_app")

  numbers = app.count(2)
  assert hook.instrument_code_instance.seen == []
  next(numbers)
  assert hook.instrument_code_instance.seen == [("G", 9)]


def test_program_without_hook_import_cannot_run(load_program):
  config = InstrumentationConfig(inject_hook_import=False)
  result = prodcov.instrument([("instrument_code.py", HOOK_SOURCE), ("bare_app.py", APP_PY)], config)
  _, app = load_program(result, "instrument_code", "bare_app")

  with pytest.raises(NameError, match="instrument_code"):
    app.add(1, 2)
