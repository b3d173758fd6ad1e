"""
prodcov Package.

Compile-time function-entry coverage instrumentation for production Python
code. Every function of a program receives a call to a runtime hook carrying a
compact identifier; a separately stored mapping translates identifiers back
into (file, function, kind) coordinates.

Usage
-----

.. code-block:: python

    import prodcov

    result = prodcov.instrument(
        [
            ("instrument_code.py", hook_source),
            ("app/main.py", "def main():\n    return 0\n"),
        ]
    )
    print(result.code_for("app/main.py"))
    # import instrument_code
    # def main():
    #     instrument_code.instrument_code_instance.instrument_code("C", 2)
    #     return 0

    result.mapping.save(Path("coverage.map"))
    InstrumentationMapping.load(Path("coverage.map")).decode("C")
    # Coordinate(file_name='app/main.py', function_name='main', kind='Type.FUNCTION')
"""

from typing import Iterable, Optional, Tuple, Union

from prodcov.config import InstrumentationConfig
from prodcov.core.engine import InstrumentationEngine, InstrumentationResult, SourceUnit
from prodcov.core.mapping import Coordinate, InstrumentationMapping
from prodcov.core.registry import ParameterMapping

__version__ = "0.1.0"


def instrument(
  sources: Iterable[Union[SourceUnit, Tuple[str, str]]],
  config: Optional[InstrumentationConfig] = None,
) -> InstrumentationResult:
  """
  Instruments a program given as `(name, code)` pairs or `SourceUnit`s.

  Args:
      sources: Source units in program order. The runtime hook file must
          precede every file that should be instrumented.
      config: Instrumentation settings. Defaults are used if None.

  Returns:
      InstrumentationResult: Instrumented code and mapping (check `success`).
  """
  units = [s if isinstance(s, SourceUnit) else SourceUnit(name=s[0], code=s[1]) for s in sources]
  return InstrumentationEngine(config).run(units)


__all__ = [
  "Coordinate",
  "InstrumentationConfig",
  "InstrumentationEngine",
  "InstrumentationMapping",
  "InstrumentationResult",
  "ParameterMapping",
  "SourceUnit",
  "instrument",
  "__version__",
]
