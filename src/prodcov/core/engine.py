"""
Orchestration Engine for Coverage Instrumentation.

This module provides the `InstrumentationEngine`, the driver for one
compilation. A compilation processes a *program*: an ordered sequence of
source units. The pipeline consists of:

1.  **Parsing**: every unit is parsed into a LibCST module up front, so a
    syntax error anywhere aborts the run before any tree is mutated.
2.  **Instrumentation**: units are traversed in program order by a
    `CoverageInstrumenter`. All traversals share one `TraversalState` and one
    `ParameterMapping`, so identifiers are unique across the program.
3.  **Import Injection**: units that received calls get an import of the hook
    namespace, so the hook path resolves before the first call runs
    (`inject_hook_import`, on by default).
4.  **Materialization**: the registry is finalized into the mapping artifact.

Fatal errors (identifier capacity, internal invariants) abort the run; the
result then carries no code and no mapping.
"""

from typing import Any, Dict, List, Optional, Sequence

import libcst as cst
from libcst.metadata import MetadataWrapper
from pydantic import BaseModel, ConfigDict, Field

from prodcov.config import InstrumentationConfig
from prodcov.core.call_site import CallSiteBuilder, InstrumentationSite, create_dotted_name
from prodcov.core.changes import ChangeLog
from prodcov.core.instrumenter import CoverageInstrumenter, TraversalState
from prodcov.core.mapping import InstrumentationMapping
from prodcov.core.provenance import SourceFileProvider
from prodcov.core.registry import ParameterMapping
from prodcov.core.tracer import get_tracer, reset_tracer
from prodcov.errors import InstrumentationError
from prodcov.utils.console import log_error, log_info, log_warning
from prodcov.utils.node_diff import capture_node_source


class SourceUnit(BaseModel):
  """
  One named source file of a program.
  """

  model_config = ConfigDict(frozen=True)

  name: str = Field(description="File identity, recorded in the mapping (e.g. 'app/main.py').")
  code: str = Field(description="Python source text.")


class InstrumentedUnit(BaseModel):
  """
  A source unit after instrumentation.
  """

  name: str
  code: str
  site_count: int = 0


class InstrumentationResult(BaseModel):
  """
  Structured result of one compilation.
  """

  units: List[InstrumentedUnit] = Field(default_factory=list, description="Instrumented code, in program order.")
  sites: List[InstrumentationSite] = Field(default_factory=list, description="Every injected call.")
  mapping: Optional[InstrumentationMapping] = Field(None, description="Finalized identifier mapping.")
  changed_scopes: List[str] = Field(default_factory=list, description="'file::scope' per change notification.")
  errors: List[str] = Field(default_factory=list, description="Error messages.")
  success: bool = Field(default=True, description="True if the pipeline completed without fatal errors.")
  trace_events: List[Dict[str, Any]] = Field(default_factory=list, description="Internal trace events.")

  @property
  def has_errors(self) -> bool:
    return len(self.errors) > 0

  def code_for(self, name: str) -> str:
    """
    Returns the instrumented code of a unit.

    Raises:
        KeyError: If no unit has that name.
    """
    for unit in self.units:
      if unit.name == name:
        return unit.code
    raise KeyError(name)


class InstrumentationEngine:
  """
  Runs the instrumentation pass over a program.

  Each `run` builds a fresh registry and traversal state; nothing is shared
  between runs.
  """

  def __init__(self, config: Optional[InstrumentationConfig] = None) -> None:
    self.config = config or InstrumentationConfig()

  def parse(self, unit: SourceUnit) -> cst.Module:
    """
    Raises:
        libcst.ParserSyntaxError: If the unit is not valid Python.
    """
    return cst.parse_module(unit.code)

  def run(self, units: Sequence[SourceUnit]) -> InstrumentationResult:
    """
    Executes the full pipeline.

    Args:
        units: The program's source units, in program order.

    Returns:
        InstrumentationResult: Instrumented code, sites and mapping, or errors.
    """
    reset_tracer()
    tracer = get_tracer()
    tracer.start_phase("Instrumentation Pipeline", f"{len(units)} source units")

    # --- PHASE 1: PARSING ---
    tracer.start_phase("Parsing")
    modules: List[cst.Module] = []
    for unit in units:
      try:
        modules.append(self.parse(unit))
      except cst.ParserSyntaxError as e:
        log_error(f"Failed to parse [path]{unit.name}[/path]: {e.message}")
        return InstrumentationResult(
          errors=[f"Parse Error in {unit.name}: {e.message}"],
          success=False,
          trace_events=tracer.export(),
        )
    tracer.end_phase()

    # --- PHASE 2: INSTRUMENTATION ---
    registry = ParameterMapping()
    state = TraversalState()
    changes = ChangeLog()
    builder = CallSiteBuilder(self.config, registry, changes, tracer=tracer)
    instrumented: List[InstrumentedUnit] = []

    try:
      for unit, module in zip(units, modules):
        tracer.start_phase(f"Instrumenting {unit.name}")
        wrapper = MetadataWrapper(module, cache={SourceFileProvider: unit.name})
        transformer = CoverageInstrumenter(unit.name, self.config, state, builder, tracer=tracer)
        tree = wrapper.visit(transformer)

        if self.config.inject_hook_import and transformer.instrumented_count:
          tree = self._inject_hook_import(tree)

        instrumented.append(
          InstrumentedUnit(name=unit.name, code=tree.code, site_count=transformer.instrumented_count)
        )
        tracer.end_phase()

      # --- PHASE 3: MATERIALIZATION ---
      tracer.start_phase("Materializing Mapping")
      mapping = registry.materialize()
      tracer.end_phase()
    except InstrumentationError as e:
      log_error(f"Instrumentation aborted: {e}")
      return InstrumentationResult(
        errors=[f"{type(e).__name__}: {e}"],
        success=False,
        trace_events=tracer.export(),
      )

    if not state.hook_file_seen:
      message = f"Runtime hook file '{self.config.hook_file_name}' was not found; no code was instrumented."
      log_warning(message)
      tracer.log_warning(message)

    tracer.end_phase()
    log_info(f"Instrumented {len(builder.sites)} functions with {registry.identifier_count} identifiers.")

    return InstrumentationResult(
      units=instrumented,
      sites=list(builder.sites),
      mapping=mapping,
      changed_scopes=[f"{c.file_name}::{c.scope_name}" for c in changes.changes],
      trace_events=tracer.export(),
    )

  def _inject_hook_import(self, tree: cst.Module) -> cst.Module:
    """
    Adds ``import <hook_namespace>`` after the module docstring and any
    ``__future__`` imports, unless an identical import is already present.
    """
    import_stmt = cst.SimpleStatementLine(
      body=[cst.Import(names=[cst.ImportAlias(name=create_dotted_name(self.config.hook_namespace))])]
    )
    signature = capture_node_source(import_stmt)

    body = list(tree.body)
    insert_idx = 0
    for i, stmt in enumerate(body):
      if capture_node_source(stmt) == signature:
        return tree
      if i == insert_idx and (_is_module_docstring(stmt, i) or _is_future_import(stmt)):
        insert_idx = i + 1

    body.insert(insert_idx, import_stmt)
    return tree.with_changes(body=body)


def _is_module_docstring(stmt: cst.CSTNode, idx: int) -> bool:
  if idx != 0 or not isinstance(stmt, cst.SimpleStatementLine) or len(stmt.body) != 1:
    return False
  small = stmt.body[0]
  return isinstance(small, cst.Expr) and isinstance(small.value, (cst.SimpleString, cst.ConcatenatedString))


def _is_future_import(stmt: cst.CSTNode) -> bool:
  if not isinstance(stmt, cst.SimpleStatementLine):
    return False
  for small in stmt.body:
    if isinstance(small, cst.ImportFrom) and isinstance(small.module, cst.Name) and small.module.value == "__future__":
      return True
  return False
