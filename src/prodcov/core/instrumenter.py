"""
Coverage Instrumentation Traversal.

`CoverageInstrumenter` is a post-order LibCST transformer run once per source
unit of a program, in program order. Every node is inspected in `on_leave`
(children before parents) and skipped unless all of the following hold:

1.  The node originates from the unit being traversed (`SourceFileProvider`).
    Code spliced in from other files, such as compatibility shims, is never
    instrumented.
2.  The runtime hook file has already been seen. The flag lives in a
    `TraversalState` shared by all units of the program and flips on the first
    node whose origin ends with the configured hook file name. Calls emitted
    before that point would reference an undefined name. Nodes of the hook file
    itself are never instrumented.
3.  The node is a function: a ``def`` (sync or async) or, when enabled, a
    ``lambda``.

Eligible functions are named (see `prodcov.core.naming`) and handed to the
`CallSiteBuilder` together with that name.
"""

from dataclasses import dataclass
from typing import List, Optional, Union

import libcst as cst
from libcst.metadata import CodeRange, ParentNodeProvider, PositionProvider

from prodcov.config import InstrumentationConfig
from prodcov.core.call_site import CallSiteBuilder, SiteContext
from prodcov.core.naming import FunctionNode, describe, resolve_function_name
from prodcov.core.provenance import SourceFileProvider
from prodcov.core.tracer import TraceLogger, get_tracer


@dataclass
class TraversalState:
  """
  Program-wide traversal facts, shared by the per-unit transformers of one
  compilation.
  """

  hook_file_seen: bool = False


class CoverageInstrumenter(cst.CSTTransformer):
  """
  Injects function-entry coverage calls into one source unit.

  Must be run through a `MetadataWrapper` whose cache maps
  `SourceFileProvider` to `file_name`.
  """

  METADATA_DEPENDENCIES = (PositionProvider, ParentNodeProvider, SourceFileProvider)

  def __init__(
    self,
    file_name: str,
    config: InstrumentationConfig,
    state: TraversalState,
    builder: CallSiteBuilder,
    tracer: Optional[TraceLogger] = None,
  ) -> None:
    super().__init__()
    self.file_name = file_name
    self.config = config
    self.state = state
    self.builder = builder
    self._tracer = tracer
    self._scopes: List[str] = []
    self.instrumented_count = 0

  @property
  def tracer(self) -> TraceLogger:
    return self._tracer or get_tracer()

  def on_visit(self, node: cst.CSTNode) -> bool:
    if isinstance(node, cst.ClassDef):
      self._scopes.append(node.name.value)
    elif isinstance(node, cst.FunctionDef):
      self._scopes.append(f"{node.name.value}.<locals>")
    return super().on_visit(node)

  def on_leave(
    self, original_node: cst.CSTNode, updated_node: cst.CSTNode
  ) -> Union[cst.CSTNode, cst.RemovalSentinel, cst.FlattenSentinel]:
    if isinstance(original_node, (cst.ClassDef, cst.FunctionDef)):
      self._scopes.pop()

    result = super().on_leave(original_node, updated_node)

    if not self._is_eligible(original_node):
      return result

    if isinstance(original_node, cst.FunctionDef) and isinstance(result, cst.FunctionDef):
      return self._instrument_function(original_node, result)
    if isinstance(original_node, cst.Lambda) and isinstance(result, cst.Lambda) and self.config.instrument_lambdas:
      return self._instrument_lambda(original_node, result)
    return result

  def _is_eligible(self, node: cst.CSTNode) -> bool:
    """
    Applies the provenance and hook-file gates to one node, updating the
    hook-file-seen flag as a side effect.
    """
    source_file_name = self.get_metadata(SourceFileProvider, node)

    if source_file_name != self.file_name:
      if isinstance(node, (cst.FunctionDef, cst.Lambda)):
        self.tracer.log_inspection(describe(node), "skipped", f"originates from {source_file_name}")
      return False

    is_hook_file = source_file_name.endswith(self.config.hook_file_name)
    if not self.state.hook_file_seen or is_hook_file:
      if is_hook_file:
        self.state.hook_file_seen = True
      elif isinstance(node, (cst.FunctionDef, cst.Lambda)):
        self.tracer.log_inspection(describe(node), "skipped", "runtime hook file not seen yet")
      return False

    return True

  def _site_context(self, original_node: FunctionNode, position_node: cst.CSTNode) -> SiteContext:
    function_name = resolve_function_name(
      original_node,
      self._scopes,
      lambda n: self.get_metadata(ParentNodeProvider, n, None),
      self.config.anonymous_name,
    )
    position: CodeRange = self.get_metadata(PositionProvider, position_node)
    return SiteContext(
      file_name=self.file_name,
      function_name=function_name,
      line=position.start.line,
      column=position.start.column,
    )

  def _instrument_function(self, original_node: cst.FunctionDef, updated_node: cst.FunctionDef) -> cst.FunctionDef:
    context = self._site_context(original_node, original_node.body)
    body = self.builder.instrument_block(updated_node.body, context)
    self.instrumented_count += 1
    return updated_node.with_changes(body=body)

  def _instrument_lambda(self, original_node: cst.Lambda, updated_node: cst.Lambda) -> cst.Lambda:
    context = self._site_context(original_node, original_node)
    self.instrumented_count += 1
    return self.builder.instrument_lambda(updated_node, context)
