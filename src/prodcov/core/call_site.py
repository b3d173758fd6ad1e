"""
Instrumentation Call-Site Builder.

Builds the runtime hook invocation and injects it at function entry::

    def f(x):
        return x + 1

becomes::

    def f(x):
        instrument_code.instrument_code_instance.instrument_code("C", 1)
        return x + 1

and ``lambda x: x + 1`` becomes
``lambda x: (instrument_code.instrument_code_instance.instrument_code("E", 3), x + 1)[-1]``.

The first argument is the identifier allocated by the registry for the
function's coordinate; the second is the 1-based source line of the body.
"""

from dataclasses import dataclass
from typing import List, Optional, Union

import libcst as cst
from pydantic import BaseModel, ConfigDict

from prodcov.config import InstrumentationConfig
from prodcov.core.changes import ChangeReporter
from prodcov.core.registry import ParameterMapping
from prodcov.core.tracer import TraceLogger, get_tracer
from prodcov.enums import InstrumentationKind
from prodcov.utils.node_diff import capture_node_source


@dataclass(frozen=True)
class SiteContext:
  """
  Traversal facts about the function being instrumented.
  """

  file_name: str
  function_name: str
  line: int
  column: int = 0


class InstrumentationSite(BaseModel):
  """
  Record of one injected call, keeping the source position of the
  instrumented body for downstream diagnostics.
  """

  model_config = ConfigDict(frozen=True)

  file_name: str
  function_name: str
  kind: str
  identifier: str
  line: int
  column: int


def create_dotted_name(name_str: str) -> Union[cst.Name, cst.Attribute]:
  """
  Creates a Name/Attribute chain for a dotted path ("a.b.c").
  """
  parts = name_str.split(".")
  node: Union[cst.Name, cst.Attribute] = cst.Name(parts[0])
  for part in parts[1:]:
    node = cst.Attribute(value=node, attr=cst.Name(part))
  return node


def is_docstring_expr(stmt: cst.CSTNode) -> bool:
  """True if the small statement is a bare string literal."""
  return isinstance(stmt, cst.Expr) and isinstance(stmt.value, (cst.SimpleString, cst.ConcatenatedString))


def _starts_with_docstring(stmt: cst.CSTNode) -> bool:
  return isinstance(stmt, cst.SimpleStatementLine) and bool(stmt.body) and is_docstring_expr(stmt.body[0])


def _split_docstring_line(stmt: cst.SimpleStatementLine) -> List[cst.SimpleStatementLine]:
  """
  Moves statements sharing a line with the docstring (``'doc'; return 2``)
  onto a line of their own, so the hook call can sit between them.
  """
  if len(stmt.body) == 1:
    return [stmt]
  docstring = stmt.body[0].with_changes(semicolon=cst.MaybeSentinel.DEFAULT)
  rest = cst.SimpleStatementLine(body=stmt.body[1:], trailing_whitespace=stmt.trailing_whitespace)
  return [stmt.with_changes(body=[docstring], trailing_whitespace=cst.TrailingWhitespace()), rest]


class CallSiteBuilder:
  """
  Creates hook calls and prepends them to function bodies.

  Attributes:
      sites (List[InstrumentationSite]): Every site injected so far, in order.
  """

  def __init__(
    self,
    config: InstrumentationConfig,
    registry: ParameterMapping,
    change_reporter: ChangeReporter,
    tracer: Optional[TraceLogger] = None,
  ) -> None:
    self.config = config
    self.registry = registry
    self.change_reporter = change_reporter
    self._tracer = tracer
    self.sites: List[InstrumentationSite] = []

  @property
  def tracer(self) -> TraceLogger:
    return self._tracer or get_tracer()

  def build_call(self, encoded_param: str, line: int) -> cst.Call:
    """
    Builds ``<namespace>.<instance>.<method>("<encoded_param>", <line>)``.
    """
    inner_prop = cst.Attribute(
      value=create_dotted_name(self.config.hook_namespace), attr=cst.Name(self.config.hook_instance)
    )
    outer_prop = cst.Attribute(value=inner_prop, attr=cst.Name(self.config.hook_method))
    return cst.Call(
      func=outer_prop,
      args=[
        cst.Arg(
          value=cst.SimpleString(f'"{encoded_param}"'),
          comma=cst.Comma(whitespace_after=cst.SimpleWhitespace(" ")),
        ),
        cst.Arg(value=cst.Integer(str(line))),
      ],
    )

  def build_statement(self, encoded_param: str, line: int) -> cst.SimpleStatementLine:
    return cst.SimpleStatementLine(body=[cst.Expr(value=self.build_call(encoded_param, line))])

  def _allocate(self, context: SiteContext) -> str:
    kind = InstrumentationKind.FUNCTION.value
    encoded_param = self.registry.encode(context.file_name, context.function_name, kind)
    self.sites.append(
      InstrumentationSite(
        file_name=context.file_name,
        function_name=context.function_name,
        kind=kind,
        identifier=encoded_param,
        line=context.line,
        column=context.column,
      )
    )
    return encoded_param

  def instrument_block(self, body: cst.BaseSuite, context: SiteContext) -> cst.BaseSuite:
    """
    Inserts the hook call as the first executable statement of a function body.

    A leading docstring stays in place so that ``__doc__`` is preserved.

    Args:
        body: The function body (`IndentedBlock` or one-line `SimpleStatementSuite`).
        context: Site facts (file, function name, line).

    Returns:
        The updated body.
    """
    encoded_param = self._allocate(context)

    if isinstance(body, cst.IndentedBlock):
      statements = list(body.body)
      insert_idx = 0
      if statements and _starts_with_docstring(statements[0]):
        statements[0:1] = _split_docstring_line(statements[0])
        insert_idx = 1
      statements.insert(insert_idx, self.build_statement(encoded_param, context.line))
      updated = body.with_changes(body=statements)
    else:
      # Small statements left at their default separator are joined with "; ".
      small = list(body.body)
      insert_idx = 1 if small and is_docstring_expr(small[0]) else 0
      small.insert(insert_idx, cst.Expr(value=self.build_call(encoded_param, context.line)))
      updated = body.with_changes(body=small)

    self._notify(context, encoded_param)
    return updated

  def instrument_lambda(self, node: cst.Lambda, context: SiteContext) -> cst.Lambda:
    """
    Rewrites a lambda body to ``(<hook call>, <body>)[-1]``.

    The tuple evaluates the hook first and the original body second; indexing
    returns the body's value unchanged.
    """
    encoded_param = self._allocate(context)

    sequenced = cst.Subscript(
      value=cst.Tuple(
        elements=[
          cst.Element(
            value=self.build_call(encoded_param, context.line),
            comma=cst.Comma(whitespace_after=cst.SimpleWhitespace(" ")),
          ),
          cst.Element(value=node.body),
        ],
        lpar=[cst.LeftParen()],
        rpar=[cst.RightParen()],
      ),
      slice=[
        cst.SubscriptElement(
          slice=cst.Index(value=cst.UnaryOperation(operator=cst.Minus(), expression=cst.Integer("1")))
        )
      ],
    )
    updated = node.with_changes(body=sequenced)

    self._notify(context, encoded_param)
    return updated

  def _notify(self, context: SiteContext, encoded_param: str) -> None:
    self.change_reporter.report_change(context.file_name, context.function_name)
    self.tracer.log_mutation(
      context.function_name,
      "(function entry)",
      capture_node_source(self.build_call(encoded_param, context.line)),
      file=context.file_name,
      line=context.line,
    )
