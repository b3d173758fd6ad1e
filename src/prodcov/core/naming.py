"""
Function Name Resolution.

Determines the human-readable name recorded for an instrumented function.
Names follow Python's `__qualname__` convention so that a decoded coordinate
can be matched against runtime objects:

- ``def`` statements: enclosing classes and functions, then the def name
  (``Model.forward``, ``build.<locals>.step``).
- ``lambda`` expressions: the name the lambda is bound to, taken from its
  syntactic position (assignment or walrus target, keyword argument, string
  dictionary key). Attribute targets such as ``self.callback`` are used as
  written. Unbound lambdas receive a fixed placeholder.
"""

from typing import Callable, Optional, Sequence, Union

import libcst as cst

from prodcov.utils.node_diff import capture_node_source

FunctionNode = Union[cst.FunctionDef, cst.Lambda]


def scope_prefix(scopes: Sequence[str]) -> str:
  """
  Joins the enclosing scope stack into a qualname prefix.

  >>> scope_prefix(["Model", "forward.<locals>"])
  'Model.forward.<locals>.'
  """
  return "".join(f"{scope}." for scope in scopes)


def get_full_name(node: cst.BaseExpression) -> Optional[str]:
  """
  Flattens a Name/Attribute chain into a dotted string.

  Returns:
      Optional[str]: e.g. "self.handlers.on_click", or None for other expressions.
  """
  if isinstance(node, cst.Name):
    return node.value
  if isinstance(node, cst.Attribute):
    base = get_full_name(node.value)
    return f"{base}.{node.attr.value}" if base else None
  return None


def get_lvalue_name(node: cst.Lambda, parent: Optional[cst.CSTNode]) -> Optional[str]:
  """
  Finds the name a lambda is bound to by its direct syntactic parent.

  Args:
      node: The lambda expression.
      parent: Its parent node.

  Returns:
      Optional[str]: The bound name, or None if the lambda is not bound.
  """
  target: Optional[cst.BaseExpression] = None

  if isinstance(parent, cst.Assign) and parent.value is node:
    target = parent.targets[0].target
  elif isinstance(parent, cst.AnnAssign) and parent.value is node:
    target = parent.target
  elif isinstance(parent, cst.NamedExpr) and parent.value is node:
    target = parent.target
  elif isinstance(parent, cst.Arg) and parent.value is node and parent.keyword is not None:
    target = parent.keyword
  elif isinstance(parent, cst.DictElement) and parent.value is node:
    if isinstance(parent.key, cst.SimpleString):
      key = parent.key.evaluated_value
      if isinstance(key, str) and key:
        return key
    return None

  if target is None:
    return None
  return get_full_name(target)


def resolve_function_name(
  node: FunctionNode,
  scopes: Sequence[str],
  get_parent: Callable[[cst.CSTNode], Optional[cst.CSTNode]],
  anonymous_name: str,
) -> str:
  """
  Resolves the best name for a function node.

  Args:
      node: The `FunctionDef` or `Lambda` (an original, metadata-bearing node).
      scopes: Enclosing scope stack, excluding the node itself.
      get_parent: Parent lookup (usually backed by `ParentNodeProvider`).
      anonymous_name: Placeholder for unbound lambdas.

  Returns:
      str: The qualified name.
  """
  if isinstance(node, cst.FunctionDef):
    return f"{scope_prefix(scopes)}{node.name.value}"

  lvalue = get_lvalue_name(node, get_parent(node))
  if lvalue is None:
    return anonymous_name
  if "." in lvalue:
    return lvalue
  return f"{scope_prefix(scopes)}{lvalue}"


def describe(node: cst.CSTNode) -> str:
  """Short one-line rendering of a node for trace messages."""
  if isinstance(node, cst.FunctionDef):
    return f"def {node.name.value}"
  source = capture_node_source(node).splitlines()
  return source[0] if source else type(node).__name__
