"""
Detached Node Rendering.

LibCST can only render a node inside a Module context. This helper renders
synthesized nodes (which are not attached to any parsed tree) so that they
can be recorded in trace events.
"""

import libcst as cst

_RENDER_CTX = cst.parse_module("")


def capture_node_source(node: cst.CSTNode) -> str:
  """
  Renders a LibCST node as Python source.

  Args:
      node: The CST node to render.

  Returns:
      str: The source text, stripped of surrounding whitespace.
  """
  return _RENDER_CTX.code_for_node(node).strip()
