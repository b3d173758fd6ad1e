"""
Source File Provenance.

Earlier pipeline stages may splice code from other files into a module, e.g. a
compatibility shim prepended to every entry point. Such statements carry an
origin marker in their leading comments::

    # prodcov: origin=compat/shims.py
    def backport():
        ...

`SourceFileProvider` resolves, for every node of a module, the file the node
originates from: the origin of the nearest marked enclosing statement, or the
module's own file name otherwise. The module file name is supplied through the
metadata cache::

    wrapper = MetadataWrapper(module, cache={SourceFileProvider: "app/main.py"})
"""

import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import libcst as cst
from libcst.metadata import BaseMetadataProvider

ORIGIN_MARKER = "# prodcov: origin="
_ORIGIN_RE = re.compile(r"^#\s*prodcov:\s*origin=(?P<origin>\S.*?)\s*$")


def read_origin(node: cst.CSTNode) -> Optional[str]:
  """
  Returns the origin declared in a statement's leading comments, if any.

  Args:
      node: Any CST node. Only statements carry `leading_lines`.

  Returns:
      Optional[str]: The declared origin file name.
  """
  leading: Sequence[cst.EmptyLine] = getattr(node, "leading_lines", ())
  for line in leading:
    if line.comment is None:
      continue
    match = _ORIGIN_RE.match(line.comment.value)
    if match:
      return match.group("origin")
  return None


def mark_origin(stmt: cst.BaseStatement, origin: str) -> cst.BaseStatement:
  """
  Attaches an origin marker to a statement that is about to be spliced into
  another file's module.

  Args:
      stmt: The statement to mark.
      origin: File name the statement comes from.

  Returns:
      The statement with the marker prepended to its leading lines.
  """
  marker = cst.EmptyLine(comment=cst.Comment(f"{ORIGIN_MARKER}{origin}"))
  return stmt.with_changes(leading_lines=[marker, *stmt.leading_lines])


class _OriginVisitor(cst.CSTVisitor):
  """Walks a module, tracking the innermost declared origin."""

  def __init__(self, provider: "SourceFileProvider", file_name: str) -> None:
    super().__init__()
    self._provider = provider
    self._origins: List[str] = [file_name]

  def on_visit(self, node: cst.CSTNode) -> bool:
    origin = read_origin(node)
    self._origins.append(origin if origin is not None else self._origins[-1])
    self._provider.set_metadata(node, self._origins[-1])
    return True

  def on_leave(self, original_node: cst.CSTNode) -> None:
    self._origins.pop()


class SourceFileProvider(BaseMetadataProvider[str]):
  """
  Assigns each node the name of the source file it originates from.
  """

  def __init__(self, cache: object = None) -> None:
    if not isinstance(cache, str):
      raise ValueError("SourceFileProvider requires the module file name as its cache value")
    super().__init__(cache)
    self.file_name = cache

  @classmethod
  def gen_cache(cls, root_path: Path, paths: List[str], timeout: Optional[int] = None, **kwargs: Any) -> Dict[str, str]:
    """
    Cache factory for `FullRepoManager`: every module's file name is its path.
    """
    return {path: path for path in paths}

  def _gen_impl(self, module: cst.Module) -> None:
    module.visit(_OriginVisitor(self, self.file_name))
