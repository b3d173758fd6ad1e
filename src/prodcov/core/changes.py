"""
Change Notification.

The instrumentation pass reports every mutated function body to a change
reporter, mirroring how compiler pipelines track which scopes need
re-analysis by later passes. `ChangeLog` is the default reporter: it keeps an
ordered record of changed scopes.
"""

from dataclasses import dataclass
from typing import List, Protocol


class ChangeReporter(Protocol):
  """Collaborator notified once per instrumented function body."""

  def report_change(self, file_name: str, scope_name: str) -> None: ...


@dataclass(frozen=True)
class ScopeChange:
  file_name: str
  scope_name: str


class ChangeLog:
  """
  Records changed scopes in notification order.

  Attributes:
      changes (List[ScopeChange]): One entry per notification.
  """

  def __init__(self) -> None:
    self.changes: List[ScopeChange] = []

  def report_change(self, file_name: str, scope_name: str) -> None:
    self.changes.append(ScopeChange(file_name=file_name, scope_name=scope_name))

  def changed_files(self) -> List[str]:
    """Distinct file names with at least one change, in first-reported order."""
    return list(dict.fromkeys(change.file_name for change in self.changes))
