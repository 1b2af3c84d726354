"""
Issue Store: leveled, ordered and thread-safe collection of audit findings.

Two ordering modes are supported:

* ``seq`` – issues enter the log (and are printed) as soon as they are added;
* ``document`` – issues that belong to a document are buffered until the
  document is flushed, then appended as one contiguous block; run-level
  issues (no document) are appended and printed at once.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from html_scout.logger import get_logger

__all__ = ["IssueLevel", "Issue", "IssueStore"]


class IssueLevel(IntEnum):
    """Severity of an issue; ordering is meaningful (``ERROR`` is the highest)."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3

    @classmethod
    def parse(cls, value: Union[str, int, "IssueLevel"]) -> "IssueLevel":
        if isinstance(value, IssueLevel):
            return value
        if isinstance(value, int):
            return cls(value)
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"unknown issue level: {value!r}") from None

    @property
    def logging_level(self) -> int:
        return _LOGGING_LEVELS[self]


_LOGGING_LEVELS = {
    IssueLevel.DEBUG: logging.DEBUG,
    IssueLevel.INFO: logging.INFO,
    IssueLevel.WARNING: logging.WARNING,
    IssueLevel.ERROR: logging.ERROR,
}


@dataclass(slots=True)
class Issue:
    """Single finding.

    ``seq`` is assigned by the store when the issue enters the log: right
    away in ``seq`` mode and for issues without a document, on
    :meth:`IssueStore.flush_document` for buffered issues, which keep
    ``seq=None`` until then.
    """

    level: IssueLevel
    message: str
    document: Optional[str] = None
    reference: Optional[str] = None
    node: Optional[str] = None
    seq: Optional[int] = field(default=None, compare=False)

    def text(self) -> str:
        parts = [self.message]
        if self.reference:
            parts.append(f"--- {self.reference}")
        if self.node:
            parts.append(f"({self.node})")
        return " ".join(parts)

    def full_text(self) -> str:
        if self.document:
            return f"{self.document}: {self.text()}"
        return self.text()

    def as_dict(self) -> dict:
        return {
            "seq": self.seq,
            "level": self.level.name.lower(),
            "message": self.message,
            "document": self.document,
            "reference": self.reference,
            "node": self.node,
        }


class IssueStore:
    """Append-only issue log shared by every document task."""

    def __init__(
        self,
        log_level: Union[IssueLevel, str, int] = IssueLevel.WARNING,
        print_immediately: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.log_level = IssueLevel.parse(log_level)
        self.print_immediately = print_immediately
        self._logger = logger or get_logger("issues")
        self._lock = threading.Lock()
        self._issues: List[Issue] = []
        self._pending: Dict[str, List[Issue]] = {}
        self._next_seq = 0

    # ------------------------------------------------------------------ #
    # Insertion
    # ------------------------------------------------------------------ #

    def add_issue(self, issue: Issue) -> None:
        """Add *issue*; buffered when the store groups by document."""
        with self._lock:
            if not self.print_immediately and issue.document is not None:
                self._pending.setdefault(issue.document, []).append(issue)
                return
            self._append(issue)
        self._print([issue])

    def flush_document(self, document: str) -> List[Issue]:
        """Move the buffered issues of *document* into the log as one contiguous block."""
        with self._lock:
            block = self._pending.pop(document, [])
            for issue in block:
                self._append(issue)
        if block:
            self._print_document(document, block)
        return block

    def flush_all(self) -> None:
        """Flush every document that still has buffered issues (sorted by document)."""
        with self._lock:
            documents = sorted(self._pending)
        for document in documents:
            self.flush_document(document)

    def _append(self, issue: Issue) -> None:
        issue.seq = self._next_seq
        self._next_seq += 1
        self._issues.append(issue)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    @property
    def issues(self) -> List[Issue]:
        """Snapshot of the log in its final order (buffered issues excluded)."""
        with self._lock:
            return list(self._issues)

    def count(self, level: Union[IssueLevel, str, int]) -> int:
        wanted = IssueLevel.parse(level)
        with self._lock:
            logged = sum(1 for issue in self._issues if issue.level == wanted)
            pending = sum(
                1 for block in self._pending.values() for issue in block if issue.level == wanted
            )
        return logged + pending

    def count_errors(self) -> int:
        return self.count(IssueLevel.ERROR)

    def __len__(self) -> int:
        with self._lock:
            return len(self._issues) + sum(len(b) for b in self._pending.values())

    # ------------------------------------------------------------------ #
    # Output
    # ------------------------------------------------------------------ #

    def _visible(self, issues: Iterable[Issue]) -> List[Issue]:
        return [i for i in issues if i.level >= self.log_level]

    def _print(self, issues: Iterable[Issue]) -> None:
        for issue in self._visible(issues):
            self._logger.log(issue.level.logging_level, issue.full_text())

    def _print_document(self, document: str, block: List[Issue]) -> None:
        visible = self._visible(block)
        if not visible:
            return
        worst = max(i.level for i in visible)
        lines = [document] + [f"  {i.text()}" for i in visible]
        self._logger.log(worst.logging_level, "\n".join(lines))

    def write_log(self, path: Union[str, Path]) -> Path:
        """Write the visible part of the log, one issue per line."""
        output = Path(path)
        output.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            issues = self._visible(self._issues)
        with output.open("w", encoding="utf-8") as fh:
            for issue in issues:
                fh.write(f"[{issue.level.name}] {issue.full_text()}\n")
        return output
