# File: html_scout/aggregator.py
"""html_scout.aggregator: сводный отчёт по результатам аудита."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TypedDict

from html_scout.issues import Issue, IssueLevel


class IssueInfo(TypedDict, total=False):
    """Одно замечание в сериализуемом виде."""

    seq: Optional[int]
    level: str
    message: str
    document: Optional[str]
    reference: Optional[str]
    node: Optional[str]


@dataclass(slots=True)
class AuditReport:
    """Итог аудита: счётчики, замечания и замечания, сгруппированные по документам."""

    documents: int = 0
    errors: int = 0
    warnings: int = 0
    duration: float = 0.0
    issues: List[IssueInfo] = field(default_factory=list)
    by_document: Dict[str, List[IssueInfo]] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.errors == 0


def _issue_info(issue: Issue) -> IssueInfo:
    return IssueInfo(**issue.as_dict())  # type: ignore[typeddict-item]


def aggregate_results(issues: List[Issue], documents: int, duration: float = 0.0) -> AuditReport:
    """Собирает замечания в AuditReport, сохраняя порядок лога."""
    levels = Counter(issue.level for issue in issues)
    report = AuditReport(
        documents=documents,
        errors=levels.get(IssueLevel.ERROR, 0),
        warnings=levels.get(IssueLevel.WARNING, 0),
        duration=round(duration, 3),
    )
    for issue in issues:
        info = _issue_info(issue)
        report.issues.append(info)
        report.by_document.setdefault(issue.document or "", []).append(info)
    return report


def report_from_audit(audit: Any) -> AuditReport:
    """Shortcut for a finished :class:`~html_scout.engine.HTMLAudit`."""
    return aggregate_results(audit.issue_store.issues, audit.count_documents(), audit.duration)


__all__ = ["AuditReport", "IssueInfo", "aggregate_results", "report_from_audit"]
