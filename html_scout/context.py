"""Shared state of one audit run, handed to every document task."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from html_scout.checker.fetcher import Fetcher
from html_scout.checker.limiter import FetchLimiter
from html_scout.config import AuditOptions
from html_scout.issues import IssueStore
from html_scout.parser.document_store import DocumentStore
from html_scout.refcache import RefCache


@dataclass
class AuditContext:
    """Each piece of mutable state is owned by its component.

    ``ref_cache`` holds network results and may be persisted;
    ``internal_cache`` holds filesystem and fragment results for this run only.
    """

    options: AuditOptions
    issue_store: IssueStore
    ref_cache: RefCache
    internal_cache: RefCache
    fetch_limiter: FetchLimiter
    fetcher: Fetcher
    document_store: DocumentStore
    document_pool: asyncio.Semaphore = field(init=False)

    def __post_init__(self) -> None:
        self.document_pool = asyncio.Semaphore(self.options.document_concurrency_limit)


__all__ = ["AuditContext"]
