# File: html_scout/engine.py
"""html_scout.engine: оркестрация аудита: обход документов, проверка ссылок, итоговый лог."""

from __future__ import annotations

import asyncio
import os
import time
from pathlib import Path
from typing import Callable, List, Optional

from aiohttp import ClientSession

from html_scout.checker.checker import ReferenceChecker, enabled_checks
from html_scout.checker.fetcher import Fetcher, create_session
from html_scout.checker.limiter import FetchLimiter
from html_scout.config import AuditOptions
from html_scout.context import AuditContext
from html_scout.issues import Issue, IssueLevel, IssueStore
from html_scout.logger import logger
from html_scout.output import abort_with, check_internal
from html_scout.parser.document_store import DocumentStore
from html_scout.parser.html_parser import Document, Node
from html_scout.refcache import CacheLoadError, RefCache

__all__ = ["HTMLAudit"]

CONCURRENT_MODE_WARNING = "running in concurrent mode, this is experimental"
CACHE_UNREADABLE_WARNING = "refcache could not be read, starting with an empty cache"


class HTMLAudit:
    """Один запуск аудита: pre-flight, обход документов, сохранение кэша и лога.

    *session* replaces the HTTP session built from the options (tests);
    *clock* drives cache freshness.
    """

    def __init__(
        self,
        options: AuditOptions,
        *,
        session: Optional[ClientSession] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.options = options
        self._session = session
        self._clock = clock
        self.issue_store = IssueStore(
            log_level=options.log_level,
            print_immediately=options.log_sort == "seq",
        )
        self.ref_cache = RefCache(options.cache_expires, clock=clock)
        self.internal_cache = RefCache(None, clock=clock)
        self.fetch_limiter = FetchLimiter(options.http_concurrency_limit)
        self.document_store: Optional[DocumentStore] = None
        self.ctx: Optional[AuditContext] = None
        self.checker: Optional[ReferenceChecker] = None
        self.duration: float = 0.0
        self.tested_documents = 0

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def run(self) -> IssueStore:
        """Проверить все документы (или один) и вернуть хранилище замечаний."""
        start = time.monotonic()
        base_path, single = self._preflight()

        store = DocumentStore(
            base_path,
            document_extension=self.options.file_extension,
            directory_index=self.options.directory_index,
            ignore_patterns=self.options.ignore_dirs,
        )
        store.discover()
        self.document_store = store

        documents: List[Document]
        if single is not None:
            document = store.resolve_path(single)
            if document is None:
                abort_with("Could not find document", single, "in", base_path)
            documents = [document]
        else:
            documents = list(store.documents)
        self.tested_documents = len(documents)

        if self.options.enable_cache:
            self._load_cache()

        owns_session = self._session is None and self.options.check_external
        session = create_session(self.options) if owns_session else self._session
        try:
            self.ctx = AuditContext(
                options=self.options,
                issue_store=self.issue_store,
                ref_cache=self.ref_cache,
                internal_cache=self.internal_cache,
                fetch_limiter=self.fetch_limiter,
                fetcher=Fetcher(session, self.fetch_limiter, self.options.directory_index),
                document_store=store,
            )
            self.checker = ReferenceChecker(self.ctx)
            logger.info("Audit started: %d document(s) in %s", len(documents), base_path)
            await self._test_documents(documents)
        finally:
            if owns_session and session is not None:
                await session.close()

        self.issue_store.flush_all()
        if self.options.enable_cache:
            self.ref_cache.persist(self.options.cache_path)
        if self.options.enable_log:
            self.issue_store.write_log(self.options.log_path)

        self.duration = time.monotonic() - start
        logger.info(
            "Audit finished: %d document(s), %d error(s) in %.2f s",
            len(documents),
            self.count_errors(),
            self.duration,
        )
        return self.issue_store

    def start_audit(self) -> IssueStore:
        """Синхронная обёртка для CLI."""
        return asyncio.run(self.run())

    def count_errors(self) -> int:
        return self.issue_store.count_errors()

    def count_documents(self) -> int:
        """Documents tested by this run (one in single-document mode)."""
        return self.tested_documents

    # ------------------------------------------------------------------ #
    # Pre-flight
    # ------------------------------------------------------------------ #

    def _preflight(self) -> tuple[Path, Optional[str]]:
        """Return ``(root, single document or None)``; abort on fatal conditions."""
        directory = self.options.directory_path
        single = self.options.file_path
        if directory is None:
            if not single:
                abort_with("Neither file or directory path provided")
            directory = Path(single).parent
            single = Path(single).name

        if not directory.exists():
            abort_with(f"Cannot access '{directory}', no such directory.")
        if not directory.is_dir():
            abort_with(f"DirectoryPath '{directory}' is a file, not a directory.")
        if not os.access(directory, os.R_OK | os.X_OK):
            abort_with(f"Cannot read '{directory}', permission denied.")
        return directory, single

    def _load_cache(self) -> None:
        try:
            loaded = self.ref_cache.load(self.options.cache_path)
        except CacheLoadError:
            self.issue_store.add_issue(Issue(level=IssueLevel.WARNING, message=CACHE_UNREADABLE_WARNING))
        else:
            logger.debug("Refcache warm start: %d entries", loaded)

    # ------------------------------------------------------------------ #
    # Document tasks
    # ------------------------------------------------------------------ #

    async def _test_documents(self, documents: List[Document]) -> None:
        check_internal(self.checker is not None, "documents tested before the checker was built")
        if not self.options.test_files_concurrently:
            for document in documents:
                await self._test_document(document)
            return

        self.issue_store.add_issue(Issue(level=IssueLevel.WARNING, message=CONCURRENT_MODE_WARNING))
        pool = self.ctx.document_pool

        async def _bounded(document: Document) -> None:
            async with pool:
                await self._test_document(document)

        await asyncio.gather(*(_bounded(d) for d in documents))

    async def _test_document(self, document: Document) -> None:
        await asyncio.to_thread(document.parse)

        if self.options.check_doctype:
            self._check_doctype(document)

        for node in document.nodes:
            self._note_state(document, node)
            for check in enabled_checks(self.options, node.tag):
                await self.checker.check(document, node, check)

        self._post_checks(document)

        if self.options.log_sort == "document":
            self.issue_store.flush_document(document.site_path)

    @staticmethod
    def _note_state(document: Document, node: Node) -> None:
        if node.tag == "link" and "icon" in node.rel and node.get("href"):
            document.state.favicon_present = True

    def _check_doctype(self, document: Document) -> None:
        doctype = document.state.doctype
        if doctype is None:
            self._document_error(document, "missing doctype")
        elif self.options.enforce_html5 and doctype.strip().lower() != "html":
            self._document_error(document, "doctype isn't html5")

    def _post_checks(self, document: Document) -> None:
        if self.options.check_favicon and not document.state.favicon_present:
            self._document_error(document, "favicon missing")

    def _document_error(self, document: Document, message: str) -> None:
        self.issue_store.add_issue(
            Issue(level=IssueLevel.ERROR, message=message, document=document.site_path)
        )

