# html_scout/checker/checker.py
"""
Reference checker: turns one (document, node, attribute) into zero or more issues.

Resolution always goes through a :class:`~html_scout.refcache.RefCache`, so a
reference shared by many documents is probed once per run.
"""
from __future__ import annotations

import asyncio
import re
from typing import List, Optional

from html_scout.checker.reference import Reference, RefKind
from html_scout.checker.registry import AttributeCheck, CheckKind, checks_for
from html_scout.config import AuditOptions
from html_scout.context import AuditContext
from html_scout.issues import Issue, IssueLevel
from html_scout.logger import get_logger
from html_scout.parser.html_parser import Document, Node
from html_scout.refcache import RefStatus, Resolution

log = get_logger("checker")

_IGNORE_ATTRIBUTE = "data-proofer-ignore"
_SKIPPED_RELS = {"dns-prefetch", "preconnect"}
_META_URL_RE = re.compile(r"^\s*url\s*=\s*(?P<url>.*)$", re.IGNORECASE)


class ReferenceChecker:
    """Checks the references of a single node, emitting issues as a side effect."""

    def __init__(self, ctx: AuditContext) -> None:
        self.ctx = ctx
        self.options = ctx.options
        self._ignore_urls = [re.compile(p) for p in ctx.options.ignore_urls]

    # ------------------------------------------------------------------ #
    # Entry point
    # ------------------------------------------------------------------ #

    async def check(self, document: Document, node: Node, check: AttributeCheck) -> None:
        if node.has(_IGNORE_ATTRIBUTE):
            return
        if node.tag == "link" and node.rel & _SKIPPED_RELS:
            return

        if check.kind is CheckKind.META:
            value = self._meta_refresh_target(document, node)
            if value is None:
                return
        else:
            if check.kind is CheckKind.IMAGE:
                self._check_alt(document, node)
            value = node.get(check.attribute)
            if value is None:
                if check.required and not node.has("srcset"):
                    self._error(document, node, f"{check.attribute} attribute missing")
                return

        if not value.strip():
            if check.kind is CheckKind.ANCHOR and self.options.ignore_empty_href:
                return
            self._error(document, node, f"{check.attribute} blank", reference=value)
            return

        if any(p.search(value) for p in self._ignore_urls):
            log.debug("Ignoring %s (ignore_urls)", value)
            return

        ref = Reference.parse(value, check.kind)
        if ref.kind is RefKind.EXTERNAL:
            await self._check_external(document, node, ref)
        elif ref.kind is RefKind.INTERNAL:
            await self._check_internal(document, node, ref)
        elif ref.kind is RefKind.HASH:
            await self._check_hash(document, node, ref)
        elif ref.kind is RefKind.MAILTO:
            self._check_mailto(document, node, ref)
        elif ref.kind is RefKind.TEL:
            self._check_tel(document, node, ref)

    # ------------------------------------------------------------------ #
    # Per-kind strategies
    # ------------------------------------------------------------------ #

    async def _check_external(self, document: Document, node: Node, ref: Reference) -> None:
        if self.options.enforce_https and ref.scheme == "http":
            self._error(document, node, "is not an HTTPS target", reference=ref.raw)
        if not self.options.check_external:
            return
        fetcher = self.ctx.fetcher
        entry, cached = await self.ctx.ref_cache.resolve(
            ref.external_key, lambda: fetcher.probe_url(ref.url)
        )
        log.debug("%s -> %s (%s)%s", ref.url, entry.status.value, entry.detail, " [cache]" if cached else "")
        if not entry.ok:
            self._error(document, node, entry.detail, reference=ref.raw)

    async def _check_internal(self, document: Document, node: Node, ref: Reference) -> None:
        if not self.options.check_internal:
            return
        target = ref.target_path(document.file_path, self.ctx.document_store.base_path)
        fetcher = self.ctx.fetcher
        entry, _ = await self.ctx.internal_cache.resolve(
            str(target), lambda: fetcher.probe_path(target)
        )
        if not entry.ok:
            self._error(document, node, entry.detail, reference=ref.raw)
            return
        if ref.fragment and self.options.check_internal_hash:
            target_doc = self.ctx.document_store.find(target)
            if target_doc is not None:
                await self._check_fragment(document, node, ref, target_doc)

    async def _check_hash(self, document: Document, node: Node, ref: Reference) -> None:
        if not ref.fragment:
            if not self.options.ignore_internal_empty_hash:
                self._error(document, node, "empty hash", reference=ref.raw)
            return
        if self.options.check_internal_hash:
            await self._check_fragment(document, node, ref, document)

    async def _check_fragment(
        self, document: Document, node: Node, ref: Reference, target: Document
    ) -> None:
        fragment = ref.fragment

        async def _lookup() -> Resolution:
            if not target.parsed:
                await asyncio.to_thread(target.parse)
            if target.has_anchor(fragment):
                return Resolution(RefStatus.VALID, "anchor")
            return Resolution(RefStatus.INVALID, "hash does not exist")

        entry, _ = await self.ctx.internal_cache.resolve(ref.fragment_key(target.file_path), _lookup)
        if not entry.ok:
            self._error(document, node, entry.detail, reference=ref.raw)

    def _check_mailto(self, document: Document, node: Node, ref: Reference) -> None:
        if not self.options.check_mailto:
            return
        address = ref.address.split("?", 1)[0]
        if not address:
            self._error(document, node, "mailto is empty", reference=ref.raw)
        elif "@" not in address:
            self._error(document, node, "contains an invalid email address", reference=ref.raw)

    def _check_tel(self, document: Document, node: Node, ref: Reference) -> None:
        if self.options.check_tel and not ref.address:
            self._error(document, node, "tel is empty", reference=ref.raw)

    # ------------------------------------------------------------------ #
    # Node specifics
    # ------------------------------------------------------------------ #

    def _check_alt(self, document: Document, node: Node) -> None:
        if not self.options.ignore_alt_missing and not node.has("alt"):
            self._error(document, node, "alt attribute missing", reference=node.get("src"))

    def _meta_refresh_target(self, document: Document, node: Node) -> Optional[str]:
        """URL of a ``<meta http-equiv="refresh">``; ``None`` for any other meta."""
        if (node.get("http-equiv") or "").strip().lower() != "refresh":
            return None
        content = node.get("content")
        if content is None:
            self._error(document, node, "missing content attribute in meta refresh")
            return None
        for part in content.split(";")[1:]:
            match = _META_URL_RE.match(part)
            if match:
                return match.group("url").strip().strip("'\"")
        return None

    # ------------------------------------------------------------------ #

    def _error(self, document: Document, node: Node, message: str, reference: Optional[str] = None) -> None:
        self.ctx.issue_store.add_issue(
            Issue(
                level=IssueLevel.ERROR,
                message=message,
                document=document.site_path,
                reference=reference,
                node=node.describe(),
            )
        )


def enabled_checks(options: AuditOptions, tag: str) -> List[AttributeCheck]:
    """Descriptors of *tag* whose category is switched on in *options*."""
    return [c for c in checks_for(tag) if getattr(options, c.kind.option_name)]


__all__ = ["ReferenceChecker", "enabled_checks"]
