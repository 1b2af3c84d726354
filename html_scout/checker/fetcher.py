# html_scout/checker/fetcher.py
"""
Probes: the resolvers behind the reference cache.

Every probe holds a fetch-limiter token while it touches the network or the
filesystem. Probes never raise for a broken target; they return a
:class:`~html_scout.refcache.Resolution`.
"""
from __future__ import annotations

import asyncio
from pathlib import Path

from aiohttp import ClientError, ClientSession, ClientTimeout, HttpVersion10, TCPConnector

from html_scout.checker.limiter import FetchLimiter
from html_scout.config import AuditOptions
from html_scout.logger import get_logger
from html_scout.refcache import RefStatus, Resolution

log = get_logger("fetcher")


def create_session(options: AuditOptions) -> ClientSession:
    """Build the shared HTTP session.

    ``conservative_transport`` pins HTTP/1.0 and disables keep-alive for
    hosts that hang on connection reuse.
    """
    timeout = ClientTimeout(total=options.external_timeout)
    if options.conservative_transport:
        return ClientSession(
            timeout=timeout,
            headers=options.http_headers,
            connector=TCPConnector(force_close=True),
            version=HttpVersion10,
            raise_for_status=False,
        )
    return ClientSession(
        timeout=timeout,
        headers=options.http_headers,
        connector=TCPConnector(limit=options.http_concurrency_limit),
        raise_for_status=False,
    )


class Fetcher:
    """Runs filesystem and network probes under the fetch limiter."""

    def __init__(self, session: ClientSession | None, limiter: FetchLimiter, directory_index: str = "index.html") -> None:
        self.session = session
        self.limiter = limiter
        self.directory_index = directory_index
        self.url_probes = 0
        self.path_probes = 0

    async def probe_url(self, url: str) -> Resolution:
        """GET *url*, following redirects; any status below 400 is valid."""
        if self.session is None:
            raise RuntimeError("Session not initialized")
        async with self.limiter.slot():
            self.url_probes += 1
            log.debug("GET %s", url)
            try:
                async with self.session.get(url, allow_redirects=True) as resp:
                    status = resp.status
            except asyncio.TimeoutError:
                return Resolution(RefStatus.ERROR, "request exceeded our ExternalTimeout")
            except ClientError as exc:
                return Resolution(RefStatus.ERROR, f"error requesting: {str(exc) or type(exc).__name__}")
        if status >= 400:
            return Resolution(RefStatus.INVALID, f"Non-OK status: {status}")
        return Resolution(RefStatus.VALID, str(status))

    async def probe_path(self, path: Path) -> Resolution:
        """Check that *path* exists; a directory must contain the directory index."""
        async with self.limiter.slot():
            self.path_probes += 1
            return await asyncio.to_thread(self._stat, path)

    def _stat(self, path: Path) -> Resolution:
        if path.is_dir():
            if (path / self.directory_index).is_file():
                return Resolution(RefStatus.VALID, "directory")
            return Resolution(RefStatus.INVALID, f"target is a directory without {self.directory_index}")
        if path.exists():
            return Resolution(RefStatus.VALID, "file")
        return Resolution(RefStatus.INVALID, "target does not exist")


__all__ = ["Fetcher", "create_session"]
