"""
Reference cache: deduplicating, TTL-based, persistable ``key → status`` store.

:meth:`RefCache.resolve` gives every key at most one real resolver call while
a fresh entry exists, even when many tasks ask for the same key at the same
time: the first caller resolves, the others await its future.

The cache belongs to one event loop; the check-then-mark transition in
:meth:`RefCache.resolve` contains no ``await`` and is therefore atomic.
"""
from __future__ import annotations

import asyncio
import json
import os
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from html_scout.logger import get_logger

__all__ = [
    "RefStatus",
    "Resolution",
    "CacheEntry",
    "CacheLoadError",
    "RefCache",
]

_SNAPSHOT_VERSION = 1

log = get_logger("refcache")


class RefStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class Resolution:
    """What a resolver returns: status plus a human-readable detail."""

    status: RefStatus
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status is RefStatus.VALID


@dataclass(slots=True, frozen=True)
class CacheEntry:
    key: str
    status: RefStatus
    detail: str
    timestamp: float

    @property
    def ok(self) -> bool:
        return self.status is RefStatus.VALID


class CacheLoadError(ValueError):
    """Persisted snapshot could not be read; the cache was left empty."""


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: RefStatus
    detail: str = ""
    timestamp: float


class _Snapshot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: int = _SNAPSHOT_VERSION
    entries: Dict[str, _Record] = {}


Resolver = Callable[[], Awaitable[Resolution]]


class RefCache:
    """TTL cache with single-flight resolution.

    ``ttl=None`` means entries never expire.
    """

    def __init__(
        self,
        ttl: Union[timedelta, float, None] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if isinstance(ttl, timedelta):
            ttl = ttl.total_seconds()
        self.ttl: Optional[float] = ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[str, asyncio.Future[CacheEntry]] = {}

    # ------------------------------------------------------------------ #
    # Lookup
    # ------------------------------------------------------------------ #

    def is_fresh(self, entry: CacheEntry) -> bool:
        if self.ttl is None:
            return True
        return self._clock() - entry.timestamp < self.ttl

    def get(self, key: str) -> Optional[CacheEntry]:
        """Fresh entry for *key* or ``None``; stale entries count as absent."""
        entry = self._entries.get(key)
        if entry is not None and self.is_fresh(entry):
            return entry
        return None

    def store(self, key: str, resolution: Resolution, timestamp: Optional[float] = None) -> CacheEntry:
        entry = CacheEntry(
            key=key,
            status=resolution.status,
            detail=resolution.detail,
            timestamp=self._clock() if timestamp is None else timestamp,
        )
        self._entries[key] = entry
        return entry

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def resolve(self, key: str, resolver: Resolver) -> Tuple[CacheEntry, bool]:
        """Return ``(entry, from_cache)`` for *key*.

        ``from_cache`` is ``False`` only for the caller that actually ran
        *resolver*; callers served by a stored entry or by a concurrent
        resolution get ``True``.
        """
        entry = self.get(key)
        if entry is not None:
            return entry, True

        pending = self._in_flight.get(key)
        if pending is not None:
            return await asyncio.shield(pending), True

        future: asyncio.Future[CacheEntry] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            resolution = await resolver()
            entry = self.store(key, resolution)
        except BaseException as exc:
            if isinstance(exc, asyncio.CancelledError):
                future.cancel()
            else:
                future.set_exception(exc)
                # waiters re-raise it; mark retrieved so an unobserved future stays quiet
                future.exception()
            raise
        else:
            future.set_result(entry)
            return entry, False
        finally:
            del self._in_flight[key]

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    def load(self, path: Union[str, Path]) -> int:
        """Restore entries from *path*; returns the number of entries loaded.

        A missing file is a cold start. Anything unreadable leaves the cache
        empty and raises :class:`CacheLoadError`.
        """
        p = Path(path)
        if not p.exists():
            log.debug("No refcache at %s, starting cold", p)
            return 0
        try:
            raw = json.loads(p.read_text(encoding="utf-8"))
            snapshot = _Snapshot.model_validate(raw)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
            self._entries.clear()
            log.warning("Refcache %s is unreadable, starting empty: %s", p, exc)
            raise CacheLoadError(f"cannot read refcache {p}: {exc}") from exc

        self._entries = {
            key: CacheEntry(key=key, status=rec.status, detail=rec.detail, timestamp=rec.timestamp)
            for key, rec in snapshot.entries.items()
        }
        log.debug("Loaded %d refcache entries from %s", len(self._entries), p)
        return len(self._entries)

    def persist(self, path: Union[str, Path]) -> Path:
        """Write every entry, fresh or not, to *path* (atomic replace)."""
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        snapshot = _Snapshot(
            entries={
                key: _Record(status=e.status, detail=e.detail, timestamp=e.timestamp)
                for key, e in sorted(self._entries.items())
            }
        )
        tmp = p.with_name(p.name + ".tmp")
        tmp.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
        os.replace(tmp, p)
        log.debug("Persisted %d refcache entries to %s", len(self._entries), p)
        return p

    # ------------------------------------------------------------------ #

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
