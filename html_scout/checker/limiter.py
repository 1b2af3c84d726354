"""
Fetch limiter: global bounded-concurrency gate for filesystem and network probes.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class FetchLimiter:
    """Counting semaphore shared by every probe of a run.

    ``peak`` records the highest number of simultaneously held tokens.
    """

    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self.in_use = 0
        self.peak = 0
        self.acquired_total = 0

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        async with self._semaphore:
            self.in_use += 1
            self.acquired_total += 1
            self.peak = max(self.peak, self.in_use)
            try:
                yield
            finally:
                self.in_use -= 1

    @property
    def saturated(self) -> bool:
        return self.in_use >= self.limit


__all__ = ["FetchLimiter"]
