"""Latest live and site results shared between refreshers and HTTP handlers."""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional

from .models import DailySummary, LiveSummary, SnapshotStatus


class SnapshotStore:
    """Single-writer-at-a-time holder for the most recent summaries.

    Each update replaces a whole record under one lock, so readers never see
    a partially written summary.
    """

    def __init__(self, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self._clock = clock
        self._lock = asyncio.Lock()
        self._live: Optional[LiveSummary] = None
        self._site: Optional[DailySummary] = None
        self._last_live_refresh: Optional[datetime] = None
        self._last_site_refresh: Optional[datetime] = None

    async def update_live(self, live: LiveSummary):
        async with self._lock:
            self._live = live
            self._last_live_refresh = self._clock()

    async def update_site(self, site: DailySummary):
        async with self._lock:
            self._site = site
            self._last_site_refresh = self._clock()

    async def live(self) -> LiveSummary:
        """Latest live summary; unavailable until the first refresh."""
        async with self._lock:
            return self._live or LiveSummary.unavailable()

    async def site(self) -> DailySummary:
        """Latest daily summary; unavailable until the first refresh."""
        async with self._lock:
            return self._site or DailySummary.unavailable()

    async def status(self) -> SnapshotStatus:
        async with self._lock:
            return SnapshotStatus(
                live_available=bool(self._live and self._live.available),
                site_available=bool(self._site and self._site.available),
                last_live_refresh=self._last_live_refresh,
                last_site_refresh=self._last_site_refresh,
            )
