"""Refresh strategies layered over the Solar Analytics fetch pipeline."""

import asyncio
import logging
import time
from datetime import datetime, tzinfo
from typing import Callable, List, Optional

from .aggregator import latest_live, local_day_start, summarize
from .client import SolarAnalyticsClient, SolarAnalyticsError
from .models import DailySummary, LiveSummary
from .snapshot import SnapshotStore
from .token_manager import utcnow

logger = logging.getLogger(__name__)


class SolarBridge:
    """Fetch-and-aggregate core shared by both refresh modes.

    Methods raise SolarAnalyticsError on failure; callers decide whether that
    becomes an HTTP error or an unavailable snapshot.
    """

    def __init__(
        self,
        client: SolarAnalyticsClient,
        tz: tzinfo,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client
        self.tz = tz
        self._clock = clock

    def day_start(self) -> datetime:
        return local_day_start(self._clock(), self.tz)

    async def refresh_live(self) -> LiveSummary:
        """Fetch live readings and keep the most recent one."""
        live = await self.client.get_live_data()
        return latest_live(live)

    async def refresh_site(self) -> DailySummary:
        """Fetch today's site data and aggregate it."""
        # Recomputed on every call; the local date rolls over at midnight
        day_start = self.day_start()
        site = await self.client.get_site_data(day_start.date())
        summary = summarize(site.data, day_start)
        logger.debug(
            f"Site summary for {day_start:%Y-%m-%d}: {len(site.data)} samples, "
            f"generated={summary.generated:.2f} consumed={summary.consumed:.2f}"
        )
        return summary


class OnDemandSource:
    """Fetch from the vendor synchronously on every request."""

    mode = "on_demand"

    def __init__(self, bridge: SolarBridge, store: SnapshotStore):
        self.bridge = bridge
        self.store = store

    async def start(self):
        logger.info("Refresh mode: on-demand (each request fetches from Solar Analytics)")

    async def stop(self):
        pass

    async def live(self) -> LiveSummary:
        try:
            summary = await self.bridge.refresh_live()
        except SolarAnalyticsError:
            await self.store.update_live(LiveSummary.unavailable())
            raise
        await self.store.update_live(summary)
        return summary

    async def site(self) -> DailySummary:
        try:
            summary = await self.bridge.refresh_site()
        except SolarAnalyticsError:
            await self.store.update_site(DailySummary.unavailable(self.bridge.day_start()))
            raise
        await self.store.update_site(summary)
        return summary


class BackgroundSource:
    """Poll live and site data on independent intervals and serve snapshots.

    Live and site each run in their own task, so a slow site fetch never holds
    back the next live refresh. Handlers never touch the network; a failed
    refresh is stored as an unavailable snapshot and retried on the next
    interval.
    """

    mode = "background"

    def __init__(
        self,
        bridge: SolarBridge,
        store: SnapshotStore,
        live_interval: float = 30,
        site_interval: float = 60,
        tick: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.bridge = bridge
        self.store = store
        self.live_interval = live_interval
        self.site_interval = site_interval
        self.tick = tick
        self._clock = clock

        self.running = False
        self.last_live: Optional[float] = None
        self.last_site: Optional[float] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._tasks: List[asyncio.Task] = []

    async def start(self):
        """Start one polling task per data source."""
        logger.info(
            f"Refresh mode: background (live every {self.live_interval}s, "
            f"site every {self.site_interval}s)"
        )
        self.running = True
        self._stop_event = asyncio.Event()
        self._tasks = [
            asyncio.create_task(self._run_polling_loop("live", self.poll_live_if_due)),
            asyncio.create_task(self._run_polling_loop("site", self.poll_site_if_due)),
        ]

    async def stop(self):
        """Stop polling and wait for any in-flight refresh to finish."""
        if not self.running and not self._tasks:
            return
        logger.info("Stopping background refresh...")
        self.running = False
        if self._stop_event is not None:
            self._stop_event.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []
        logger.info("Background refresh stopped")

    async def live(self) -> LiveSummary:
        return await self.store.live()

    async def site(self) -> DailySummary:
        return await self.store.site()

    async def poll_live_if_due(self, now: float) -> bool:
        """Refresh live data if its interval has elapsed at `now`."""
        if self.last_live is not None and now - self.last_live < self.live_interval:
            return False
        self.last_live = now
        await self._poll_live()
        return True

    async def poll_site_if_due(self, now: float) -> bool:
        """Refresh site data if its interval has elapsed at `now`."""
        if self.last_site is not None and now - self.last_site < self.site_interval:
            return False
        self.last_site = now
        await self._poll_site()
        return True

    async def _run_polling_loop(self, name: str, poll_if_due):
        """Polling loop for a single data source."""
        logger.info(f"Starting {name} polling loop...")

        while self.running:
            await poll_if_due(self._clock())

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.tick)
            except asyncio.TimeoutError:
                pass

    async def _poll_live(self):
        """Refresh the live snapshot."""
        try:
            summary = await self.bridge.refresh_live()
        except SolarAnalyticsError as e:
            logger.warning(f"Failed to update live data: {e}")
            summary = LiveSummary.unavailable()
        except Exception:
            logger.exception("Unexpected error updating live data")
            summary = LiveSummary.unavailable()
        await self.store.update_live(summary)

    async def _poll_site(self):
        """Refresh the daily summary snapshot."""
        try:
            summary = await self.bridge.refresh_site()
        except SolarAnalyticsError as e:
            logger.warning(f"Failed to update site data: {e}")
            summary = DailySummary.unavailable(self.bridge.day_start())
        except Exception:
            logger.exception("Unexpected error updating site data")
            summary = DailySummary.unavailable(self.bridge.day_start())
        await self.store.update_site(summary)


def create_source(
    settings,
    bridge: SolarBridge,
    store: SnapshotStore,
):
    """Build the refresh strategy selected by REFRESH_MODE."""
    settings.validate_refresh_mode()
    if settings.background:
        return BackgroundSource(
            bridge,
            store,
            live_interval=settings.live_poll_interval,
            site_interval=settings.site_poll_interval,
        )
    return OnDemandSource(bridge, store)
