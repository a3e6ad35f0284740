"""Reduce raw Solar Analytics samples into the summaries served locally."""

import logging
from datetime import datetime, tzinfo
from typing import Iterable

from .models import DailySummary, LiveData, LiveSummary, SiteSample

logger = logging.getLogger(__name__)

# t_stamp format used by /v2/site_data, in site local time
SAMPLE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def local_day_start(now: datetime, tz: tzinfo) -> datetime:
    """Midnight of `now`'s calendar day in `tz`."""
    local = now.astimezone(tz) if now.tzinfo else now.replace(tzinfo=tz)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


def parse_sample_time(value: str, tz: tzinfo) -> datetime:
    """Parse a sample t_stamp as local time in `tz`."""
    return datetime.strptime(value, SAMPLE_TIMESTAMP_FORMAT).replace(tzinfo=tz)


def summarize(
    samples: Iterable[SiteSample],
    day_start: datetime,
    available: bool = True,
) -> DailySummary:
    """Aggregate per-minute samples into today's totals.

    Samples that fail to parse or fall before `day_start` are skipped.
    Import and export are split per sample because generation can cross
    consumption several times a day.
    """
    tz = day_start.tzinfo
    generated = consumed = imported = exported = 0.0
    hot_water = ac1 = ac2 = stove = 0.0

    for sample in samples:
        try:
            ts = parse_sample_time(sample.t_stamp, tz)
        except (TypeError, ValueError):
            logger.debug(f"Skipping sample with unparsable timestamp {sample.t_stamp!r}")
            continue
        if ts < day_start:
            logger.debug(f"Skipping sample from before {day_start:%Y-%m-%d}: {sample.t_stamp}")
            continue

        g = sample.energy_generated
        c = sample.energy_consumed
        generated += g
        consumed += c

        if c > g:
            # A zero or negative generation reading means the whole load came from the grid
            imported += (c - g) if g > 0 else c
        else:
            exported += g - c

        hot_water += sample.load_hot_water
        ac1 += sample.load_other
        ac2 += sample.load_air_conditioner
        stove += sample.load_stove

    return DailySummary(
        available=available,
        generated=generated,
        consumed=consumed,
        imported=imported,
        exported=exported,
        hot_water=hot_water,
        ac1=ac1,
        ac2=ac2,
        stove=stove,
        timestamp=day_start,
    )


def latest_live(live: LiveData, available: bool = True) -> LiveSummary:
    """Take the most recent live reading, or zeros if there is none."""
    if not live.data:
        return LiveSummary(available=available)
    last = live.data[-1]
    return LiveSummary(available=available, generated=last.generated, consumed=last.consumed)
