from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from solar_bridge.aggregator import latest_live, local_day_start, summarize
from solar_bridge.models import LiveData, LiveSample, SiteSample


TZ = ZoneInfo("Australia/Adelaide")
DAY_START = datetime(2024, 5, 1, tzinfo=TZ)


def _sample(ts, g, c, **loads):
    return SiteSample(t_stamp=ts, energy_generated=g, energy_consumed=c, **loads)


def test_import_export_split_per_sample():
    samples = [
        _sample("2024-05-01 10:00:00", 5, 3),
        _sample("2024-05-01 10:01:00", 0, 4),
        _sample("2024-05-01 10:02:00", 10, 2),
    ]

    summary = summarize(samples, DAY_START)

    assert summary.available
    assert summary.generated == 15
    assert summary.consumed == 9
    assert summary.imported == 4
    assert summary.exported == 10
    assert summary.timestamp == DAY_START


def test_zero_generation_imports_full_consumption():
    summary = summarize([_sample("2024-05-01 06:00:00", 0, 4)], DAY_START)

    assert summary.imported == 4
    assert summary.exported == 0


def test_negative_generation_imports_full_consumption():
    summary = summarize([_sample("2024-05-01 06:00:00", -0.5, 4)], DAY_START)

    assert summary.imported == 4
    assert summary.generated == -0.5


def test_partial_generation_imports_deficit():
    summary = summarize([_sample("2024-05-01 08:00:00", 1, 4)], DAY_START)

    assert summary.imported == 3


def test_equal_generation_and_consumption_exports_nothing():
    summary = summarize([_sample("2024-05-01 12:00:00", 2, 2)], DAY_START)

    assert summary.imported == 0
    assert summary.exported == 0


def test_samples_before_midnight_and_unparsable_are_skipped():
    samples = [
        _sample("2024-04-30 23:59:00", 100, 100),
        _sample("garbage", 100, 100),
        _sample("", 100, 100),
        _sample("2024-05-01 00:00:00", 1, 2),
    ]

    summary = summarize(samples, DAY_START)

    assert summary.generated == 1
    assert summary.consumed == 2
    assert summary.imported == 1


def test_sub_loads_summed_unconditionally():
    samples = [
        _sample("2024-05-01 10:00:00", 5, 3, load_hot_water=1, load_other=0.5,
                load_air_conditioner=0.25, load_stove=2),
        _sample("2024-05-01 10:01:00", 0, 4, load_hot_water=1, load_other=0.5,
                load_air_conditioner=0.25, load_stove=0),
    ]

    summary = summarize(samples, DAY_START)

    assert summary.hot_water == 2
    assert summary.ac1 == 1
    assert summary.ac2 == 0.5
    assert summary.stove == 2


def test_empty_samples_give_zero_totals():
    summary = summarize([], DAY_START)

    assert summary.available
    assert summary.generated == 0
    assert summary.imported == 0


def test_summarize_is_idempotent():
    samples = [
        _sample("2024-05-01 10:00:00", 5, 3, load_stove=1),
        _sample("2024-05-01 10:01:00", 0, 4),
    ]

    assert summarize(samples, DAY_START) == summarize(samples, DAY_START)


def test_caller_sets_availability():
    assert summarize([], DAY_START, available=False).available is False


def test_local_day_start_uses_local_calendar_day():
    # 15:00 UTC is already 00:30 the next day in Adelaide (+09:30)
    now = datetime(2024, 5, 1, 15, 0, tzinfo=timezone.utc)

    start = local_day_start(now, TZ)

    assert start == datetime(2024, 5, 2, tzinfo=TZ)
    assert start.date().isoformat() == "2024-05-02"


def test_latest_live_takes_last_reading():
    live = LiveData(available=True, data=[
        LiveSample(generated=1, consumed=2),
        LiveSample(generated=3, consumed=4),
    ])

    summary = latest_live(live)

    assert summary.available
    assert (summary.generated, summary.consumed) == (3, 4)


def test_latest_live_without_readings_is_zero():
    summary = latest_live(LiveData(available=True, data=[]))

    assert summary.available
    assert (summary.generated, summary.consumed) == (0, 0)
