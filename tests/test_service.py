from datetime import timedelta

import pytest

from aggregation.service import MetricsService, resolve_date_range
from conftest import T0
from errors import DataSourceUnavailable


@pytest.mark.parametrize("label, days", [("1d", 1), ("7d", 7), ("30d", 30), ("90d", 90)])
def test_resolve_known_ranges(label, days):
    date_range = resolve_date_range(label, now=T0)

    assert date_range.label == label
    assert date_range.end == T0
    assert date_range.start == T0 - timedelta(days=days)


@pytest.mark.parametrize("label", [None, "", "2w", "365d"])
def test_unknown_range_falls_back_to_seven_days(label):
    date_range = resolve_date_range(label, now=T0)

    assert date_range.label == "7d"
    assert date_range.start == T0 - timedelta(days=7)


def test_live_only_counts_events_in_range(metrics_service, event_store, make_event):
    event_store.insert_many([
        make_event(0, visitor_id="v1", session_id="s1"),
        make_event(-2 * 24 * 3600 * 1000, visitor_id="v2", session_id="s2"),
    ])

    assert metrics_service.live("1d", now=T0).unique_visitors == 1
    assert metrics_service.live("7d", now=T0).unique_visitors == 2


def test_generate_without_persist_stores_nothing(metrics_service, event_store, make_event):
    event_store.insert(make_event(0, visitor_id="v1"))

    snapshot = metrics_service.generate("7d", now=T0)

    assert snapshot.unique_visitors == 1
    assert metrics_service.stored("7d") is None


def test_generate_with_persist(metrics_service, event_store, make_event):
    event_store.insert(make_event(0, visitor_id="v1", session_id="s1"))
    event_store.insert(make_event(5000, visitor_id="v1", session_id="s1"))

    snapshot = metrics_service.generate("7d", persist=True, now=T0 + timedelta(seconds=5))

    assert snapshot.avg_session_duration == 5000
    assert metrics_service.stored("7d") == snapshot
    assert metrics_service.stored("7d", "total_page_views") == 2


def test_generate_stores_under_resolved_label(metrics_service):
    metrics_service.generate("bogus", persist=True, now=T0)

    assert metrics_service.stored("7d") is not None
    assert metrics_service.stored("bogus") is not None


def test_empty_store_gives_zeroed_snapshot(metrics_service):
    snapshot = metrics_service.live("30d", now=T0)

    assert snapshot.unique_visitors == 0
    assert snapshot.top_pages == []


class _DownStore:
    def query(self, start, end, event_type=None):
        raise DataSourceUnavailable("store is down")


def test_store_failure_propagates(snapshot_store):
    service = MetricsService(_DownStore(), snapshot_store)

    with pytest.raises(DataSourceUnavailable):
        service.live("7d")
