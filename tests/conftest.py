from datetime import datetime, timedelta

import pytest

from detection.alert_engine import AlertRuleEngine
from ingestion.error_logger import ErrorLogger
from ingestion.event_schema import RawEvent
from storage.event_store import EventStore
from storage.snapshot_store import SnapshotStore
from aggregation.service import MetricsService

T0 = datetime(2026, 3, 2, 12, 0, 0)

# Divisible by every rule window used in the tests (1, 5, 10, 15 minutes),
# so the fake clock always starts at the beginning of a bucket.
CLOCK_START = 1_800_000_000.0


class FakeClock:
    def __init__(self, start: float = CLOCK_START):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingDispatcher:
    def __init__(self, result: bool = True):
        self.result = result
        self.delivered = []

    def deliver(self, alert, rule):
        self.delivered.append((alert, rule))
        return self.result


@pytest.fixture
def event_store():
    store = EventStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def snapshot_store(event_store):
    return SnapshotStore(event_store)


@pytest.fixture
def metrics_service(event_store, snapshot_store):
    return MetricsService(event_store, snapshot_store)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def engine(clock, dispatcher):
    return AlertRuleEngine(rules=[], dispatcher=dispatcher, clock=clock)


@pytest.fixture
def error_logger(event_store, engine):
    return ErrorLogger(event_store, engine)


@pytest.fixture
def make_event():
    """RawEvent at T0 + offset_ms, any other field overridable"""
    def _make(offset_ms: int = 0, **fields) -> RawEvent:
        fields.setdefault("timestamp", T0 + timedelta(milliseconds=offset_ms))
        return RawEvent(**fields)
    return _make
