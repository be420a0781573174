# Folder: pulse/aggregation/service.py
#
# What the HTTP layer talks to for traffic metrics.
# Resolves range labels ("7d") into concrete windows, pulls the
# events out of the store, runs the aggregator and optionally
# persists the result.

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional
from ingestion.event_schema import MetricsSnapshot, utc_now
from aggregation.metrics import aggregate
from storage.event_store import EventStore
from storage.snapshot_store import SnapshotStore
import config

logger = logging.getLogger(__name__)

RANGE_DAYS = {
    "1d": 1,
    "7d": 7,
    "30d": 30,
    "90d": 90,
}


@dataclass(frozen=True)
class DateRange:
    label: str
    start: datetime
    end: datetime


def resolve_date_range(label: Optional[str], now: Optional[datetime] = None) -> DateRange:
    """Unknown labels fall back to the default range (7d)"""
    if label not in RANGE_DAYS:
        if label:
            logger.debug(f"Unknown date range {label!r}, using {config.DEFAULT_DATE_RANGE}")
        label = config.DEFAULT_DATE_RANGE

    end = now or utc_now()
    start = end - timedelta(days=RANGE_DAYS[label])
    return DateRange(label=label, start=start, end=end)


class MetricsService:

    def __init__(self, event_store: EventStore, snapshot_store: SnapshotStore):
        self.event_store = event_store
        self.snapshot_store = snapshot_store

    def compute(self, date_range: DateRange) -> MetricsSnapshot:
        """
        Raises DataSourceUnavailable if the store is down.
        An empty window is not an error.
        """
        records = self.event_store.query(date_range.start, date_range.end)
        return aggregate(records, date_range.start, date_range.end)

    def live(self, label: Optional[str], now: Optional[datetime] = None) -> MetricsSnapshot:
        return self.compute(resolve_date_range(label, now))

    def generate(self, label: Optional[str], persist: bool = False,
                 now: Optional[datetime] = None) -> MetricsSnapshot:
        date_range = resolve_date_range(label, now)
        snapshot = self.compute(date_range)

        if persist:
            self.snapshot_store.store(snapshot, date_range.label)

        return snapshot

    def stored(self, label: Optional[str], field: Optional[str] = None) -> Any:
        date_range = resolve_date_range(label)
        return self.snapshot_store.retrieve(date_range.label, field)
