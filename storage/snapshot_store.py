# Folder: pulse/storage/snapshot_store.py
#
# Metric snapshots don't get their own table.
# Each one is stored as an ordinary event tagged
# event_type=aggregated_metrics, visitor_id=system_{range}.
#
# Nothing here ever overwrites or deletes - every store()
# appends, and retrieve() picks the newest row for the range.

import logging
import time
from typing import Any, Optional
from ingestion.event_schema import RawEvent, MetricsSnapshot, AGGREGATED_METRICS, utc_now
from storage.event_store import EventStore

logger = logging.getLogger(__name__)

SNAPSHOT_PAGE_PATH = "/analytics/aggregated"


def range_tag(range_label: str) -> str:
    """Reserved visitor id that marks snapshots for a range"""
    return f"system_{range_label}"


class SnapshotStore:

    def __init__(self, event_store: EventStore):
        self.event_store = event_store

    def store(self, snapshot: MetricsSnapshot, range_label: str) -> RawEvent:
        generated_at = utc_now()
        record = RawEvent(
            page_path=SNAPSHOT_PAGE_PATH,
            visitor_id=range_tag(range_label),
            session_id=f"aggregation_{int(time.time() * 1000)}",
            event_type=AGGREGATED_METRICS,
            timestamp=generated_at,
            metadata={
                "metrics": snapshot.model_dump(mode="json"),
                "dateRange": range_label,
                "generatedAt": generated_at.isoformat(),
            },
        )
        self.event_store.insert(record)
        logger.info(f"Stored {range_label} snapshot: "
                    f"{snapshot.unique_visitors} visitors, "
                    f"{snapshot.total_page_views} views")
        return record

    def retrieve(self, range_label: str, field: Optional[str] = None) -> Any:
        """
        Latest snapshot stored for range_label.

        With field set, returns just that metric (e.g. "bounce_rate").
        Returns None when nothing was stored yet or the field is unknown.
        """
        record = self.event_store.latest(AGGREGATED_METRICS, range_tag(range_label))
        if record is None:
            return None

        metrics = record.metadata.get("metrics")
        if not isinstance(metrics, dict):
            logger.warning(f"Snapshot record for {range_label} has no metrics payload")
            return None

        if field:
            return metrics.get(field)

        try:
            return MetricsSnapshot.model_validate(metrics)
        except ValueError as e:
            logger.warning(f"Unreadable {range_label} snapshot: {e}")
            return None
