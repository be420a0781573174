# Folder: pulse/detection/error_stats.py
#
# Summary of server errors logged over the last N days.
# Reads the server_error records the error logger writes.

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional
from ingestion.event_schema import (
    ErrorCategory, ErrorSeverity, ErrorStats, MessageCount, SERVER_ERROR, utc_now,
)
from storage.event_store import EventStore
import config

logger = logging.getLogger(__name__)


def compute_error_stats(event_store: EventStore, days: int = 7,
                        now: Optional[datetime] = None) -> ErrorStats:
    """
    Counts per severity and category (every known key present, even at 0)
    plus the most frequent error messages.
    """
    end = now or utc_now()
    start = end - timedelta(days=days)
    records = event_store.query(start, end, event_type=SERVER_ERROR)

    by_severity = {s.value: 0 for s in ErrorSeverity}
    by_category = {c.value: 0 for c in ErrorCategory}
    messages: Counter = Counter()

    for record in records:
        detail = record.metadata.get("server_error")
        if not isinstance(detail, dict):
            continue

        # Unknown severities/categories are simply not counted
        severity = str(detail.get("severity"))
        category = str(detail.get("category"))
        if severity in by_severity:
            by_severity[severity] += 1
        if category in by_category:
            by_category[category] += 1

        messages[str(detail.get("message") or "Unknown error")] += 1

    top = sorted(messages.items(), key=lambda item: item[1], reverse=True)
    top = top[:config.TOP_ERRORS_LIMIT]

    logger.debug(f"Error stats over {days}d: {len(records)} errors")

    return ErrorStats(
        total_errors=len(records),
        errors_by_severity=by_severity,
        errors_by_category=by_category,
        top_errors=[MessageCount(message=str(m), count=c) for m, c in top],
    )
