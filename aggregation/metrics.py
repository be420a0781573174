# Folder: pulse/aggregation/metrics.py
#
# Turns a window of raw events into one MetricsSnapshot.
#
# Pure function - no store access, no shared state. The caller fetches
# the records and passes them in.
#
# Privacy: only counts leave this module. Visitor ids are used for
# distinct-counting and then thrown away.

import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlparse
from ingestion.event_schema import (
    RawEvent, MetricsSnapshot, PageViews, ReferrerCount, CampaignPerformance,
    DeviceCount, TimezoneCount, CONVERSION_TYPES, utc_now,
)
from aggregation.sessions import reconstruct_sessions, bounce_rate, average_duration_ms
import config

logger = logging.getLogger(__name__)

DIRECT = "direct"
UNKNOWN = "unknown"


def referrer_domain(referrer: Optional[str]) -> str:
    """
    Hostname of the referrer URL, or "direct" when there is no
    referrer or it doesn't parse as an absolute URL.
    """
    if not referrer:
        return DIRECT
    try:
        hostname = urlparse(referrer.strip()).hostname
    except (ValueError, AttributeError):
        return DIRECT
    return hostname or DIRECT


def format_timezone(offset: Any) -> str:
    """
    Numeric GMT offset -> "GMT+2", "GMT-5", "GMT0".
    Missing, non-numeric or out-of-range offsets land in "unknown".

    A zero offset is a real timezone: it comes out as "GMT0",
    never as "unknown".
    """
    if offset is None or isinstance(offset, bool):
        return UNKNOWN
    try:
        value = float(offset)
    except (TypeError, ValueError, OverflowError):
        return UNKNOWN
    if value != value or value in (float("inf"), float("-inf")):
        return UNKNOWN

    number = int(value) if value.is_integer() else value
    sign = "+" if value > 0 else ""
    return f"GMT{sign}{number}"


def _campaign(metadata: Dict[str, Any]) -> Optional[str]:
    utm = metadata.get("utmParams")
    if not isinstance(utm, dict):
        return None
    campaign = utm.get("utm_campaign")
    return str(campaign) if campaign else None


def _ranked(counter: Counter, limit: Optional[int] = None) -> List[tuple]:
    """
    Sort by count descending. sorted() is stable and Counter keeps
    insertion order, so ties stay in first-seen order.
    """
    ranked = sorted(counter.items(), key=lambda item: item[1], reverse=True)
    return ranked[:limit] if limit is not None else ranked


def empty_snapshot(start_date: Optional[datetime] = None,
                   end_date: Optional[datetime] = None) -> MetricsSnapshot:
    return MetricsSnapshot(
        date=utc_now().date().isoformat(),
        period_start=start_date,
        period_end=end_date,
    )


def aggregate(records: Sequence[RawEvent], start_date: datetime,
              end_date: datetime) -> MetricsSnapshot:
    """
    Compute the full snapshot for records covering [start_date, end_date].

    An empty window is a valid result: everything zero, all lists empty.
    A record with odd metadata only lands in the "unknown" buckets.
    """
    if not records:
        return empty_snapshot(start_date, end_date)

    visitors = set()
    visitor_days = set()
    pages: Counter = Counter()
    referrers: Counter = Counter()
    devices: Counter = Counter()
    timezones: Counter = Counter()
    campaigns: Dict[str, Dict[str, Any]] = {}

    for record in records:
        try:
            _count_record(record, visitors, visitor_days, pages, referrers,
                          devices, timezones, campaigns)
        except (TypeError, ValueError, AttributeError, ArithmeticError) as e:
            logger.warning(f"Malformed record, partially counted: {e}")

    sessions = reconstruct_sessions(records)

    snapshot = MetricsSnapshot(
        date=utc_now().date().isoformat(),
        period_start=start_date,
        period_end=end_date,
        unique_visitors=len(visitors),
        total_sessions=len(visitor_days),
        total_page_views=len(records),
        bounce_rate=bounce_rate(sessions),
        avg_session_duration=average_duration_ms(sessions),
        top_pages=[
            PageViews(page=page, views=views)
            for page, views in _ranked(pages, config.TOP_PAGES_LIMIT)
        ],
        referrer_breakdown=[
            ReferrerCount(referrer=ref, count=count)
            for ref, count in _ranked(referrers)
        ],
        utm_performance=[
            CampaignPerformance(
                campaign=name,
                visitors=len(data["visitors"]),
                conversions=data["conversions"],
            )
            for name, data in campaigns.items()
        ],
        device_breakdown=[
            DeviceCount(resolution=res, count=count)
            for res, count in _ranked(devices, config.DEVICE_BREAKDOWN_LIMIT)
        ],
        timezone_distribution=[
            TimezoneCount(timezone=tz, count=count)
            for tz, count in _ranked(timezones)
        ],
    )

    logger.debug(f"Aggregated {len(records)} records into "
                 f"{len(sessions)} sessions / {len(visitors)} visitors")
    return snapshot


def _count_record(record: RawEvent, visitors, visitor_days, pages, referrers,
                  devices, timezones, campaigns):
    """Every record is a page view for the totals, whatever its event_type"""
    pages[record.page_path] += 1
    referrers[referrer_domain(record.referrer)] += 1

    if record.visitor_id:
        visitors.add(record.visitor_id)
        # Session proxy: one session per visitor per calendar day (UTC)
        visitor_days.add((record.visitor_id, record.timestamp.date()))

    metadata = record.metadata if isinstance(record.metadata, dict) else {}

    devices[str(metadata.get("screenResolution") or UNKNOWN)] += 1
    timezones[format_timezone(metadata.get("timezone"))] += 1

    campaign = _campaign(metadata)
    if campaign:
        data = campaigns.setdefault(campaign, {"visitors": set(), "conversions": 0})
        if record.visitor_id:
            data["visitors"].add(record.visitor_id)
        if record.event_type in CONVERSION_TYPES:
            data["conversions"] += 1
