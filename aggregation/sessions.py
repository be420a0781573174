# Folder: pulse/aggregation/sessions.py
#
# Rebuilds browsing sessions from raw events by grouping on session_id.
# Bounce rate and average session duration are computed from this.
#
# Note: this is NOT where total_sessions in the snapshot comes from -
# that one is a visitor+day proxy (see metrics.py). The two are computed
# separately and need not agree.

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable
from ingestion.event_schema import RawEvent, PAGE_VIEW_TYPES


@dataclass
class Session:
    session_id: str
    start: datetime
    end: datetime
    page_views: int = 0

    @property
    def duration_ms(self) -> float:
        return (self.end - self.start).total_seconds() * 1000

    @property
    def bounced(self) -> bool:
        return self.page_views <= 1


def reconstruct_sessions(records: Iterable[RawEvent]) -> Dict[str, Session]:
    """
    Single pass over the records, order does not matter.
    First sighting opens the session at that timestamp, later ones
    stretch start/end. Only page_view/visitor_session count as views.
    """
    sessions: Dict[str, Session] = {}

    for record in records:
        if not record.session_id:
            continue

        ts = record.timestamp
        session = sessions.get(record.session_id)
        if session is None:
            session = Session(session_id=record.session_id, start=ts, end=ts)
            sessions[record.session_id] = session

        if ts < session.start:
            session.start = ts
        if ts > session.end:
            session.end = ts
        if record.event_type in PAGE_VIEW_TYPES:
            session.page_views += 1

    return sessions


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def bounce_rate(sessions: Dict[str, Session]) -> float:
    """Percent of sessions with at most one page view, 2 decimals"""
    if not sessions:
        return 0.0
    bounced = sum(1 for s in sessions.values() if s.bounced)
    return round_half_up(bounced / len(sessions) * 100, 2)


def average_duration_ms(sessions: Dict[str, Session]) -> int:
    if not sessions:
        return 0
    total = sum(s.duration_ms for s in sessions.values())
    return int(round_half_up(total / len(sessions)))
