# Folder: pulse/storage/event_store.py
#
# DuckDB store for every raw event the collector receives.
# Append-only: page views, conversions, server errors, alerts
# and stored metric snapshots all live in the same table.
#
# The aggregator reads a time range out of here, the snapshot
# store and the record notifier write tagged rows back in.

import duckdb
import json
import logging
import threading
from datetime import datetime
from typing import Iterable, List, Optional
from ingestion.event_schema import RawEvent, AGGREGATED_METRICS, to_naive_utc
from errors import DataSourceUnavailable, MalformedRecord
import config

logger = logging.getLogger(__name__)

COLUMNS = (
    "page_path", "visitor_id", "session_id", "event_type",
    "timestamp", "referrer", "user_agent_hash", "metadata",
)


class EventStore:
    """
    Append-only DuckDB table of RawEvents.

    Every duckdb failure is turned into DataSourceUnavailable so
    callers only deal with one error type for "store is down".
    """

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or config.EVENT_DB_PATH
        # One connection shared across Flask threads, so guard it
        self._lock = threading.Lock()
        try:
            self.conn = duckdb.connect(self.db_path)
            self._create_table()
        except duckdb.Error as e:
            raise DataSourceUnavailable(f"Cannot open event store {self.db_path}: {e}") from e
        logger.info(f"EventStore initialized at {self.db_path}")

    def _create_table(self):
        """
        The id column only exists to break timestamp ties -
        later inserts get larger ids.
        """
        self.conn.execute("CREATE SEQUENCE IF NOT EXISTS events_seq START 1")
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS events (
                id               BIGINT DEFAULT nextval('events_seq'),
                page_path        VARCHAR,
                visitor_id       VARCHAR,
                session_id       VARCHAR,
                event_type       VARCHAR,
                timestamp        TIMESTAMP,
                referrer         VARCHAR,
                user_agent_hash  VARCHAR,
                metadata         VARCHAR
            )
        """)

    def _execute(self, sql: str, params: Optional[list] = None):
        with self._lock:
            try:
                return self.conn.execute(sql, params or []).fetchall()
            except duckdb.Error as e:
                logger.error(f"Event store error: {e}")
                raise DataSourceUnavailable(str(e)) from e

    def insert(self, event: RawEvent) -> RawEvent:
        """Append one event. Called for every ingested event."""
        self._execute(f"""
            INSERT INTO events ({", ".join(COLUMNS)})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            event.page_path,
            event.visitor_id,
            event.session_id,
            event.event_type,
            event.timestamp,
            event.referrer,
            event.user_agent_hash,
            json.dumps(event.metadata, default=str),
        ])
        return event

    def insert_many(self, events: Iterable[RawEvent]) -> int:
        inserted = 0
        for event in events:
            self.insert(event)
            inserted += 1
        return inserted

    def query(self, start: datetime, end: datetime,
              event_type: Optional[str] = None) -> List[RawEvent]:
        """
        All events with start <= timestamp <= end, oldest first.
        This is what the metrics aggregator runs over.
        """
        sql = f"""
            SELECT {", ".join(COLUMNS)}
            FROM events
            WHERE timestamp >= ? AND timestamp <= ?
        """
        params = [to_naive_utc(start), to_naive_utc(end)]
        if event_type is not None:
            sql += " AND event_type = ?"
            params.append(event_type)
        sql += " ORDER BY timestamp ASC, id ASC"

        return self._to_events(self._execute(sql, params))

    def latest(self, event_type: str, visitor_id: str) -> Optional[RawEvent]:
        """
        Newest event of a type for one (reserved) visitor id.
        Snapshot store uses this with visitor_id = system_{range}.
        """
        rows = self._execute(f"""
            SELECT {", ".join(COLUMNS)}
            FROM events
            WHERE event_type = ? AND visitor_id = ?
            ORDER BY timestamp DESC, id DESC
            LIMIT 1
        """, [event_type, visitor_id])

        events = self._to_events(rows)
        return events[0] if events else None

    def purge_older_than(self, cutoff: datetime,
                         keep_types=(AGGREGATED_METRICS,)) -> int:
        """
        Delete raw events older than cutoff.
        Stored snapshots are kept no matter how old.
        """
        keep = list(keep_types)
        where = "timestamp < ?"
        if keep:
            where += f" AND event_type NOT IN ({', '.join('?' for _ in keep)})"
        params = [to_naive_utc(cutoff)] + keep

        doomed = self._execute(f"SELECT COUNT(*) FROM events WHERE {where}", params)[0][0]
        if doomed:
            self._execute(f"DELETE FROM events WHERE {where}", params)
            logger.info(f"Purged {doomed} events older than {cutoff.isoformat()}")
        return doomed

    def count(self) -> int:
        """Total events currently stored"""
        return self._execute("SELECT COUNT(*) FROM events")[0][0]

    def close(self):
        with self._lock:
            self.conn.close()

    def _to_events(self, rows) -> List[RawEvent]:
        events = []
        for row in rows:
            try:
                events.append(self._row_to_event(row))
            except MalformedRecord as e:
                logger.warning(f"Skipping malformed record: {e}")
        return events

    def _row_to_event(self, row) -> RawEvent:
        data = dict(zip(COLUMNS, row))
        try:
            data["metadata"] = json.loads(data["metadata"]) if data["metadata"] else {}
            if not isinstance(data["metadata"], dict):
                data["metadata"] = {}
            if data["page_path"] is None:
                data["page_path"] = "/"
            if data["event_type"] is None:
                raise ValueError("missing event_type")
            if data["timestamp"] is None:
                raise ValueError("missing timestamp")
            return RawEvent(**data)
        except (ValueError, TypeError) as e:
            # pydantic ValidationError and JSONDecodeError are ValueErrors
            raise MalformedRecord(f"{e} in row {row!r:.200}") from e
