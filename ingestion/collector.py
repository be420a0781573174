# Folder: pulse/ingestion/collector.py
#
# Flask routes that receive raw data:
#   POST /ingest  - visitor interaction events (one or a batch)
#   POST /errors  - server error reports
#
# Events are validated against RawEvent and appended to the event store.
# Error reports go through the error logger, which also runs alerting.

import logging
from flask import Blueprint, request, jsonify
from pydantic import ValidationError
from ingestion.event_schema import RawEvent, ErrorRecord
from ingestion.error_logger import ErrorLogger
from storage.event_store import EventStore

logger = logging.getLogger(__name__)


def _validation_errors(e: ValidationError) -> list:
    """Field paths and messages only - never echo the submitted values back"""
    return e.errors(include_url=False, include_context=False, include_input=False)


def create_collector(event_store: EventStore, error_logger: ErrorLogger) -> Blueprint:
    collector = Blueprint("collector", __name__)

    @collector.route("/ingest", methods=["POST"])
    def ingest():
        """
        Main ingestion endpoint.
        Accepts a single event object or a list of them.
        The whole batch is rejected if any event fails validation.
        """
        data = request.get_json(silent=True)
        items = data if isinstance(data, list) else [data]

        try:
            events = [RawEvent(**item) for item in items if isinstance(item, dict)]
        except ValidationError as e:
            logger.error(f"Ingest error: {e.error_count()} invalid fields")
            return jsonify({"error": _validation_errors(e)}), 400

        if not events or len(events) != len(items):
            return jsonify({"error": "expected an event object or a list of events"}), 400

        event_store.insert_many(events)
        for event in events:
            logger.info(f"{event.event_type} | {event.page_path} | "
                        f"session {event.session_id or '-'}")

        return jsonify({"status": "ok", "ingested": len(events)}), 200

    @collector.route("/errors", methods=["POST"])
    def report_error():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "expected an error report object"}), 400

        try:
            record = ErrorRecord(**data)
        except ValidationError as e:
            return jsonify({"error": _validation_errors(e)}), 400

        alert = error_logger.log_record(record)
        return jsonify({
            "status": "ok",
            "alert": alert.model_dump(mode="json") if alert else None
        }), 200

    return collector
