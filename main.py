# Root folder: pulse/main.py
#
# Starts everything:
# 1. Opens the event store
# 2. Builds the alert engine with the default rules
# 3. Wires metrics service, error logger and Flask app together
# 4. Schedules retention purge + alert bucket cleanup
#
# Run with: python main.py

import logging
import os
import sys
import time
import threading
from datetime import timedelta
import schedule
import config

logger = logging.getLogger(__name__)


def setup_logging():
    os.makedirs(config.LOG_DIR, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(name)s] %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(os.path.join(config.LOG_DIR, "pulse.log"))
        ]
    )


def build_components(db_path=None):
    """Everything the app needs, wired together"""
    from storage.event_store import EventStore
    from storage.snapshot_store import SnapshotStore
    from aggregation.service import MetricsService
    from detection.alert_engine import AlertRuleEngine
    from detection.alert_rules import default_rules
    from actions.notifier import NotificationDispatcher
    from ingestion.error_logger import ErrorLogger

    event_store = EventStore(db_path)
    metrics_service = MetricsService(event_store, SnapshotStore(event_store))
    engine = AlertRuleEngine(
        rules=default_rules(),
        dispatcher=NotificationDispatcher(event_store=event_store)
    )
    error_logger = ErrorLogger(event_store, engine)
    return event_store, metrics_service, engine, error_logger


def main():
    setup_logging()
    logger.info("=" * 60)
    logger.info("📊 PULSE STARTING")
    logger.info("=" * 60)

    event_store, metrics_service, engine, error_logger = build_components()
    logger.info(f"✅ Event store ready ({event_store.count()} events)")

    # ── Alert engine ──────────────────────────────────────────────────────
    engine.start()
    logger.info(f"✅ Alert engine started with {len(engine.rules)} rules")

    # ── Retention purge ───────────────────────────────────────────────────
    from ingestion.event_schema import utc_now
    from errors import DataSourceUnavailable

    def purge_old_events():
        cutoff = utc_now() - timedelta(days=config.EVENT_RETENTION_DAYS)
        try:
            event_store.purge_older_than(cutoff)
        except DataSourceUnavailable as e:
            logger.warning(f"Retention purge failed: {e}")

    schedule.every(config.EVENT_PURGE_INTERVAL_HOURS).hours.do(purge_old_events)

    def run_scheduler():
        while True:
            schedule.run_pending()
            time.sleep(30)

    threading.Thread(target=run_scheduler, daemon=True).start()

    # ── HTTP ──────────────────────────────────────────────────────────────
    from app.main import create_app
    app = create_app(event_store, metrics_service, engine, error_logger)

    logger.info("\n" + "=" * 60)
    logger.info("🟢 ALL SYSTEMS RUNNING")
    logger.info(f"   API:    http://localhost:{config.APP_PORT}")
    logger.info(f"   Health: http://localhost:{config.APP_PORT}/health")
    logger.info(f"   Logs:   tail -f {config.LOG_DIR}/pulse.log")
    logger.info("=" * 60 + "\n")

    try:
        app.run(host="127.0.0.1", port=config.APP_PORT, debug=False)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        engine.stop()
        event_store.close()


if __name__ == "__main__":
    main()
