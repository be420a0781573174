# Root folder: pulse/config.py
# Central config file - all settings live here
# Every other file imports from here instead of reading env directly

import os
from dotenv import load_dotenv

load_dotenv()

# Notification channels
ALERT_WEBHOOK_URL = os.getenv("ALERT_WEBHOOK_URL")
SLACK_BOT_TOKEN = os.getenv("SLACK_BOT_TOKEN")
SLACK_CHANNEL_ID = os.getenv("SLACK_CHANNEL_ID")
WEBHOOK_TIMEOUT_SEC = float(os.getenv("WEBHOOK_TIMEOUT_SEC", 5))

# App settings
APP_PORT = int(os.getenv("APP_PORT", 8001))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Alerting
ALERT_BUCKET_RETENTION_MIN = 60   # buckets older than this get dropped
ALERT_CLEANUP_INTERVAL_MIN = 5    # how often the engine sweeps old buckets

# Event retention
EVENT_RETENTION_DAYS = int(os.getenv("EVENT_RETENTION_DAYS", 90))
EVENT_PURGE_INTERVAL_HOURS = 24

# Metrics
DEFAULT_DATE_RANGE = "7d"
TOP_PAGES_LIMIT = 10
DEVICE_BREAKDOWN_LIMIT = 10
TOP_ERRORS_LIMIT = 10
ERROR_STATS_MAX_DAYS = 365      # widest /errors/stats window

# Data paths
EVENT_DB_PATH = os.getenv("EVENT_DB_PATH", "events.duckdb")
LOG_DIR = "logs"
