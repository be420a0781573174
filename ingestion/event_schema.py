# Folder: pulse/ingestion/event_schema.py
#
# These are the core data models used EVERYWHERE in the project.
# Every other file imports from here.
#
# Raw events come in through the collector, get stored as-is,
# and everything else (snapshots, alerts) is derived from them.

from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utc_now() -> datetime:
    """Naive UTC now - every timestamp in the store is naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# Event types the engine gives special meaning to.
# Producers may send any other string too.
PAGE_VIEW = "page_view"
VISITOR_SESSION = "visitor_session"
CONVERSION = "conversion"
BETA_SIGNUP = "beta_signup"
SERVER_ERROR = "server_error"
SYSTEM_ALERT = "system_alert"
AGGREGATED_METRICS = "aggregated_metrics"

PAGE_VIEW_TYPES = frozenset({PAGE_VIEW, VISITOR_SESSION})
CONVERSION_TYPES = frozenset({CONVERSION, BETA_SIGNUP})


class RawEvent(BaseModel):
    """
    One visitor interaction (or a system record stored alongside them).

    Never mutated after creation. Snapshots and alerts are stored
    as RawEvents too, tagged with a reserved event_type.
    """
    model_config = ConfigDict(frozen=True)

    page_path: str = "/"
    visitor_id: Optional[str] = None     # anonymous, from client storage
    session_id: Optional[str] = None
    event_type: str = PAGE_VIEW
    timestamp: datetime = Field(default_factory=utc_now)
    referrer: Optional[str] = None
    user_agent_hash: Optional[str] = None

    # screenResolution, timezone, utmParams, server_error, metrics ...
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return to_naive_utc(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _default_metadata(cls, value):
        return {} if value is None else value


# ── Metrics snapshot ─────────────────────────────────────────────────────

class PageViews(BaseModel):
    page: str
    views: int


class ReferrerCount(BaseModel):
    referrer: str
    count: int


class CampaignPerformance(BaseModel):
    campaign: str
    visitors: int
    conversions: int


class DeviceCount(BaseModel):
    resolution: str
    count: int


class TimezoneCount(BaseModel):
    timezone: str
    count: int


class MetricsSnapshot(BaseModel):
    """
    Aggregated traffic metrics for one date range.
    Computed by aggregation.metrics.aggregate, never edited afterwards.
    """
    date: str                                   # day it was generated
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    unique_visitors: int = 0
    total_sessions: int = 0                     # visitor+day proxy
    total_page_views: int = 0
    bounce_rate: float = 0.0                    # percent, from session_id grouping
    avg_session_duration: int = 0               # milliseconds

    top_pages: List[PageViews] = Field(default_factory=list)
    referrer_breakdown: List[ReferrerCount] = Field(default_factory=list)
    utm_performance: List[CampaignPerformance] = Field(default_factory=list)
    device_breakdown: List[DeviceCount] = Field(default_factory=list)
    timezone_distribution: List[TimezoneCount] = Field(default_factory=list)


# ── Errors and alerts ────────────────────────────────────────────────────

class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    API = "api"
    DATABASE = "database"
    EMAIL = "email"
    EXTERNAL_SERVICE = "external_service"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    SYSTEM = "system"


class ErrorRecord(BaseModel):
    """
    One server-side error report.
    Built by the error logger, fed to the alert engine.
    """
    message: str
    stack: Optional[str] = None
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    category: ErrorCategory = ErrorCategory.SYSTEM

    # Where it happened - all optional
    endpoint: Optional[str] = None
    method: Optional[str] = None
    user_id: Optional[str] = None
    request_id: Optional[str] = None
    user_agent: Optional[str] = None
    ip: Optional[str] = None
    status_code: Optional[int] = None

    metadata: Dict[str, Any] = Field(default_factory=dict)
    context: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return to_naive_utc(value)

    @field_validator("metadata", "context", mode="before")
    @classmethod
    def _default_bags(cls, value):
        return {} if value is None else value

    def search_text(self) -> str:
        """What alert rule patterns are tested against"""
        return f"{self.message} {self.category.value} {self.endpoint or ''}"


class AlertErrorRef(BaseModel):
    """The slice of the triggering error an alert keeps around"""
    message: str
    category: ErrorCategory
    endpoint: Optional[str] = None
    severity: ErrorSeverity


class Alert(BaseModel):
    """
    Built by the alert engine when a rule crosses its threshold.
    Handed to the notification dispatcher.
    """
    rule_id: str
    severity: ErrorSeverity
    message: str
    count: int
    time_window: int                     # minutes
    triggered_at: datetime = Field(default_factory=utc_now)
    original_error: AlertErrorRef


class MessageCount(BaseModel):
    message: str
    count: int


class ErrorStats(BaseModel):
    total_errors: int
    errors_by_severity: Dict[str, int]
    errors_by_category: Dict[str, int]
    top_errors: List[MessageCount]
