# Folder: pulse/detection/alert_rules.py
#
# Alert rules: which errors to count, how many is too many,
# and where to send the alert when the count is reached.
#
# Patterns are tested case-insensitively against
# "{message} {category} {endpoint}" of each error.

import re
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, PrivateAttr, model_validator
from ingestion.event_schema import ErrorRecord, ErrorSeverity


class AlertMethod(str, Enum):
    CONSOLE = "console"      # log line
    DATABASE = "database"    # system_alert record in the event store
    WEBHOOK = "webhook"      # JSON POST
    SLACK = "slack"


class AlertRule(BaseModel):
    id: str
    pattern: str
    is_regex: bool = True            # False = plain substring match
    severity: ErrorSeverity
    threshold: int = Field(ge=1)     # occurrences ...
    time_window: int = Field(ge=1)   # ... within this many minutes
    alert_method: AlertMethod = AlertMethod.DATABASE
    webhook_url: Optional[str] = None
    enabled: bool = True

    _compiled: Optional[re.Pattern] = PrivateAttr(default=None)

    @model_validator(mode="after")
    def _compile_pattern(self):
        # Compiled once - an invalid pattern rejects the whole rule
        if self.is_regex:
            try:
                self._compiled = re.compile(self.pattern, re.IGNORECASE)
            except re.error as e:
                raise ValueError(f"invalid pattern for rule {self.id}: {e}") from e
        return self

    @property
    def window_ms(self) -> int:
        return self.time_window * 60_000

    def matches(self, error: ErrorRecord) -> bool:
        text = error.search_text()
        if self._compiled is not None:
            return self._compiled.search(text) is not None
        return self.pattern.lower() in text.lower()


DEFAULT_ALERT_RULES: List[AlertRule] = [
    AlertRule(
        id="critical-errors",
        pattern=r"critical|fatal|crash",
        severity=ErrorSeverity.CRITICAL,
        threshold=1,
        time_window=5,
    ),
    AlertRule(
        id="database-errors",
        pattern=r"database|duckdb|sql",
        severity=ErrorSeverity.HIGH,
        threshold=5,
        time_window=10,
    ),
    AlertRule(
        id="auth-errors",
        pattern=r"unauthorized|forbidden|auth",
        severity=ErrorSeverity.MEDIUM,
        threshold=10,
        time_window=15,
    ),
    AlertRule(
        id="api-errors",
        pattern=r"api|endpoint|route",
        severity=ErrorSeverity.MEDIUM,
        threshold=20,
        time_window=15,
    ),
]


def default_rules() -> List[AlertRule]:
    """Fresh copies, so one engine's edits never leak into another's"""
    return [rule.model_copy() for rule in DEFAULT_ALERT_RULES]
