# Folder: pulse/ingestion/error_logger.py
#
# Server-side error logging with automatic alerting.
#
# Flow:
# exception/string → ErrorRecord → stored as server_error event
#                  → alert engine → (threshold?) → notifier
#
# IPs and user agents are hashed before they touch the store.

import hashlib
import logging
import traceback
from typing import Any, Dict, Optional, Union
from ingestion.event_schema import (
    Alert, ErrorCategory, ErrorRecord, ErrorSeverity, RawEvent, SERVER_ERROR,
)
from detection.alert_engine import AlertRuleEngine
from storage.event_store import EventStore
from errors import DataSourceUnavailable

logger = logging.getLogger(__name__)


def hash_string(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def build_error_record(error: Union[BaseException, str], **details) -> ErrorRecord:
    """Exceptions keep their formatted traceback as the stack"""
    if isinstance(error, BaseException):
        message = str(error) or type(error).__name__
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    else:
        message = str(error)
        stack = details.pop("stack", None)

    details = {k: v for k, v in details.items() if v is not None}
    return ErrorRecord(message=message, stack=stack, **details)


def error_to_event(record: ErrorRecord) -> RawEvent:
    server_error: Dict[str, Any] = {
        "message": record.message,
        "stack": record.stack,
        "severity": record.severity.value,
        "category": record.category.value,
        "method": record.method,
        "userId": record.user_id,
        "requestId": record.request_id,
        "statusCode": record.status_code,
        "ip_hash": hash_string(record.ip) if record.ip else None,
        "context": record.context,
    }
    # Extra metadata is merged in, but can't overwrite the fields above
    for key, value in record.metadata.items():
        server_error.setdefault(key, value)

    return RawEvent(
        page_path=record.endpoint or "/server",
        event_type=SERVER_ERROR,
        timestamp=record.timestamp,
        user_agent_hash=hash_string(record.user_agent) if record.user_agent else None,
        metadata={"server_error": server_error},
    )


class ErrorLogger:

    def __init__(self, event_store: EventStore, engine: AlertRuleEngine):
        self.event_store = event_store
        self.engine = engine

    def log_error(self, error: Union[BaseException, str], **details) -> Optional[Alert]:
        """
        Store the error and run it through the alert rules.
        Returns the alert it triggered, if any.
        """
        record = build_error_record(error, **details)
        return self.log_record(record)

    def log_record(self, record: ErrorRecord) -> Optional[Alert]:
        try:
            self.event_store.insert(error_to_event(record))
        except DataSourceUnavailable as e:
            # Store is down - keep the error in the log and still alert on it
            logger.error(f"Failed to store error: {e}")
            logger.error(f"Original error: {record.category.value}/{record.severity.value} "
                         f"{record.endpoint or ''} {record.message}")

        return self.engine.submit(record)

    def log_api_error(self, error: Union[BaseException, str], endpoint: str, method: str,
                      status_code: Optional[int] = None,
                      user_id: Optional[str] = None) -> Optional[Alert]:
        severity = (ErrorSeverity.HIGH if status_code and status_code >= 500
                    else ErrorSeverity.MEDIUM)
        return self.log_error(
            error,
            category=ErrorCategory.API,
            severity=severity,
            endpoint=endpoint,
            method=method,
            status_code=status_code,
            user_id=user_id,
        )

    def log_database_error(self, error: Union[BaseException, str],
                           context: Optional[Dict[str, Any]] = None) -> Optional[Alert]:
        return self.log_error(error, category=ErrorCategory.DATABASE,
                              severity=ErrorSeverity.HIGH, context=context)

    def log_email_error(self, error: Union[BaseException, str],
                        context: Optional[Dict[str, Any]] = None) -> Optional[Alert]:
        return self.log_error(error, category=ErrorCategory.EMAIL,
                              severity=ErrorSeverity.MEDIUM, context=context)
