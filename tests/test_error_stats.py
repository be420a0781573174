from datetime import timedelta

from conftest import T0
from detection.error_stats import compute_error_stats
from ingestion.error_logger import error_to_event
from ingestion.event_schema import ErrorCategory, ErrorRecord, ErrorSeverity


def _log(event_store, message, severity, category, days_ago=0):
    event_store.insert(error_to_event(ErrorRecord(
        message=message, severity=severity, category=category,
        timestamp=T0 - timedelta(days=days_ago),
    )))


def test_no_errors_gives_zero_filled_stats(event_store):
    stats = compute_error_stats(event_store, days=7, now=T0)

    assert stats.total_errors == 0
    assert stats.errors_by_severity == {"low": 0, "medium": 0, "high": 0, "critical": 0}
    assert set(stats.errors_by_category) == {
        "api", "database", "email", "external_service", "validation", "authentication", "system",
    }
    assert all(v == 0 for v in stats.errors_by_category.values())
    assert stats.top_errors == []


def test_counts_and_top_errors(event_store):
    _log(event_store, "timeout", ErrorSeverity.HIGH, ErrorCategory.API)
    _log(event_store, "timeout", ErrorSeverity.HIGH, ErrorCategory.API)
    _log(event_store, "refused", ErrorSeverity.CRITICAL, ErrorCategory.DATABASE)
    _log(event_store, "old one", ErrorSeverity.LOW, ErrorCategory.EMAIL, days_ago=10)

    stats = compute_error_stats(event_store, days=7, now=T0)

    assert stats.total_errors == 3
    assert stats.errors_by_severity["high"] == 2
    assert stats.errors_by_severity["critical"] == 1
    assert stats.errors_by_severity["low"] == 0
    assert stats.errors_by_category["api"] == 2
    assert stats.errors_by_category["database"] == 1
    assert [(e.message, e.count) for e in stats.top_errors] == [("timeout", 2), ("refused", 1)]


def test_wider_window_includes_older_errors(event_store):
    _log(event_store, "old one", ErrorSeverity.LOW, ErrorCategory.EMAIL, days_ago=10)

    assert compute_error_stats(event_store, days=30, now=T0).total_errors == 1


def test_only_server_errors_are_counted(event_store, make_event):
    event_store.insert(make_event(0, event_type="page_view"))
    _log(event_store, "boom", ErrorSeverity.MEDIUM, ErrorCategory.SYSTEM)

    assert compute_error_stats(event_store, now=T0).total_errors == 1


def test_top_errors_capped_at_ten(event_store):
    for i in range(12):
        _log(event_store, f"error {i}", ErrorSeverity.LOW, ErrorCategory.SYSTEM)

    assert len(compute_error_stats(event_store, now=T0).top_errors) == 10
