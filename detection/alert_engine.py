# Folder: pulse/detection/alert_engine.py
#
# Counts matching errors per rule and fires an alert when a rule's
# threshold is reached inside its time window.
#
# Windows are fixed buckets: bucket = floor(now_ms / window_ms).
# A burst that straddles a bucket boundary is split across two
# buckets and may not fire.
#
# After an alert fires the bucket counter goes back to 0, so the same
# bucket has to collect a full threshold again before re-firing.

import time
import logging
import threading
import schedule
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
from ingestion.event_schema import Alert, AlertErrorRef, ErrorRecord, utc_now
from detection.alert_rules import AlertRule
import config

logger = logging.getLogger(__name__)


@dataclass
class BucketCount:
    count: int
    created_at: float        # epoch seconds, used for cleanup


class AlertRuleEngine:
    """
    Holds the rule set and the per-(rule, bucket) counters.

    Rules are passed in - build one engine per process and hand it
    to whoever logs errors. Counter updates are serialized by a lock;
    notifications are sent after the lock is released.
    """

    def __init__(self, rules: Optional[List[AlertRule]] = None,
                 dispatcher=None,
                 clock: Callable[[], float] = time.time,
                 retention_sec: float = config.ALERT_BUCKET_RETENTION_MIN * 60,
                 cleanup_interval_min: int = config.ALERT_CLEANUP_INTERVAL_MIN):

        self._rules: List[AlertRule] = list(rules or [])
        self.dispatcher = dispatcher
        self.clock = clock
        self.retention_sec = retention_sec
        self.cleanup_interval_min = cleanup_interval_min

        # Format: {(rule_id, bucket_index): BucketCount}
        self.counts: Dict[Tuple[str, int], BucketCount] = {}
        self._lock = threading.Lock()

        self._scheduler = schedule.Scheduler()
        self.running = False

    # ── Rule management ─────────────────────────────────────────────────

    @property
    def rules(self) -> List[AlertRule]:
        with self._lock:
            return list(self._rules)

    def get_rule(self, rule_id: str) -> Optional[AlertRule]:
        with self._lock:
            return next((r for r in self._rules if r.id == rule_id), None)

    def add_rule(self, rule: AlertRule):
        """Adding a rule with an existing id replaces the old one in place"""
        with self._lock:
            for i, existing in enumerate(self._rules):
                if existing.id == rule.id:
                    self._rules[i] = rule
                    break
            else:
                self._rules.append(rule)
        logger.info(f"Alert rule {rule.id} registered")

    def remove_rule(self, rule_id: str):
        """No-op if the rule doesn't exist"""
        with self._lock:
            self._rules = [r for r in self._rules if r.id != rule_id]
            for key in [k for k in self.counts if k[0] == rule_id]:
                del self.counts[key]

    # ── Submission ──────────────────────────────────────────────────────

    def submit(self, error: ErrorRecord) -> Optional[Alert]:
        """
        Count the error against every matching rule.
        Returns the first alert this error fired, if any.
        Never raises.
        """
        alerts = self.evaluate(error)
        return alerts[0] if alerts else None

    def evaluate(self, error: ErrorRecord) -> List[Alert]:
        fired: List[Tuple[Alert, AlertRule]] = []
        now = self.clock()

        with self._lock:
            rules = list(self._rules)

            for rule in rules:
                if not rule.enabled:
                    continue
                try:
                    if not rule.matches(error):
                        continue
                except Exception as e:
                    logger.error(f"Rule {rule.id} failed to evaluate: {e}")
                    continue

                bucket = int(now * 1000) // rule.window_ms
                entry = self.counts.get((rule.id, bucket))
                if entry is None:
                    entry = BucketCount(count=0, created_at=now)
                    self.counts[(rule.id, bucket)] = entry
                entry.count += 1

                if entry.count >= rule.threshold:
                    fired.append((self._build_alert(rule, error, entry.count), rule))
                    # Reset so this bucket doesn't fire on every later error
                    entry.count = 0

        for alert, rule in fired:
            self._dispatch(alert, rule)

        return [alert for alert, _ in fired]

    def _build_alert(self, rule: AlertRule, error: ErrorRecord, count: int) -> Alert:
        message = (
            f"Alert: {rule.id} triggered. {count} {error.severity.value} errors "
            f"in {rule.time_window} minutes. Latest: {error.message}"
        )
        logger.warning(f"🚨 {message}")
        return Alert(
            rule_id=rule.id,
            severity=rule.severity,
            message=message,
            count=count,
            time_window=rule.time_window,
            triggered_at=utc_now(),
            original_error=AlertErrorRef(
                message=error.message,
                category=error.category,
                endpoint=error.endpoint,
                severity=error.severity,
            ),
        )

    def _dispatch(self, alert: Alert, rule: AlertRule):
        if self.dispatcher is None:
            return
        try:
            delivered = self.dispatcher.deliver(alert, rule)
        except Exception as e:
            logger.error(f"Dispatcher crashed for alert {alert.rule_id}: {e}")
            return
        if not delivered:
            logger.warning(f"Alert {alert.rule_id} was not delivered")

    # ── Bucket cleanup ──────────────────────────────────────────────────

    def cleanup_expired(self) -> int:
        """
        Drop buckets created more than retention_sec ago.
        A rule whose window is longer than that keeps its buckets
        for a full window instead.
        """
        now = self.clock()
        with self._lock:
            keep_sec = {r.id: max(self.retention_sec, r.window_ms / 1000) for r in self._rules}
            expired = [
                k for k, v in self.counts.items()
                if v.created_at < now - keep_sec.get(k[0], self.retention_sec)
            ]
            for key in expired:
                del self.counts[key]
        if expired:
            logger.debug(f"Dropped {len(expired)} expired alert buckets")
        return len(expired)

    def start(self):
        """Start the cleanup loop in a background thread"""
        self.running = True
        self._scheduler.clear()
        self._scheduler.every(self.cleanup_interval_min).minutes.do(self.cleanup_expired)
        thread = threading.Thread(target=self._cleanup_loop, daemon=True)
        thread.start()
        logger.info("Alert engine cleanup started")

    def stop(self):
        self.running = False
        self._scheduler.clear()

    def _cleanup_loop(self):
        while self.running:
            try:
                self._scheduler.run_pending()
            except Exception as e:
                logger.error(f"Alert cleanup error: {e}")
            time.sleep(1)
