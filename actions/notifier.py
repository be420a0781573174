# Folder: pulse/actions/notifier.py
#
# Delivers alerts fired by the alert engine.
# One notifier per channel: log line, stored record, webhook, Slack.
# Each rule picks its channel via alert_method.
#
# Delivery is best effort. A failed delivery is logged and reported
# as False - the engine never retries and never un-resets its counter.

import logging
import requests
from typing import Optional
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError
from ingestion.event_schema import Alert, RawEvent, SYSTEM_ALERT
from detection.alert_rules import AlertRule, AlertMethod
from errors import DataSourceUnavailable, DispatchFailure
import config

logger = logging.getLogger(__name__)

ALERTS_PAGE_PATH = "/admin/alerts"


class LogNotifier:

    def deliver(self, alert: Alert) -> bool:
        logger.error(f"🚨 {alert.message}")
        return True


class RecordNotifier:
    """Stores the alert as a system_alert event so the admin view can list it"""

    def __init__(self, event_store):
        self.event_store = event_store

    def deliver(self, alert: Alert) -> bool:
        record = RawEvent(
            page_path=ALERTS_PAGE_PATH,
            event_type=SYSTEM_ALERT,
            timestamp=alert.triggered_at,
            metadata={"alert": alert.model_dump(mode="json")},
        )
        try:
            self.event_store.insert(record)
        except DataSourceUnavailable as e:
            raise DispatchFailure(f"could not store alert {alert.rule_id}: {e}") from e
        logger.info(f"Alert {alert.rule_id} stored")
        return True


class WebhookNotifier:

    def __init__(self, url: str, timeout: float = None):
        self.url = url
        self.timeout = timeout or config.WEBHOOK_TIMEOUT_SEC

    @staticmethod
    def build_payload(alert: Alert) -> dict:
        error = alert.original_error
        return {
            "text": alert.message,
            "error": {
                "message": error.message,
                "severity": error.severity.value,
                "category": error.category.value,
                "endpoint": error.endpoint,
                "timestamp": alert.triggered_at.isoformat(),
            },
        }

    def deliver(self, alert: Alert) -> bool:
        try:
            response = requests.post(
                self.url,
                json=self.build_payload(alert),
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise DispatchFailure(f"webhook {self.url} failed: {e}") from e
        logger.info(f"Alert {alert.rule_id} posted to webhook")
        return True


class SlackNotifier:
    """Rich Slack message using Block Kit"""

    def __init__(self, client: Optional[WebClient] = None, channel: Optional[str] = None):
        self.client = client or WebClient(token=config.SLACK_BOT_TOKEN)
        self.channel = channel or config.SLACK_CHANNEL_ID

    def build_blocks(self, alert: Alert) -> list:
        error = alert.original_error
        return [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"🚨 Alert: {alert.rule_id}"
                }
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Severity*\n{alert.severity.value}"},
                    {"type": "mrkdwn",
                     "text": f"*Occurrences*\n{alert.count} in {alert.time_window} min"},
                    {"type": "mrkdwn", "text": f"*Category*\n{error.category.value}"},
                    {"type": "mrkdwn", "text": f"*Endpoint*\n`{error.endpoint or 'n/a'}`"},
                ]
            },
            {"type": "divider"},
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"*Latest error*\n```{error.message[:300]}```"
                }
            },
        ]

    def deliver(self, alert: Alert) -> bool:
        try:
            self.client.chat_postMessage(
                channel=self.channel,
                blocks=self.build_blocks(alert),
                text=alert.message
            )
        except (SlackApiError, OSError) as e:
            raise DispatchFailure(f"Slack error: {e}") from e
        logger.info(f"Slack alert sent for rule {alert.rule_id}")
        return True


class NotificationDispatcher:
    """
    Routes an alert to the notifier its rule asks for.
    deliver() never raises - it returns False when delivery failed.
    """

    def __init__(self, event_store=None, slack_client: Optional[WebClient] = None,
                 webhook_url: Optional[str] = None):
        self.event_store = event_store
        self.slack_client = slack_client
        self.webhook_url = webhook_url or config.ALERT_WEBHOOK_URL

    def notifier_for(self, rule: AlertRule):
        method = rule.alert_method

        if method == AlertMethod.CONSOLE:
            return LogNotifier()

        if method == AlertMethod.DATABASE:
            if self.event_store is None:
                raise DispatchFailure("no event store configured for database alerts")
            return RecordNotifier(self.event_store)

        if method == AlertMethod.WEBHOOK:
            url = rule.webhook_url or self.webhook_url
            if not url:
                raise DispatchFailure(f"rule {rule.id} has no webhook url")
            return WebhookNotifier(url)

        if method == AlertMethod.SLACK:
            if self.slack_client is None:
                self.slack_client = WebClient(token=config.SLACK_BOT_TOKEN)
            return SlackNotifier(client=self.slack_client)

        raise DispatchFailure(f"unknown alert method {method}")

    def deliver(self, alert: Alert, rule: AlertRule) -> bool:
        try:
            return self.notifier_for(rule).deliver(alert)
        except DispatchFailure as e:
            logger.error(f"Alert delivery failed for {alert.rule_id}: {e}")
            return False
