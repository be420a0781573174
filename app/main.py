# Folder: pulse/app/main.py
#
# The Flask app everything is served from.
#   /ingest, /errors                      - collector (ingestion/collector.py)
#   /api/analytics/aggregated-metrics     - live or stored traffic metrics
#   /errors/stats                         - server error summary
#   /api/alerts/rules                     - list/add/remove alert rules at runtime
#   /health
#
# Components are built by the caller (main.py, tests) and passed in.

import os
import psutil
from flask import Flask, jsonify, request
from pydantic import ValidationError
from aggregation.service import MetricsService, resolve_date_range
from detection.alert_engine import AlertRuleEngine
from detection.alert_rules import AlertRule
from detection.error_stats import compute_error_stats
from ingestion.collector import create_collector
from ingestion.error_logger import ErrorLogger
from ingestion.event_schema import utc_now
from storage.event_store import EventStore
from app.middleware import register_middleware
import config


def _is_true(value) -> bool:
    return str(value).lower() == "true" if value is not None else False


def create_app(event_store: EventStore, metrics_service: MetricsService,
               engine: AlertRuleEngine, error_logger: ErrorLogger) -> Flask:

    app = Flask(__name__)
    app.register_blueprint(create_collector(event_store, error_logger))

    @app.route("/api/analytics/aggregated-metrics", methods=["GET"])
    def get_aggregated_metrics():
        """
        ?live=true   - compute now for ?range=
        otherwise    - latest stored snapshot for ?range=, optionally one ?metric=
        """
        label = request.args.get("range", "7d")
        metric = request.args.get("metric")

        if _is_true(request.args.get("live")):
            snapshot = metrics_service.live(label)
            return jsonify({
                "success": True,
                "data": snapshot.model_dump(mode="json"),
                "isLive": True,
                "generatedAt": utc_now().isoformat()
            })

        stored = metrics_service.stored(label, metric)
        if hasattr(stored, "model_dump"):
            stored = stored.model_dump(mode="json")

        return jsonify({"success": True, "data": stored, "isLive": False})

    @app.route("/api/analytics/aggregated-metrics", methods=["POST"])
    def generate_aggregated_metrics():
        body = request.get_json(silent=True) or {}
        date_range = resolve_date_range(body.get("dateRange", "7d"))
        persist = bool(body.get("generateNew", False))

        snapshot = metrics_service.generate(date_range.label, persist=persist,
                                            now=date_range.end)
        return jsonify({
            "success": True,
            "data": snapshot.model_dump(mode="json"),
            "stored": persist,
            "generatedAt": utc_now().isoformat(),
            "dateRange": {
                "start": date_range.start.isoformat(),
                "end": date_range.end.isoformat(),
                "range": date_range.label
            }
        })

    @app.route("/errors/stats", methods=["GET"])
    def error_stats():
        days = request.args.get("days", 7, type=int)
        if not 1 <= days <= config.ERROR_STATS_MAX_DAYS:
            return jsonify({
                "success": False,
                "error": f"days must be between 1 and {config.ERROR_STATS_MAX_DAYS}"
            }), 400
        stats = compute_error_stats(event_store, days=days)
        return jsonify({"success": True, "data": stats.model_dump(mode="json")})

    @app.route("/api/alerts/rules", methods=["GET"])
    def list_rules():
        return jsonify({"rules": [r.model_dump(mode="json") for r in engine.rules]})

    @app.route("/api/alerts/rules", methods=["POST"])
    def add_rule():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "expected a rule object"}), 400
        try:
            rule = AlertRule(**data)
        except ValidationError as e:
            return jsonify({"error": [err["msg"] for err in e.errors()]}), 400

        engine.add_rule(rule)
        return jsonify({"status": "ok", "rule": rule.model_dump(mode="json")}), 201

    @app.route("/api/alerts/rules/<rule_id>", methods=["DELETE"])
    def remove_rule(rule_id):
        engine.remove_rule(rule_id)
        return jsonify({"status": "ok", "removed": rule_id})

    @app.route("/health", methods=["GET"])
    def health():
        memory_mb = psutil.Process(os.getpid()).memory_info().rss / 1024 / 1024
        return jsonify({
            "status": "ok",
            "events": event_store.count(),
            "alert_rules": len(engine.rules),
            "alert_buckets": len(engine.counts),
            "memory_mb": round(memory_mb, 2)
        })

    register_middleware(app, error_logger)
    return app
