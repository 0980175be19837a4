"""
HTTP API Server for Pattern Alerts.

A small Flask server that:
1. Runs on-demand checks for the calling user
2. Runs the global sweep (service key only)
3. Creates, edits, toggles and deletes patterns, backfilling after
   a create or a filter-changing edit
4. Clears a user's alert ledger

The caller's identity comes from the bearer token, resolved through
Supabase auth. Run this server alongside the scheduler.
"""

import hmac
import logging
from typing import Optional

from flask import Flask, jsonify, request

from .config import get_matching_config, get_supabase_config
from .db import get_db
from .errors import (
    AuthError,
    PatternAlertsError,
    PatternLimitReached,
    PatternNotFound,
    ValidationError,
)
from .ledger import AlertLedger
from .models import CheckStatus
from .notifications import HttpNotificationTransport
from .patterns import PatternService
from .pipeline import backfill_pattern, check_owner_patterns, sweep_all_patterns

logger = logging.getLogger(__name__)

app = Flask(__name__)

ERROR_STATUS = {
    AuthError: 401,
    ValidationError: 400,
    PatternNotFound: 404,
    PatternLimitReached: 403,
}


# =============================================================================
# HELPERS
# =============================================================================

def _bearer_token() -> str:
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return ""
    return header[len("Bearer "):].strip()


def _current_owner() -> str:
    """Resolve the calling user. Raises AuthError."""
    return get_db().resolve_owner(_bearer_token())


def _require_service_key() -> None:
    key = get_supabase_config().key
    if not key or not hmac.compare_digest(_bearer_token(), key):
        raise AuthError("Service credentials required")


def _pattern_service() -> PatternService:
    db = get_db()
    return PatternService(db, AlertLedger(db))


def _transport() -> HttpNotificationTransport:
    return HttpNotificationTransport()


def _backfill_quietly(owner: str, pattern_id: str) -> Optional[dict]:
    """Backfill after a save; a failure here never undoes the save."""
    try:
        return backfill_pattern(owner, pattern_id, store=get_db()).to_dict()
    except PatternAlertsError as e:
        logger.warning(f"Backfill for pattern {pattern_id} failed: {e}")
        return None


@app.errorhandler(PatternAlertsError)
def handle_pattern_alerts_error(error: PatternAlertsError):
    status = next((code for cls, code in ERROR_STATUS.items() if isinstance(error, cls)), 500)
    if status == 500:
        logger.error(f"Request failed: {error}")
    body = {"error": str(error)}
    if isinstance(error, ValidationError):
        body["reason"] = error.reason
    return jsonify(body), status


@app.errorhandler(ValueError)
def handle_bad_input(error: ValueError):
    return jsonify({"error": str(error)}), 400


# =============================================================================
# RUNS
# =============================================================================

@app.route("/api/check", methods=["POST"])
def check_patterns():
    """On-demand check of the caller's enabled patterns."""
    owner = _current_owner()
    result = check_owner_patterns(owner, store=get_db(), transport=_transport())
    status = 500 if result.status == CheckStatus.ERROR else 200
    return jsonify(result.to_dict()), status


@app.route("/api/sweep", methods=["POST"])
def sweep_patterns():
    """Global sweep; service key only."""
    _require_service_key()
    result = sweep_all_patterns(store=get_db(), transport=_transport())
    return jsonify(result.to_dict())


@app.route("/api/patterns/<pattern_id>/backfill", methods=["POST"])
def backfill(pattern_id: str):
    owner = _current_owner()
    result = backfill_pattern(owner, pattern_id, store=get_db())
    return jsonify(result.to_dict())


# =============================================================================
# PATTERNS
# =============================================================================

@app.route("/api/patterns", methods=["GET"])
def list_patterns():
    owner = _current_owner()
    patterns = _pattern_service().list_for(owner)
    return jsonify({"patterns": [p.to_dict() for p in patterns]})


@app.route("/api/patterns", methods=["POST"])
def create_pattern():
    """Create a pattern, then backfill it against the whole inventory."""
    owner = _current_owner()
    fields = request.get_json(silent=True) or {}
    pattern = _pattern_service().create(owner, fields, get_matching_config().max_patterns_per_owner)
    return jsonify({"pattern": pattern.to_dict(), "backfill": _backfill_quietly(owner, pattern.id)}), 201


@app.route("/api/patterns/<pattern_id>", methods=["PATCH"])
def update_pattern(pattern_id: str):
    """Edit a pattern; filter changes reset its alerts and trigger a backfill."""
    owner = _current_owner()
    fields = request.get_json(silent=True) or {}
    pattern, invalidated = _pattern_service().update(owner, pattern_id, fields)
    body = {"pattern": pattern.to_dict(), "alertsReset": invalidated, "backfill": None}
    if invalidated:
        body["backfill"] = _backfill_quietly(owner, pattern_id)
    return jsonify(body)


@app.route("/api/patterns/<pattern_id>/toggle", methods=["POST"])
def toggle_pattern(pattern_id: str):
    owner = _current_owner()
    payload = request.get_json(silent=True) or {}
    service = _pattern_service()
    enabled = payload.get("enabled")
    if enabled is None:
        enabled = not service.get(owner, pattern_id).enabled
    pattern = service.set_enabled(owner, pattern_id, bool(enabled))
    return jsonify({"pattern": pattern.to_dict()})


@app.route("/api/patterns/<pattern_id>", methods=["DELETE"])
def delete_pattern(pattern_id: str):
    owner = _current_owner()
    _pattern_service().delete(owner, pattern_id)
    return jsonify({"deleted": pattern_id})


@app.route("/api/patterns", methods=["DELETE"])
def delete_all_patterns():
    owner = _current_owner()
    deleted = _pattern_service().delete_all(owner)
    return jsonify({"deleted": deleted})


@app.route("/api/alerts", methods=["DELETE"])
def clear_alerts():
    """Clear the caller's alert ledger, optionally for one pattern."""
    owner = _current_owner()
    cleared = AlertLedger(get_db()).clear(owner, request.args.get("pattern_id"))
    return jsonify({"cleared": cleared})


@app.route("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


def run_server(host: str = "0.0.0.0", port: int = 5000, debug: bool = False):
    """Run the Flask server."""
    app.run(host=host, port=port, debug=debug)


def main():
    """CLI entry point for the API server."""
    import argparse

    parser = argparse.ArgumentParser(description="Pattern Alerts API Server")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=5000, help="Port to bind to")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    logger.info(f"Starting Pattern Alerts API on {args.host}:{args.port}")
    run_server(args.host, args.port, args.debug)


if __name__ == "__main__":
    main()
