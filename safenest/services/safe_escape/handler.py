"""Safe Escape HTTP handler.

Identity comes from the authenticated request (``member_id``), resolved
upstream by the API gateway. Re-enable failures always answer with the
same generic message and status, whatever the cause.
"""
import logging
import os

from flask import Flask, jsonify, request

from safenest.shared.database import get_connection_manager
from safenest.shared.utils import configure_pii_salt

from .config import SafeEscapeConfig
from .controller import SafeEscapeController
from .notifier import KinesisEscapeNotifier
from .repository import InMemoryActivationStore, PostgresActivationStore

logger = logging.getLogger(__name__)

app = Flask(__name__)

pii_salt = os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
configure_pii_salt(pii_salt)

config = SafeEscapeConfig.from_env()

if os.getenv("SAFE_ESCAPE_STORE", "memory") == "postgres":
    store = PostgresActivationStore(get_connection_manager())
else:
    store = InMemoryActivationStore()

controller = SafeEscapeController(
    store=store,
    notifier=KinesisEscapeNotifier(
        stream_name=config.notification_stream,
        enabled=config.notifications_enabled,
    ),
    config=config,
)


@app.route("/health", methods=["GET"])
def health():
    return jsonify({
        "status": "healthy",
        "service": "safe-escape",
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    if controller is None:
        return jsonify({"status": "not_ready", "reason": "controller_not_initialized"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/escape/activate", methods=["POST"])
def activate():
    """Activate Safe Escape immediately.

    Request Body:
        {"family_id": "family_123", "member_id": "member_456"}

    Response:
        201 with the activation record for the activator.
        200 {"is_active": true} when another member's activation is
        already in force; nothing about it is disclosed.
    """
    data = request.get_json(silent=True) or {}
    family_id = data.get("family_id")
    member_id = data.get("member_id")
    if not family_id or not member_id:
        return jsonify({"error": "family_id and member_id are required"}), 400

    activation = controller.activate(family_id, member_id)
    if activation is None:
        return jsonify({"is_active": True}), 200

    return jsonify({
        "activation": controller.describe(activation),
        "hours_until_notification": controller.hours_until_notification(activation),
    }), 201


@app.route("/escape/<activation_id>/reenable", methods=["POST"])
def reenable(activation_id: str):
    data = request.get_json(silent=True) or {}
    result = controller.reenable(activation_id, data.get("member_id") or "")

    if not result.success:
        return jsonify({"success": False, "error": result.error}), 403
    return jsonify({"success": True, "activation": controller.describe(result.activation)}), 200


@app.route("/escape/status", methods=["GET"])
def status():
    family_id = request.args.get("family_id")
    member_id = request.args.get("member_id")
    if not family_id or not member_id:
        return jsonify({"error": "family_id and member_id are required"}), 400

    return jsonify(controller.get_status(family_id, member_id)), 200


@app.route("/escape/sweep", methods=["POST"])
def sweep():
    """Run one notification sweep (called by the scheduler)."""
    return jsonify({"notifications_sent": controller.sweep()}), 200
