"""Safety Signal HTTP handler.

The trigger endpoint is called by the child's device. It always answers
``202 {"ok": true}`` whether or not anything worked, so neither the
child nor anyone watching the device can read delivery state from it.

Receipt endpoints (delivered / acknowledge) and queue endpoints are
called by the routing service and operators, never by the device.
"""
import logging
import os

from flask import Flask, jsonify, request

from safenest.shared.database import NotFoundError, get_connection_manager
from safenest.shared.models import Platform, TriggerMethod
from safenest.shared.utils import configure_pii_salt

from .blackout import (
    BlackoutError,
    InMemoryBlackoutStore,
    PostgresBlackoutStore,
    SignalBlackoutService,
)
from .config import SignalConfig
from .delivery import (
    InMemorySignalChannel,
    KinesisSignalChannel,
    KinesisSignalEventPublisher,
    StaticNetworkMonitor,
)
from .offline_queue import OfflineQueue
from .pipeline import SafetySignalPipeline
from .repository import (
    InMemoryOfflineQueueStore,
    InMemorySignalStore,
    PostgresOfflineQueueStore,
    PostgresSignalStore,
)
from .state_machine import InvalidStatusTransitionError

logger = logging.getLogger(__name__)

app = Flask(__name__)

pii_salt = os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
configure_pii_salt(pii_salt)

config = SignalConfig.from_env()

if os.getenv("SIGNAL_STORE", "memory") == "postgres":
    signal_store = PostgresSignalStore(get_connection_manager())
    queue_store = PostgresOfflineQueueStore(get_connection_manager(), signal_store)
    blackout_store = PostgresBlackoutStore(get_connection_manager())
else:
    signal_store = InMemorySignalStore()
    queue_store = InMemoryOfflineQueueStore()
    blackout_store = InMemoryBlackoutStore()

delivery_stream = os.getenv("SIGNAL_DELIVERY_STREAM")
channel = (
    KinesisSignalChannel(stream_name=delivery_stream)
    if delivery_stream
    else InMemorySignalChannel()
)

events_enabled = os.getenv("SIGNAL_EVENTS_ENABLED", "false").lower() == "true"

event_publisher = KinesisSignalEventPublisher(
    stream_name=os.getenv("KINESIS_STREAM_NAME", "safenest-signal-events"),
    enabled=events_enabled,
)

family_publisher = KinesisSignalEventPublisher(
    stream_name=os.getenv("SIGNAL_FAMILY_STREAM_NAME", "safenest-family-updates"),
    enabled=events_enabled,
)

blackout = SignalBlackoutService(store=blackout_store, default_hours=config.blackout_hours)

pipeline = SafetySignalPipeline(
    channel=channel,
    network=StaticNetworkMonitor(online=True),
    store=signal_store,
    queue=OfflineQueue(store=queue_store, config=config),
    event_sink=event_publisher,
    config=config,
    blackout=blackout,
    family_sink=family_publisher,
)


@app.route("/health", methods=["GET"])
def health():
    return jsonify({
        "status": "healthy",
        "service": "safety-signal",
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    if pipeline is None:
        return jsonify({"status": "not_ready", "reason": "pipeline_not_initialized"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/signals/trigger", methods=["POST"])
async def trigger():
    """Raise a safety signal.

    Request Body:
        {
            "child_id": "child_123",
            "family_id": "family_456",
            "trigger_method": "logo_tap" | "keyboard_shortcut" | "swipe_pattern",
            "platform": "web" | "chrome_extension" | "android",
            "url": "https://..." (optional),
            "device_id": "device_789" (optional)
        }

    Response:
        202 {"ok": true}, always.
    """
    data = request.get_json(silent=True) or {}
    try:
        await pipeline.handle_trigger(
            child_id=data["child_id"],
            family_id=data["family_id"],
            trigger_method=TriggerMethod(data["trigger_method"]),
            platform=Platform(data["platform"]),
            url=data.get("url"),
            device_id=data.get("device_id"),
        )
    except Exception as e:
        logger.debug("SIGNAL_TRIGGER_REJECTED", extra={"error_type": type(e).__name__})

    return jsonify({"ok": True}), 202


def _receipt(action):
    try:
        signal = action()
    except NotFoundError:
        return jsonify({"error": "Signal not found"}), 404
    except InvalidStatusTransitionError as e:
        return jsonify({
            "error": "Invalid status transition",
            "current": e.current.value,
            "target": e.target.value,
        }), 409
    return jsonify({"signal_id": signal.id, "status": signal.status.value}), 200


@app.route("/signals/<signal_id>/delivered", methods=["POST"])
def delivered(signal_id: str):
    return _receipt(lambda: pipeline.mark_delivered(signal_id))


@app.route("/signals/<signal_id>/acknowledge", methods=["POST"])
def acknowledge(signal_id: str):
    return _receipt(lambda: pipeline.acknowledge(signal_id))


@app.route("/signals/queue/process", methods=["POST"])
async def process_queue():
    handed_off = await pipeline.process_queue()
    return jsonify({"handed_off": handed_off, **pipeline.get_queue_status()}), 200


@app.route("/signals/queue/status", methods=["GET"])
def queue_status():
    return jsonify(pipeline.get_queue_status()), 200


@app.route("/signals/<signal_id>/blackout", methods=["GET"])
def blackout_status(signal_id: str):
    return jsonify(blackout.get_status(signal_id).to_dict()), 200


@app.route("/signals/<signal_id>/blackout/extend", methods=["POST"])
def extend_blackout(signal_id: str):
    """Extend a family blackout (crisis partners only).

    Request Body:
        {"partner_id": "partner_123", "hours": 24}
    """
    data = request.get_json(silent=True) or {}
    try:
        hours = float(data.get("hours", 0))
        extended = blackout.extend(signal_id, hours, data.get("partner_id") or "")
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(blackout.get_status(extended.signal_id).to_dict()), 200


@app.route("/signals/<signal_id>/blackout/cancel", methods=["POST"])
def cancel_blackout(signal_id: str):
    data = request.get_json(silent=True) or {}
    try:
        blackout.cancel(signal_id, data.get("partner_id") or "")
    except BlackoutError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(blackout.get_status(signal_id).to_dict()), 200
