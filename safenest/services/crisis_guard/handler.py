"""Crisis Guard HTTP handler.

Lets monitoring agents that cannot embed the matcher (native capture
services, the screenshot sync worker) ask whether a URL may be recorded.

Requests are never logged: the URL a child visited must leave no trace
here, crisis resource or not.
"""
import logging

from flask import Flask, jsonify, request

from .guard import CrisisGuard, MonitoringChannel
from .matcher import get_default_matcher

logger = logging.getLogger(__name__)

app = Flask(__name__)

matcher = get_default_matcher()
guard = CrisisGuard(matcher)


@app.route("/health", methods=["GET"])
def health():
    return jsonify({
        "status": "healthy",
        "service": "crisis-guard",
        "allowlist_version": matcher.version,
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    if guard is None:
        return jsonify({"status": "not_ready"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/guard/check", methods=["POST"])
def check():
    """Check whether a monitoring channel must skip a URL.

    Request Body:
        {"url": "https://...", "channel": "screenshot" (optional)}

    Response:
        {"blocked": true | false}

    Unknown channels are checked with the master predicate.
    """
    data = request.get_json(silent=True) or {}
    url = data.get("url")

    channel = None
    if data.get("channel"):
        try:
            channel = MonitoringChannel(data["channel"])
        except ValueError:
            channel = None

    if channel is None:
        blocked = guard.should_block(url)
    else:
        blocked = guard.should_block_channel(url, channel)

    return jsonify({"blocked": blocked}), 200
