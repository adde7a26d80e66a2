"""Tests for EscapeNotificationSweeper and KinesisEscapeNotifier."""
import json
import threading
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from safenest.services.safe_escape.notifier import KinesisEscapeNotifier
from safenest.services.safe_escape.sweeper import EscapeNotificationSweeper
from safenest.shared.models import SafeEscapeActivation
from safenest.shared.utils import configure_pii_salt


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def activation():
    return SafeEscapeActivation(
        id="esc_1",
        family_id="family_1",
        activated_by="userA",
        activated_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
    )


class TestSweeper:
    def test_run_once_delegates(self):
        controller = MagicMock()
        controller.sweep.return_value = 2

        assert EscapeNotificationSweeper(controller, interval_seconds=1).run_once() == 2

    def test_run_once_survives_errors(self):
        controller = MagicMock()
        controller.sweep.side_effect = RuntimeError("database down")

        assert EscapeNotificationSweeper(controller, interval_seconds=1).run_once() == 0

    def test_run_forever_stops(self):
        controller = MagicMock()
        stop_event = threading.Event()

        def sweep():
            stop_event.set()
            return 0

        controller.sweep.side_effect = sweep

        EscapeNotificationSweeper(controller, interval_seconds=60).run_forever(stop_event)

        controller.sweep.assert_called_once()

    def test_interval_defaults_to_config(self):
        controller = MagicMock()
        controller.config.sweep_interval_seconds = 300

        assert EscapeNotificationSweeper(controller).interval_seconds == 300


class TestKinesisEscapeNotifier:
    def test_payload_is_neutral(self, activation):
        notifier = KinesisEscapeNotifier(stream_name="family-notifications")
        client = MagicMock()

        with patch.object(notifier, "_kinesis_client", client):
            assert notifier.notify_due(activation, "Location features paused") is True

        payload = json.loads(client.put_record.call_args.kwargs["Data"])
        assert payload["event_type"] == "safe_escape.notification_due"
        assert payload["data"] == {
            "activation_id": "esc_1",
            "family_id": "family_1",
            "message": "Location features paused",
        }
        assert "userA" not in client.put_record.call_args.kwargs["Data"]

    def test_failure_returns_false(self, activation):
        notifier = KinesisEscapeNotifier()
        client = MagicMock()
        client.put_record.side_effect = Exception("Kinesis unavailable")

        with patch.object(notifier, "_kinesis_client", client):
            assert notifier.notify_due(activation, "Location features paused") is False

    def test_disabled(self, activation):
        assert KinesisEscapeNotifier(enabled=False).notify_due(activation, "x") is False
