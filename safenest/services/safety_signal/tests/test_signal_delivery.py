"""Tests for delivery channels and event publishers."""
import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from safenest.services.safety_signal.delivery import (
    DeliveryError,
    InMemorySignalChannel,
    KinesisSignalChannel,
    KinesisSignalEventPublisher,
    StaticNetworkMonitor,
)
from safenest.shared.models import (
    Platform,
    SafetySignal,
    SignalEnvelope,
    SignalStatus,
    TriggerMethod,
)
from safenest.shared.utils import configure_pii_salt, hash_pii

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def signal():
    return SafetySignal(
        id="sig_1",
        child_id="child_1",
        family_id="family_1",
        trigger_method=TriggerMethod.LOGO_TAP,
        platform=Platform.WEB,
        status=SignalStatus.PENDING,
        triggered_at=NOW,
    )


@pytest.fixture
def envelope(signal):
    return SignalEnvelope(
        signal_id=signal.id,
        trigger_method=signal.trigger_method,
        platform=signal.platform,
        timestamp=signal.triggered_at,
        url="https://example.com",
    )


class TestKinesisSignalChannel:
    @pytest.mark.asyncio
    async def test_send_puts_record(self, signal, envelope):
        client = MagicMock()
        client.put_record.return_value = {"SequenceNumber": "42"}
        channel = KinesisSignalChannel(stream_name="signals", kinesis_client=client)

        receipt = await channel.send(envelope, signal)

        assert receipt.reference == "42"
        assert receipt.delivered is False
        kwargs = client.put_record.call_args.kwargs
        assert kwargs["StreamName"] == "signals"
        assert kwargs["PartitionKey"] == hash_pii("child_1")
        data = json.loads(kwargs["Data"])
        assert data["type"] == "SAFETY_SIGNAL_TRIGGERED"
        assert data["signalId"] == "sig_1"

    @pytest.mark.asyncio
    async def test_send_failure_propagates(self, signal, envelope):
        client = MagicMock()
        client.put_record.side_effect = RuntimeError("throttled")
        channel = KinesisSignalChannel(kinesis_client=client)

        with pytest.raises(RuntimeError):
            await channel.send(envelope, signal)


class TestInMemorySignalChannel:
    @pytest.mark.asyncio
    async def test_fail_next(self, signal, envelope):
        channel = InMemorySignalChannel()
        channel.fail_next(1)

        with pytest.raises(DeliveryError):
            await channel.send(envelope, signal)
        await channel.send(envelope, signal)

        assert channel.attempts == 2
        assert len(channel.sent) == 1


class TestKinesisSignalEventPublisher:
    def test_disabled_publisher_skips(self, signal):
        publisher = KinesisSignalEventPublisher(enabled=False)

        assert publisher.publish("safety.signal.delivered", signal) is False

    def test_publish_success(self, signal):
        publisher = KinesisSignalEventPublisher(stream_name="events")
        client = MagicMock()
        client.put_record.return_value = {"ShardId": "shard-1", "SequenceNumber": "1"}

        with patch.object(publisher, "_kinesis_client", client):
            result = publisher.publish("safety.signal.delivered", signal, {"extra": 1})

        assert result is True
        payload = json.loads(client.put_record.call_args.kwargs["Data"])
        assert payload["event_type"] == "safety.signal.delivered"
        assert payload["data"]["signal_id"] == "sig_1"
        assert payload["data"]["extra"] == 1
        assert "child_1" not in client.put_record.call_args.kwargs["Data"]

    def test_publish_failure_returns_false(self, signal):
        publisher = KinesisSignalEventPublisher()
        client = MagicMock()
        client.put_record.side_effect = Exception("Kinesis unavailable")

        with patch.object(publisher, "_kinesis_client", client):
            assert publisher.publish("safety.signal.delivered", signal) is False


def test_static_network_monitor():
    monitor = StaticNetworkMonitor(online=False)
    assert monitor.is_online() is False

    monitor.set_online(True)
    assert monitor.is_online() is True
