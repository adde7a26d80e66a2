"""Tests for the signal status state machine."""
import pytest

from safenest.shared.models import SignalStatus
from safenest.services.safety_signal.state_machine import (
    InvalidStatusTransitionError,
    get_next_status,
    is_terminal,
    is_valid_status_transition,
    path_to,
)

ORDER = [
    SignalStatus.QUEUED,
    SignalStatus.PENDING,
    SignalStatus.SENT,
    SignalStatus.DELIVERED,
    SignalStatus.ACKNOWLEDGED,
]


class TestTransitions:
    @pytest.mark.parametrize("current", ORDER)
    @pytest.mark.parametrize("target", ORDER)
    def test_only_next_hop_is_valid(self, current, target):
        expected = ORDER.index(target) == ORDER.index(current) + 1

        assert is_valid_status_transition(current, target) is expected

    def test_next_status(self):
        assert get_next_status(SignalStatus.QUEUED) == SignalStatus.PENDING
        assert get_next_status(SignalStatus.SENT) == SignalStatus.DELIVERED
        assert get_next_status(SignalStatus.ACKNOWLEDGED) is None

    def test_queued_cannot_skip_to_delivered(self):
        assert is_valid_status_transition(SignalStatus.QUEUED, SignalStatus.DELIVERED) is False

    def test_no_backward_moves(self):
        assert is_valid_status_transition(SignalStatus.SENT, SignalStatus.PENDING) is False

    def test_acknowledged_is_terminal(self):
        assert is_terminal(SignalStatus.ACKNOWLEDGED) is True
        assert is_terminal(SignalStatus.DELIVERED) is False


class TestPathTo:
    def test_forward_path(self):
        assert path_to(SignalStatus.QUEUED, SignalStatus.SENT) == [
            SignalStatus.PENDING,
            SignalStatus.SENT,
        ]

    def test_same_status(self):
        assert path_to(SignalStatus.SENT, SignalStatus.SENT) == []

    def test_backward_is_empty(self):
        assert path_to(SignalStatus.DELIVERED, SignalStatus.PENDING) == []


def test_error_carries_statuses():
    error = InvalidStatusTransitionError(SignalStatus.QUEUED, SignalStatus.DELIVERED)

    assert error.current == SignalStatus.QUEUED
    assert error.target == SignalStatus.DELIVERED
    assert "queued -> delivered" in str(error)
    assert isinstance(error, ValueError)
