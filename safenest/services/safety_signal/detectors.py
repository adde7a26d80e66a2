"""Gesture detectors for the silent safety signal.

Each detector recognises one gesture, owns its own DebounceGate and hands
accepted gestures to the pipeline. Detector methods return nothing: the
host UI must not change in any way when a signal fires.
"""
import asyncio
import logging
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Iterable, Optional, Tuple

from safenest.shared.models import Platform, TriggerMethod
from safenest.shared.utils import Clock, utc_now

from .config import SignalConfig
from .debounce import DebounceGate
from .pipeline import SafetySignalPipeline

logger = logging.getLogger(__name__)


class GestureDetector:
    """Base class binding a detector to one child and device."""

    trigger_method: TriggerMethod

    def __init__(
        self,
        pipeline: SafetySignalPipeline,
        child_id: str,
        family_id: str,
        platform: Platform,
        config: Optional[SignalConfig] = None,
        clock: Clock = utc_now,
        device_id: Optional[str] = None,
    ):
        self.pipeline = pipeline
        self.child_id = child_id
        self.family_id = family_id
        self.platform = platform
        self.device_id = device_id
        self.config = config or SignalConfig()
        self._clock = clock
        self.gate = DebounceGate(self.config.debounce_window_ms, clock=clock)

    async def _fire(self, url: Optional[str]) -> None:
        if not self.gate.record_if_not_debouncing():
            return

        # Once past the gate the trigger runs to completion even if the
        # caller is cancelled; failures stay queued for retry.
        task = self.pipeline.handle_trigger(
            child_id=self.child_id,
            family_id=self.family_id,
            trigger_method=self.trigger_method,
            platform=self.platform,
            url=url,
            device_id=self.device_id,
        )
        try:
            await asyncio.shield(task)
        except Exception as e:
            logger.debug(
                "SAFETY_SIGNAL_TRIGGER_FAILED",
                extra={"trigger_method": self.trigger_method.value, "error_type": type(e).__name__}
            )


class KeyboardShortcutDetector(GestureDetector):
    """Fires on the configured chord (default Ctrl+Shift+H)."""

    trigger_method = TriggerMethod.KEYBOARD_SHORTCUT

    def matches(self, key: str, modifiers: Iterable[str]) -> bool:
        chord = [part.lower() for part in self.config.keyboard_chord]
        required_modifiers, required_key = set(chord[:-1]), chord[-1]
        pressed = {modifier.lower() for modifier in modifiers}
        return key.lower() == required_key and pressed == required_modifiers

    async def on_key(
        self,
        key: str,
        modifiers: Iterable[str] = (),
        url: Optional[str] = None,
    ) -> None:
        if self.matches(key, modifiers):
            await self._fire(url)


class TapDetector(GestureDetector):
    """Fires after ``tap_count_required`` logo taps within ``tap_window_ms``."""

    trigger_method = TriggerMethod.LOGO_TAP

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._taps: Deque[datetime] = deque()

    async def on_tap(self, url: Optional[str] = None) -> None:
        now = self._clock()
        window = timedelta(milliseconds=self.config.tap_window_ms)

        self._taps.append(now)
        while self._taps and now - self._taps[0] > window:
            self._taps.popleft()

        if len(self._taps) >= self.config.tap_count_required:
            self._taps.clear()
            await self._fire(url)


class SwipeDetector(GestureDetector):
    """Fires when the last swipes spell ``swipe_pattern`` within ``swipe_window_ms``."""

    trigger_method = TriggerMethod.SWIPE_PATTERN

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._swipes: Deque[Tuple[str, datetime]] = deque(
            maxlen=len(self.config.swipe_pattern)
        )

    async def on_swipe(self, direction: str, url: Optional[str] = None) -> None:
        now = self._clock()
        window = timedelta(milliseconds=self.config.swipe_window_ms)

        self._swipes.append((direction.lower(), now))
        while self._swipes and now - self._swipes[0][1] > window:
            self._swipes.popleft()

        directions = tuple(direction for direction, _ in self._swipes)
        if directions == tuple(self.config.swipe_pattern):
            self._swipes.clear()
            await self._fire(url)
