"""Shake detection for draggable result cards.

A shake is a high velocity sample whose direction reverses the previous
sample's direction. A single fast sample is not enough, a smooth fast drag
would trigger it too.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Callable, Optional, Tuple

from .models import MotionSample, ShakeEvent

logger = logging.getLogger(__name__)

VELOCITY_THRESHOLD = 1500.0
COOLDOWN_MS = 2000.0


@dataclass(frozen=True)
class DetectorState:
    """Per-element detector state."""

    last_velocity: Tuple[float, float] = (0.0, 0.0)
    last_trigger_ms: Optional[float] = None

    def start_drag(self) -> "DetectorState":
        """Forget the previous drag's velocity so it cannot pair with the new one."""
        return replace(self, last_velocity=(0.0, 0.0))


def reduce_sample(
    state: DetectorState,
    sample: MotionSample,
    threshold: float = VELOCITY_THRESHOLD,
    cooldown_ms: float = COOLDOWN_MS,
) -> Tuple[DetectorState, Optional[ShakeEvent]]:
    """Fold one motion sample into the detector state.

    Returns the next state and a ShakeEvent when the sample completes a shake.
    """
    x, y = sample.x, sample.y
    prev_x, prev_y = state.last_velocity

    magnitude = math.sqrt(x * x + y * y)
    dot = x * prev_x + y * prev_y
    cooled_down = (
        state.last_trigger_ms is None or sample.timestamp_ms - state.last_trigger_ms > cooldown_ms
    )

    event = None
    last_trigger_ms = state.last_trigger_ms
    if magnitude > threshold and dot < 0 and cooled_down:
        event = ShakeEvent(timestamp_ms=sample.timestamp_ms, magnitude=magnitude)
        last_trigger_ms = sample.timestamp_ms

    return DetectorState(last_velocity=(x, y), last_trigger_ms=last_trigger_ms), event


class ShakeDetector:
    """Turns the drag samples of one element into debounced retry callbacks."""

    def __init__(
        self,
        on_retry: Optional[Callable[[ShakeEvent], None]] = None,
        threshold: float = VELOCITY_THRESHOLD,
        cooldown_ms: float = COOLDOWN_MS,
        enabled: bool = True,
    ):
        self.on_retry = on_retry
        self.threshold = threshold
        self.cooldown_ms = cooldown_ms
        self.enabled = enabled
        self.state = DetectorState()
        self.trigger_count = 0

    def on_drag_start(self):
        self.state = self.state.start_drag()

    def on_motion_sample(self, sample: MotionSample) -> Optional[ShakeEvent]:
        """Feed one sample; returns the emitted event, if any."""
        if not self.enabled:
            return None

        self.state, event = reduce_sample(self.state, sample, self.threshold, self.cooldown_ms)
        if event is None:
            return None

        self.trigger_count += 1
        logger.debug(f"Shake detected at {event.timestamp_ms:.0f}ms (|v|={event.magnitude:.0f})")
        if self.on_retry is not None:
            self.on_retry(event)
        return event
