"""Photo session: the upload -> generate -> results flow around one orchestrator."""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from .gesture import COOLDOWN_MS, VELOCITY_THRESHOLD, ShakeDetector
from .models import Job
from .orchestrator import BatchOrchestrator, GenerateFn
from .prompts import DECADES

logger = logging.getLogger(__name__)


class SessionPhase(Enum):
    IDLE = "idle"
    IMAGE_UPLOADED = "image-uploaded"
    GENERATING = "generating"
    RESULTS_SHOWN = "results-shown"


class PhotoSession:
    """Tracks the current photo and its batch for one user session."""

    def __init__(
        self,
        generate: GenerateFn,
        periods: Optional[List[str]] = None,
        orchestrator: Optional[BatchOrchestrator] = None,
        gesture_config: Optional[Dict[str, Any]] = None,
    ):
        self.generate = generate
        self.periods = list(periods or DECADES)
        self.orchestrator = orchestrator or BatchOrchestrator()
        self.gesture_config = gesture_config or {}
        self.source_image: Any = None
        self.phase = SessionPhase.IDLE
        self._uploads = 0

    def upload(self, source_image: Any):
        """Accept a new photo; previous results are discarded."""
        if not source_image:
            raise ValueError("Uploaded image is empty")
        self.orchestrator.reset()
        self._uploads += 1
        self.source_image = source_image
        self.phase = SessionPhase.IMAGE_UPLOADED
        logger.info("New source image accepted")

    async def generate_all(self) -> Dict[str, Job]:
        """Run one batch for the current photo and return its jobs.

        If the photo is replaced or the session reset before the batch ends,
        the phase is left alone and the replaced photo's jobs are returned.
        """
        if self.source_image is None:
            raise RuntimeError("Upload an image before generating")
        if self.phase is SessionPhase.GENERATING:
            raise RuntimeError("Generation already in progress")

        upload = self._uploads
        self.phase = SessionPhase.GENERATING
        try:
            snapshot = await self.orchestrator.start_batch(self.source_image, self.periods, self.generate)
        except BaseException:
            if upload == self._uploads:
                self.phase = SessionPhase.IMAGE_UPLOADED
            raise
        if upload == self._uploads:
            self.phase = SessionPhase.RESULTS_SHOWN
        else:
            logger.info("Photo replaced during generation, keeping the new phase")
        return snapshot

    async def retry(self, key: str) -> bool:
        """Regenerate one period, e.g. from a per-card regenerate button."""
        if self.source_image is None:
            return False
        return await self.orchestrator.retry_job(key, self.generate)

    def detector_for(self, key: str, enabled: bool = True) -> ShakeDetector:
        """Shake detector for the card showing `key`; a shake schedules a retry."""
        if key not in self.periods:
            raise KeyError(key)

        def _on_shake(event):
            logger.info(f"Shake on {key} card, regenerating")
            self.orchestrator.request_retry(key, self.generate)

        return ShakeDetector(
            on_retry=_on_shake,
            threshold=self.gesture_config.get("velocity_threshold", VELOCITY_THRESHOLD),
            cooldown_ms=self.gesture_config.get("cooldown_ms", COOLDOWN_MS),
            enabled=enabled,
        )

    def snapshot(self) -> Dict[str, Job]:
        return self.orchestrator.snapshot()

    def reset(self):
        """Start over with no photo."""
        self.orchestrator.reset()
        self._uploads += 1
        self.source_image = None
        self.phase = SessionPhase.IDLE
