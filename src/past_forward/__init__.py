"""Past Forward - per-period photo restyling with bounded concurrency."""

__version__ = "0.1.0"

from .models import GenerationFailed, Job, JobStatus, JobUpdate, MotionSample, ShakeEvent
from .orchestrator import BatchOrchestrator, WorkQueue
from .gesture import DetectorState, ShakeDetector, reduce_sample
from .session import PhotoSession, SessionPhase
from .prompts import DECADES, prompt_for
