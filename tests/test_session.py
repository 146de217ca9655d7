"""Tests for PhotoSession."""

import asyncio

import pytest

from past_forward.models import JobStatus, MotionSample
from past_forward.orchestrator import BatchOrchestrator
from past_forward.prompts import DECADES
from past_forward.session import PhotoSession, SessionPhase


class CountingGenerator:
    def __init__(self, fail_first=()):
        self.fail_first = set(fail_first)
        self.calls = []

    async def __call__(self, source_image, prompt):
        self.calls.append(prompt)
        if prompt in self.fail_first:
            self.fail_first.discard(prompt)
            raise RuntimeError("busy")
        await asyncio.sleep(0)
        return f"{source_image}:{prompt}"


@pytest.fixture
def generator():
    return CountingGenerator()


@pytest.fixture
def session(generator):
    return PhotoSession(generator, orchestrator=BatchOrchestrator(prompt_template="{period}"))


class TestPhases:
    """Test the session phase model."""

    def test_starts_idle(self, session):
        assert session.phase is SessionPhase.IDLE
        assert session.periods == DECADES

    def test_upload(self, session):
        session.upload("photo-a")
        assert session.phase is SessionPhase.IMAGE_UPLOADED
        assert session.source_image == "photo-a"

    def test_upload_empty_image(self, session):
        with pytest.raises(ValueError):
            session.upload(b"")

    @pytest.mark.asyncio
    async def test_generate_requires_upload(self, session):
        with pytest.raises(RuntimeError):
            await session.generate_all()

    @pytest.mark.asyncio
    async def test_generate_all(self, session):
        session.upload("photo-a")
        phases = []
        session.orchestrator.subscribe(lambda update: phases.append(session.phase))

        jobs = await session.generate_all()

        assert session.phase is SessionPhase.RESULTS_SHOWN
        assert set(phases) == {SessionPhase.GENERATING}
        assert jobs["1950s"].result == "photo-a:1950s"

    @pytest.mark.asyncio
    async def test_new_upload_clears_results(self, session):
        session.upload("photo-a")
        await session.generate_all()

        session.upload("photo-b")
        assert session.snapshot() == {}
        assert session.phase is SessionPhase.IMAGE_UPLOADED

        jobs = await session.generate_all()
        assert all(job.result.startswith("photo-b:") for job in jobs.values())

    @pytest.mark.asyncio
    async def test_reupload_during_generation(self):
        gate = asyncio.Event()
        started = []

        async def generate(source_image, prompt):
            started.append(source_image)
            if source_image == "photo-a":
                await gate.wait()
            return f"{source_image}:{prompt}"

        session = PhotoSession(generate, periods=["1950s"], orchestrator=BatchOrchestrator(prompt_template="{period}"))
        session.upload("photo-a")
        first = asyncio.create_task(session.generate_all())
        while not started:
            await asyncio.sleep(0)

        session.upload("photo-b")
        gate.set()
        old_jobs = await first

        assert session.phase is SessionPhase.IMAGE_UPLOADED
        assert old_jobs["1950s"].result == "photo-a:1950s"
        assert session.snapshot() == {}

        jobs = await session.generate_all()
        assert session.phase is SessionPhase.RESULTS_SHOWN
        assert jobs["1950s"].result == "photo-b:1950s"

    @pytest.mark.asyncio
    async def test_stale_generation_keeps_new_generating_phase(self):
        gates = {"photo-a": asyncio.Event(), "photo-b": asyncio.Event()}
        started = []

        async def generate(source_image, prompt):
            started.append(source_image)
            await gates[source_image].wait()
            return source_image

        session = PhotoSession(generate, periods=["1950s"], orchestrator=BatchOrchestrator(prompt_template="{period}"))
        session.upload("photo-a")
        first = asyncio.create_task(session.generate_all())
        while "photo-a" not in started:
            await asyncio.sleep(0)

        session.upload("photo-b")
        second = asyncio.create_task(session.generate_all())
        while "photo-b" not in started:
            await asyncio.sleep(0)

        gates["photo-a"].set()
        await first
        assert session.phase is SessionPhase.GENERATING

        gates["photo-b"].set()
        jobs = await second
        assert session.phase is SessionPhase.RESULTS_SHOWN
        assert jobs["1950s"].result == "photo-b"

    @pytest.mark.asyncio
    async def test_failed_start_restores_phase(self, generator):
        session = PhotoSession(generator, periods=["1950s", "1950s"])
        session.upload("photo-a")
        with pytest.raises(ValueError):
            await session.generate_all()
        assert session.phase is SessionPhase.IMAGE_UPLOADED

    @pytest.mark.asyncio
    async def test_reset(self, session):
        session.upload("photo-a")
        await session.generate_all()
        session.reset()

        assert session.phase is SessionPhase.IDLE
        assert session.source_image is None
        assert session.snapshot() == {}
        assert await session.retry("1950s") is False


class TestRetry:
    """Test retries through the session."""

    @pytest.mark.asyncio
    async def test_retry_failed_period(self):
        generator = CountingGenerator(fail_first={"1960s"})
        session = PhotoSession(generator, orchestrator=BatchOrchestrator(prompt_template="{period}"))
        session.upload("photo")
        jobs = await session.generate_all()
        assert jobs["1960s"].status is JobStatus.FAILED

        assert await session.retry("1960s") is True
        assert session.snapshot()["1960s"].status is JobStatus.DONE

    def test_detector_for_unknown_period(self, session):
        with pytest.raises(KeyError):
            session.detector_for("1890s")

    def test_detector_uses_gesture_config(self, generator):
        session = PhotoSession(generator, gesture_config={"velocity_threshold": 800, "cooldown_ms": 500})
        detector = session.detector_for("1950s")
        assert detector.threshold == 800
        assert detector.cooldown_ms == 500

    @pytest.mark.asyncio
    async def test_shake_triggers_retry(self, session, generator):
        session.upload("photo")
        await session.generate_all()
        detector = session.detector_for("1970s")

        detector.on_drag_start()
        detector.on_motion_sample(MotionSample(2000, 0, 0))
        detector.on_motion_sample(MotionSample(-2000, 0, 40))
        # same physical shake, inside the cooldown
        detector.on_motion_sample(MotionSample(2000, 0, 80))

        await session.orchestrator.wait_for_retries()

        assert generator.calls.count("1970s") == 2
        assert session.snapshot()["1970s"].attempts == 2

    @pytest.mark.asyncio
    async def test_shake_while_generating_is_ignored(self, session, generator):
        session.upload("photo")
        await session.generate_all()

        gate = asyncio.Event()

        async def slow(source_image, prompt):
            await gate.wait()
            return "slow"

        task = asyncio.create_task(session.orchestrator.retry_job("1980s", slow))
        await asyncio.sleep(0)
        assert session.orchestrator.is_in_flight("1980s")

        detector = session.detector_for("1980s")
        detector.on_motion_sample(MotionSample(2000, 0, 0))
        detector.on_motion_sample(MotionSample(-2000, 0, 40))
        assert detector.trigger_count == 1
        assert session.orchestrator.pending_retries == 0

        gate.set()
        await task
        assert session.snapshot()["1980s"].result == "slow"
