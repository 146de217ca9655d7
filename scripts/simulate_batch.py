#!/usr/bin/env python3
"""
Simulate a full session against a flaky in-process generator.

Runs one batch, then "shakes" every failed card until it succeeds, printing
each job transition as it is published.
"""

import argparse
import asyncio
import random
import time

from past_forward import DECADES, MotionSample, PhotoSession


class FlakyGenerator:
    """Random latency, fails a given fraction of calls."""

    def __init__(self, failure_rate: float, max_latency: float):
        self.failure_rate = failure_rate
        self.max_latency = max_latency
        self.active = 0
        self.peak = 0

    async def __call__(self, source_image, prompt):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(random.uniform(0.05, self.max_latency))
            if random.random() < self.failure_rate:
                raise RuntimeError("The model is overloaded. Please try again later.")
            return b"\x89PNG" + prompt.encode()[:16]
        finally:
            self.active -= 1


async def main(failure_rate: float, max_latency: float, max_rounds: int):
    generator = FlakyGenerator(failure_rate, max_latency)
    session = PhotoSession(generator)
    started = time.monotonic()

    def show(update):
        detail = update.error or ""
        print(f"[{time.monotonic() - started:6.2f}s] {update.key:>6} {update.status.value:<8} #{update.attempt} {detail}")

    session.orchestrator.subscribe(show)
    session.upload(b"fake-photo")
    await session.generate_all()
    print(f"Batch done, peak concurrent generations: {generator.peak}")

    detectors = {key: session.detector_for(key) for key in DECADES}
    for round_no in range(1, max_rounds + 1):
        failed = [f.key for f in session.orchestrator.failures()]
        if not failed:
            break
        print(f"Round {round_no}: shaking {', '.join(failed)}")
        now_ms = round_no * 10_000
        for key in failed:
            detector = detectors[key]
            detector.on_drag_start()
            detector.on_motion_sample(MotionSample(2400, 0, now_ms))
            detector.on_motion_sample(MotionSample(-2400, 0, now_ms + 30))
        await session.orchestrator.wait_for_retries()

    stats = session.orchestrator.stats()
    print(f"Final: {stats['done']} done, {stats['failed']} failed")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--failure-rate", type=float, default=0.4)
    parser.add_argument("--max-latency", type=float, default=0.5)
    parser.add_argument("--rounds", type=int, default=5)
    args = parser.parse_args()

    asyncio.run(main(args.failure_rate, args.max_latency, args.rounds))
