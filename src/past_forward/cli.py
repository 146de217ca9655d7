"""Command-line interface for Past Forward."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from .config import ConfigManager, apply_cli_overrides
from .generators import HTTPImageGenerator, load_generator
from .gesture import ShakeDetector
from .models import ConfigError, GeneratorError, Job, JobStatus, MotionSample
from .monitor import BatchMonitor
from .orchestrator import BatchOrchestrator
from .prompts import prompt_for
from .utils.image_processor import ImageProcessor

console = Console()
logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[
            RichHandler(console=console, rich_tracebacks=True, show_path=False, show_time=False)
        ],
    )


def build_generator(generator_config: Dict[str, Any]):
    """Create the generate callable described by the generator config section."""
    factory = generator_config.get("factory")
    if factory:
        return load_generator(factory, generator_config.get("options"))

    endpoint = generator_config.get("endpoint")
    if endpoint:
        return HTTPImageGenerator(
            endpoint,
            api_key=generator_config.get("api_key"),
            timeout=float(generator_config.get("timeout") or 120.0),
        )

    raise ConfigError("No generator configured: set generator.endpoint or generator.factory")


def save_results(jobs: Dict[str, Job], output_dir: Path) -> List[Path]:
    """Write every finished image to output_dir; returns the written paths."""
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for key, job in jobs.items():
        if job.status is not JobStatus.DONE:
            continue

        data = job.result
        if isinstance(data, str):
            try:
                data = ImageProcessor.from_data_url(data)
            except ValueError as e:
                logger.warning(f"Skipping {key}: {e}")
                continue
        if not isinstance(data, (bytes, bytearray)):
            logger.warning(f"Skipping {key}: result is not image data")
            continue

        try:
            ext = ImageProcessor.extension_for(bytes(data))
        except ValueError:
            ext = ".bin"
        path = output_dir / f"past-forward-{key}{ext}"
        path.write_bytes(data)
        written.append(path)
    return written


async def _run_batch(
    orchestrator: BatchOrchestrator, source: bytes, periods: List[str], generate, retry_failed: bool
) -> Dict[str, Job]:
    with BatchMonitor(orchestrator, console=console):
        await orchestrator.start_batch(source, periods, generate)
        if retry_failed:
            failed = [f.key for f in orchestrator.failures()]
            if failed:
                logger.info(f"Retrying {len(failed)} failed periods")
                await asyncio.gather(*(orchestrator.retry_job(key) for key in failed))
    return orchestrator.snapshot()


@click.group()
@click.option("--config", type=click.Path(exists=True), help="Configuration file")
@click.option("--verbose", is_flag=True, help="Enable verbose logging")
@click.pass_context
def main(ctx, config: Optional[str], verbose: bool):
    """Past Forward - see your photo through the decades."""
    setup_logging(verbose)
    ctx.obj = ConfigManager.load(config)


@main.command()
@click.argument("photo", type=click.Path(exists=True, dir_okay=False))
@click.option("--output-dir", default="./past_forward_output", help="Where generated images are written")
@click.option("--concurrency", type=int, help="Number of concurrent generation workers")
@click.option("--period", "periods", multiple=True, help="Period to generate (repeatable)")
@click.option("--endpoint", help="Image generation endpoint URL")
@click.option("--generator", "factory", help="Generator as module:attribute")
@click.option("--retry-failed", is_flag=True, help="Retry failed periods once after the batch")
@click.pass_context
def run(
    ctx,
    photo: str,
    output_dir: str,
    concurrency: Optional[int],
    periods: tuple,
    endpoint: Optional[str],
    factory: Optional[str],
    retry_failed: bool,
):
    """Generate one image per period from PHOTO."""
    config = apply_cli_overrides(ctx.obj, concurrency=concurrency, periods=list(periods) or None)
    generator_config = apply_cli_overrides(
        config.get("generator") or {}, endpoint=endpoint, factory=factory
    )

    try:
        source = ImageProcessor.load_source(photo)
        generate = build_generator(generator_config)
        orchestrator = BatchOrchestrator(
            concurrency=int(config["concurrency"]), prompt_template=config.get("prompt_template")
        )
    except (ConfigError, GeneratorError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    console.print(f"[cyan]Generating {len(config['periods'])} periods from {photo}...[/cyan]")
    try:
        jobs = asyncio.run(_run_batch(orchestrator, source, config["periods"], generate, retry_failed))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted, partial results discarded[/yellow]")
        sys.exit(130)
    finally:
        close = getattr(generate, "close", None)
        if callable(close):
            close()

    written = save_results(jobs, Path(output_dir))
    for path in written:
        console.print(f"[green]✓[/green] {path}")

    failed = [job for job in jobs.values() if job.status is JobStatus.FAILED]
    for job in failed:
        console.print(f"[red]✗ {job.key}: {job.error}[/red]")

    console.print(f"\n[bold]{len(written)} images written, {len(failed)} failed[/bold]")
    if failed:
        sys.exit(1)


@main.command()
@click.pass_context
def prompts(ctx):
    """List the configured periods and their prompts."""
    config = ctx.obj
    for key in config["periods"]:
        console.print(f"[cyan]{key}[/cyan]")
        console.print(f"  {prompt_for(key, config.get('prompt_template'))}")


@main.command()
@click.argument("samples", type=click.Path(exists=True, dir_okay=False))
@click.option("--threshold", type=float, help="Velocity threshold")
@click.option("--cooldown", type=float, help="Cooldown between triggers in ms")
@click.pass_context
def replay_gesture(ctx, samples: str, threshold: Optional[float], cooldown: Optional[float]):
    """Replay recorded drag samples (JSONL) through the shake detector.

    Each line is {"x": .., "y": .., "t": ms}, or {"event": "drag_start"}.
    """
    gesture = apply_cli_overrides(
        ctx.obj.get("gesture") or {}, velocity_threshold=threshold, cooldown_ms=cooldown
    )
    detector = ShakeDetector(
        threshold=float(gesture["velocity_threshold"]), cooldown_ms=float(gesture["cooldown_ms"])
    )

    count = 0
    with open(samples) as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                row = json.loads(line)
                if row.get("event") == "drag_start":
                    detector.on_drag_start()
                    continue
                sample = MotionSample(x=float(row["x"]), y=float(row["y"]), timestamp_ms=float(row["t"]))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                console.print(f"[red]Invalid sample on line {line_no}: {e}[/red]")
                sys.exit(1)

            count += 1
            event = detector.on_motion_sample(sample)
            if event is not None:
                console.print(f"[green]retry[/green] at {event.timestamp_ms:.0f}ms (|v|={event.magnitude:.0f})")

    console.print(f"\n{count} samples, {detector.trigger_count} retries triggered")


if __name__ == "__main__":
    main()
