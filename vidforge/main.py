import threading
import typer
from pathlib import Path
from typing import Dict, List, Optional
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskID, TextColumn
from rich.table import Table
from vidforge.config.loader import load_config
from vidforge.domain.events import RunFailed
from vidforge.domain.models import BatchSummary, ProgressEvent, QualityPreset, VideoCodec
from vidforge.infrastructure.event_bus import EventBus
from vidforge.infrastructure.logging import setup_logging
from vidforge.infrastructure.tools import ToolProbe
from vidforge.pipeline.batch import BatchRunner

app = typer.Typer(help="vidforge - video transcoding pipeline (compressed copy, thumbnail, preview)")
console = Console()

class BatchProgressView:
    """Per-input rich progress bars driven from worker threads."""

    def __init__(self, progress: Progress):
        self.progress = progress
        self._tasks: Dict[int, TaskID] = {}
        self._lock = threading.Lock()

    def on_item_progress(self, index: int, total: int, input_id: str, event: ProgressEvent):
        with self._lock:
            task = self._tasks.get(index)
            if task is None:
                task = self.progress.add_task(f"[{index + 1}/{total}] {input_id}", total=100, stage="")
                self._tasks[index] = task
        self.progress.update(task, completed=event.percent, stage=event.stage.value)

def _print_summary(summary: BatchSummary):
    table = Table(title="Batch summary")
    table.add_column("Input")
    table.add_column("Status")
    table.add_column("Details", overflow="fold")

    for result in summary.results:
        c = result.compressed
        table.add_row(
            result.original.path.name,
            "[green]ok[/green]",
            f"{c.width}x{c.height} {c.size_bytes / 1024 / 1024:.1f}MB -> {result.compressed.path.parent.parent}",
        )
    for error in summary.errors:
        where = f" ({error.state.value})" if error.state else ""
        table.add_row(error.input_id, f"[red]{error.kind}[/red]", f"{error.message}{where}")

    console.print(table)
    console.print(f"total={summary.total} succeeded={summary.succeeded} failed={summary.failed}")

@app.command()
def process(
    inputs: List[Path] = typer.Argument(..., help="Video files to process"),
    config_path: Optional[Path] = typer.Option(Path("conf/vidforge.yaml"), "--config", "-c", help="Path to YAML config"),
    work_dir: Optional[Path] = typer.Option(None, "--work-dir", "-o", help="Override the working directory"),
    threads: Optional[int] = typer.Option(None, "--threads", "-t", help="Override number of concurrent runs"),
    quality: Optional[QualityPreset] = typer.Option(None, "--quality", "-q", help="Encoding quality preset"),
    codec: Optional[VideoCodec] = typer.Option(None, "--codec", help="Video codec for the compressed copy"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Process video files into compressed copies, thumbnails and previews."""
    try:
        config = load_config(config_path)
    except ValueError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    # Apply CLI overrides
    if work_dir is not None: config.general.work_dir = work_dir
    if threads: config.general.threads = threads
    if debug: config.general.debug = True
    overrides = {}
    if quality is not None: overrides["quality"] = quality
    if codec is not None: overrides["codec"] = codec
    options = config.options.model_copy(update=overrides)

    logger = setup_logging(config.general.log_dir, debug=config.general.debug, console=console)
    logger.info(f"vidforge started: {len(inputs)} inputs, work_dir={config.general.work_dir}")
    logger.info(f"Config: threads={config.general.threads}, quality={options.quality.value}, codec={options.codec.value}")

    bus = EventBus()
    bus.subscribe(RunFailed, lambda e: logger.debug(f"UI: run {e.run_id} failed in {e.state}: {e.error_message}"))

    runner = BatchRunner(config, event_bus=bus)
    cancel_event = threading.Event()
    progress = Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TextColumn("{task.fields[stage]}"),
        console=console,
    )
    view = BatchProgressView(progress)

    try:
        with progress:
            summary = runner.run_all(inputs, options=options, on_item_progress=view.on_item_progress, cancel_event=cancel_event)
    except KeyboardInterrupt:
        typer.echo("\nInterrupted by user")
        raise typer.Exit(code=130)

    _print_summary(summary)
    if summary.partial_failure:
        raise typer.Exit(code=1)

@app.command()
def check(
    config_path: Optional[Path] = typer.Option(Path("conf/vidforge.yaml"), "--config", "-c", help="Path to YAML config"),
):
    """Verify that ffmpeg and ffprobe can be invoked."""
    try:
        config = load_config(config_path)
    except ValueError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    probe = ToolProbe.from_config(config)
    if probe.is_available():
        typer.secho(f"OK: {', '.join(probe.binaries)} available", fg=typer.colors.GREEN)
        return
    typer.secho(f"Missing: {', '.join(probe.binaries)} not invocable", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)

if __name__ == "__main__":
    app()
