"""Single-input transcoding pipeline.

Sequences tool check -> metadata probe -> encode -> thumbnail -> preview for one
input file inside its own run directory. Every output path is registered before
its stage starts; on any failure the registered files are deleted and the
original error is re-raised with ``state`` set to where it happened.

State machine::

    pending -> probing_tools -> probing_metadata -> encoding
            -> extracting_thumbnail -> extracting_preview -> completed
    (any non-initial state) -> failed
"""
import logging
import shutil
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional
from vidforge.config.models import AppConfig, ProcessingOptions
from vidforge.domain.errors import (
    Cancelled, FileSystemError, InputTooLarge, PipelineError, ToolUnavailable
)
from vidforge.domain.events import RunCompleted, RunFailed, RunStarted, StageProgress, StageStarted
from vidforge.domain.models import (
    Artifact, ArtifactKind, ProcessedResult, ProgressEvent, RunState, Stage
)
from vidforge.infrastructure.event_bus import EventBus
from vidforge.infrastructure.ffmpeg import FFmpegAdapter
from vidforge.infrastructure.ffprobe import FFprobeAdapter
from vidforge.infrastructure.tools import ToolProbe
from vidforge.pipeline.workspace import RunWorkspace, new_run_id

ProgressCallback = Callable[[ProgressEvent], None]

class PipelineRunner:
    """Runs the pipeline for exactly one input. Instances are single-use."""

    def __init__(
        self,
        config: AppConfig,
        tool_probe: ToolProbe,
        ffprobe_adapter: FFprobeAdapter,
        ffmpeg_adapter: FFmpegAdapter,
        event_bus: Optional[EventBus] = None,
    ):
        self.config = config
        self.tool_probe = tool_probe
        self.ffprobe_adapter = ffprobe_adapter
        self.ffmpeg_adapter = ffmpeg_adapter
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)

        self._state = RunState.PENDING
        self._run_id: Optional[str] = None
        self._workspace: Optional[RunWorkspace] = None
        self._produced: List[Path] = []
        self._last_percent: Dict[Stage, int] = {}
        self._on_progress: Optional[ProgressCallback] = None

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        event_bus: Optional[EventBus] = None,
        tool_probe: Optional[ToolProbe] = None,
    ) -> "PipelineRunner":
        return cls(
            config=config,
            tool_probe=tool_probe or ToolProbe.from_config(config),
            ffprobe_adapter=FFprobeAdapter(
                ffprobe_path=config.general.ffprobe_path,
                timeout=config.timeouts.probe,
                kill_grace=config.timeouts.kill_grace,
            ),
            ffmpeg_adapter=FFmpegAdapter.from_config(config),
            event_bus=event_bus,
        )

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def run_id(self) -> Optional[str]:
        return self._run_id

    @property
    def produced_paths(self) -> List[Path]:
        return list(self._produced)

    def run(
        self,
        input_path: Path,
        original_name: Optional[str] = None,
        options: Optional[ProcessingOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ProcessedResult:
        if self._state != RunState.PENDING:
            raise RuntimeError(f"PipelineRunner already used (state={self._state.value}); create a new instance per input")

        input_path = Path(input_path)
        options = options or self.config.options
        name = original_name or input_path.name
        self._run_id = new_run_id(name)
        self._on_progress = on_progress
        self._publish(RunStarted(run_id=self._run_id, input_path=input_path))

        try:
            self._validate_input(input_path)
            self._workspace = RunWorkspace(self.config.general.work_dir, self._run_id, name)
            result = self._execute(input_path, options, cancel_event)
        except PipelineError as exc:
            self._fail(exc)
            raise
        except Exception as exc:
            raise self._fail(exc) from exc
        except BaseException:
            # KeyboardInterrupt/SystemExit: clean up, let it propagate untouched
            self._state = RunState.FAILED
            self._rollback()
            raise

        self._state = RunState.COMPLETED
        self.logger.info(f"RUN_COMPLETED: {self._run_id} ({len(self._produced)} artifacts)")
        self._produced = []
        self._publish(RunCompleted(run_id=self._run_id, result=result))
        return result

    def _validate_input(self, input_path: Path):
        try:
            size = input_path.stat().st_size
        except OSError as e:
            raise FileSystemError("stat", input_path, e.strerror or str(e)) from e
        limit = self.config.general.max_input_bytes
        if size > limit:
            raise InputTooLarge(input_path, size, limit)

    def _execute(self, input_path: Path, options: ProcessingOptions, cancel_event: Optional[threading.Event]) -> ProcessedResult:
        workspace = self._workspace

        # 1. Tools
        self._enter(RunState.PROBING_TOOLS, cancel_event)
        self._report(Stage.PROBE, 0)
        if not self.tool_probe.is_available():
            raise ToolUnavailable("ffmpeg/ffprobe")

        # 2. Original + metadata
        self._enter(RunState.PROBING_METADATA, cancel_event)
        source = self._materialize_original(input_path, workspace.path_for(ArtifactKind.ORIGINAL))
        metadata = self.ffprobe_adapter.probe(source, cancel_event=cancel_event)
        self._report(Stage.PROBE, 100)
        original = Artifact(
            kind=ArtifactKind.ORIGINAL,
            path=source,
            width=metadata.width,
            height=metadata.height,
            size_bytes=source.stat().st_size,
            duration_seconds=metadata.duration_seconds,
        )

        # 3. Encode
        self._enter(RunState.ENCODING, cancel_event)
        self._report(Stage.ENCODE, 0)
        compressed = self.ffmpeg_adapter.encode(
            source,
            self._register(workspace.path_for(ArtifactKind.COMPRESSED)),
            metadata,
            options,
            on_progress=lambda percent: self._report(Stage.ENCODE, percent),
            cancel_event=cancel_event,
        )
        self._report(Stage.ENCODE, 100)

        # 4. Thumbnail
        self._enter(RunState.EXTRACTING_THUMBNAIL, cancel_event)
        self._report(Stage.THUMBNAIL, 0)
        thumbnail = self.ffmpeg_adapter.extract_frame(
            source,
            self._register(workspace.path_for(ArtifactKind.THUMBNAIL)),
            options.thumbnail_offset_seconds,
            metadata,
            cancel_event=cancel_event,
        )
        self._report(Stage.THUMBNAIL, 100)

        # 5. Preview
        self._enter(RunState.EXTRACTING_PREVIEW, cancel_event)
        self._report(Stage.PREVIEW, 0)
        preview = self.ffmpeg_adapter.extract_clip(
            source,
            self._register(workspace.path_for(ArtifactKind.PREVIEW)),
            0.0,
            options.preview_duration_seconds,
            metadata,
            on_progress=lambda percent: self._report(Stage.PREVIEW, percent),
            cancel_event=cancel_event,
        )
        self._report(Stage.PREVIEW, 100)

        return ProcessedResult(
            run_id=self._run_id,
            original=original,
            compressed=compressed,
            thumbnail=thumbnail,
            preview=preview,
            metadata=metadata,
        )

    def _materialize_original(self, input_path: Path, target: Path) -> Path:
        if not self.config.general.keep_original:
            return input_path
        self._register(target)
        try:
            shutil.copy2(input_path, target)
        except OSError as e:
            raise FileSystemError("copy", target, e.strerror or str(e)) from e
        return target

    def _enter(self, state: RunState, cancel_event: Optional[threading.Event]):
        """Moves to ``state``. A pending cancel fails the run in ``state``, before the stage starts."""
        self.logger.debug(f"RUN_STATE: {self._run_id} {self._state.value} -> {state.value}")
        self._state = state
        if cancel_event is not None and cancel_event.is_set():
            raise Cancelled(state.value)
        self._publish(StageStarted(run_id=self._run_id, state=state))

    def _register(self, path: Path) -> Path:
        self._produced.append(path)
        return path

    def _report(self, stage: Stage, percent: int):
        """Delivers a progress event; 0 opens a stage, later values only when they increase."""
        last = self._last_percent.get(stage)
        if last is not None and percent <= last:
            return
        self._last_percent[stage] = percent
        event = ProgressEvent(stage=stage, percent=percent)
        if self._on_progress:
            self._on_progress(event)
        self._publish(StageProgress(run_id=self._run_id, progress=event))

    def _fail(self, exc: Exception) -> PipelineError:
        failed_state = self._state
        self._state = RunState.FAILED

        if isinstance(exc, PipelineError):
            error = exc
        elif isinstance(exc, OSError):
            error = FileSystemError("io", exc.filename or "?", exc.strerror or str(exc))
        else:
            error = PipelineError(f"Unexpected error: {exc}")
        error.state = failed_state

        self.logger.error(f"RUN_FAILED: {self._run_id} state={failed_state.value} kind={error.kind}: {error.message}")
        self._rollback()
        self._publish(RunFailed(
            run_id=self._run_id,
            state=failed_state,
            error_kind=error.kind,
            error_message=error.message,
        ))
        return error

    def _rollback(self):
        """Best-effort deletion of every file this run produced."""
        for path in reversed(self._produced):
            try:
                path.unlink()
                self.logger.info(f"ROLLBACK: removed {path}")
            except FileNotFoundError:
                continue
            except OSError as e:
                self.logger.warning(f"ROLLBACK: failed to remove {path}: {e}")
        self._produced = []
        if self._workspace is not None:
            self._workspace.remove_empty_dirs()

    def _publish(self, event):
        if self.event_bus is not None:
            self.event_bus.publish(event)
