import logging
import shlex
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional
from vidforge.config.models import AppConfig, OutputConfig, ProcessingOptions, TimeoutConfig
from vidforge.domain.errors import EncodingFailure, FileSystemError, PipelineError
from vidforge.domain.models import Artifact, ArtifactKind, MediaMetadata, QualityPreset, Stage, VideoCodec
from vidforge.domain.scaling import adaptive_crf, clamp_offset, clip_duration, fit_within
from vidforge.infrastructure.process import ManagedProcess
from vidforge.infrastructure.progress import ProgressParser

# (crf, x264/x265 preset): high favours size/quality, low favours speed
QUALITY_PRESETS = {
    QualityPreset.HIGH: (18, "slow"),
    QualityPreset.MEDIUM: (23, "medium"),
    QualityPreset.LOW: (28, "fast"),
}

ENCODERS = {
    VideoCodec.H264: "libx264",
    VideoCodec.H265: "libx265",
}

def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.3f}".rstrip("0").rstrip(".")

class FFmpegAdapter:
    """Wrapper around ffmpeg for the encode, thumbnail and preview stages."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        timeouts: Optional[TimeoutConfig] = None,
        output: Optional[OutputConfig] = None,
        tail_lines: int = 20,
        debug: bool = False,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.timeouts = timeouts or TimeoutConfig()
        self.output = output or OutputConfig()
        self.tail_lines = tail_lines
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: AppConfig) -> "FFmpegAdapter":
        return cls(
            ffmpeg_path=config.general.ffmpeg_path,
            timeouts=config.timeouts,
            output=config.output,
            tail_lines=config.general.diagnostic_tail_lines,
            debug=config.general.debug,
        )

    def _build_encode_command(
        self,
        input_path: Path,
        output_path: Path,
        metadata: MediaMetadata,
        options: ProcessingOptions,
    ) -> List[str]:
        """Constructs the ffmpeg command line for the compressed copy."""
        width, height = fit_within(metadata.width, metadata.height, options.max_width, options.max_height, even=True)
        base_crf, preset = QUALITY_PRESETS[options.quality]
        crf = adaptive_crf(base_crf, metadata.width, metadata.height)
        fps = min(float(options.frame_rate), metadata.frame_rate)
        bitrate = options.target_bitrate_bps

        cmd = [
            self.ffmpeg_path,
            "-hide_banner",
            "-y",  # Overwrite output files
            "-i", str(input_path),
            "-c:v", ENCODERS[options.codec],
            "-preset", preset,
            "-crf", str(crf),
            "-vf", f"scale={width}:{height}",
            "-r", _format_number(fps),
            "-maxrate", str(bitrate),
            "-bufsize", str(bitrate * 2),
            "-pix_fmt", "yuv420p",
        ]
        if options.codec == VideoCodec.H265:
            cmd.extend(["-tag:v", "hvc1"])  # playable in Safari

        cmd.extend([
            "-c:a", "aac",
            "-b:a", self.output.audio_bitrate,
            "-movflags", "+faststart",
            str(output_path),
        ])
        return cmd

    def _build_thumbnail_command(self, input_path: Path, output_path: Path, offset_seconds: float, metadata: MediaMetadata) -> List[str]:
        width, height = fit_within(
            metadata.width, metadata.height,
            self.output.thumbnail_max_width, self.output.thumbnail_max_height,
        )
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-y",
            "-ss", _format_number(offset_seconds),
            "-i", str(input_path),
            "-frames:v", "1",
            "-vf", f"scale={width}:{height}",
            "-q:v", str(self.output.thumbnail_quality),
            str(output_path),
        ]

    def _build_preview_command(
        self,
        input_path: Path,
        output_path: Path,
        start_seconds: float,
        duration_seconds: float,
        metadata: MediaMetadata,
    ) -> List[str]:
        width, height = fit_within(
            metadata.width, metadata.height,
            self.output.preview_max_width, self.output.preview_max_height,
            even=True,
        )
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-y",
            "-ss", _format_number(start_seconds),
            "-i", str(input_path),
            "-t", _format_number(duration_seconds),
            "-vf", f"scale={width}:{height}",
            "-c:v", "libx264",
            "-preset", self.output.preview_preset,
            "-crf", str(self.output.preview_crf),
            "-pix_fmt", "yuv420p",
            "-c:a", "aac",
            "-b:a", self.output.preview_audio_bitrate,
            "-movflags", "+faststart",
            str(output_path),
        ]

    def encode(
        self,
        input_path: Path,
        output_path: Path,
        metadata: MediaMetadata,
        options: ProcessingOptions,
        on_progress: Optional[Callable[[int], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Artifact:
        """Produces the size/bitrate-normalised copy, reporting percent-complete."""
        cmd = self._build_encode_command(input_path, output_path, metadata, options)
        parser = ProgressParser(on_progress=on_progress)
        self._run(cmd, Stage.ENCODE, self.timeouts.encode, output_path, cancel_event, parser)

        width, height = fit_within(metadata.width, metadata.height, options.max_width, options.max_height, even=True)
        return self._artifact(ArtifactKind.COMPRESSED, output_path, width, height, metadata.duration_seconds)

    def extract_frame(
        self,
        input_path: Path,
        output_path: Path,
        offset_seconds: float,
        metadata: MediaMetadata,
        cancel_event: Optional[threading.Event] = None,
    ) -> Artifact:
        """Extracts a single still frame. Offsets outside the input seek to 0."""
        offset = clamp_offset(offset_seconds, metadata.duration_seconds)
        if offset != offset_seconds:
            self.logger.info(
                f"THUMBNAIL_OFFSET: {offset_seconds:g}s outside {metadata.duration_seconds:g}s input, using 0s"
            )
        cmd = self._build_thumbnail_command(input_path, output_path, offset, metadata)
        self._run(cmd, Stage.THUMBNAIL, self.timeouts.thumbnail, output_path, cancel_event)

        width, height = fit_within(
            metadata.width, metadata.height,
            self.output.thumbnail_max_width, self.output.thumbnail_max_height,
        )
        return self._artifact(ArtifactKind.THUMBNAIL, output_path, width, height)

    def extract_clip(
        self,
        input_path: Path,
        output_path: Path,
        start_seconds: float,
        duration_seconds: float,
        metadata: MediaMetadata,
        on_progress: Optional[Callable[[int], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Artifact:
        """Re-encodes a short, small, fast-preset sub-clip."""
        start = clamp_offset(start_seconds, metadata.duration_seconds)
        duration = clip_duration(start, duration_seconds, metadata.duration_seconds)

        cmd = self._build_preview_command(input_path, output_path, start, duration, metadata)
        parser = ProgressParser(total_seconds=duration, on_progress=on_progress)
        self._run(cmd, Stage.PREVIEW, self.timeouts.preview, output_path, cancel_event, parser)

        width, height = fit_within(
            metadata.width, metadata.height,
            self.output.preview_max_width, self.output.preview_max_height,
            even=True,
        )
        return self._artifact(ArtifactKind.PREVIEW, output_path, width, height, duration)

    def _run(
        self,
        cmd: List[str],
        stage: Stage,
        timeout: float,
        output_path: Path,
        cancel_event: Optional[threading.Event] = None,
        parser: Optional[ProgressParser] = None,
    ):
        filename = Path(output_path).name
        start_time = time.monotonic()
        self.logger.info(f"FFMPEG_START: {stage.value} -> {filename}")
        if self.debug:
            self.logger.debug(f"FFMPEG_CMD: {shlex.join(cmd)}")

        proc = ManagedProcess(
            cmd,
            stage=stage,
            timeout=timeout,
            cancel_event=cancel_event,
            on_line=parser.feed if parser else None,
            tail_lines=self.tail_lines,
            kill_grace=self.timeouts.kill_grace,
        )
        try:
            result = proc.run()
        except PipelineError as e:
            elapsed = time.monotonic() - start_time
            self.logger.warning(f"FFMPEG_END: {filename} status={e.kind} elapsed={elapsed:.2f}s")
            raise

        elapsed = time.monotonic() - start_time
        if result.returncode != 0:
            self.logger.error(f"FFMPEG_END: {filename} status=failed code={result.returncode} elapsed={elapsed:.2f}s")
            for line in result.stderr_tail:
                self.logger.debug(f"FFMPEG_STDERR: {line}")
            raise EncodingFailure(stage, result.returncode, result.stderr_tail)
        self.logger.info(f"FFMPEG_END: {filename} status=completed elapsed={elapsed:.2f}s")

    def _artifact(
        self,
        kind: ArtifactKind,
        path: Path,
        width: int,
        height: int,
        duration_seconds: Optional[float] = None,
    ) -> Artifact:
        path = Path(path)
        try:
            size_bytes = path.stat().st_size
        except FileNotFoundError as e:
            raise FileSystemError("stat", path, "ffmpeg succeeded but output file not found") from e
        except OSError as e:
            raise FileSystemError("stat", path, str(e)) from e
        return Artifact(
            kind=kind,
            path=path,
            width=width,
            height=height,
            size_bytes=size_bytes,
            duration_seconds=duration_seconds,
        )
