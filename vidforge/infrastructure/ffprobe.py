import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional
from pydantic import ValidationError
from vidforge.domain.errors import ParseFailure, ProbeFailure
from vidforge.domain.models import MediaMetadata, Stage
from vidforge.infrastructure.process import ManagedProcess

DEFAULT_FPS = 30.0
MAX_FPS = 240.0  # above this r_frame_rate is usually a timebase, not a frame rate

def parse_frame_rate(value: Any) -> Optional[float]:
    """Parses ffprobe's rational ("30000/1001") or plain frame rate. None if unusable."""
    if value is None:
        return None
    text = str(value).strip()
    try:
        if "/" in text:
            num, den = map(float, text.split("/", 1))
            if den == 0:
                return None
            fps = num / den
        else:
            fps = float(text)
    except ValueError:
        return None
    return fps if 0 < fps <= MAX_FPS else None

def _as_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0

def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0

class FFprobeAdapter:
    """Wrapper around ffprobe to extract stream information."""

    def __init__(self, ffprobe_path: str = "ffprobe", timeout: float = 30.0, kill_grace: float = 5.0):
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout
        self.kill_grace = kill_grace
        self.logger = logging.getLogger(__name__)

    def _build_command(self, file_path: Path):
        return [
            self.ffprobe_path,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(file_path),
        ]

    def probe(self, file_path: Path, cancel_event: Optional[threading.Event] = None) -> MediaMetadata:
        """Executes ffprobe and parses its JSON output into MediaMetadata."""
        proc = ManagedProcess(
            self._build_command(file_path),
            stage=Stage.PROBE,
            timeout=self.timeout,
            cancel_event=cancel_event,
            capture_stdout=True,
            kill_grace=self.kill_grace,
        )
        result = proc.run()
        if result.returncode != 0:
            raise ProbeFailure(file_path, result.returncode, "\n".join(result.stderr_tail))

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ParseFailure(file_path, f"invalid JSON ({e})") from e

        return self.parse(file_path, data)

    def parse(self, file_path: Path, data: Dict[str, Any]) -> MediaMetadata:
        if not isinstance(data, dict):
            raise ParseFailure(file_path, "unexpected ffprobe output")

        # Find video stream
        streams = data.get("streams") or []
        video_stream = next((s for s in streams if isinstance(s, dict) and s.get("codec_type") == "video"), None)
        if not video_stream:
            raise ParseFailure(file_path, "no video stream found")

        width = video_stream.get("width")
        height = video_stream.get("height")
        if width is None or height is None:
            raise ParseFailure(file_path, "video stream has no dimensions")

        fmt = data.get("format") or {}
        if not isinstance(fmt, dict):
            raise ParseFailure(file_path, "unexpected format section")
        fps = parse_frame_rate(video_stream.get("r_frame_rate"))
        if fps is None:
            fps = parse_frame_rate(video_stream.get("avg_frame_rate"))

        try:
            metadata = MediaMetadata(
                duration_seconds=max(0.0, _as_float(fmt.get("duration"))),
                width=_as_int(width),
                height=_as_int(height),
                frame_rate=fps if fps is not None else DEFAULT_FPS,
                bitrate_bps=max(0, _as_int(fmt.get("bit_rate"))),
                codec_name=video_stream.get("codec_name") or "unknown",
                size_bytes=max(0, _as_int(fmt.get("size"))),
            )
        except ValidationError as e:
            raise ParseFailure(file_path, f"invalid stream values ({e.error_count()} errors)") from e

        self.logger.debug(
            f"FFPROBE: {Path(file_path).name} {metadata.width}x{metadata.height} "
            f"{metadata.frame_rate:.2f}fps {metadata.duration_seconds:.2f}s codec={metadata.codec_name}"
        )
        return metadata
