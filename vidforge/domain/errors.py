"""Error taxonomy for the transcoding pipeline.

Every stage raises a subclass of PipelineError. The runner sets ``state`` to the
RunState in which the failure happened before re-raising, so callers get the
original error type annotated with where it occurred.
"""
from pathlib import Path
from typing import List, Optional, Sequence, Union
from vidforge.domain.models import RunState

PathLike = Union[str, Path]

class PipelineError(Exception):
    kind = "pipeline_error"

    def __init__(self, message: str, state: Optional[RunState] = None):
        super().__init__(message)
        self.message = message
        self.state = state

    def __str__(self) -> str:
        if self.state is not None:
            return f"[{self.state.value}] {self.message}"
        return self.message

class ToolUnavailable(PipelineError):
    kind = "tool_unavailable"

    def __init__(self, tool: str, reason: str = "not installed or not accessible"):
        super().__init__(f"{tool} is {reason}")
        self.tool = tool

class InputTooLarge(PipelineError):
    kind = "input_too_large"

    def __init__(self, path: PathLike, size_bytes: int, limit_bytes: int):
        super().__init__(
            f"File size exceeds limit: {size_bytes / 1024 / 1024:.1f}MB > "
            f"{limit_bytes / 1024 / 1024:.0f}MB ({Path(path).name})"
        )
        self.path = Path(path)
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes

class ProbeFailure(PipelineError):
    kind = "probe_failure"

    def __init__(self, path: PathLike, returncode: int, stderr: str = ""):
        detail = stderr.strip()
        message = f"ffprobe failed for {Path(path).name} (code {returncode})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.path = Path(path)
        self.returncode = returncode
        self.stderr = stderr

class ParseFailure(PipelineError):
    kind = "parse_failure"

    def __init__(self, path: PathLike, reason: str):
        super().__init__(f"Failed to parse metadata for {Path(path).name}: {reason}")
        self.path = Path(path)
        self.reason = reason

class EncodingFailure(PipelineError):
    kind = "encoding_failure"

    def __init__(self, stage: str, exit_code: int, diagnostic_tail: Sequence[str] = ()):
        self.stage = str(getattr(stage, "value", stage))
        self.exit_code = exit_code
        self.diagnostic_tail: List[str] = list(diagnostic_tail)
        message = f"{self.stage} failed: ffmpeg exited with code {exit_code}"
        if self.diagnostic_tail:
            message = f"{message}: {self.diagnostic_tail[-1]}"
        super().__init__(message)

class TimeoutExceeded(PipelineError):
    kind = "timeout_exceeded"

    def __init__(self, stage: str, timeout: float):
        self.stage = str(getattr(stage, "value", stage))
        self.timeout = timeout
        super().__init__(f"{self.stage} timed out after {timeout:g}s")

class Cancelled(PipelineError):
    kind = "cancelled"

    def __init__(self, stage: Optional[str] = None):
        self.stage = str(getattr(stage, "value", stage)) if stage is not None else None
        super().__init__(f"{self.stage} cancelled" if self.stage else "Run cancelled")

class FileSystemError(PipelineError):
    kind = "filesystem_error"

    def __init__(self, op: str, path: PathLike, reason: str = ""):
        self.op = op
        self.path = Path(path)
        message = f"{op} failed for {self.path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
