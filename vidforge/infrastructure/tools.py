import logging
from typing import Optional, Sequence
from vidforge.config.models import AppConfig
from vidforge.infrastructure.process import ManagedProcess

class ToolProbe:
    """Pre-flight check that ffmpeg and ffprobe can be invoked."""

    def __init__(self, binaries: Sequence[str] = ("ffmpeg", "ffprobe"), timeout: float = 5.0, kill_grace: float = 5.0):
        self.binaries = list(binaries)
        self.timeout = timeout
        self.kill_grace = kill_grace
        self.logger = logging.getLogger(__name__)
        self._available: Optional[bool] = None

    @classmethod
    def from_config(cls, config: AppConfig) -> "ToolProbe":
        return cls(
            binaries=(config.general.ffmpeg_path, config.general.ffprobe_path),
            timeout=config.timeouts.tool_check,
            kill_grace=config.timeouts.kill_grace,
        )

    def is_available(self) -> bool:
        """True only if every tool starts and exits 0 within the timeout. Never raises."""
        if self._available:
            return True
        available = all(self._check(binary) for binary in self.binaries)
        if available:
            self._available = True
        return available

    def _check(self, binary: str) -> bool:
        proc = ManagedProcess(
            [binary, "-version"],
            stage="tool_check",
            timeout=self.timeout,
            kill_grace=self.kill_grace,
        )
        try:
            result = proc.run()
        except Exception as e:
            self.logger.warning(f"TOOL_CHECK: {binary} unavailable: {e}")
            return False
        if result.returncode != 0:
            self.logger.warning(f"TOOL_CHECK: {binary} -version exited with code {result.returncode}")
            return False
        return True
