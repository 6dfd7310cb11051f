"""Incremental scanner for ffmpeg's diagnostic stream.

ffmpeg prints the input duration once (``Duration: 00:01:23.45``) and then a
status line per tick (``... time=00:00:12.34 bitrate=...``). The parser turns
those lines into integer percentages without knowing anything about the
process that produced them.
"""
import re
from typing import Callable, Optional

DURATION_RE = re.compile(r"Duration:\s*(\d+:\d{2}:\d{2}(?:\.\d+)?)")
TIME_RE = re.compile(r"time=\s*(-?\d+:\d{2}:\d{2}(?:\.\d+)?)")

def time_text_to_seconds(text: str) -> float:
    """Converts ``HH:MM:SS.ss`` (optionally negative) to seconds."""
    value = text.strip()
    sign = -1.0 if value.startswith("-") else 1.0
    parts = value.lstrip("-").split(":")
    if len(parts) != 3:
        raise ValueError(f"Invalid time value {text!r}")
    hours, minutes, seconds = parts
    return sign * (int(hours) * 3600 + int(minutes) * 60 + float(seconds))

class ProgressParser:
    """Feeds diagnostic lines and reports percent-complete when it increases."""

    def __init__(
        self,
        total_seconds: Optional[float] = None,
        on_progress: Optional[Callable[[int], None]] = None,
    ):
        self.total_seconds = total_seconds if total_seconds and total_seconds > 0 else None
        self.on_progress = on_progress
        self.last_percent = 0

    def feed(self, line: str) -> Optional[int]:
        """Processes one line. Returns the new percent if it was reported."""
        if self.total_seconds is None:
            match = DURATION_RE.search(line)
            if match:
                total = time_text_to_seconds(match.group(1))
                if total > 0:
                    self.total_seconds = total
            return None

        match = TIME_RE.search(line)
        if not match:
            return None

        current = time_text_to_seconds(match.group(1))
        percent = int(round(100 * current / self.total_seconds))
        percent = max(0, min(100, percent))
        if percent <= self.last_percent:
            return None

        self.last_percent = percent
        if self.on_progress:
            self.on_progress(percent)
        return percent
