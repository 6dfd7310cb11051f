import re
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from vidforge.domain.models import QualityPreset, VideoCodec

BITRATE_RE = re.compile(r"^(\d+(?:\.\d+)?)([kKmMgG]?)$")
BITRATE_MULTIPLIERS = {"": 1, "k": 1_000, "m": 1_000_000, "g": 1_000_000_000}

def parse_bitrate(value: str) -> int:
    """Converts an ffmpeg style bitrate ("2M", "800k", "1500000") to bits per second."""
    match = BITRATE_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid bitrate {value!r}. Expected e.g. '2M', '800k' or '1500000'.")
    number, suffix = match.groups()
    return int(float(number) * BITRATE_MULTIPLIERS[suffix.lower()])

class ProcessingOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_width: int = Field(default=1920, gt=0)
    max_height: int = Field(default=1080, gt=0)
    target_bitrate: str = "2M"
    frame_rate: int = Field(default=30, gt=0, le=240)
    codec: VideoCodec = VideoCodec.H264
    quality: QualityPreset = QualityPreset.MEDIUM
    thumbnail_offset_seconds: float = Field(default=1.0, ge=0)
    preview_duration_seconds: float = Field(default=10.0, gt=0)

    @field_validator('target_bitrate')
    @classmethod
    def validate_bitrate(cls, v: str) -> str:
        if parse_bitrate(v) <= 0:
            raise ValueError("target_bitrate must be positive")
        return v.strip()

    @property
    def target_bitrate_bps(self) -> int:
        return parse_bitrate(self.target_bitrate)

class GeneralConfig(BaseModel):
    work_dir: Path = Path("uploads/videos")
    threads: int = Field(default=2, gt=0, le=16)
    max_input_bytes: int = Field(default=500 * 1024 * 1024, gt=0)
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    keep_original: bool = True
    diagnostic_tail_lines: int = Field(default=20, ge=1)
    log_dir: Optional[Path] = None
    debug: bool = False

class TimeoutConfig(BaseModel):
    tool_check: float = Field(default=5.0, gt=0)
    probe: float = Field(default=30.0, gt=0)
    encode: float = Field(default=30 * 60.0, gt=0)
    thumbnail: float = Field(default=2 * 60.0, gt=0)
    preview: float = Field(default=5 * 60.0, gt=0)
    kill_grace: float = Field(default=5.0, gt=0)

class OutputConfig(BaseModel):
    thumbnail_max_width: int = Field(default=400, gt=0)
    thumbnail_max_height: int = Field(default=300, gt=0)
    thumbnail_quality: int = Field(default=2, ge=2, le=31)
    preview_max_width: int = Field(default=640, gt=0)
    preview_max_height: int = Field(default=480, gt=0)
    preview_crf: int = Field(default=28, ge=0, le=51)
    preview_preset: str = "veryfast"
    audio_bitrate: str = "128k"
    preview_audio_bitrate: str = "64k"

    @field_validator('audio_bitrate', 'preview_audio_bitrate')
    @classmethod
    def validate_audio_bitrate(cls, v: str) -> str:
        parse_bitrate(v)
        return v.strip()

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    options: ProcessingOptions = Field(default_factory=ProcessingOptions)
