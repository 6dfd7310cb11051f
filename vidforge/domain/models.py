from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

class Stage(str, Enum):
    PROBE = "probe"
    ENCODE = "encode"
    THUMBNAIL = "thumbnail"
    PREVIEW = "preview"

class RunState(str, Enum):
    PENDING = "pending"
    PROBING_TOOLS = "probing_tools"
    PROBING_METADATA = "probing_metadata"
    ENCODING = "encoding"
    EXTRACTING_THUMBNAIL = "extracting_thumbnail"
    EXTRACTING_PREVIEW = "extracting_preview"
    COMPLETED = "completed"
    FAILED = "failed"

class VideoCodec(str, Enum):
    H264 = "h264"
    H265 = "h265"

class QualityPreset(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

class ArtifactKind(str, Enum):
    ORIGINAL = "original"
    COMPRESSED = "compressed"
    THUMBNAIL = "thumbnail"
    PREVIEW = "preview"

class MediaMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    duration_seconds: float = Field(default=0.0, ge=0)
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    frame_rate: float = Field(default=30.0, gt=0)
    bitrate_bps: int = Field(default=0, ge=0)
    codec_name: str = "unknown"
    size_bytes: int = Field(default=0, ge=0)

class Artifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ArtifactKind
    path: Path
    width: int
    height: int
    size_bytes: int
    duration_seconds: Optional[float] = None  # videos only

class ProcessedResult(BaseModel):
    run_id: str
    original: Artifact
    compressed: Artifact
    thumbnail: Artifact
    preview: Artifact
    metadata: MediaMetadata

    @property
    def artifacts(self) -> List[Artifact]:
        return [self.original, self.compressed, self.thumbnail, self.preview]

class ProgressEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: Stage
    percent: int = Field(ge=0, le=100)

class BatchInput(BaseModel):
    path: Path
    input_id: Optional[str] = None
    original_name: Optional[str] = None

    @property
    def id(self) -> str:
        return self.input_id or self.path.name

    @property
    def name(self) -> str:
        return self.original_name or self.path.name

class BatchError(BaseModel):
    index: int
    input_id: str
    kind: str
    message: str
    state: Optional[RunState] = None

class BatchSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: List[BatchError] = Field(default_factory=list)
    results: List[ProcessedResult] = Field(default_factory=list)

    @property
    def partial_failure(self) -> bool:
        """True when at least one input failed. Reported, never raised."""
        return self.failed > 0
