from pathlib import Path
from typing import Optional
from pydantic import BaseModel
from .models import ProcessedResult, ProgressEvent, RunState

class Event(BaseModel):
    """Base class for all domain events."""
    pass

class RunEvent(Event):
    run_id: str

class RunStarted(RunEvent):
    input_path: Path

class StageStarted(RunEvent):
    state: RunState

class StageProgress(RunEvent):
    progress: ProgressEvent

class RunCompleted(RunEvent):
    result: ProcessedResult

class RunFailed(RunEvent):
    state: Optional[RunState] = None
    error_kind: str
    error_message: str

class BatchProgress(Event):
    """Running summary, published after every finished batch item."""
    total: int
    finished: int
    succeeded: int
    failed: int
