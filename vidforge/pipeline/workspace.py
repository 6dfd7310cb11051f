import re
import time
import uuid
from pathlib import Path
from typing import List
from vidforge.domain.errors import FileSystemError
from vidforge.domain.models import ArtifactKind

SUBDIRS = {
    ArtifactKind.ORIGINAL: None,
    ArtifactKind.COMPRESSED: "compressed",
    ArtifactKind.THUMBNAIL: "thumbnails",
    ArtifactKind.PREVIEW: "previews",
}

SUFFIXES = {
    ArtifactKind.COMPRESSED: "_compressed.mp4",
    ArtifactKind.THUMBNAIL: "_thumb.jpg",
    ArtifactKind.PREVIEW: "_preview.mp4",
}

def sanitize_name(name: str) -> str:
    sanitized = re.sub(r"[^a-zA-Z0-9.-]", "_", Path(name).name)
    return sanitized.lstrip(".") or "video"

def new_run_id(name: str) -> str:
    """<epoch-ms>-<random>-<sanitized name>, unique per run."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}-{sanitize_name(name)}"

class RunWorkspace:
    """Per-run directory namespace: <root>/<run_id>/{compressed,thumbnails,previews}.

    Directories are created lazily the first time a path inside them is
    requested and remembered so an empty tree can be removed on rollback.
    """

    def __init__(self, root: Path, run_id: str, original_name: str):
        self.root = Path(root)
        self.run_id = run_id
        self.path = self.root / run_id
        self.name = sanitize_name(original_name)
        self.stem = Path(self.name).stem or "video"
        self._created_dirs: List[Path] = []

    def path_for(self, kind: ArtifactKind) -> Path:
        subdir = SUBDIRS[kind]
        directory = self.path / subdir if subdir else self.path
        self._ensure_dir(directory)
        if kind == ArtifactKind.ORIGINAL:
            return directory / self.name
        return directory / f"{self.stem}{SUFFIXES[kind]}"

    def _ensure_dir(self, directory: Path):
        missing = []
        current = directory
        # the shared root is never ours to remove, only the run tree below it
        while not current.exists() and current != self.root and current != current.parent:
            missing.append(current)
            current = current.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileSystemError("mkdir", directory, str(e)) from e
        # deepest last, so reversed() removes children first
        self._created_dirs.extend(reversed(missing))

    def remove_empty_dirs(self) -> List[Path]:
        """Removes directories this run created, if empty. Returns what was removed."""
        removed = []
        for directory in reversed(self._created_dirs):
            try:
                directory.rmdir()
            except OSError:
                continue
            removed.append(directory)
        self._created_dirs = [d for d in self._created_dirs if d not in removed]
        return removed
