"""Plain data passed between the pipeline stages."""

import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Set, Union


@dataclass(frozen=True)
class InputFile:
    path: Path
    display_name: str

    @classmethod
    def from_path(cls, path: Path) -> "InputFile":
        return cls(path=Path(path), display_name=Path(path).name)


# Cover art state: exactly one of these per job

@dataclass(frozen=True)
class NoArt:
    pass


@dataclass(frozen=True)
class EmbeddedArt:
    pass


@dataclass(frozen=True)
class FetchedArt:
    image_path: Path


CoverArtState = Union[NoArt, EmbeddedArt, FetchedArt]


@dataclass(frozen=True)
class TranscodeSpec:
    input_path: Path
    output_path: Path
    title: str
    cover: CoverArtState


class Outcome(Enum):
    SKIPPED_EXISTING = "skipped_existing"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    CONVERTED_WITH_COVER = "converted_with_cover"
    CONVERTED_WITHOUT_COVER = "converted_without_cover"
    FAILED = "failed"


@dataclass(frozen=True)
class JobResult:
    display_name: str
    outcome: Outcome
    reason: Optional[str] = None
    cover: Optional[CoverArtState] = None

    @property
    def converted(self) -> bool:
        return self.outcome in (Outcome.CONVERTED_WITH_COVER, Outcome.CONVERTED_WITHOUT_COVER)

    def status_line(self) -> str:
        """Single human-readable line for the job's status slot."""
        if self.outcome is Outcome.SKIPPED_EXISTING:
            status = "⚠️ Skipped (already converted)"
        elif self.outcome is Outcome.SKIPPED_DUPLICATE:
            status = "⚠️ Skipped (duplicate)"
        elif self.outcome is Outcome.FAILED:
            status = f"❌ Failed: {self.reason}"
        elif isinstance(self.cover, EmbeddedArt):
            status = "🎵 Converted (kept cover)"
        elif isinstance(self.cover, FetchedArt):
            status = "🎵 Converted (added cover)"
        else:
            status = "🎵 Converted (no cover)"
        return f"{self.display_name} → {status}"


class SeenDigestSet:
    """Content digests seen so far in this run, shared by all jobs."""

    def __init__(self):
        self._digests: Set[str] = set()
        self._lock = threading.Lock()

    def add_if_absent(self, digest: str) -> bool:
        """Insert digest; True when it was new, False for a duplicate."""
        with self._lock:
            if digest in self._digests:
                return False
            self._digests.add(digest)
            return True

    def __contains__(self, digest: str) -> bool:
        with self._lock:
            return digest in self._digests

    def __len__(self) -> int:
        with self._lock:
            return len(self._digests)
