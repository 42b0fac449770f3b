"""
Per-file conversion job.

Order of work for one input:
1. output already exists  -> skipped, nothing else touched
2. content digest already seen -> skipped as duplicate
3. embedded art? keep it; otherwise search for art (none found is fine)
4. transcode into a staging directory, then link into place
Fetched art and staged output are removed whatever the outcome; a path this
job did not create is never deleted.
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Optional

from .cover_art import CoverArtResolver, NoArtFound
from .hashing import hash_file
from .log import debug
from .models import (CoverArtState, EmbeddedArt, FetchedArt, InputFile, JobResult, NoArt,
                     Outcome, SeenDigestSet)
from .titles import clean_title
from .transcoder import Transcoder


def _ignore_progress(text: str):
    pass


def output_path_for(input_path: Path, output_dir: Path, extension: str = 'm4a',
                    normalize: Callable[[str], str] = clean_title) -> Path:
    """Where a converted copy of input_path goes; depends only on its name."""
    return Path(output_dir) / f"{normalize(Path(input_path).stem)}.{extension}"


class FileJob:
    """Runs one input file through dedup, cover art and transcoding."""

    def __init__(self, input_file: InputFile, output_dir: Path, seen: SeenDigestSet,
                 resolver: CoverArtResolver, transcoder: Transcoder,
                 extension: str = 'm4a',
                 normalize: Callable[[str], str] = clean_title,
                 hasher: Callable[[Path], str] = hash_file,
                 progress: Optional[Callable[[str], None]] = None):
        self.input_file = input_file
        self.seen = seen
        self.resolver = resolver
        self.transcoder = transcoder
        self.hasher = hasher
        self.progress = progress or _ignore_progress

        self.title = normalize(Path(input_file.path).stem)
        self.output_path = output_path_for(input_file.path, output_dir, extension, normalize)

    def _result(self, outcome: Outcome, reason: Optional[str] = None,
                cover: Optional[CoverArtState] = None) -> JobResult:
        return JobResult(self.input_file.display_name, outcome, reason, cover)

    def run(self) -> JobResult:
        """Process the file; never raises, failures come back as a Failed result."""
        try:
            return self._run()
        except Exception as e:
            debug(f"{self.input_file.display_name} failed: {e!r}")
            return self._result(Outcome.FAILED, reason=str(e) or type(e).__name__)

    def _run(self) -> JobResult:
        if self.output_path.exists():
            return self._result(Outcome.SKIPPED_EXISTING)

        self.progress("🔑 Hashing")
        digest = self.hasher(self.input_file.path)
        if not self.seen.add_if_absent(digest):
            return self._result(Outcome.SKIPPED_DUPLICATE)

        cover: CoverArtState = NoArt()
        try:
            self.progress("🖼️ Checking cover")
            if self.resolver.has_embedded_art(self.input_file.path):
                debug(f"Existing cover found in {self.input_file.display_name}, skipping fetch")
                cover = EmbeddedArt()
            else:
                self.progress("🔍 Searching cover art")
                try:
                    cover = self.resolver.resolve(self.title)
                except NoArtFound as e:
                    debug(f"No cover for {self.title}: {e}")
                    cover = NoArt()

            self.progress("🎛️ Converting")
            if not self._transcode(cover):
                return self._result(Outcome.SKIPPED_EXISTING)
        finally:
            if isinstance(cover, FetchedArt):
                Path(cover.image_path).unlink(missing_ok=True)

        outcome = Outcome.CONVERTED_WITHOUT_COVER if isinstance(cover, NoArt) else Outcome.CONVERTED_WITH_COVER
        return self._result(outcome, cover=cover)

    def _transcode(self, cover: CoverArtState) -> bool:
        """
        Transcode into a private staging directory, then link the result into
        place. Returns False when another job claimed the output path first.
        """
        staging = Path(tempfile.mkdtemp(prefix=".tunepress-", dir=self.output_path.parent))
        try:
            staged = staging / self.output_path.name
            self.transcoder.convert(self.input_file.path, staged, self.title, cover)
            try:
                os.link(staged, self.output_path)
            except FileExistsError:
                debug(f"{self.output_path.name} appeared while converting {self.input_file.display_name}")
                return False
            return True
        finally:
            shutil.rmtree(staging, ignore_errors=True)
