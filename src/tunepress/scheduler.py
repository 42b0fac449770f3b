"""
Batch scheduling and the live status region.

Files are split into consecutive batches. Each batch runs on a thread pool
and must finish completely before the next batch starts. Every job in a
batch owns one status line; jobs never write to the terminal themselves,
they post (slot, text) updates that a single renderer thread applies.
"""

import os
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from queue import Queue
from typing import Callable, List, Optional, Sequence

from rich.console import Console, Group
from rich.live import Live
from rich.table import Table
from rich.text import Text

from . import log
from .models import InputFile, JobResult, Outcome

PENDING = "⏳ Starting..."

ProcessFn = Callable[[InputFile, Callable[[str], None]], JobResult]


def get_optimal_workers() -> int:
    """One worker per CPU; transcoding is CPU bound."""
    return os.cpu_count() or 4


def discover_files(input_dir: Path) -> List[InputFile]:
    """Regular files directly inside input_dir, sorted by name. Subdirectories are ignored."""
    entries = sorted(Path(input_dir).iterdir(), key=lambda p: p.name)
    return [InputFile.from_path(p) for p in entries if not p.is_dir()]


def partition(items: Sequence, batch_size: Optional[int]) -> List[list]:
    """Consecutive batches in original order; no batch size means a single batch."""
    items = list(items)
    if not items:
        return []
    if not batch_size or batch_size <= 0:
        return [items]
    return [items[i:i + batch_size] for i in range(0, len(items), batch_size)]


class StatusBoard:
    """
    Fixed-height block of status lines, one per batch slot.

    Updates are queued from any thread and drawn by one renderer thread,
    so concurrent writers never interleave on the terminal.
    """

    def __init__(self, size: int, console: Optional[Console] = None, initial: str = PENDING):
        self.lines = [initial] * size
        self.console = console or log.console
        self._updates: Queue = Queue()
        self._live: Optional[Live] = None
        self._renderer: Optional[threading.Thread] = None

    def update(self, index: int, text: str):
        self._updates.put((index, text))

    def _render(self):
        return Group(*(Text(line) for line in self.lines))

    def _drain(self):
        while True:
            item = self._updates.get()
            if item is None:  # Sentinel to stop
                break
            index, text = item
            self.lines[index] = text
            self._live.update(self._render(), refresh=True)

    def __enter__(self):
        self._live = Live(self._render(), console=self.console, auto_refresh=False)
        self._live.start()
        self._renderer = threading.Thread(target=self._drain, daemon=True)
        self._renderer.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self._updates.put(None)
        self._renderer.join()
        self._live.update(self._render(), refresh=True)
        self._live.stop()
        return False


class BatchScheduler:
    """Runs jobs batch by batch with bounded concurrency inside each batch."""

    def __init__(self, process: ProcessFn, batch_size: Optional[int] = None,
                 workers: Optional[int] = None, console: Optional[Console] = None):
        self.process = process
        self.batch_size = batch_size
        self.workers = workers or get_optimal_workers()
        self.console = console or log.console

    def run(self, files: Sequence[InputFile]) -> List[JobResult]:
        """Process every file; returns results in discovery order."""
        results: List[JobResult] = []
        for batch in partition(files, self.batch_size):
            results.extend(self.run_batch(batch))

        self.console.print("\n🎉 All files processed.")
        self.print_summary(results)
        return results

    def run_batch(self, batch: Sequence[InputFile]) -> List[JobResult]:
        self.console.print(f"\n🎶 Processing {len(batch)} files...")
        results: List[Optional[JobResult]] = [None] * len(batch)

        with StatusBoard(len(batch), self.console) as board:
            with ThreadPoolExecutor(max_workers=min(self.workers, len(batch))) as executor:
                futures = {
                    executor.submit(self._run_job, board, index, input_file): index
                    for index, input_file in enumerate(batch)
                }
                for future in as_completed(futures):
                    index = futures[future]
                    result = future.result()
                    results[index] = result
                    board.update(index, result.status_line())

        self.console.print("✅ Batch complete")
        return results

    def _run_job(self, board: StatusBoard, index: int, input_file: InputFile) -> JobResult:
        def progress(text: str):
            board.update(index, f"{input_file.display_name} → {text}")

        try:
            return self.process(input_file, progress)
        except Exception as e:
            # One job's failure never takes the batch down with it
            return JobResult(input_file.display_name, Outcome.FAILED, str(e) or type(e).__name__)

    def print_summary(self, results: Sequence[JobResult]):
        counts = Counter(result.outcome for result in results)
        table = Table(title="Summary", show_header=True, header_style="bold cyan")
        table.add_column("Outcome")
        table.add_column("Files", justify="right")
        labels = [
            (Outcome.CONVERTED_WITH_COVER, "Converted with cover"),
            (Outcome.CONVERTED_WITHOUT_COVER, "Converted without cover"),
            (Outcome.SKIPPED_EXISTING, "Skipped (already converted)"),
            (Outcome.SKIPPED_DUPLICATE, "Skipped (duplicate)"),
            (Outcome.FAILED, "Failed"),
        ]
        for outcome, label in labels:
            table.add_row(label, str(counts.get(outcome, 0)))
        self.console.print(table)
