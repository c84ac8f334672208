"""Worker threads that classify crawled paths and dispatch the decisions."""

from __future__ import annotations

import concurrent.futures
from collections.abc import Callable
from dataclasses import dataclass, fields
from enum import Enum

from rich.console import Console
from rich.markup import escape

from tagscope.channel import CrawlEntry, PathReceiver
from tagscope.classifiers import ClassifierRegistry
from tagscope.exceptions import ClassifyError, SinkWriteError

console = Console(stderr=True)

DIRECTORY_TYPE = "inode/directory"


class Reason(Enum):
    """Why a path was kept or dropped."""

    INCLUDE_EXTENSION = "Include [.ext]"
    INCLUDE_TYPE = "Include [type]"
    EXCLUDE = "Exclude [----]"
    UNKNOWN = "Unknown [????]"


@dataclass(frozen=True, slots=True)
class Decision:
    """Classification outcome for one path.

    Attributes:
        path: Path as rendered by the crawler.
        reason: Inclusion or exclusion reason.
        mime: Type reported by the probe, if one ran.
    """

    path: str
    reason: Reason
    mime: str | None = None

    @property
    def included(self) -> bool:
        return self.reason in (Reason.INCLUDE_EXTENSION, Reason.INCLUDE_TYPE)

    def render(self) -> str:
        return f"{self.reason.value}: {self.mime or '':29} {self.path}"


@dataclass
class RunStats:
    """Counters for one run (or one worker's share of it)."""

    visited: int = 0
    by_extension: int = 0
    by_type: int = 0
    excluded: int = 0
    unknown: int = 0
    write_failures: int = 0
    walk_errors: int = 0

    @property
    def included(self) -> int:
        return self.by_extension + self.by_type

    def count(self, decision: Decision) -> None:
        self.visited += 1
        if decision.reason is Reason.INCLUDE_EXTENSION:
            self.by_extension += 1
        elif decision.reason is Reason.INCLUDE_TYPE:
            self.by_type += 1
        elif decision.reason is Reason.EXCLUDE:
            self.excluded += 1
        else:
            self.unknown += 1

    def merge(self, other: RunStats) -> None:
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))


Dispatch = Callable[[Decision], None]


class WorkerPool:
    """A fixed number of threads draining a path channel.

    Each worker takes the cheap route first: a known source extension is
    accepted without spawning a probe. Everything else is classified by the
    registry's current classifier and accepted only if the reported type
    matches. Probe failures are reported and the path is dropped.

    Args:
        registry: Classifier registry shared read-only by all workers.
        receiver: Read end of the crawler's channel.
        dispatch: Called with every decision, from worker threads.
        jobs: Number of worker threads (>= 1).
    """

    def __init__(
        self,
        registry: ClassifierRegistry,
        receiver: PathReceiver,
        dispatch: Dispatch,
        jobs: int = 1,
    ) -> None:
        if jobs < 1:
            raise ValueError(f"jobs must be at least 1, got {jobs}")
        self._registry = registry
        self._receiver = receiver
        self._dispatch = dispatch
        self._jobs = jobs
        self._executor: concurrent.futures.ThreadPoolExecutor | None = None
        self._futures: list[concurrent.futures.Future[RunStats]] = []

    def start(self) -> None:
        """Start all worker threads."""
        if self._executor is not None:
            raise RuntimeError("WorkerPool already started")
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self._jobs, thread_name_prefix="tagscope-worker"
        )
        self._futures = [self._executor.submit(self._work) for _ in range(self._jobs)]

    def join(self) -> RunStats:
        """Wait for every worker to finish and return the merged counters.

        Workers only finish once the channel is closed and drained. If a
        worker died with an unexpected exception it is re-raised here, after
        all other workers have stopped.
        """
        if self._executor is None:
            raise RuntimeError("WorkerPool not started")
        concurrent.futures.wait(self._futures)
        self._executor.shutdown(wait=True)

        total = RunStats()
        error: BaseException | None = None
        for future in self._futures:
            exc = future.exception()
            if exc is not None:
                error = error or exc
                continue
            total.merge(future.result())
        if error is not None:
            raise error
        return total

    def run(self) -> RunStats:
        self.start()
        return self.join()

    def decide(self, entry: CrawlEntry) -> Decision:
        """Classify a single crawled path."""
        if entry.is_dir:
            return Decision(entry.path, Reason.EXCLUDE, DIRECTORY_TYPE)
        if self._registry.include_by_extension(entry.path):
            return Decision(entry.path, Reason.INCLUDE_EXTENSION)
        try:
            mime = self._registry.classify(entry.path)
        except ClassifyError as exc:
            console.print(
                f"[yellow]Warning:[/yellow] Cannot determine type for {escape(entry.path)} "
                f"({escape(str(exc))})",
                soft_wrap=True,
                highlight=False,
            )
            return Decision(entry.path, Reason.UNKNOWN)
        if self._registry.include_by_type(mime):
            return Decision(entry.path, Reason.INCLUDE_TYPE, mime)
        return Decision(entry.path, Reason.EXCLUDE, mime)

    def _work(self) -> RunStats:
        stats = RunStats()
        for entry in self._receiver:
            decision = self.decide(entry)
            stats.count(decision)
            try:
                self._dispatch(decision)
            except SinkWriteError:
                stats.write_failures += 1
        return stats
