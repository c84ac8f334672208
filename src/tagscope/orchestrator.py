"""Wires crawler, worker pool and sink together for one run.

Normal runs move through IDLE -> RUNNING -> DRAINING -> CLOSED. The crawler
walks in the calling thread while the workers classify; once the walk is
over the channel is closed, the workers drain what is left and exit, and
only then is the sink closed. Inspect runs use the same crawler and workers
but print every decision instead of starting any indexer.
"""

from __future__ import annotations

import contextlib
import os
import threading
from collections.abc import Callable, Iterable, Sequence
from enum import Enum

from rich.console import Console

from tagscope.channel import open_path_channel
from tagscope.classifiers import ClassifierRegistry
from tagscope.config import ScopeConfig, make_excludes
from tagscope.crawler import Crawler
from tagscope.exceptions import NoClassifierError
from tagscope.sink import IndexerSpec, TagSink, default_backends
from tagscope.workers import Decision, RunStats, WorkerPool

console = Console(stderr=True)

BackendFactory = Callable[[ScopeConfig], Sequence[IndexerSpec | None]]


class RunMode(Enum):
    NORMAL = "normal"
    INSPECT = "inspect"


class RunState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    CLOSED = "closed"


class Orchestrator:
    """Runs the crawl/classify/index pipeline once.

    Args:
        config: Resolved configuration; ``inspect`` picks the run mode.
        registry: Classifier registry with its selection already made.
        backends: Returns the indexers to start; defaults to cscope and
            ctags as configured.
        output: Console for user-facing lines (inspect decisions and
            verbose echo); defaults to stdout.
    """

    def __init__(
        self,
        config: ScopeConfig,
        registry: ClassifierRegistry,
        backends: BackendFactory = default_backends,
        output: Console | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._backends = backends
        self._out = output or Console()
        self._out_lock = threading.Lock()
        self._state = RunState.IDLE

    @property
    def mode(self) -> RunMode:
        return RunMode.INSPECT if self._config.inspect else RunMode.NORMAL

    @property
    def state(self) -> RunState:
        return self._state

    def run(self, roots: Iterable[str | os.PathLike[str]]) -> RunStats:
        """Index everything below roots.

        Returns:
            Counters for the whole run.

        Raises:
            NoClassifierError: If the registry has no usable classifier.
            NoBackendError: If neither indexer could be started.
        """
        if self._state is not RunState.IDLE:
            raise RuntimeError("Orchestrator.run() may only be called once")
        if not self._registry.usable():
            raise NoClassifierError("No usable classifier found.")

        sender, receiver = open_path_channel()
        crawler = Crawler(make_excludes(self._config.excludes), sender)

        with contextlib.ExitStack() as stack:
            sink: TagSink | None = None
            if self.mode is RunMode.NORMAL:
                sink = stack.enter_context(
                    TagSink.start(self._backends(self._config), debug=self._config.debug)
                )
            else:
                self._emit(f"Classifier: {self._registry.name()}")

            pool = WorkerPool(
                self._registry,
                receiver,
                lambda decision: self._dispatch(sink, decision),
                jobs=self._config.jobs,
            )
            pool.start()
            self._set_state(RunState.RUNNING)
            try:
                crawler.run(roots)
                self._set_state(RunState.DRAINING)
            finally:
                sender.close()
                stats = pool.join()
        # The sink is closed by the ExitStack, after every worker returned.
        self._set_state(RunState.CLOSED)

        stats.walk_errors = len(crawler.walk_errors)
        return stats

    def _dispatch(self, sink: TagSink | None, decision: Decision) -> None:
        if sink is None:
            self._emit(decision.render())
            return
        if not decision.included:
            return
        sink.write(decision.path)
        if self._config.verbose:
            self._emit(decision.path)

    def _emit(self, line: str) -> None:
        with self._out_lock:
            self._out.print(line, markup=False, highlight=False, emoji=False, soft_wrap=True)

    def _set_state(self, state: RunState) -> None:
        self._state = state
        if self._config.debug:
            console.print(f"[dim]state: {state.value}[/dim]")
