"""Tag database sink: feeds file paths to cscope and ctags.

Both indexers are started once per run and read one path per line on
stdin. Workers write concurrently; every backend has its own lock so a line
always lands in one piece. Closing stdin tells an indexer the list is
complete, after which it writes its database and exits on its own.
"""

from __future__ import annotations

import contextlib
import os
import subprocess
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from types import TracebackType
from typing import IO

from rich.console import Console
from rich.markup import escape

from tagscope.config import ScopeConfig
from tagscope.exceptions import NoBackendError, SinkClosedError, SinkWriteError

console = Console(stderr=True)

_CTAGS_FLAVOURS = ("Exuberant Ctags", "Universal Ctags")


@dataclass(frozen=True)
class IndexerSpec:
    """How to start one indexer.

    Attributes:
        name: Display name used in diagnostics ("cscope", "ctags").
        argv: Command line; the process must read paths from stdin.
    """

    name: str
    argv: tuple[str, ...]


class IndexerBackend:
    """One running indexer process and the lock guarding its stdin."""

    def __init__(self, name: str, process: subprocess.Popen[bytes]) -> None:
        self.name = name
        self._process = process
        self._stdin: IO[bytes] | None = process.stdin
        self._lock = threading.Lock()
        self._closed = False
        self._failed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def failed(self) -> bool:
        return self._failed

    def write(self, data: bytes) -> bool:
        """Write one complete line. Returns False if the indexer is gone.

        Raises:
            SinkClosedError: If close() already started for this backend.
        """
        with self._lock:
            if self._closed:
                raise SinkClosedError(f"{self.name}: write after close")
            if self._failed:
                return True
            if self._stdin is None:
                self._failed = True
                console.print(f"[yellow]Warning:[/yellow] {self.name} died.")
                return False
            try:
                self._stdin.write(data)
            except OSError as exc:
                self._failed = True
                console.print(f"[yellow]Warning:[/yellow] {self.name} died: {escape(str(exc))}")
                return False
            return True

    def close_input(self) -> None:
        """Flush and close stdin. Later writes raise SinkClosedError."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            stdin, self._stdin = self._stdin, None
            if stdin is None:
                return
            try:
                stdin.flush()
            except OSError as exc:
                # A backend that already died was reported by write().
                if not self._failed:
                    self._failed = True
                    console.print(
                        f"[yellow]Warning:[/yellow] Cannot flush {self.name}: {escape(str(exc))}"
                    )
            finally:
                with contextlib.suppress(OSError):
                    stdin.close()

    def wait(self) -> int:
        return self._process.wait()


class TagSink:
    """Fan each indexed path out to every running indexer.

    Usage::

        with TagSink.start(default_backends(config)) as sink:
            sink.write("src/main.c")

    Leaving the ``with`` block closes every indexer's stdin and waits for
    the processes to exit.
    """

    def __init__(self, backends: list[IndexerBackend], debug: bool = False) -> None:
        if not backends:
            raise NoBackendError("Cannot create any tag file database.")
        self._backends = backends
        self._debug = debug
        self._close_lock = threading.Lock()
        self._closed = False

    @classmethod
    def start(cls, specs: Iterable[IndexerSpec | None], debug: bool = False) -> TagSink:
        """Spawn every indexer that can be started.

        A spec that is None (the binary was not found) or fails to spawn is
        reported and skipped.

        Raises:
            NoBackendError: If no indexer could be started.
        """
        backends: list[IndexerBackend] = []
        for spec in specs:
            if spec is None:
                continue
            try:
                process = subprocess.Popen(
                    list(spec.argv),
                    stdin=subprocess.PIPE,
                    stderr=subprocess.DEVNULL,
                )
            except OSError:
                console.print(f"[yellow]Warning:[/yellow] Cannot run {spec.name}.")
                continue
            backends.append(IndexerBackend(spec.name, process))
        try:
            return cls(backends, debug=debug)
        except NoBackendError:
            for backend in backends:
                backend.close_input()
                backend.wait()
            raise

    @property
    def backends(self) -> list[IndexerBackend]:
        return list(self._backends)

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, path: str) -> None:
        """Send path, newline-terminated, to every indexer.

        Each backend is tried even if another one fails.

        Raises:
            SinkClosedError: If the sink was already closed.
            SinkWriteError: If at least one indexer could not take the line.
        """
        data = os.fsencode(path) + b"\n"
        failed = [b.name for b in self._backends if not b.write(data)]
        if failed:
            raise SinkWriteError(f"Cannot write {path} to {', '.join(failed)}")

    def close(self) -> None:
        """Close every indexer's stdin, then wait for all of them. Idempotent."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        for backend in self._backends:
            backend.close_input()
        for backend in self._backends:
            status = backend.wait()
            if status != 0 and self._debug:
                console.print(f"[dim]{backend.name} exited with status {status}[/dim]")

    def __enter__(self) -> TagSink:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def find_ctags(candidates: Iterable[str], timeout: float = 30.0) -> str | None:
    """Return the first candidate that is Exuberant or Universal Ctags.

    A candidate whose --help does not answer within timeout seconds is skipped.
    """
    for name in candidates:
        try:
            out = subprocess.run(
                [name, "--help"],
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                timeout=timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired):
            continue
        text = out.stdout.decode("utf-8", errors="replace")
        if any(flavour in text for flavour in _CTAGS_FLAVOURS):
            return name
    return None


def default_backends(config: ScopeConfig) -> list[IndexerSpec | None]:
    """The cscope and ctags indexers configured for this run.

    The ctags entry is None when no suitable ctags is installed.
    """
    cscope = IndexerSpec("cscope", tuple(config.cscope_command))
    ctags_bin = find_ctags(config.ctags_candidates, config.probe_timeout)
    if ctags_bin is None:
        console.print("[yellow]Warning:[/yellow] Cannot find Exuberant or Universal Ctags.")
        return [cscope, None]
    return [cscope, IndexerSpec("ctags", (ctags_bin, *config.ctags_args))]
