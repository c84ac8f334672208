"""Tests for the classifying worker pool."""

from __future__ import annotations

import threading

import pytest

from conftest import FakeClassifier
from tagscope.channel import CrawlEntry, open_path_channel
from tagscope.classifiers import ClassifierRegistry
from tagscope.exceptions import SinkWriteError
from tagscope.workers import DIRECTORY_TYPE, Decision, Reason, RunStats, WorkerPool


class _Collector:
    def __init__(self) -> None:
        self.decisions: list[Decision] = []
        self._lock = threading.Lock()

    def __call__(self, decision: Decision) -> None:
        with self._lock:
            self.decisions.append(decision)

    def by_path(self) -> dict[str, Decision]:
        return {d.path: d for d in self.decisions}


def _run(registry: ClassifierRegistry, entries: list[CrawlEntry], jobs: int = 4) -> tuple[_Collector, RunStats]:
    sender, receiver = open_path_channel()
    for entry in entries:
        sender.put(entry)
    sender.close()
    collector = _Collector()
    stats = WorkerPool(registry, receiver, collector, jobs=jobs).run()
    return collector, stats


class TestDecide:
    def test_extension_match_skips_probe(
        self, registry: ClassifierRegistry, fake_classifier: FakeClassifier
    ) -> None:
        entries = [CrawlEntry(f"src/f{i}.c") for i in range(20)]
        collector, stats = _run(registry, entries)

        assert fake_classifier.calls == 0
        assert stats.by_extension == 20
        assert all(d.reason is Reason.INCLUDE_EXTENSION for d in collector.decisions)

    def test_type_match_and_exclude(
        self, registry: ClassifierRegistry, fake_classifier: FakeClassifier
    ) -> None:
        collector, stats = _run(
            registry,
            [CrawlEntry("bin/tool"), CrawlEntry("docs/notes.txt"), CrawlEntry("x/weird")],
        )
        decisions = collector.by_path()

        assert decisions["bin/tool"] == Decision("bin/tool", Reason.INCLUDE_TYPE, "text/x-python")
        assert decisions["x/weird"].reason is Reason.INCLUDE_TYPE
        assert decisions["docs/notes.txt"] == Decision("docs/notes.txt", Reason.EXCLUDE, "text/plain")
        assert stats.by_type == 2
        assert stats.excluded == 1
        assert fake_classifier.calls == 3

    def test_probe_failure_drops_path_and_continues(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        fake = FakeClassifier(fail=frozenset({"broken"}), types={"tool": "text/x-python"})
        collector, stats = _run(
            ClassifierRegistry((fake,)), [CrawlEntry("broken"), CrawlEntry("tool"), CrawlEntry("a.c")]
        )
        decisions = collector.by_path()

        assert decisions["broken"].reason is Reason.UNKNOWN
        assert not decisions["broken"].included
        assert decisions["tool"].included
        assert stats.unknown == 1
        assert stats.visited == 3

        err = capsys.readouterr().err
        assert "Cannot determine type for broken" in err
        assert "probe failed for broken" in err
        assert "tool" not in err

    def test_directories_are_excluded_without_probe(
        self, registry: ClassifierRegistry, fake_classifier: FakeClassifier
    ) -> None:
        collector, stats = _run(registry, [CrawlEntry("src.c", is_dir=True)])

        assert collector.decisions == [Decision("src.c", Reason.EXCLUDE, DIRECTORY_TYPE)]
        assert fake_classifier.calls == 0
        assert stats.excluded == 1


class TestWorkerPool:
    def test_every_entry_decided_once(self, registry: ClassifierRegistry) -> None:
        entries = [CrawlEntry(f"f{i}.c") for i in range(300)] + [
            CrawlEntry(f"n{i}.txt") for i in range(300)
        ]
        collector, stats = _run(registry, entries, jobs=8)

        assert sorted(d.path for d in collector.decisions) == sorted(e.path for e in entries)
        assert stats.visited == 600
        assert stats.included == 300

    def test_workers_outlive_slow_producer(self, registry: ClassifierRegistry) -> None:
        sender, receiver = open_path_channel()
        collector = _Collector()
        pool = WorkerPool(registry, receiver, collector, jobs=4)
        pool.start()

        pause = threading.Event()
        for i in range(30):
            sender.put(CrawlEntry(f"late{i}.c"))
            pause.wait(0.005)
        sender.close()

        stats = pool.join()
        assert stats.by_extension == 30

    def test_write_failures_are_counted(self, registry: ClassifierRegistry) -> None:
        def failing(decision: Decision) -> None:
            if decision.included:
                raise SinkWriteError("indexer died")

        sender, receiver = open_path_channel()
        for name in ("a.c", "b.c", "notes.txt"):
            sender.put(CrawlEntry(name))
        sender.close()

        stats = WorkerPool(registry, receiver, failing, jobs=2).run()
        assert stats.write_failures == 2
        assert stats.visited == 3

    def test_unexpected_error_is_reraised_after_join(self, registry: ClassifierRegistry) -> None:
        def explode(decision: Decision) -> None:
            raise RuntimeError("bug")

        sender, receiver = open_path_channel()
        sender.put(CrawlEntry("a.c"))
        sender.close()

        with pytest.raises(RuntimeError, match="bug"):
            WorkerPool(registry, receiver, explode, jobs=3).run()

    def test_jobs_must_be_positive(self, registry: ClassifierRegistry) -> None:
        _, receiver = open_path_channel()
        with pytest.raises(ValueError):
            WorkerPool(registry, receiver, lambda d: None, jobs=0)


class TestDecisionRendering:
    def test_render_pads_type_column(self) -> None:
        line = Decision("src/a.c", Reason.INCLUDE_TYPE, "text/x-csrc").render()
        assert line == f"Include [type]: {'text/x-csrc':29} src/a.c"

    def test_render_without_type(self) -> None:
        line = Decision("src/a.c", Reason.INCLUDE_EXTENSION).render()
        assert line == f"Include [.ext]: {'':29} src/a.c"
