"""Shared test fixtures."""

from __future__ import annotations

import os
import sys
import threading
from collections.abc import Callable
from pathlib import Path

import pytest

from tagscope.classifiers import ClassifierRegistry
from tagscope.config import ScopeConfig
from tagscope.exceptions import ClassifyError
from tagscope.sink import IndexerSpec

# Stand-in indexer: copies stdin to the file named by argv[1].
_CAPTURE_SCRIPT = (
    "import shutil, sys\n"
    "with open(sys.argv[1], 'wb') as out:\n"
    "    shutil.copyfileobj(sys.stdin.buffer, out)\n"
)


class FakeClassifier:
    """In-process classifier that records every probe."""

    def __init__(
        self,
        name: str = "fake",
        types: dict[str, str] | None = None,
        default: str = "text/plain",
        available: bool = True,
        fail: frozenset[str] = frozenset(),
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self._types = types or {}
        self._default = default
        self._available = available
        self._fail = fail
        self._delay = delay
        self._lock = threading.Lock()
        self.seen: list[str] = []

    @property
    def calls(self) -> int:
        with self._lock:
            return len(self.seen)

    def available(self) -> bool:
        return self._available

    def classify(self, path: str) -> str:
        with self._lock:
            self.seen.append(path)
        if self._delay:
            threading.Event().wait(self._delay)
        base = os.path.basename(path)
        if base in self._fail:
            raise ClassifyError(f"probe failed for {base}", path)
        return self._types.get(base, self._default)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the user's global config and TAGSCOPE_* variables out of tests."""
    monkeypatch.setattr("tagscope.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.toml")
    for key in list(os.environ):
        if key.startswith("TAGSCOPE_"):
            monkeypatch.delenv(key)


@pytest.fixture
def fake_classifier() -> FakeClassifier:
    return FakeClassifier(
        types={"tool": "text/x-python", "weird": "application/vnd.acme.x-csrc"},
    )


@pytest.fixture
def registry(fake_classifier: FakeClassifier) -> ClassifierRegistry:
    return ClassifierRegistry((fake_classifier,))


@pytest.fixture
def scope_config() -> ScopeConfig:
    return ScopeConfig(jobs=4)


@pytest.fixture
def capture_indexer(tmp_path: Path) -> Callable[[str], tuple[IndexerSpec, Path]]:
    """Factory for indexer specs whose stdin ends up in a file."""
    out_dir = tmp_path / "captured"
    out_dir.mkdir(exist_ok=True)

    def make(name: str) -> tuple[IndexerSpec, Path]:
        out = out_dir / f"{name}.out"
        spec = IndexerSpec(name, (sys.executable, "-c", _CAPTURE_SCRIPT, str(out)))
        return spec, out

    return make


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    """root/ with a.c, notes.txt and a .git directory."""
    root = tmp_path / "root"
    (root / ".git" / "objects").mkdir(parents=True)
    (root / "a.c").write_text("int main(void) { return 0; }\n", encoding="utf-8")
    (root / "notes.txt").write_text("remember the milk\n", encoding="utf-8")
    (root / ".git" / "config").write_text("[core]\n", encoding="utf-8")
    (root / ".git" / "objects" / "hook.c").write_text("void f(void);\n", encoding="utf-8")
    return root


def read_lines(path: Path) -> list[str]:
    return path.read_text(encoding="utf-8").splitlines()
