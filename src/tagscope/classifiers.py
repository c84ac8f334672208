"""Content-type classifiers and the registry that picks one of them.

A classifier asks an external tool what kind of file a path is. The set of
classifiers is fixed: ``file`` (content sniffing) and ``xdg-mime`` (the
desktop's type association). The registry owns the inclusion rules so that
the decision does not depend on which tool produced the type string.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from typing import ClassVar

from tagscope.exceptions import ClassifyError, NoClassifierError

NO_CLASSIFIER = "<none>"


def _probe(argv: list[str], path: str, timeout: float) -> str:
    """Run a type probe and return its single-line answer."""
    try:
        result = subprocess.run(
            argv,
            capture_output=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise ClassifyError(f"{argv[0]} timed out after {timeout}s", path) from exc
    except OSError as exc:
        raise ClassifyError(f"Cannot run {argv[0]}: {exc}", path) from exc

    if result.returncode != 0:
        raise ClassifyError(f"{argv[0]} exited with status {result.returncode}", path)
    try:
        answer = result.stdout.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        raise ClassifyError(f"{argv[0]} returned undecodable output", path) from exc
    if not answer:
        raise ClassifyError(f"{argv[0]} returned no type", path)
    return answer


@dataclass(frozen=True)
class FileClassifier:
    """Classify with file(1) in MIME mode."""

    timeout: float = 30.0
    name: ClassVar[str] = "file"

    def available(self) -> bool:
        try:
            out = subprocess.run(
                ["file", "--help"],
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired):
            return False
        text = (out.stdout + out.stderr).decode("utf-8", errors="replace")
        return "--mime-type" in text

    def classify(self, path: str) -> str:
        return _probe(["file", "-b", "--mime-type", "--", path], path, self.timeout)


@dataclass(frozen=True)
class XdgMimeClassifier:
    """Classify with xdg-mime(1)."""

    timeout: float = 30.0
    name: ClassVar[str] = "xdg-mime"

    def available(self) -> bool:
        try:
            subprocess.run(
                ["xdg-mime", "query", "filetype"],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired):
            return False
        return True

    def classify(self, path: str) -> str:
        return _probe(["xdg-mime", "query", "filetype", path], path, self.timeout)


Classifier = FileClassifier | XdgMimeClassifier


def default_classifiers(timeout: float = 30.0) -> tuple[Classifier, ...]:
    """All known classifiers, most preferred first.

    file(1) comes first because it tells C sources from C headers and
    similar subtypes, where xdg-mime often only knows the extension.
    """
    return (FileClassifier(timeout=timeout), XdgMimeClassifier(timeout=timeout))


class ClassifierRegistry:
    """Ordered classifiers plus the one selected for this run.

    Usage::

        registry = ClassifierRegistry(default_classifiers())
        if registry.usable():
            mime = registry.classify("src/main.c")
    """

    EXTENSIONS: ClassVar[frozenset[str]] = frozenset(
        {
            "asm",
            "c",
            "cc",
            "cpp",
            "cs",
            "cxx",
            "erl",
            "go",
            "h",
            "hpp",
            "hxx",
            "java",
            "js",
            "lua",
            "php",
            "pl",
            "pm",
            "py",
            "rb",
            "rs",
            "s",
            "sh",
            "S",
            "tcl",
        }
    )

    TYPE_SUFFIXES: ClassVar[tuple[str, ...]] = (
        # shared-mime-info names
        "rust",
        "x-c++",
        "x-c++src",
        "x-c++hdr",
        "x-chdr",
        "x-csharp",
        "x-csrc",
        "x-erlang",
        "x-java",
        "x-javascript",
        "x-lua",
        "x-perl",
        "x-php",
        "x-python",
        "x-ruby",
        "x-shellscript",
        "x-tcl",
        # GNU file(1) where it differs
        "x-c",
    )

    def __init__(self, classifiers: tuple[Classifier, ...], select: str | None = None) -> None:
        """Pick the current classifier.

        Args:
            classifiers: Candidates in order of preference.
            select: Name to force. Without it the first available
                classifier wins. A name that matches nothing leaves the
                registry unusable; there is no fallback.
        """
        self._classifiers = tuple(classifiers)
        self._current: Classifier | None = None
        for candidate in self._classifiers:
            if select is None:
                if candidate.available():
                    self._current = candidate
                    break
            elif candidate.name == select:
                self._current = candidate
                break

    @property
    def current(self) -> Classifier | None:
        return self._current

    def usable(self) -> bool:
        """Return True if the selected classifier can run right now."""
        return self._current is not None and self._current.available()

    def name(self) -> str:
        if self.usable():
            assert self._current is not None
            return self._current.name
        return NO_CLASSIFIER

    def classify(self, path: str) -> str:
        """Return the content type the current classifier reports for path.

        Raises:
            NoClassifierError: If no classifier was selected.
            ClassifyError: If the probe failed.
        """
        if self._current is None:
            raise NoClassifierError("No usable classifier found.")
        return self._current.classify(path)

    def include_by_extension(self, path: str) -> bool:
        """Return True if the file extension marks path as source code."""
        _, ext = os.path.splitext(os.path.basename(path))
        return ext[1:] in self.EXTENSIONS if ext else False

    def include_by_type(self, mime: str) -> bool:
        """Return True if a reported type names a source-code format."""
        return mime.endswith(self.TYPE_SUFFIXES)

    def render_listing(self) -> list[str]:
        """Describe every classifier, marking unusable (!) and current (*)."""
        lines: list[str] = []
        for i, candidate in enumerate(self._classifiers):
            line = f"[{i}] {candidate.name}"
            if not candidate.available():
                line += " (!)"
            elif candidate is self._current:
                line += " (*)"
            lines.append(line)
        return lines


def build_registry(select: str | None = None, timeout: float = 30.0) -> ClassifierRegistry:
    """Registry over the default classifiers with the given selection."""
    return ClassifierRegistry(default_classifiers(timeout), select)
