"""Depth-first, exclusion-aware directory walk feeding the path channel."""

from __future__ import annotations

import os
from collections.abc import Iterable

from rich.console import Console
from rich.markup import escape

from tagscope.channel import CrawlEntry, PathSender
from tagscope.exceptions import WalkError

console = Console(stderr=True)


class Crawler:
    """Walks root paths and pushes every non-excluded path to a channel.

    Exclusion is plain substring containment on the rendered path and cuts
    the whole subtree: an excluded directory is neither pushed nor entered.

    Usage::

        sender, receiver = open_path_channel()
        Crawler(("/.git/",), sender).run(["."])
    """

    def __init__(self, excludes: Iterable[str], sender: PathSender) -> None:
        self._excludes = tuple(excludes)
        self._sender = sender
        self.walk_errors: list[WalkError] = []

    def run(self, roots: Iterable[str | os.PathLike[str]]) -> None:
        """Walk every root, then close the sender.

        The sender is closed even if the walk raises, so consumers always
        learn that the crawl is over.
        """
        try:
            for root in roots:
                self._crawl(os.fspath(root))
        finally:
            self._sender.close()

    def is_excluded(self, path: str, is_dir: bool = False) -> bool:
        """Return True if path's rendering contains an exclude substring.

        Directories are also checked with a trailing separator so that an
        entry like ``/.git/`` cuts the directory itself.
        """
        rendered = path + os.sep if is_dir and not path.endswith(os.sep) else path
        return any(x in rendered for x in self._excludes)

    def _crawl(self, root: str) -> None:
        stack = [root]
        while stack:
            path = stack.pop()
            if not os.path.exists(path):
                continue
            is_dir = os.path.isdir(path)
            if self.is_excluded(path, is_dir):
                continue
            self._sender.put(CrawlEntry(path, is_dir))
            # Directory symlinks below a root are not followed; they may form cycles.
            if is_dir and (path == root or not os.path.islink(path)):
                try:
                    children = self._list_dir(path)
                except WalkError as exc:
                    self.walk_errors.append(exc)
                    console.print(f"[yellow]Warning:[/yellow] {escape(str(exc))}", soft_wrap=True)
                    continue
                # Reversed so the stack pops children in name order.
                stack.extend(reversed(children))

    @staticmethod
    def _list_dir(path: str) -> list[str]:
        try:
            with os.scandir(path) as it:
                names = sorted(entry.name for entry in it)
        except OSError as exc:
            raise WalkError(f"Cannot read directory {path}: {exc.strerror or exc}") from exc
        return [os.path.join(path, name) for name in names]
