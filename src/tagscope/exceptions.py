"""tagscope exception hierarchy.

All exceptions inherit from TagscopeError so callers can catch the base
class when they want to handle any tagscope-specific failure uniformly.
"""

from __future__ import annotations


class TagscopeError(Exception):
    """Base exception for all tagscope errors."""


class ConfigError(TagscopeError):
    """Configuration-related errors (bad TOML values, invalid job counts, etc.)."""


class ClassifyError(TagscopeError):
    """A type probe could not run or produced unusable output."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class NoClassifierError(TagscopeError):
    """No usable classifier for the requested or default selection."""


class WalkError(TagscopeError):
    """A directory could not be enumerated during the crawl."""


class ChannelClosedError(TagscopeError):
    """A path was pushed after the producer closed the channel."""


class SinkError(TagscopeError):
    """Errors talking to the indexer processes."""


class NoBackendError(SinkError):
    """Neither indexer process could be started."""


class SinkWriteError(SinkError):
    """A line could not be delivered to one or more indexer processes."""


class SinkClosedError(SinkError):
    """A write was attempted after the sink was closed."""
