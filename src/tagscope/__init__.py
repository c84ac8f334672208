"""tagscope: feed source files to cscope and ctags in parallel."""

from __future__ import annotations

__version__ = "0.1.0"
