"""Configuration management for tagscope.

Settings are loaded from three sources in order of priority:
1. Environment variables (highest priority)
2. Project-level config: .tagscope.toml
3. Global config: ~/.config/tagscope/config.toml (lowest priority)

Command-line options are applied on top by the CLI.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rich.console import Console

from tagscope.exceptions import ConfigError

console = Console(stderr=True)

_GLOBAL_CONFIG_DIR = Path.home() / ".config" / "tagscope"
_GLOBAL_CONFIG_PATH = _GLOBAL_CONFIG_DIR / "config.toml"
_PROJECT_CONFIG_NAME = ".tagscope.toml"

DEFAULT_EXCLUDES: tuple[str, ...] = ("/.git/", "/.svn/", "/CVS/")


def _default_jobs() -> int:
    return max(os.cpu_count() or 1, 1)


@dataclass
class ScopeConfig:
    """tagscope configuration.

    Attributes:
        classifier: Classifier name to force, or None to auto-detect.
        jobs: Number of worker threads (>= 1).
        excludes: User exclude substrings (built-in ones are added later).
        inspect: If True, print decisions instead of feeding the indexers.
        verbose: If True, echo every path handed to the indexers.
        log_level: Diagnostic verbosity (DEBUG, INFO, WARNING, ERROR).
        probe_timeout: Seconds a single type probe may take.
        cscope_command: Command line used to start cscope.
        ctags_candidates: Executable names tried, in order, to find ctags.
        ctags_args: Arguments passed to the ctags that was found.
    """

    classifier: str | None = None
    jobs: int = field(default_factory=_default_jobs)
    excludes: list[str] = field(default_factory=list)
    inspect: bool = False
    verbose: bool = False
    log_level: str = "INFO"
    probe_timeout: float = 30.0
    cscope_command: list[str] = field(default_factory=lambda: ["cscope", "-bqki", "-"])
    ctags_candidates: list[str] = field(default_factory=lambda: ["uctags", "ectags", "ctags"])
    ctags_args: list[str] = field(
        default_factory=lambda: ["-L", "-", "--extra=+q", "--fields=+i"]
    )

    @property
    def debug(self) -> bool:
        return self.log_level == "DEBUG"


def load_config(project_dir: Path) -> ScopeConfig:
    """Load configuration from env vars, project config, and global config.

    Priority: env vars > .tagscope.toml > ~/.config/tagscope/config.toml

    Args:
        project_dir: Directory searched for .tagscope.toml.

    Returns:
        A fully resolved ScopeConfig instance.

    Raises:
        ConfigError: If a setting has an invalid value.
    """
    config = ScopeConfig()

    # Layer 1: Global config (lowest priority)
    _apply_toml(config, _load_toml(_GLOBAL_CONFIG_PATH))

    # Layer 2: Project config
    _apply_toml(config, _load_toml(project_dir / _PROJECT_CONFIG_NAME))

    # Layer 3: Environment variables (highest priority)
    _apply_env(config)

    validate_config(config)
    return config


def validate_config(config: ScopeConfig) -> None:
    """Reject settings the pipeline cannot run with.

    Raises:
        ConfigError: If jobs or probe_timeout is out of range.
    """
    if config.jobs < 1:
        raise ConfigError(f"jobs must be at least 1, got {config.jobs}")
    if config.probe_timeout <= 0:
        raise ConfigError(f"probe_timeout must be positive, got {config.probe_timeout}")
    if not config.cscope_command:
        raise ConfigError("cscope_command must not be empty")


def make_excludes(excludes: list[str] | None) -> tuple[str, ...]:
    """Merge user exclude substrings with the built-in ones.

    Empty entries are dropped, since an empty substring would match every path.
    """
    result = [x for x in (excludes or []) if x]
    for x in DEFAULT_EXCLUDES:
        if x not in result:
            result.append(x)
    return tuple(result)


def split_csv(values: list[str] | str | None) -> list[str]:
    """Flatten one or more comma-separated strings into a list."""
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    return [part.strip() for value in values for part in value.split(",") if part.strip()]


def _load_toml(path: Path) -> dict[str, Any]:
    """Load a TOML file, returning an empty dict if missing or invalid."""
    if not path.is_file():
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (tomllib.TOMLDecodeError, OSError) as exc:
        console.print(f"[yellow]Warning:[/yellow] Could not parse {path}: {exc}")
        return {}


def _as_int(key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from exc


def _as_float(key: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number, got {value!r}") from exc


def _as_str_list(key: str, value: Any, csv: bool = False) -> list[str]:
    """Accept a list of strings, or with csv=True also one comma-separated string."""
    if csv and isinstance(value, str):
        return split_csv(value)
    if not isinstance(value, list) or not all(isinstance(x, str) for x in value):
        expected = "a list of strings or a comma-separated string" if csv else "a list of strings"
        raise ConfigError(f"{key} must be {expected}, got {value!r}")
    return split_csv(value) if csv else list(value)


def _apply_toml(config: ScopeConfig, settings: dict[str, Any]) -> None:
    """Merge TOML settings into a ScopeConfig."""
    if "classifier" in settings:
        config.classifier = str(settings["classifier"]) or None
    if "jobs" in settings:
        config.jobs = _as_int("jobs", settings["jobs"])
    if "excludes" in settings:
        config.excludes = _as_str_list("excludes", settings["excludes"], csv=True)
    if "verbose" in settings:
        config.verbose = bool(settings["verbose"])
    if "log_level" in settings:
        config.log_level = str(settings["log_level"]).upper()
    if "probe_timeout" in settings:
        config.probe_timeout = _as_float("probe_timeout", settings["probe_timeout"])
    if "cscope_command" in settings:
        config.cscope_command = _as_str_list("cscope_command", settings["cscope_command"])
    if "ctags_candidates" in settings:
        config.ctags_candidates = _as_str_list("ctags_candidates", settings["ctags_candidates"])
    if "ctags_args" in settings:
        config.ctags_args = _as_str_list("ctags_args", settings["ctags_args"])


def _apply_env(config: ScopeConfig) -> None:
    """Override config with environment variables where set."""
    if classifier := os.environ.get("TAGSCOPE_CLASSIFIER"):
        config.classifier = classifier
    if jobs := os.environ.get("TAGSCOPE_JOBS"):
        config.jobs = _as_int("TAGSCOPE_JOBS", jobs)
    if excludes := os.environ.get("TAGSCOPE_EXCLUDES"):
        config.excludes = split_csv(excludes)
    if log_level := os.environ.get("TAGSCOPE_LOG_LEVEL"):
        config.log_level = log_level.upper()
    if timeout := os.environ.get("TAGSCOPE_PROBE_TIMEOUT"):
        config.probe_timeout = _as_float("TAGSCOPE_PROBE_TIMEOUT", timeout)
