"""YAML config loader with validation, defaults and file watching.

Loads engine configuration from YAML, merges it over built-in defaults,
validates value ranges, and supports mtime-based hot reload so the runner
can pick up a new clearing failure rate without a restart.
"""

import copy
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from ledgerview.src.lib.logging_config import LOG_LEVELS, get_logger

logger = get_logger("config_loader")

DEFAULT_CONFIG: dict[str, Any] = {
    "ledger": {
        "seed_count": 50,
        "high_value_threshold": 10_000,
        "strict_invariants": False,
    },
    "feed": {
        "interval_seconds": 2.0,
    },
    "clearing": {
        "delay_seconds": 1.5,
        "failure_rate": 0.10,
    },
    "runtime": {
        "seed": None,
        "log_level": "INFO",
    },
}


@dataclass(frozen=True)
class EngineSettings:
    """Typed view of the configuration used to build a ledger session.

    Attributes:
        seed_count: Number of transactions seeded into the store at start.
        high_value_threshold: Amounts above this are compliance locked.
        strict_invariants: Raise on consistency faults instead of pruning.
        feed_interval_seconds: Cadence of the feed producer.
        clearing_delay_seconds: Fixed latency of one clearing batch.
        failure_rate: Probability that an eligible clear fails.
        seed: Random seed, or None for a fresh one.
        log_level: Logging level name.
    """

    seed_count: int = 50
    high_value_threshold: int = 10_000
    strict_invariants: bool = False
    feed_interval_seconds: float = 2.0
    clearing_delay_seconds: float = 1.5
    failure_rate: float = 0.10
    seed: int | None = None
    log_level: str = "INFO"

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "EngineSettings":
        """Build settings from a validated configuration dictionary."""
        return cls(
            seed_count=config["ledger"]["seed_count"],
            high_value_threshold=config["ledger"]["high_value_threshold"],
            strict_invariants=config["ledger"]["strict_invariants"],
            feed_interval_seconds=float(config["feed"]["interval_seconds"]),
            clearing_delay_seconds=float(config["clearing"]["delay_seconds"]),
            failure_rate=float(config["clearing"]["failure_rate"]),
            seed=config["runtime"]["seed"],
            log_level=config["runtime"]["log_level"],
        )


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Path) -> dict[str, Any]:
    """Load and validate configuration from a YAML file.

    Sections or keys missing from the file fall back to DEFAULT_CONFIG.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Parsed configuration dictionary merged over the defaults.

    Raises:
        FileNotFoundError: If config file does not exist.
        ValueError: If the file is not valid YAML or a value is out of range.
    """
    if not config_path.exists():
        msg = f"Config file not found: {config_path}"
        raise FileNotFoundError(msg)

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        msg = f"Config file {config_path} is not valid YAML: {e}"
        raise ValueError(msg) from e

    if not isinstance(raw, dict):
        msg = f"Config root must be a mapping, got {type(raw).__name__}"
        raise ValueError(msg)

    config = _merge(DEFAULT_CONFIG, raw)
    _validate_config(config)
    return config


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def _validate_config(config: dict[str, Any]) -> None:
    """Validate configuration values.

    Args:
        config: Configuration dictionary to validate.

    Raises:
        ValueError: If any config value is invalid.
    """
    ledger = config["ledger"]

    seed_count = ledger["seed_count"]
    if not isinstance(seed_count, int) or isinstance(seed_count, bool) or seed_count < 0:
        msg = f"Seed count must be a non-negative integer, got {seed_count}"
        raise ValueError(msg)

    threshold = ledger["high_value_threshold"]
    if not isinstance(threshold, int) or isinstance(threshold, bool) or threshold < 0:
        msg = f"High-value threshold must be a non-negative integer, got {threshold}"
        raise ValueError(msg)

    if not isinstance(ledger["strict_invariants"], bool):
        msg = f"strict_invariants must be a boolean, got {ledger['strict_invariants']}"
        raise ValueError(msg)

    interval = config["feed"]["interval_seconds"]
    if not _is_positive_number(interval):
        msg = f"Feed interval must be a positive number of seconds, got {interval}"
        raise ValueError(msg)

    delay = config["clearing"]["delay_seconds"]
    if not _is_positive_number(delay):
        msg = f"Clearing delay must be a positive number of seconds, got {delay}"
        raise ValueError(msg)

    rate = config["clearing"]["failure_rate"]
    if not isinstance(rate, (int, float)) or isinstance(rate, bool) or rate < 0 or rate > 1:
        msg = f"Failure rate must be between 0 and 1, got {rate}"
        raise ValueError(msg)

    seed = config["runtime"]["seed"]
    if seed is not None and (not isinstance(seed, int) or isinstance(seed, bool)):
        msg = f"Seed must be an integer or null, got {seed}"
        raise ValueError(msg)

    level = config["runtime"]["log_level"]
    if not isinstance(level, str) or level.upper() not in LOG_LEVELS:
        msg = f"Log level must be one of {list(LOG_LEVELS)}, got {level}"
        raise ValueError(msg)


def default_config() -> dict[str, Any]:
    """Return a fresh copy of the built-in configuration."""
    return copy.deepcopy(DEFAULT_CONFIG)


class ConfigWatcher:
    """Hot-reload source for one YAML config file.

    The runner calls ``poll()`` on every loop iteration; the file is only
    stat'ed once per ``poll_interval`` seconds of the supplied clock. When
    a reload finds the file missing, unparsable or invalid, the failure is
    logged and the last good configuration stays in effect.

    Attributes:
        path: Watched config file.
        poll_interval: Minimum seconds between two stat calls in ``poll()``.
        reloads: Number of successful loads, the initial one included.
    """

    def __init__(
        self,
        path: Path,
        poll_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.path = Path(path)
        self.poll_interval = poll_interval
        self.reloads = 0
        self._clock = clock
        self._last_poll = clock()
        self._last_mtime = self._stat_mtime()
        self._cached_config: dict[str, Any] | None = None

    def _stat_mtime(self) -> float:
        try:
            return self.path.stat().st_mtime
        except OSError:
            return 0.0

    def has_changed(self) -> bool:
        """Whether the file's mtime differs from the one last loaded."""
        return self._stat_mtime() != self._last_mtime

    def get_config(self) -> dict[str, Any]:
        """Return the current configuration, reloading it if the file changed.

        Returns:
            The cached configuration, or a freshly loaded one.

        Raises:
            ValueError: If the very first load is invalid.
            FileNotFoundError: If the very first load finds no file.
        """
        if self._cached_config is not None and not self.has_changed():
            return self._cached_config

        mtime = self._stat_mtime()
        try:
            config = load_config(self.path)
        except (ValueError, FileNotFoundError):
            if self._cached_config is None:
                raise
            logger.warning(
                "Ignoring invalid config reload from %s", self.path, exc_info=True,
            )
        else:
            self._cached_config = config
            self.reloads += 1
            logger.info("Config loaded from %s", self.path)
        self._last_mtime = mtime
        return self._cached_config

    def poll(self) -> dict[str, Any] | None:
        """Rate-limited change check for the runner loop.

        Returns:
            The newly loaded configuration if the file changed and the new
            contents are valid, otherwise None.
        """
        now = self._clock()
        if now - self._last_poll < self.poll_interval:
            return None
        self._last_poll = now

        if not self.has_changed():
            return None
        before = self._cached_config
        config = self.get_config()
        return None if config is before else config
