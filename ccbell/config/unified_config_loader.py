"""
Unified configuration loader for ccbell

Reads unified_config.yaml and turns each section into typed dataclasses and
core definitions (thresholds, pools, chains). Mistakes are reported as
ConfigError naming the offending path, at load time rather than mid-alert.
"""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass, field
from datetime import time as dtime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ccbell.errors import CcbellError
from ccbell.modules.sound_resolution import (
    ChainDefinition,
    ChainStep,
    PoolEntry,
    SelectionMode,
    SoundPool,
    TimeWindow,
)
from ccbell.modules.transition_detection import (
    CategoricalWatch,
    NumericThresholds,
    ThresholdSpec,
    TransitionTier,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path(__file__).resolve().parent / "unified_config.yaml"


class ConfigError(CcbellError):
    """Configuration file is missing, unreadable or invalid."""


@dataclass
class AppConfig:
    name: str = "ccbell"
    version: str = "0.3.0"
    debug: bool = False


@dataclass
class LoggingConfig:
    level: str = "INFO"
    dir: Optional[str] = None
    file: str = "ccbell.log"
    error_file: str = "errors.log"
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 3
    console: bool = True
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class PlaybackConfig:
    enabled: bool = True
    player: Optional[str] = None
    max_queue: int = 32
    play_timeout_sec: Optional[float] = 30.0
    bundled_dir: Optional[str] = None


@dataclass
class MonitorConfig:
    """Thresholds and alert sounds for every key matching the glob pattern"""

    key: str
    threshold: ThresholdSpec
    sounds: Dict[TransitionTier, str] = field(default_factory=dict)
    volume: float = 1.0
    enabled: bool = True

    def matches(self, key: str) -> bool:
        return fnmatch.fnmatchcase(key, self.key)


@dataclass
class CcbellConfig:
    app: AppConfig = field(default_factory=AppConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    cooldowns: Dict[TransitionTier, float] = field(default_factory=dict)
    sounds: Dict[str, str] = field(default_factory=dict)
    pools: Dict[str, SoundPool] = field(default_factory=dict)
    chains: Dict[str, ChainDefinition] = field(default_factory=dict)
    monitors: List[MonitorConfig] = field(default_factory=list)

    def monitor_for(self, key: str) -> Optional[MonitorConfig]:
        """First enabled monitor whose pattern matches the key."""
        for monitor in self.monitors:
            if monitor.enabled and monitor.matches(key):
                return monitor
        return None

    def threshold_for(self, key: str) -> Optional[ThresholdSpec]:
        monitor = self.monitor_for(key)
        return monitor.threshold if monitor else None

    def cooldown_for(self, tier: TransitionTier) -> float:
        return self.cooldowns.get(tier, 0.0)


# ----------------------------------------------------------------------
# Section parsers
# ----------------------------------------------------------------------

def _section(data: Dict[str, Any], name: str, kind=dict):
    value = data.get(name)
    if value is None:
        return kind()
    if not isinstance(value, kind):
        raise ConfigError(f"'{name}' must be a {kind.__name__}")
    return value


def _parse_tier(name: str, where: str) -> TransitionTier:
    try:
        return TransitionTier(name)
    except ValueError:
        allowed = ", ".join(t.value for t in TransitionTier)
        raise ConfigError(f"{where}: unknown tier '{name}' (expected one of: {allowed})") from None


def _parse_clock(text: str, where: str) -> dtime:
    try:
        hours, minutes = str(text).split(":")
        return dtime(int(hours), int(minutes))
    except ValueError:
        raise ConfigError(f"{where}: invalid time '{text}', expected HH:MM") from None


def _parse_window(text: Optional[str], where: str) -> Optional[TimeWindow]:
    if text is None:
        return None
    start, sep, end = str(text).partition("-")
    if not sep:
        raise ConfigError(f"{where}: invalid window '{text}', expected HH:MM-HH:MM")
    return TimeWindow(_parse_clock(start.strip(), where), _parse_clock(end.strip(), where))


def parse_pool(pool_id: str, data: Dict[str, Any]) -> SoundPool:
    where = f"pools.{pool_id}"
    try:
        mode = SelectionMode(data.get("mode", SelectionMode.UNIFORM.value))
    except ValueError:
        raise ConfigError(f"{where}.mode: unknown selection mode '{data.get('mode')}'") from None

    raw_entries = data.get("entries") or []
    if not raw_entries:
        raise ConfigError(f"{where}: pool needs at least one entry")

    entries = []
    for i, raw in enumerate(raw_entries):
        if isinstance(raw, str):
            raw = {"sound": raw}
        if "sound" not in raw:
            raise ConfigError(f"{where}.entries[{i}]: missing 'sound'")
        weight = float(raw.get("weight", 1.0))
        if weight < 0:
            raise ConfigError(f"{where}.entries[{i}]: weight must not be negative")
        entries.append(PoolEntry(
            sound_ref=str(raw["sound"]),
            weight=weight,
            time_window=_parse_window(raw.get("window"), f"{where}.entries[{i}].window"),
        ))

    return SoundPool(
        pool_id=pool_id,
        entries=tuple(entries),
        mode=mode,
        remember_last=bool(data.get("remember_last", False)),
    )


def parse_chain(chain_id: str, data: Dict[str, Any]) -> ChainDefinition:
    where = f"chains.{chain_id}"
    raw_steps = data.get("steps") or []
    if not raw_steps:
        raise ConfigError(f"{where}: chain needs at least one step")

    steps = []
    for i, raw in enumerate(raw_steps):
        if isinstance(raw, str):
            raw = {"sound": raw}
        if "sound" not in raw:
            raise ConfigError(f"{where}.steps[{i}]: missing 'sound'")
        delay = int(raw.get("delay_before_ms", 0))
        post = int(raw.get("post_duration_ms", 0))
        if delay < 0 or post < 0:
            raise ConfigError(f"{where}.steps[{i}]: delays must not be negative")
        steps.append(ChainStep(
            sound_ref=str(raw["sound"]),
            delay_before_ms=delay,
            post_duration_ms=post,
            volume=float(raw.get("volume", 1.0)),
            required=bool(raw.get("required", False)),
            condition=raw.get("condition"),
        ))

    repeat_count = int(data.get("repeat_count", 0))
    if repeat_count < 0:
        raise ConfigError(f"{where}.repeat_count must not be negative")
    return ChainDefinition(
        chain_id=chain_id,
        steps=tuple(steps),
        loop=bool(data.get("loop", False)),
        repeat_count=repeat_count,
    )


def parse_monitor(index: int, data: Dict[str, Any]) -> MonitorConfig:
    where = f"monitors[{index}]"
    key = data.get("key")
    if not key:
        raise ConfigError(f"{where}: missing 'key'")

    threshold: ThresholdSpec
    if "watch" in data:
        watch = data.get("watch") or []
        if not isinstance(watch, list):
            raise ConfigError(f"{where}.watch must be a list")
        threshold = CategoricalWatch(values=frozenset(watch))
    else:
        threshold = NumericThresholds(
            warning=data.get("warning"),
            critical=data.get("critical"),
            hysteresis_margin=float(data.get("hysteresis_margin", 0.0)),
            leak_window=data.get("leak_window"),
        )
        if not threshold.is_valid():
            raise ConfigError(f"{where}: invalid thresholds for '{key}'")

    sounds = {
        _parse_tier(tier, f"{where}.sounds"): str(ref)
        for tier, ref in (data.get("sounds") or {}).items()
    }
    return MonitorConfig(
        key=str(key),
        threshold=threshold,
        sounds=sounds,
        volume=float(data.get("volume", 1.0)),
        enabled=bool(data.get("enabled", True)),
    )


def parse_config(data: Optional[Dict[str, Any]]) -> CcbellConfig:
    """Build a CcbellConfig from already-parsed YAML data."""
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError("configuration root must be a mapping")

    app = _section(data, "app")
    log = _section(data, "logging")
    playback = _section(data, "playback")

    return CcbellConfig(
        app=AppConfig(
            name=app.get("name", "ccbell"),
            version=str(app.get("version", "0.3.0")),
            debug=bool(app.get("debug", False)),
        ),
        logging=LoggingConfig(**{k: v for k, v in log.items() if k in LoggingConfig.__dataclass_fields__}),
        playback=PlaybackConfig(**{k: v for k, v in playback.items() if k in PlaybackConfig.__dataclass_fields__}),
        cooldowns={
            _parse_tier(tier, "cooldowns"): float(seconds)
            for tier, seconds in _section(data, "cooldowns").items()
        },
        sounds={str(k): str(v) for k, v in _section(data, "sounds").items()},
        pools={pid: parse_pool(pid, body or {}) for pid, body in _section(data, "pools").items()},
        chains={cid: parse_chain(cid, body or {}) for cid, body in _section(data, "chains").items()},
        monitors=[parse_monitor(i, m or {}) for i, m in enumerate(_section(data, "monitors", list))],
    )


class UnifiedConfigLoader:
    """YAML loader with mtime-based reload"""

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        self.config_file = Path(config_file) if config_file else DEFAULT_CONFIG_FILE
        self._config_cache: Optional[Dict[str, Any]] = None
        self._last_modified: Optional[float] = None

    def _load_config(self) -> Dict[str, Any]:
        if self._config_cache is None or self._is_config_modified():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    self._config_cache = yaml.safe_load(f) or {}
            except FileNotFoundError:
                raise ConfigError(f"config file not found: {self.config_file}") from None
            except yaml.YAMLError as e:
                raise ConfigError(f"invalid YAML in {self.config_file}: {e}") from e
            self._last_modified = self.config_file.stat().st_mtime
        return self._config_cache

    def _is_config_modified(self) -> bool:
        if not self.config_file.exists():
            return True
        current_mtime = self.config_file.stat().st_mtime
        return self._last_modified is None or current_mtime > self._last_modified

    def reload(self):
        self._config_cache = None
        self._last_modified = None

    def load(self) -> CcbellConfig:
        config = parse_config(self._load_config())
        logger.info(
            f"[CONFIG] loaded {self.config_file.name}: {len(config.monitors)} monitor(s), "
            f"{len(config.pools)} pool(s), {len(config.chains)} chain(s)"
        )
        return config

    def get_playback_config(self) -> PlaybackConfig:
        return self.load().playback

    def get_logging_config(self) -> LoggingConfig:
        return self.load().logging
