"""Configuration loader: YAML file with environment variable fallbacks."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_FRAMES: list[str] = ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"]


@dataclass
class SpinnerConfig:
    interval: float = 0.1  # seconds between frames
    frames: list[str] = field(default_factory=lambda: list(DEFAULT_FRAMES))
    show_elapsed: bool = True
    color: str = "#5fd7ff"  # soft blue


@dataclass
class HistoryConfig:
    max_entries: int = 1000


@dataclass
class ConsoleConfig:
    spinner: SpinnerConfig = field(default_factory=SpinnerConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    debug: bool = False  # log and echo mode transitions
    interrupt_main: bool = True  # Ctrl-C during a spinner interrupts the main thread
    log_file: str = ""


def _resolve_data_dir() -> Path:
    return Path.home() / ".foyer"


def _get_config_path(data_dir: Path | None = None) -> Path:
    if data_dir:
        return data_dir / "config.yaml"
    return _resolve_data_dir() / "config.yaml"


def _as_bool(value: Any) -> bool:
    return str(value).lower() not in ("false", "0", "no", "")


def _clamped_float(raw: Any, default: float, lo: float, hi: float) -> float:
    try:
        return max(lo, min(hi, float(raw)))
    except (ValueError, TypeError):
        return default


def _clamped_int(raw: Any, default: int, lo: int, hi: int) -> int:
    try:
        return max(lo, min(hi, int(raw)))
    except (ValueError, TypeError):
        return default


def load_config(config_path: Path | None = None) -> ConsoleConfig:
    raw: dict[str, Any] = {}
    path = config_path or _get_config_path()

    if path.exists():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}

    spinner_raw = raw.get("spinner", {}) or {}
    interval = _clamped_float(
        os.environ.get("FOYER_SPINNER_INTERVAL", spinner_raw.get("interval", 0.1)),
        0.1,
        0.02,
        1.0,
    )
    frames = spinner_raw.get("frames") or list(DEFAULT_FRAMES)
    if isinstance(frames, str):
        frames = list(frames)
    frames = [str(f) for f in frames if str(f)] or list(DEFAULT_FRAMES)
    show_elapsed = _as_bool(os.environ.get("FOYER_SHOW_ELAPSED", spinner_raw.get("show_elapsed", True)))
    color = str(spinner_raw.get("color", "") or SpinnerConfig.color)
    spinner = SpinnerConfig(interval=interval, frames=frames, show_elapsed=show_elapsed, color=color)

    history_raw = raw.get("history", {}) or {}
    max_entries = _clamped_int(
        os.environ.get("FOYER_HISTORY_MAX", history_raw.get("max_entries", 1000)),
        1000,
        1,
        100_000,
    )
    history = HistoryConfig(max_entries=max_entries)

    debug = _as_bool(os.environ.get("FOYER_DEBUG", raw.get("debug", False)))
    interrupt_main = _as_bool(raw.get("interrupt_main", True))
    log_file = os.environ.get("FOYER_LOG_FILE") or str(raw.get("log_file", "") or "")

    return ConsoleConfig(
        spinner=spinner,
        history=history,
        debug=debug,
        interrupt_main=interrupt_main,
        log_file=log_file,
    )
