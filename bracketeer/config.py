"""
Configuration loading from config.yaml.

Uses typed dataclasses throughout so the rest of the app gets IDE
completion and type-checker support without touching raw dicts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class EngineConfig:
    max_capacity: int = 64
    min_roster_size: int = 1
    lock_timeout: float = 5.0     # seconds to wait for a tournament's critical section
    auto_generate_bracket: bool = False


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: str = "./logs/bracketeer.log"

    @property
    def level_number(self) -> int:
        return logging.getLevelName(self.level)

    @property
    def file_path(self) -> Path:
        return Path(self.file)


@dataclass
class Config:
    engine: EngineConfig = field(default_factory=EngineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: str | Path = "config.yaml") -> Config:
    """
    Load and validate config.yaml.

    Raises:
        FileNotFoundError: config.yaml is missing.
        ValueError: required fields are absent or invalid.
    """
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {cfg_path.resolve()}\n"
            "Copy config.example.yaml to config.yaml and adjust it."
        )

    with cfg_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    try:
        engine_raw = raw.get("engine") or {}
        engine_cfg = EngineConfig(
            max_capacity=int(engine_raw.get("max_capacity", 64)),
            min_roster_size=int(engine_raw.get("min_roster_size", 1)),
            lock_timeout=float(engine_raw.get("lock_timeout", 5.0)),
            auto_generate_bracket=bool(engine_raw.get("auto_generate_bracket", False)),
        )

        logging_raw = raw.get("logging") or {}
        logging_cfg = LoggingConfig(
            level=str(logging_raw.get("level", "INFO")).upper(),
            file=str(logging_raw.get("file", "./logs/bracketeer.log")),
        )

        config = Config(engine=engine_cfg, logging=logging_cfg)
        _validate(config)
        return config

    except (AttributeError, KeyError, TypeError) as exc:
        raise ValueError(f"Invalid config.yaml structure: {exc}") from exc


def _validate(config: Config) -> None:
    if config.engine.max_capacity < 2:
        raise ValueError("engine.max_capacity must be >= 2")
    if config.engine.min_roster_size < 0:
        raise ValueError("engine.min_roster_size must be >= 0")
    if config.engine.lock_timeout <= 0:
        raise ValueError("engine.lock_timeout must be > 0")
    if config.logging.level not in _LOG_LEVELS:
        raise ValueError(
            f"logging.level must be one of {_LOG_LEVELS}, got '{config.logging.level}'"
        )
