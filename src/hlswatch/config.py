"""Configuration loading utilities for the HLS watcher."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Optional

import yaml  # type: ignore

from .filters import DEFAULT_EXTENSIONS
from .jobs import DEFAULT_CAPACITY
from .server import DEFAULT_HOST, DEFAULT_PORT
from .sweeper import DEFAULT_SWEEP_INTERVAL
from .transcoder import DEFAULT_BINARY, DEFAULT_SEGMENT_SECONDS

logger = logging.getLogger(__name__)

SOURCE_ENV = "SRC_DIR"
DESTINATION_ENV = "DST_DIR"


class ConfigError(Exception):
    """Raised when the configuration is missing or invalid."""


@dataclass
class WatchConfig:
    """Where to watch, where to write, and how the pipeline is sized."""

    source_dir: Path
    destination_dir: Path
    extensions: List[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    queue_capacity: int = DEFAULT_CAPACITY
    sweep_interval: float = DEFAULT_SWEEP_INTERVAL
    workers: int = 1


@dataclass
class TranscoderConfig:
    """Options for the ffmpeg invocations."""

    binary: str = DEFAULT_BINARY
    segment_seconds: int = DEFAULT_SEGMENT_SECONDS
    thumbnails: bool = True
    pages: bool = True


@dataclass
class ServeConfig:
    """Optional static HTTP server for the destination tree."""

    enabled: bool = False
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass
class AppConfig:
    """Top-level configuration structure."""

    watch: WatchConfig
    transcoder: TranscoderConfig = field(default_factory=TranscoderConfig)
    serve: ServeConfig = field(default_factory=ServeConfig)


def load_config(path: Path) -> AppConfig:
    """Load and validate the YAML configuration file."""

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:  # pragma: no cover - logging helper
        raise ConfigError(f"Failed to parse YAML configuration: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    watch_cfg = _parse_watch_config(data.get("watch"), base_dir=path.parent)
    transcoder_cfg = _parse_transcoder_config(data.get("transcoder"))
    serve_cfg = _parse_serve_config(data.get("serve"))

    logger.info("Loaded configuration from %s", path)
    return AppConfig(watch=watch_cfg, transcoder=transcoder_cfg, serve=serve_cfg)


def config_from_env(environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Build a configuration from ``SRC_DIR`` and ``DST_DIR``."""

    env = os.environ if environ is None else environ
    source = env.get(SOURCE_ENV, "")
    if not source:
        raise ConfigError(f"{SOURCE_ENV} is required")
    destination = env.get(DESTINATION_ENV, "")
    if not destination:
        raise ConfigError(f"{DESTINATION_ENV} is required")

    source_dir = Path(source).resolve()
    destination_dir = Path(destination).resolve()
    if source_dir == destination_dir:
        raise ConfigError(f"{SOURCE_ENV} and {DESTINATION_ENV} must differ")

    return AppConfig(watch=WatchConfig(source_dir=source_dir, destination_dir=destination_dir))


def _parse_watch_config(raw: Any, *, base_dir: Path) -> WatchConfig:
    if not isinstance(raw, dict):
        raise ConfigError("'watch' section must be a mapping")

    source_dir = _parse_dir(raw.get("source_dir"), "watch.source_dir", base_dir=base_dir)
    destination_dir = _parse_dir(raw.get("destination_dir"), "watch.destination_dir", base_dir=base_dir)
    if source_dir == destination_dir:
        raise ConfigError("watch.source_dir and watch.destination_dir must differ")

    extensions = _ensure_str_list(raw.get("extensions", list(DEFAULT_EXTENSIONS)), "watch.extensions")
    if not extensions:
        raise ConfigError("watch.extensions must list at least one extension")

    return WatchConfig(
        source_dir=source_dir,
        destination_dir=destination_dir,
        extensions=extensions,
        queue_capacity=_positive_int(raw.get("queue_capacity", DEFAULT_CAPACITY), "watch.queue_capacity"),
        sweep_interval=_positive_float(raw.get("sweep_interval", DEFAULT_SWEEP_INTERVAL), "watch.sweep_interval"),
        workers=_positive_int(raw.get("workers", 1), "watch.workers"),
    )


def _parse_transcoder_config(raw: Any) -> TranscoderConfig:
    if raw is None:
        return TranscoderConfig()
    if not isinstance(raw, dict):
        raise ConfigError("'transcoder' section must be a mapping")

    binary = raw.get("binary", DEFAULT_BINARY)
    if not isinstance(binary, str) or not binary:
        raise ConfigError("transcoder.binary must be a non-empty string")

    return TranscoderConfig(
        binary=binary,
        segment_seconds=_positive_int(
            raw.get("segment_seconds", DEFAULT_SEGMENT_SECONDS), "transcoder.segment_seconds"
        ),
        thumbnails=_bool(raw.get("thumbnails", True), "transcoder.thumbnails"),
        pages=_bool(raw.get("pages", True), "transcoder.pages"),
    )


def _parse_serve_config(raw: Any) -> ServeConfig:
    if raw is None:
        return ServeConfig()
    if not isinstance(raw, dict):
        raise ConfigError("'serve' section must be a mapping")

    host = raw.get("host", DEFAULT_HOST)
    if not isinstance(host, str):
        raise ConfigError("serve.host must be a string")
    port = _positive_int(raw.get("port", DEFAULT_PORT), "serve.port")
    if port > 65535:
        raise ConfigError("serve.port must be between 1 and 65535")

    return ServeConfig(enabled=_bool(raw.get("enabled", False), "serve.enabled"), host=host, port=port)


def _parse_dir(value: Any, field_name: str, *, base_dir: Path) -> Path:
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{field_name} is required and must be a string")
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return path


def _positive_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{field_name} must be an integer")
    if value <= 0:
        raise ConfigError(f"{field_name} must be positive")
    return value


def _positive_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{field_name} must be numeric")
    try:
        result = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be numeric") from exc
    if result <= 0:
        raise ConfigError(f"{field_name} must be positive")
    return result


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{field_name} must be a boolean")
    return value


def _ensure_str_list(value: Any, field_name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigError(f"{field_name} must be a list of strings")
    items: List[str] = []
    for elem in value:
        if not isinstance(elem, str):
            raise ConfigError(f"{field_name} must contain only strings")
        items.append(elem)
    return items
