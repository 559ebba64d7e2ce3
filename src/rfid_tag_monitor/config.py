"""
RFID Tag Monitor configuration.

The broker address comes from the command line; everything else may also come
from environment variables, optionally loaded from standard env files.

Priority (lowest -> highest):
1) /etc/rfid-tag-monitor/monitor.env (system install)
2) ~/.config/rfid-tag-monitor/.env (user install)
3) ./.env (project override)
4) process environment variables
5) command-line arguments (always win)
"""

from __future__ import annotations

import math
import os
import sys
import uuid
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version as _pkg_version
from pathlib import Path
from typing import Iterable, Optional

from rfid_tag_monitor.tag_topics import TopicError, subscription_topic

DEFAULT_PORT = 1883
DEFAULT_RETRY_DELAY_S = 5.0
DEFAULT_KEEPALIVE_S = 60


class ConfigError(ValueError):
    """Raised when configuration is missing or invalid."""


def package_version() -> str:
    try:
        return _pkg_version("rfid-tag-monitor")
    except PackageNotFoundError:
        return "0.0.0+dev"


def _env_paths() -> Iterable[Path]:
    # 1) system install
    yield Path("/etc/rfid-tag-monitor/monitor.env")

    # 2) user config dir
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", str(Path.home())))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
    yield base / "rfid-tag-monitor" / ".env"

    # 3) project override
    yield Path(".env")


def _optional_env(key: str) -> Optional[str]:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _parse_int(key: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid integer for {key}: {raw!r}") from exc


def _parse_float(key: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid number for {key}: {raw!r}") from exc


@dataclass(frozen=True, slots=True)
class MonitorConfig:
    mqtt_host: str
    mqtt_port: int
    topic: str
    bac_name: Optional[str]
    retry_delay_s: float
    keepalive_s: int
    client_id: str
    version: str


def load_env_files() -> None:
    """Load the standard env files into os.environ without overriding existing variables."""
    from dotenv import load_dotenv

    for p in _env_paths():
        if p.is_file():
            # do not override existing env vars; later files can fill missing
            load_dotenv(p, override=False)


def load_config(
    server: str,
    port: Optional[int] = None,
    *,
    bac_name: Optional[str] = None,
    retry_delay_s: Optional[float] = None,
    dotenv_enabled: bool = True,
) -> MonitorConfig:
    """
    Build the monitor config from CLI values, env vars and env files.

    Returns an immutable MonitorConfig. Raises ConfigError on failure.
    """
    if dotenv_enabled:
        load_env_files()

    host = (server or "").strip()
    if not host:
        raise ConfigError("Server address must be a non-empty string")

    if port is None:
        raw_port = _optional_env("RFID_MQTT_PORT")
        port = _parse_int("RFID_MQTT_PORT", raw_port) if raw_port else DEFAULT_PORT
    if not (1 <= port <= 65535):
        raise ConfigError(f"MQTT port out of range: {port}")

    if bac_name is None:
        bac_name = _optional_env("RFID_BAC_NAME")
    try:
        topic = subscription_topic(bac_name)
    except TopicError as exc:
        raise ConfigError(f"Invalid BAC name: {exc}") from exc

    if retry_delay_s is None:
        raw_delay = _optional_env("RFID_RETRY_DELAY_S")
        retry_delay_s = (
            _parse_float("RFID_RETRY_DELAY_S", raw_delay) if raw_delay else DEFAULT_RETRY_DELAY_S
        )
    if not math.isfinite(retry_delay_s) or not retry_delay_s > 0:
        raise ConfigError("RFID_RETRY_DELAY_S must be a finite number > 0")

    raw_keepalive = _optional_env("RFID_KEEPALIVE_S")
    keepalive_s = (
        _parse_int("RFID_KEEPALIVE_S", raw_keepalive) if raw_keepalive else DEFAULT_KEEPALIVE_S
    )
    if keepalive_s <= 0:
        raise ConfigError("RFID_KEEPALIVE_S must be > 0")

    client_id = _optional_env("RFID_CLIENT_ID") or f"rfid-tag-monitor-{uuid.uuid4().hex[:12]}"

    return MonitorConfig(
        mqtt_host=host,
        mqtt_port=port,
        topic=topic,
        bac_name=bac_name,
        retry_delay_s=float(retry_delay_s),
        keepalive_s=keepalive_s,
        client_id=client_id,
        version=package_version(),
    )
