"""Configuration loader for fleetrun."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigLoadError, PayloadReadError

DEFAULT_TEMPLATES_DIR = "templates"
DEFAULT_TIMEOUT = 10.0


@dataclass
class Settings:
    """Resolved settings for one run."""

    payload_script_path: Path
    credential: str
    fleet_file_path: Path
    log_file_path: Path
    connect_timeout: float = DEFAULT_TIMEOUT
    max_parallel: int | None = None
    source_path: Path | None = None  # Path to the original config file


def load_config(config_path: str | Path) -> Settings:
    """Load and validate settings from a YAML file."""
    config_path = Path(config_path)

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ConfigLoadError(f"Failed to read config file {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"YAML parse error in {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigLoadError(f"Config file {config_path} must contain a mapping")

    settings = _parse_settings(raw)
    settings.source_path = config_path.resolve()
    return settings


def _require_str(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value:
        raise ConfigLoadError(f"Config must have a non-empty '{key}' field")
    return value


def _parse_settings(raw: dict[str, Any]) -> Settings:
    """Parse raw YAML data into a Settings object."""
    script = _require_str(raw, "script")
    password = raw.get("password")
    if password is None:
        raise ConfigLoadError("Config must have a 'password' field")
    hosts_file = _require_str(raw, "hosts_file")
    log_file = _require_str(raw, "log_file")

    # Scripts live under the templates directory, relative to the working directory
    templates_dir = Path(raw.get("templates_dir") or DEFAULT_TEMPLATES_DIR).expanduser()

    timeout = raw.get("timeout", DEFAULT_TIMEOUT)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigLoadError(f"'timeout' must be a positive number, got {timeout!r}")

    max_parallel = raw.get("max_parallel")
    if max_parallel is not None and (
        isinstance(max_parallel, bool) or not isinstance(max_parallel, int) or max_parallel < 1
    ):
        raise ConfigLoadError(
            f"'max_parallel' must be a positive integer, got {max_parallel!r}"
        )

    return Settings(
        payload_script_path=templates_dir / script,
        credential=str(password),
        fleet_file_path=Path(hosts_file).expanduser(),
        log_file_path=Path(log_file).expanduser(),
        connect_timeout=float(timeout),
        max_parallel=max_parallel,
    )


def read_payload(path: str | Path) -> str:
    """Read the command script sent to every host."""
    try:
        with open(path) as f:
            return f.read()
    except OSError as e:
        raise PayloadReadError(f"Cannot read script file {path}: {e}") from e
