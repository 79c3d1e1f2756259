"""TOML configuration loader.

Reads engine defaults from defaults.toml and validates them into an
EngineConfig. Validation happens here, once; the engine never re-checks
its configuration at call time.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import ValidationError

from contextor.errors import ConfigurationError
from contextor.schemas.config import EngineConfig

# Default config directory relative to the contextor package
_CONFIG_DIR = Path(__file__).parent / "config"

_SECTIONS = ("scorer", "optimizer", "cache", "adaptive")


def default_config_path() -> Path:
    return _CONFIG_DIR / "defaults.toml"


def load_engine_config(config_path: Path | None = None) -> EngineConfig:
    """Load engine configuration from a TOML file.

    Args:
        config_path: Path to a TOML file. Defaults to
            contextor/config/defaults.toml.

    Returns:
        The validated EngineConfig.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ConfigurationError: If the file is not valid TOML or any value
            fails validation (e.g. weights that do not sum to 1.0).
    """
    path = config_path or default_config_path()
    if not path.exists():
        raise FileNotFoundError(f"Engine config not found: {path}")

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Invalid TOML in {path}: {exc}") from exc

    unknown = sorted(set(raw) - set(_SECTIONS))
    if unknown:
        raise ConfigurationError(f"Unknown section(s) in {path}: {', '.join(unknown)}")

    data = {section: raw[section] for section in _SECTIONS if section in raw}
    for section, value in data.items():
        if not isinstance(value, dict):
            raise ConfigurationError(f"[{section}] in {path} must be a table")

    try:
        return EngineConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid engine config in {path}: {exc}") from exc
