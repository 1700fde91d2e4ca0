"""Configuration loading from TOML files, profiles and the environment.

Precedence, highest first:

1. ``KGRAG_*`` environment variables (``KGRAG_RETRIEVAL__TOP_K=5``)
2. The selected ``[profiles.<name>]`` table of the config file
3. The rest of the config file
4. Model defaults

String values in the file may reference the environment as ``${VAR}`` or
``${VAR:-default}``. A ``.env`` file, when given, is loaded into the
environment first.
"""

import os
import re
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from kgrag.config.schema import AppConfig
from kgrag.observability.logging import get_logger

logger = get_logger(__name__)

CONFIG_FILE_NAME = "kgrag.toml"

_ENV_REFERENCE = re.compile(r"\$\{([^}]+)\}")


class ConfigError(Exception):
    """Raised when a config file cannot be read or parsed."""


def _resolve_reference(match: re.Match) -> str:
    name, has_default, default = match.group(1).partition(":-")
    value = os.getenv(name.strip())
    if value is not None:
        return value
    if has_default:
        return default
    logger.warning("env_var_not_found", var_name=name.strip())
    return match.group(0)


def expand_env_vars(value: Any) -> Any:
    """Replace ``${VAR}`` references in every string of a TOML structure.

    Unset variables without a default are left as written.
    """
    if isinstance(value, str):
        return _ENV_REFERENCE.sub(_resolve_reference, value)
    if isinstance(value, dict):
        return {key: expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


def merge_sections(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into a copy of base; tables merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_sections(merged[key], value)
        else:
            merged[key] = value
    return merged


def read_config_file(config_path: Path, profile: Optional[str] = None) -> dict[str, Any]:
    """Parse a TOML config file and apply the named profile.

    Raises:
        ConfigError: If the file is unreadable or not valid TOML
    """
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Cannot load config file {config_path}: {e}") from e

    profiles = data.pop("profiles", {})
    if profile:
        if profile in profiles:
            data = merge_sections(data, profiles[profile])
            logger.info("applied_profile", profile=profile)
        else:
            logger.warning("profile_not_found", profile=profile, available=sorted(profiles))

    return expand_env_vars(data)


def load_config(
    config_path: Optional[Path] = None,
    profile: Optional[str] = None,
    env_file: Optional[Path] = None,
) -> AppConfig:
    """Load and validate the application configuration.

    A missing config file is not an error; defaults and the environment
    still apply.

    Raises:
        ConfigError: If the config file exists but cannot be parsed
        pydantic.ValidationError: If values are out of range
    """
    if env_file and Path(env_file).exists():
        load_dotenv(env_file)
        logger.debug("loaded_env_file", path=str(env_file))

    file_data: dict[str, Any] = {}
    if config_path and Path(config_path).exists():
        file_data = read_config_file(Path(config_path), profile)
        logger.debug("loaded_config_file", path=str(config_path))

    config = AppConfig(**file_data)
    logger.debug(
        "config_loaded",
        embedding_provider=config.embedding.provider.value,
        llm_provider=config.llm.provider.value,
        chunking_strategy=config.chunking.strategy.value,
        chunk_size=config.chunking.chunk_size,
    )
    return config


def get_default_config_path() -> Path:
    """First existing of ./kgrag.toml and ~/.kgrag/config.toml, else ./kgrag.toml."""
    candidates = [Path.cwd() / CONFIG_FILE_NAME, Path.home() / ".kgrag" / "config.toml"]
    return next((path for path in candidates if path.exists()), candidates[0])
