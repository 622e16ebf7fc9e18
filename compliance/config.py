"""
Engine configuration using pydantic-settings.

Defaults, overridden by an optional YAML file, overridden by environment
variables (``COMPLIANCE_*``).
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import Field
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .classifier import WARNING_DAYS
from .errors import ValidationError


class Settings(BaseSettings):
    """Tunable engine settings."""

    model_config = SettingsConfigDict(
        env_prefix="COMPLIANCE_",
        env_ignore_empty=True,
        extra="ignore",
    )

    data_dir: Path = Path("data")
    warning_days: int = Field(WARNING_DAYS, ge=0)
    # Seconds to wait for the store lock before StoreUnavailable
    store_timeout: float = Field(5.0, gt=0)
    store_retries: int = Field(3, ge=1)
    store_backoff: float = Field(0.1, ge=0)
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment beats constructor values, which carry the YAML file
        return env_settings, init_settings


def _yaml_key(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def read_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Setting values from a camelCase YAML file, keyed by field name."""
    with open(path, "r") as fp:
        data = yaml.load(fp, Loader=yaml.SafeLoader) or {}
    if not isinstance(data, dict):
        raise ValidationError(f"Config file {path} must contain a mapping")

    values = {}
    for name in Settings.model_fields:
        key = _yaml_key(name)
        if data.get(key) is not None:
            values[name] = data[key]
    return values


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """Build settings from defaults, an optional YAML file and the environment."""
    path = path or os.environ.get("COMPLIANCE_CONFIG")
    values = read_config_file(path) if path else {}
    try:
        return Settings(**values)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise ValidationError(f"Invalid settings: {problems}") from e

