"""Application settings loaded from .env / environment via pydantic-settings."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class EditorSettings(BaseSettings):
    """Process-wide settings; override with ``MASK_STUDIO_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="MASK_STUDIO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    output_root: Path = Field(default=Path("outputs"), validate_default=True)
    config_file: Optional[Path] = Field(default=None)

    @field_validator("output_root", mode="before")
    @classmethod
    def _expand_root(cls, value: Path) -> Path:
        return Path(value).expanduser().resolve()

    @field_validator("config_file")
    @classmethod
    def _validate_config_file(cls, value: Optional[Path]) -> Optional[Path]:
        if value is None:
            return value
        value = value.expanduser().resolve()
        if not value.exists():
            raise ValueError(f"Editor config file does not exist: {value}")
        return value


_settings: Optional[EditorSettings] = None


def get_settings() -> EditorSettings:
    global _settings
    if _settings is None:
        _settings = EditorSettings()
        logger.debug(
            "Settings: output_root=%s config_file=%s",
            _settings.output_root,
            _settings.config_file,
        )
    return _settings


def output_root() -> Path:
    return get_settings().output_root


def default_config_file() -> Optional[Path]:
    return get_settings().config_file


def reset_settings_cache() -> None:
    global _settings
    _settings = None
