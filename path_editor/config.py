"""
Editor settings, loaded from environment variables prefixed PATH_EDITOR_.

Example:
    >>> from path_editor.config import get_settings
    >>> get_settings().notice_ttl_seconds
    3.0
"""
from __future__ import annotations
from functools import lru_cache
from typing import Literal
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EditorSettings(BaseSettings):
    """
    Attributes:
        environment: Current environment; selects the log renderer.
        debug: Enable debug mode.
        log_level: Logging level.
        notice_ttl_seconds: How long a rejection/validation notice stays visible.
        default_language: Language of a new path before any content is picked.
        max_sessions: Open edit sessions the HTTP adapter keeps in memory.
    """

    model_config = SettingsConfigDict(
        env_prefix="PATH_EDITOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    notice_ttl_seconds: float = Field(default=3.0, gt=0)
    default_language: str = ""
    max_sessions: int = Field(default=100, ge=1)

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache(maxsize=1)
def get_settings() -> EditorSettings:
    return EditorSettings()


def clear_settings_cache() -> None:
    get_settings.cache_clear()
