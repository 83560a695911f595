"""
Configuration and settings for the chat backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the chat backend."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Firebase project. Cloud Functions and Cloud Run set GCLOUD_PROJECT /
    # GOOGLE_CLOUD_PROJECT themselves.
    firebase_project_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "FIREBASE_PROJECT_ID", "GCLOUD_PROJECT", "GOOGLE_CLOUD_PROJECT"
        ),
    )
    # Service account JSON; Application Default Credentials when unset.
    firebase_credentials_path: Optional[str] = Field(default=None)

    # Firebase Auth (password sign-in via the Identity Toolkit REST API)
    firebase_web_api_key: Optional[str] = Field(default=None)
    firebase_auth_emulator_host: Optional[str] = Field(default=None)
    identity_toolkit_timeout: float = Field(default=30.0)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
