"""
Trencher — Configuration
=========================

What:  Library-wide settings loaded from environment variables (or .env).
How:   pydantic-settings reads and validates the values once, at import time,
       into the ``settings`` singleton.
Who:   Read by the logger, the upload factory and the client helpers as
       their defaults. Every value can be overridden per call/instance.

Environment variables:
    API_BASE_URL      Default base URL for the client request helpers.
    LOG_LEVEL         DEBUG, INFO, WARNING, ERROR or CRITICAL.
    UPLOAD_FOLDER     Default destination folder for uploaded files.
    MAX_FILE_SIZE     Per-file upload limit in bytes.
    CLIENT_PLATFORM   web, android or ios (multipart file representation).
    REQUEST_TIMEOUT   Seconds before the client transport gives up.
"""

from enum import Enum
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Platform(str, Enum):
    """Client platform, selects how files are represented in multipart bodies."""

    WEB = "web"
    ANDROID = "android"
    IOS = "ios"


class Settings(BaseSettings):
    """
    Trencher settings.

    All values have development defaults; nothing here is required.
    """

    # ── Client ────────────────────────────────────────────────────────────
    # None keeps request URLs relative ("/users").
    api_base_url: Optional[str] = Field(default=None)

    client_platform: Platform = Field(default=Platform.WEB)

    request_timeout: float = Field(default=30.0, gt=0, le=600)

    # ── Uploads ───────────────────────────────────────────────────────────
    upload_folder: str = Field(default="public/uploads")

    # Default: 10MB. Valid range: 1KB to 500MB
    max_file_size: int = Field(default=10_485_760, ge=1024, le=524_288_000)

    # ── Logging ───────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


settings = Settings()
