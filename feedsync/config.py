"""
Service Configuration

Loads configuration from environment variables and provides defaults.
Reads the project-root .env file using python-dotenv.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

root_env = BASE_DIR / ".env"
if root_env.exists():
    load_dotenv(root_env)

DATA_SOURCES = ("memory", "firebase")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _int_env(key: str, default: int) -> int:
    v = os.getenv(key)
    if v is None or not v.strip():
        return default
    try:
        return int(v)
    except ValueError:
        return default


@dataclass
class FeedConfig:
    """Service configuration."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000

    # Data source: "memory" | "firebase"
    data_source: str = "memory"
    # When data_source=firebase: path to service account JSON and optional project id
    firebase_credentials_path: Optional[Path] = None
    firebase_project_id: Optional[str] = None

    # Feed
    feed_page_size: int = 20
    profile_posts_limit: int = 10
    transaction_max_attempts: int = 5

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "FeedConfig":
        """Load configuration from environment variables."""
        data_source = os.getenv("DATA_SOURCE", "").strip().lower() or "memory"
        if data_source not in DATA_SOURCES:
            data_source = "memory"

        def _path_env(key: str) -> Optional[Path]:
            v = os.getenv(key)
            if not v:
                return None
            p = Path(v)
            return p if p.is_absolute() else (BASE_DIR / p).resolve()

        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=_int_env("PORT", 8000),
            data_source=data_source,
            firebase_credentials_path=_path_env("FIREBASE_CREDENTIALS_PATH") or _path_env("GOOGLE_APPLICATION_CREDENTIALS"),
            firebase_project_id=os.getenv("FIREBASE_PROJECT_ID") or None,
            feed_page_size=_int_env("FEED_PAGE_SIZE", 20),
            profile_posts_limit=_int_env("PROFILE_POSTS_LIMIT", 10),
            transaction_max_attempts=_int_env("TRANSACTION_MAX_ATTEMPTS", 5),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
        )

    def validate(self) -> tuple[bool, list[str]]:
        """
        Validate the configuration.

        Returns:
            (is_valid, list_of_errors)
        """
        errors = []

        if self.data_source == "firebase":
            if not self.firebase_credentials_path:
                errors.append("DATA_SOURCE=firebase requires FIREBASE_CREDENTIALS_PATH")
            elif not self.firebase_credentials_path.is_file():
                errors.append(f"Firebase credentials file not found: {self.firebase_credentials_path}")

        if self.feed_page_size < 1:
            errors.append(f"FEED_PAGE_SIZE must be positive, got {self.feed_page_size}")
        if self.profile_posts_limit < 1:
            errors.append(f"PROFILE_POSTS_LIMIT must be positive, got {self.profile_posts_limit}")
        if self.transaction_max_attempts < 1:
            errors.append(f"TRANSACTION_MAX_ATTEMPTS must be positive, got {self.transaction_max_attempts}")
        if self.log_level not in LOG_LEVELS:
            errors.append(f"Unknown LOG_LEVEL: {self.log_level}")

        return len(errors) == 0, errors


# Global config instance
_config: Optional[FeedConfig] = None


def get_config() -> FeedConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = FeedConfig.from_env()
    return _config


def reload_config() -> FeedConfig:
    """Reload configuration from environment."""
    global _config
    _config = None
    return get_config()
