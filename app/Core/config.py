from __future__ import annotations

import os
from functools import lru_cache
from dotenv import load_dotenv, find_dotenv

_env_path = find_dotenv(".env") or ".env"
load_dotenv(_env_path, override=False)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Settings:
    """Central configuration (env driven)."""

    def __init__(self) -> None:
        # Database
        self.database_url: str = os.getenv("DATABASE_URL", "sqlite:///./challenge_engine.db")
        # App meta
        self.app_name: str = "Challenge Engine"
        self.debug: bool = os.getenv("DEBUG", "False").lower() == "true"
        # Links handed to clients (rendering lives elsewhere)
        self.frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/")
        self.url_signing_secret: str = os.getenv("URL_SIGNING_SECRET", "dev-signing-secret")
        self.download_link_ttl_seconds: int = _env_int("DOWNLOAD_LINK_TTL_SECONDS", 900)
        # Profile service
        self.user_directory_url: str = os.getenv("USER_DIRECTORY_URL", "").rstrip("/")
        self.user_directory_timeout: float = float(os.getenv("USER_DIRECTORY_TIMEOUT", "3"))
        # Certificates
        self.certificate_issuer_name: str = os.getenv("CERTIFICATE_ISSUER_NAME", "ShlokaYug Academy")
        self.certificate_issuer_title: str = os.getenv("CERTIFICATE_ISSUER_TITLE", "Chief Learning Officer")
        self.certificate_id_prefix: str = os.getenv("CERTIFICATE_ID_PREFIX", "SY-CERT")
        self.identifier_retry_attempts: int = _env_int("IDENTIFIER_RETRY_ATTEMPTS", 5)
        # Leaderboards
        self.default_leaderboard_limit: int = _env_int("LEADERBOARD_DEFAULT_LIMIT", 50)
        self.max_leaderboard_limit: int = _env_int("LEADERBOARD_MAX_LIMIT", 100)

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def get_database_url(self) -> str:
        return self.database_url


@lru_cache()
def get_settings() -> Settings:
    return Settings()
