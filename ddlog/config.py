"""Settings for the ddLOG backend, loaded from environment variables (+ optional .env)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

ENV_PREFIX = "DDLOG"


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _first_env(*names: str, default: Optional[str] = None) -> Optional[str]:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


@dataclass(frozen=True)
class Settings:
    # ---- Storage ----
    database_url: str = "sqlite:///data/ddlog.db"

    # ---- Auth/JWT ----
    jwt_secret: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    jwt_expires_days: int = 7
    bcrypt_rounds: int = 12
    max_failed_attempts: int = 5
    lockout_seconds: int = 30

    # ---- Server / logging ----
    app_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: tuple = ("*",)
    log_level: str = "INFO"
    log_dir: Optional[str] = None


def load_settings() -> Settings:
    """Build Settings from the environment. A local .env never overrides real env vars."""
    load_dotenv(override=False)
    return Settings(
        database_url=_first_env(_k("DATABASE_URL"), "DATABASE_URL", default=Settings.database_url),
        jwt_secret=_first_env(_k("JWT_SECRET"), "JWT_SECRET", default=Settings.jwt_secret),
        jwt_algorithm=_first_env(_k("JWT_ALGORITHM"), default=Settings.jwt_algorithm),
        jwt_expires_days=_env_int(_k("JWT_EXPIRES_DAYS"), Settings.jwt_expires_days),
        bcrypt_rounds=_env_int(_k("BCRYPT_ROUNDS"), Settings.bcrypt_rounds),
        max_failed_attempts=_env_int(_k("MAX_FAILED_ATTEMPTS"), Settings.max_failed_attempts),
        lockout_seconds=_env_int(_k("LOCKOUT_SECONDS"), Settings.lockout_seconds),
        app_version=_first_env("APP_VERSION", default=Settings.app_version),
        host=_first_env(_k("HOST"), default=Settings.host),
        port=_env_int("PORT", Settings.port),
        cors_origins=tuple(_env_list(_k("CORS_ORIGINS"), list(Settings.cors_origins))),
        log_level=_first_env(_k("LOG_LEVEL"), default=Settings.log_level).upper(),
        log_dir=_first_env(_k("LOG_DIR")),
    )
