"""Définition et chargement des paramètres de configuration applicative.

Objectif du module
------------------
- Centraliser les paramètres (env/.env) via Pydantic Settings
- Résoudre le fichier `.env` à utiliser selon la stratégie: ENV_FILE > .env.{APP_ENV} > .env
- Valider la configuration minimale exigée en production
"""

import os
from pathlib import Path

from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

# Détermination du fichier .env à utiliser avec priorité:
# 1) ENV_FILE (chemin explicite)
# 2) .env.{APP_ENV} si présent
# 3) .env (défaut)
_cwd = Path.cwd()
_env_file_from_env = os.getenv("ENV_FILE")
if _env_file_from_env:
    _ENV_FILE_PATH = _env_file_from_env
else:
    _app_env = os.getenv("APP_ENV", "dev")
    _candidate_specific = _cwd / f".env.{_app_env}"
    _candidate_default = _cwd / ".env"
    _ENV_FILE_PATH = _candidate_specific if _candidate_specific.exists() else _candidate_default

MIN_JWT_SECRET_LEN = 32


class Settings(BaseSettings):
    """Modèle de configuration chargé depuis l'environnement et .env."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE_PATH,
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )
    APP_NAME: str = "content-analyzer"
    APP_ENV: str = "dev"
    APP_DEBUG: bool = False
    APP_VERSION: str = "1.0.0"
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8080

    CORS_ORIGINS: list[AnyHttpUrl] | list[str] = [
        "http://localhost:3000",
        "http://localhost:8080",
    ]
    DATABASE_URL: str | None = None
    AUTO_CREATE_TABLES: bool = True
    REDIS_URL: str | None = None
    REQUIRE_REDIS: bool = False

    # JWT/Auth
    JWT_SECRET: str = "dev-secret-change-me"
    JWT_ALG: str = "HS256"
    JWT_EXPIRES_MIN: int = 60
    PASSWORD_HASH_ROUNDS: int = 29000

    # Fournisseur d'analyse externe: "gemini" | "openai" | "fake"
    ANALYSIS_PROVIDER: str = "gemini"
    ANALYSIS_MODEL: str = "gemini-1.5-flash"
    GEMINI_API_KEY: str | None = None
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com"
    OPENAI_API_KEY: str | None = None
    ANALYSIS_TIMEOUT_S: float = 30.0

    # Retries
    ANALYSIS_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY_S: float = 2.0
    RETRY_MAX_DELAY_S: float = 60.0
    MAX_THROTTLE_RETRIES: int = 10

    # Quota global vers l'API externe (0 = fenêtre désactivée)
    RATE_LIMIT_PER_MINUTE: int = 15
    RATE_LIMIT_PER_DAY: int = 1500

    # File de dispatch & workers
    DISPATCH_QUEUE_MAX: int = 1000
    QUEUE_BACKEND: str = "memory"  # "memory" | "redis"
    WORKER_MODE: str = "threads"  # "threads" | "celery"
    WORKER_CONCURRENCY: int = 4
    START_WORKERS: bool = True
    LEASE_SECONDS: float = 120.0
    WORKER_POLL_INTERVAL_S: float = 1.0
    MAINTENANCE_INTERVAL_S: float = 30.0
    PENDING_RECOVERY_GRACE_S: float = 60.0

    # Cache de résultats
    CACHE_TTL_SECONDS: int = 7 * 24 * 3600
    CACHE_SOCKET_TIMEOUT_MS: int = 200

    MAX_CONTENT_CHARS: int = 10000

    OTLP_ENDPOINT: str | None = None
    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/1"
    CELERY_DRAIN_BATCH: int = 10

    @property
    def is_production(self) -> bool:
        """Vrai si l'application tourne en production."""
        return self.APP_ENV.lower() in {"prod", "production"}


def get_settings() -> Settings:
    """Construit et retourne la configuration de l'application."""
    return Settings()


def validate_settings(settings: Settings) -> None:
    """Vérifie la configuration obligatoire en production.

    Raises:
        ValueError: si une valeur requise manque ou est trop faible.
    """
    if not settings.is_production:
        return
    provider = settings.ANALYSIS_PROVIDER.lower()
    if provider == "gemini" and not settings.GEMINI_API_KEY:
        raise ValueError("GEMINI_API_KEY environment variable is required")
    if provider == "openai" and not settings.OPENAI_API_KEY:
        raise ValueError("OPENAI_API_KEY environment variable is required")
    if not settings.DATABASE_URL:
        raise ValueError("DATABASE_URL environment variable is required")
    if not settings.REDIS_URL:
        raise ValueError("REDIS_URL environment variable is required")
    if len(settings.JWT_SECRET or "") < MIN_JWT_SECRET_LEN:
        raise ValueError(f"JWT_SECRET must be at least {MIN_JWT_SECRET_LEN} characters long")
