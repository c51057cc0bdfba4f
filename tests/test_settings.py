"""
Tests de la configuration: résolution du fichier .env et règles de production.
"""

from __future__ import annotations

import importlib
from pathlib import Path

import pytest

from content_analyzer.core.settings import Settings, validate_settings
from content_analyzer.infra.rate_limit_store import RateWindow, windows_from_settings
from conftest import TEST_JWT_SECRET


def test_settings_reads_env_file(tmp_path: Path, monkeypatch) -> None:
    """Les variables d'un fichier .env désigné par ENV_FILE sont appliquées."""
    env = tmp_path / ".env.custom"
    env.write_text("RATE_LIMIT_PER_MINUTE=7\nDISPATCH_QUEUE_MAX=12\n", encoding="utf-8")
    monkeypatch.setenv("ENV_FILE", str(env))

    settings_mod = importlib.import_module("content_analyzer.core.settings")
    importlib.reload(settings_mod)
    try:
        s = settings_mod.get_settings()
        assert s.RATE_LIMIT_PER_MINUTE == 7
        assert s.DISPATCH_QUEUE_MAX == 12
    finally:
        monkeypatch.delenv("ENV_FILE")
        importlib.reload(settings_mod)


def test_defaults():
    s = Settings(_env_file=None)
    assert s.LEASE_SECONDS == 120.0
    assert s.ANALYSIS_MAX_ATTEMPTS == 3
    assert s.MAX_CONTENT_CHARS == 10000
    assert windows_from_settings(s.RATE_LIMIT_PER_MINUTE, s.RATE_LIMIT_PER_DAY) == [
        RateWindow(15, 60.0),
        RateWindow(1500, 86400.0),
    ]


def test_zero_limit_disables_window():
    assert windows_from_settings(0, 100) == [RateWindow(100, 86400.0)]
    assert windows_from_settings(0, 0) == []


def _prod(**overrides) -> Settings:
    values = {
        "APP_ENV": "production",
        "ANALYSIS_PROVIDER": "gemini",
        "GEMINI_API_KEY": "key",
        "DATABASE_URL": "postgresql+psycopg://db/app",
        "REDIS_URL": "redis://redis:6379/0",
        "JWT_SECRET": TEST_JWT_SECRET,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_production_settings_valid():
    validate_settings(_prod())
    # hors production: aucune règle
    validate_settings(Settings(_env_file=None, APP_ENV="dev", JWT_SECRET="short"))


@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"GEMINI_API_KEY": None}, "GEMINI_API_KEY"),
        ({"ANALYSIS_PROVIDER": "openai"}, "OPENAI_API_KEY"),
        ({"DATABASE_URL": None}, "DATABASE_URL"),
        ({"REDIS_URL": None}, "REDIS_URL"),
        ({"JWT_SECRET": "too-short"}, "JWT_SECRET"),
    ],
)
def test_production_settings_rejected(overrides, message):
    with pytest.raises(ValueError, match=message):
        validate_settings(_prod(**overrides))
