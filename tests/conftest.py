"""Configuration de test pour pytest avec gestion des chemins.

Ce module ajoute la racine du projet au sys.path, fixe des valeurs d'environnement sûres avant
tout import applicatif (fournisseur déterministe, pas de Redis, pas de workers automatiques) et
fournit les briques du pipeline: base SQLite fichier, cache et file en mémoire, client scripté,
conteneur frais.
"""

import os
import sys

import pytest

# Ensure project root is on sys.path so that
# imports like `from content_analyzer...` resolve.
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)
if CURRENT_DIR not in sys.path:
    sys.path.insert(0, CURRENT_DIR)

# Valeurs sûres AVANT l'import du conteneur global
os.environ["ANALYSIS_PROVIDER"] = "fake"
os.environ["START_WORKERS"] = "false"
os.environ["PASSWORD_HASH_ROUNDS"] = "1000"
os.environ.pop("REDIS_URL", None)
os.environ.pop("DATABASE_URL", None)
os.environ.pop("REQUIRE_REDIS", None)

from content_analyzer.core.container import Container  # noqa: E402
from content_analyzer.core.settings import Settings  # noqa: E402
from content_analyzer.domain.auth import hash_password  # noqa: E402
from content_analyzer.domain.entities import new_id  # noqa: E402
from content_analyzer.infra.repo.db import (  # noqa: E402
    get_engine,
    get_session_factory,
    init_db,
    session_scope,
)
from content_analyzer.infra.repo.user_repo import UserRepo  # noqa: E402
from content_analyzer.infra.result_cache import InMemoryCacheBackend, ResultCache  # noqa: E402
from fakes import ScriptedAnalysisClient  # noqa: E402

TEST_JWT_SECRET = "test-secret-with-at-least-32-characters!!"


@pytest.fixture
def db_url(tmp_path) -> str:
    # Fichier SQLite: partagé sans risque entre les threads des workers et l'API.
    return f"sqlite+pysqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
def settings(db_url) -> Settings:
    return Settings(
        _env_file=None,
        APP_ENV="test",
        DATABASE_URL=db_url,
        ANALYSIS_PROVIDER="fake",
        START_WORKERS=False,
        WORKER_MODE="threads",
        QUEUE_BACKEND="memory",
        JWT_SECRET=TEST_JWT_SECRET,
        PASSWORD_HASH_ROUNDS=1000,
        RETRY_BASE_DELAY_S=0.01,
        RETRY_MAX_DELAY_S=0.05,
        RATE_LIMIT_PER_MINUTE=1000,
        RATE_LIMIT_PER_DAY=0,
        LEASE_SECONDS=5.0,
        WORKER_CONCURRENCY=2,
        WORKER_POLL_INTERVAL_S=0.05,
        MAINTENANCE_INTERVAL_S=0.2,
        PENDING_RECOVERY_GRACE_S=0.0,
        ANALYSIS_TIMEOUT_S=2.0,
    )


@pytest.fixture
def engine(db_url):
    eng = get_engine(db_url)
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def cache() -> ResultCache:
    return ResultCache(InMemoryCacheBackend(), ttl_seconds=3600)


@pytest.fixture
def scripted_client() -> ScriptedAnalysisClient:
    return ScriptedAnalysisClient()


def create_user(session_factory, email: str = "alice@example.com") -> str:
    """Insère un utilisateur et retourne son id."""
    with session_scope(session_factory) as session:
        user = UserRepo(session).save(
            {"id": new_id(), "email": email, "password_hash": hash_password("password123")}
        )
    return user["id"]


@pytest.fixture
def owner_id(session_factory) -> str:
    return create_user(session_factory)


@pytest.fixture
def make_container(settings, scripted_client):
    """Factory de conteneurs frais (settings surchargeables)."""
    built: list[Container] = []

    def _make(client=None, limiter=None, cache_backend=None, **overrides) -> Container:
        s = settings.model_copy(update=overrides) if overrides else settings
        c = Container(s, client=client or scripted_client, limiter=limiter, cache_backend=cache_backend)
        built.append(c)
        return c

    yield _make
    for c in built:
        c.close()


@pytest.fixture
def container(make_container) -> Container:
    return make_container()
