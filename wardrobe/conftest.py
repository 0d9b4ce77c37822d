# wardrobe/conftest.py
import sys
import pytest
from pathlib import Path

# Add repo root to PYTHONPATH
REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture(autouse=True)
def sqlite_db(tmp_path):
    """
    Point the engine at a fresh SQLite file for each test.

    A file (not :memory:) so that worker threads in concurrency tests share
    the same database.
    """
    from wardrobe.core.database import init_engine, create_all_tables, get_engine

    url = f"sqlite:///{tmp_path / 'wardrobe-test.db'}"
    init_engine(url)
    create_all_tables()
    yield url
    get_engine().dispose()


@pytest.fixture
def profile_store():
    from wardrobe.features.profiles.store import SqlProfileStore
    return SqlProfileStore()


@pytest.fixture
def dev_auth(monkeypatch):
    """X-User-Id identity: no JWT secret, non-production env."""
    from wardrobe.core.config import settings
    monkeypatch.setattr(settings, "AUTH_JWT_SECRET", None)
    monkeypatch.setattr(settings, "ENV", "test")
    return settings
