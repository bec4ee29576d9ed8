import os
import shutil
import tempfile

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import get_settings
from app.models.finance import Base

BASE_URL = os.getenv("BASE_URL", "http://127.0.0.1:8000")


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    # Some tests mutate env vars and clear the settings cache. Ensure we don't leak
    # a cached Settings instance (e.g. with a different AI provider) across tests.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class SqliteStore:
    """File-backed SQLite record store; each session gets its own connection."""

    def __init__(self):
        self._dir = tempfile.mkdtemp(prefix="insights-test-")
        self.engine = create_engine(
            f"sqlite:///{os.path.join(self._dir, 'store.db')}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def close(self):
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()
        shutil.rmtree(self._dir, ignore_errors=True)


@pytest.fixture
def store():
    s = SqliteStore()
    yield s
    s.close()


@pytest_asyncio.fixture
async def client(store):
    """In-process ASGI client wired to the test store."""
    from app.core.dependencies import get_session_factory
    from app.main import app

    use_live_server = os.getenv("USE_LIVE_SERVER", "").strip().lower() in {"1", "true", "yes"}
    if use_live_server:
        async with httpx.AsyncClient(base_url=BASE_URL) as c:
            yield c
        return

    app.dependency_overrides[get_session_factory] = lambda: store.SessionLocal
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            yield c
    finally:
        app.dependency_overrides.clear()
