"""
Configuration partagée pour tous les tests.

- Tests API : la dépendance get_db est remplacée par un mock (aucune connexion réelle),
  les services sont patchés dans chaque test.
- Tests de services : base SQLite en mémoire (aiosqlite) créée à partir des modèles.
"""

import os

# Avant l'import de l'application : le moteur est créé à l'import de app.database
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["AI_API_KEY"] = ""
os.environ["AUTO_CREATE_TABLES"] = "false"

from datetime import datetime, timedelta, timezone  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import app.models  # noqa: E402, F401
from app.database import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.schemas.label import LabelCreate  # noqa: E402
from app.schemas.location import LocationCreate  # noqa: E402
from app.services import analytics_service, label_service, location_service  # noqa: E402
from app.services.scan_session_store import ScanSessionStore  # noqa: E402


@pytest.fixture
def client():
    """Client HTTP de test avec la BDD mockée."""
    mock_db = MagicMock()
    app.dependency_overrides[get_db] = lambda: mock_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def db():
    """Session sur une base SQLite en mémoire, tables créées, détruite après le test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture(autouse=True)
def reset_analysis_cache():
    analytics_service.clear_cache()
    yield
    analytics_service.clear_cache()


class FakeClock:
    """Horloge manuelle pour tester l'expiration des sessions de scan."""

    def __init__(self):
        self.now = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    """Store de sessions isolé (TTL 300 s, sans planificateur)."""
    return ScanSessionStore(ttl_seconds=300, clock=clock)


# --- Helpers de données ---

async def add_location(db, location_id: str, type_name: str, allowed_item_types=None):
    return await location_service.create_location(db, LocationCreate(
        location_id=location_id,
        type_name=type_name,
        allowed_item_types=allowed_item_types,
    ))


async def add_roll(db, label_id: str, location_id=None, code: str = "RL-001"):
    return await label_service.create_label(db, LabelCreate(
        label_type="ROLL",
        label_id=label_id,
        location_id=location_id,
        details={"code": code, "name": "Kraft 80g", "size_mm": 1200},
    ))


async def add_pallet(db, label_id: str, location_id=None):
    return await label_service.create_label(db, LabelCreate(
        label_type="FG_PALLET",
        label_id=label_id,
        location_id=location_id,
        details={"raw_value": f"WO-42|{label_id}|100", "work_order": "WO-42", "quantity": 100},
    ))
