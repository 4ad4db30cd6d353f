"""
Tests du moteur de réconciliation des scans (scan rack puis scan article).
Base SQLite en mémoire + store de sessions isolé avec horloge manuelle.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.exceptions import (
    DependencyError,
    ItemNotFoundError,
    LocationNotFoundError,
    SessionExpiredError,
    SessionRequiredError,
)
from app.database import Base
from app.models.scan import RackItemAssignment
from app.schemas.scan import MESSAGE_OK, MESSAGE_WRONG_LOCATION, MESSAGE_WRONG_TYPE
from app.services import label_service, scan_service
from conftest import add_location, add_pallet, add_roll


@pytest_asyncio.fixture
async def warehouse(db):
    """Deux zones bobines, une zone palettes PF et un rack mixte."""
    await add_location(db, "RACK-01", "PAPER_ROLL_LOCATION")
    await add_location(db, "RACK-02", "PAPER_ROLL_LOCATION")
    await add_location(db, "FG-01", "FG_PALLET_LOCATION")
    await add_location(db, "MIX-01", "RACK_LOCATION")
    return db


async def _scan(db, store, rack: str, label_id: str, label_type=None):
    rack_scan = await scan_service.rack_scan(db, store, rack)
    verdict = await scan_service.item_scan(db, store, label_id, str(rack_scan.session_id), label_type)
    return rack_scan, verdict


# --- Scan rack ---

async def test_scan_rack_ouvre_session(warehouse, store):
    db = warehouse

    response = await scan_service.rack_scan(db, store, "RACK-01")

    assert response.location.location_id == "RACK-01"
    assert response.location.type_name == "PAPER_ROLL_LOCATION"
    assert len(store) == 1

    history = await scan_service.get_session_history(db, str(response.session_id))
    assert len(history) == 1
    assert history[0].scan_sequence == 1
    assert history[0].label_id is None


async def test_scan_rack_emplacement_inconnu(db, store):
    with pytest.raises(LocationNotFoundError):
        await scan_service.rack_scan(db, store, "RACK-99")
    assert len(store) == 0


async def test_scan_rack_echec_audit_sans_session(warehouse, store):
    """Si la ligne d'audit ne peut pas être écrite, aucune session ne subsiste."""
    db = warehouse
    with patch.object(db, "commit", side_effect=SQLAlchemyError("connexion perdue")):
        with pytest.raises(DependencyError):
            await scan_service.rack_scan(db, store, "RACK-01")
    assert len(store) == 0


# --- Session requise ---

async def test_scan_article_sans_scan_rack(warehouse, store):
    """Session inconnue : SessionRequiredError, que l'article existe ou non."""
    db = warehouse
    await add_roll(db, "R100", location_id="RACK-01")

    with pytest.raises(SessionRequiredError):
        await scan_service.item_scan(db, store, "R100", str(uuid.uuid4()))
    with pytest.raises(SessionRequiredError):
        await scan_service.item_scan(db, store, "INCONNU", str(uuid.uuid4()))


async def test_scan_article_session_expiree(warehouse, store, clock):
    db = warehouse
    await add_roll(db, "R100", location_id="RACK-01")
    rack_scan = await scan_service.rack_scan(db, store, "RACK-01")

    clock.advance(301)

    with pytest.raises(SessionExpiredError):
        await scan_service.item_scan(db, store, "R100", str(rack_scan.session_id))


async def test_scan_article_inconnu(warehouse, store):
    db = warehouse
    rack_scan = await scan_service.rack_scan(db, store, "RACK-01")

    with pytest.raises(ItemNotFoundError):
        await scan_service.item_scan(db, store, "FANTOME", str(rack_scan.session_id))


# --- Table de vérité ---

async def test_bon_type_bon_emplacement(warehouse, store):
    """(T, T) : seul cas où l'emplacement est confirmé dans le registre."""
    db = warehouse
    await add_roll(db, "R100", location_id="RACK-01")
    scan_time = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)

    with patch.object(label_service, "_now", return_value=scan_time):
        rack_scan, verdict = await _scan(db, store, "RACK-01", "R100")

    assert verdict.correct_location_type is True
    assert verdict.in_assigned_location is True
    assert verdict.committed is True
    assert verdict.message == MESSAGE_OK
    assert verdict.current_location == "RACK-01"

    after = await label_service.get_label(db, "ROLL", "R100")
    assert after.location_id == "RACK-01"
    assert after.last_scan_time.replace(tzinfo=None) == scan_time.replace(tzinfo=None)

    history = await scan_service.get_session_history(db, str(rack_scan.session_id))
    assert [row.scan_sequence for row in history] == [1, 2]
    assert history[1].label_id == "R100"
    assert history[1].correct_location_type is True
    assert history[1].in_assigned_location is True


async def test_bon_type_mauvais_emplacement(warehouse, store):
    """(T, F) : le registre n'est pas mis à jour vers le rack scanné."""
    db = warehouse
    await add_roll(db, "R100", location_id="RACK-02")

    rack_scan, verdict = await _scan(db, store, "RACK-01", "R100")

    assert verdict.correct_location_type is True
    assert verdict.in_assigned_location is False
    assert verdict.committed is False
    assert verdict.message == MESSAGE_WRONG_LOCATION
    assert verdict.current_location == "RACK-02"
    assert verdict.scanned_location == "RACK-01"
    assert (await label_service.get_label(db, "ROLL", "R100")).location_id == "RACK-02"

    history = await scan_service.get_session_history(db, str(rack_scan.session_id))
    assert history[-1].scan_sequence == 2
    assert history[-1].in_assigned_location is False


async def test_mauvais_type_bon_emplacement(warehouse, store):
    """(F, T) : bobine enregistrée dans une zone palettes PF."""
    db = warehouse
    await add_roll(db, "R100", location_id="FG-01")

    rack_scan, verdict = await _scan(db, store, "FG-01", "R100")

    assert verdict.correct_location_type is False
    assert verdict.in_assigned_location is True
    assert verdict.committed is False
    assert verdict.message == MESSAGE_WRONG_TYPE
    assert len(await scan_service.get_session_history(db, str(rack_scan.session_id))) == 2


async def test_mauvais_type_mauvais_emplacement(warehouse, store):
    """(F, F) : palette PF scannée dans une zone bobines."""
    db = warehouse
    await add_pallet(db, "P1", location_id="FG-01")

    rack_scan, verdict = await _scan(db, store, "RACK-01", "P1")

    assert verdict.correct_location_type is False
    assert verdict.in_assigned_location is False
    assert verdict.committed is False
    assert verdict.message == MESSAGE_WRONG_TYPE
    assert verdict.valid_locations == ["FG-01", "MIX-01"]
    assert (await label_service.get_label(db, "FG_PALLET", "P1")).location_id == "FG-01"

    history = await scan_service.get_session_history(db, str(rack_scan.session_id))
    assert history[-1].correct_location_type is False


async def test_type_exclu_par_emplacement(db, store):
    """Type compatible avec le rack mais retiré de ses types autorisés : mauvais type."""
    await add_location(db, "MIX-02", "RACK_LOCATION", allowed_item_types=["ROLL"])
    await add_pallet(db, "P1", location_id="MIX-02")

    _, verdict = await _scan(db, store, "MIX-02", "P1")

    assert verdict.correct_location_type is False
    assert verdict.in_assigned_location is True
    assert verdict.committed is False


# --- Sessions multi-articles ---

async def test_plusieurs_articles_meme_session(warehouse, store):
    db = warehouse
    await add_roll(db, "R100", location_id="MIX-01")
    await add_pallet(db, "P1", location_id="MIX-01")
    await add_roll(db, "R200", location_id="RACK-02")
    rack_scan = await scan_service.rack_scan(db, store, "MIX-01")
    session_id = str(rack_scan.session_id)

    first = await scan_service.item_scan(db, store, "R100", session_id)
    second = await scan_service.item_scan(db, store, "P1", session_id)
    third = await scan_service.item_scan(db, store, "R200", session_id)

    assert first.committed and second.committed
    assert third.committed is False
    history = await scan_service.get_session_history(db, session_id)
    assert [row.scan_sequence for row in history] == [1, 2, 2, 2]


async def test_identifiant_ambigu_precise_par_type(warehouse, store):
    db = warehouse
    await add_roll(db, "X1", location_id="MIX-01")
    await add_pallet(db, "X1", location_id="FG-01")

    _, verdict = await _scan(db, store, "MIX-01", "X1", label_type="ROLL")

    assert verdict.label_type == "ROLL"
    assert verdict.committed is True


# --- Scans concurrents ---

@pytest_asyncio.fixture
async def two_dbs(tmp_path):
    """
    Deux sessions SQLAlchemy sur un même fichier SQLite : une AsyncSession ne
    supporte pas deux requêtes simultanées, chaque scan concurrent a la sienne.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'scans.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    async with session_factory() as db1, session_factory() as db2:
        await add_location(db1, "RACK-01", "PAPER_ROLL_LOCATION")
        await add_location(db1, "RACK-02", "PAPER_ROLL_LOCATION")
        yield db1, db2
    await engine.dispose()


async def test_scans_simultanes_meme_session(two_dbs, store):
    """Deux articles scannés en même temps dans une session : deux lignes d'audit, aucun scan perdu."""
    db1, db2 = two_dbs
    await add_roll(db1, "R100", location_id="RACK-01")
    await add_roll(db1, "R200", location_id="RACK-01")
    rack_scan = await scan_service.rack_scan(db1, store, "RACK-01")
    session_id = str(rack_scan.session_id)

    first, second = await asyncio.gather(
        scan_service.item_scan(db1, store, "R100", session_id),
        scan_service.item_scan(db2, store, "R200", session_id),
    )

    assert first.committed and second.committed
    history = await scan_service.get_session_history(db1, session_id)
    assert [row.scan_sequence for row in history] == [1, 2, 2]
    assert {row.label_id for row in history if row.scan_sequence == 2} == {"R100", "R200"}
    assert (await store.get(session_id)).item_scans == 2


async def test_meme_article_deux_sessions_simultanees(two_dbs, store):
    """Le même article scanné en même temps depuis deux sessions : chaque session garde sa trace."""
    db1, db2 = two_dbs
    await add_roll(db1, "R100", location_id="RACK-01")
    a = await scan_service.rack_scan(db1, store, "RACK-01")
    b = await scan_service.rack_scan(db2, store, "RACK-01")

    verdict_a, verdict_b = await asyncio.gather(
        scan_service.item_scan(db1, store, "R100", str(a.session_id)),
        scan_service.item_scan(db2, store, "R100", str(b.session_id)),
    )

    assert verdict_a.committed and verdict_b.committed
    item_rows = (await db1.execute(
        select(func.count())
        .select_from(RackItemAssignment)
        .where(RackItemAssignment.label_id == "R100", RackItemAssignment.scan_sequence == 2)
    )).scalar()
    assert item_rows == 2
    assert len(await scan_service.get_session_history(db1, str(a.session_id))) == 2
    assert len(await scan_service.get_session_history(db1, str(b.session_id))) == 2


async def test_scan_et_deplacement_simultanes(two_dbs, store):
    """
    Un déplacement manuel concurrent d'un scan n'est jamais perdu : le verdict
    reflète l'emplacement lu sous verrou et l'emplacement final est celui du déplacement.
    """
    db1, db2 = two_dbs
    await add_roll(db1, "R100", location_id="RACK-01")
    rack_scan = await scan_service.rack_scan(db1, store, "RACK-01")

    verdict, moved = await asyncio.gather(
        scan_service.item_scan(db1, store, "R100", str(rack_scan.session_id)),
        label_service.update_location(db2, "ROLL", "R100", "RACK-02"),
    )

    assert moved.location_id == "RACK-02"
    assert verdict.correct_location_type is True
    assert verdict.committed == verdict.in_assigned_location
    assert verdict.current_location in ("RACK-01", "RACK-02")
    final = await label_service.get_label(db1, "ROLL", "R100")
    assert final.location_id == "RACK-02"
    history = await scan_service.get_session_history(db1, str(rack_scan.session_id))
    assert history[-1].in_assigned_location == verdict.in_assigned_location
