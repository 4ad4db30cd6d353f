"""
Tests du stockage des sessions de scan rack → article (durée de vie, expiration, éviction).
"""

from unittest.mock import MagicMock

import pytest

from app.exceptions import LocationNotFoundError, NotFoundError, SessionExpiredError, SessionRequiredError
from app.services.scan_session_store import ScanSessionStore
from conftest import add_location


async def test_ouverture_session(db, store, clock):
    await add_location(db, "R-01", "RACK_LOCATION")

    session = await store.open_session(db, "R-01")

    assert session.location_id == "R-01"
    assert session.expires_at == clock.now + store.ttl
    assert session.scan_sequence_expected == 2
    assert len(store) == 1


async def test_ouverture_emplacement_inconnu(db, store):
    with pytest.raises(LocationNotFoundError):
        await store.open_session(db, "INCONNU")
    assert len(store) == 0


async def test_identifiants_uniques(db, store):
    await add_location(db, "R-01", "RACK_LOCATION")
    a = await store.open_session(db, "R-01")
    b = await store.open_session(db, "R-01")
    assert a.session_id != b.session_id


async def test_session_inconnue(store):
    with pytest.raises(SessionRequiredError):
        await store.consume_session("00000000-0000-0000-0000-000000000000")


async def test_session_reutilisable_avant_expiration(db, store, clock):
    """Une session sert pour plusieurs articles tant qu'elle n'a pas expiré."""
    await add_location(db, "R-01", "RACK_LOCATION")
    session = await store.open_session(db, "R-01")

    clock.advance(100)
    await store.consume_session(session.session_id)
    clock.advance(100)
    consumed = await store.consume_session(session.session_id)

    assert consumed.item_scans == 2


async def test_session_expiree(db, store, clock):
    await add_location(db, "R-01", "RACK_LOCATION")
    session = await store.open_session(db, "R-01")

    clock.advance(301)

    with pytest.raises(SessionExpiredError) as exc:
        await store.consume_session(session.session_id)
    assert not isinstance(exc.value, NotFoundError)
    assert exc.value.kind == "session_expired"
    assert len(store) == 0


async def test_session_expiree_reste_expiree(db, store, clock):
    """Après un premier refus, la même session est toujours signalée comme expirée."""
    await add_location(db, "R-01", "RACK_LOCATION")
    session = await store.open_session(db, "R-01")
    clock.advance(300)

    with pytest.raises(SessionExpiredError):
        await store.consume_session(session.session_id)
    with pytest.raises(SessionExpiredError):
        await store.consume_session(session.session_id)


async def test_session_evincee_signalee_expiree(db, store, clock):
    """Le job d'éviction passé, un scan article reçoit toujours SessionExpiredError."""
    await add_location(db, "R-01", "RACK_LOCATION")
    session = await store.open_session(db, "R-01")
    clock.advance(301)

    assert await store.evict(session.session_id) is True

    with pytest.raises(SessionExpiredError) as exc:
        await store.consume_session(session.session_id)
    assert exc.value.kind == "session_expired"
    assert exc.value.status_code == 410


async def test_session_purgee_signalee_expiree(db, store, clock):
    await add_location(db, "R-01", "RACK_LOCATION")
    session = await store.open_session(db, "R-01")
    clock.advance(301)

    assert await store.purge_expired() == 1

    with pytest.raises(SessionExpiredError):
        await store.consume_session(session.session_id)


async def test_session_expiree_oubliee_apres_une_duree_de_vie(db, store, clock):
    """Une durée de vie après l'expiration, l'identifiant redevient inconnu."""
    await add_location(db, "R-01", "RACK_LOCATION")
    session = await store.open_session(db, "R-01")
    clock.advance(301)
    await store.evict(session.session_id)

    clock.advance(300)
    await store.purge_expired()

    with pytest.raises(SessionRequiredError) as exc:
        await store.consume_session(session.session_id)
    assert not isinstance(exc.value, SessionExpiredError)
    assert exc.value.kind == "session_required"


async def test_session_annulee_inconnue(db, store):
    """Une session retirée par discard n'est pas une session expirée."""
    await add_location(db, "R-01", "RACK_LOCATION")
    session = await store.open_session(db, "R-01")

    await store.discard(session.session_id)

    with pytest.raises(SessionRequiredError) as exc:
        await store.consume_session(session.session_id)
    assert exc.value.kind == "session_required"


async def test_session_garde_emplacement(db, store):
    await add_location(db, "R-01", "RACK_LOCATION")

    session = await store.open_session(db, "R-01")

    assert session.location.location_id == "R-01"
    assert session.location.allowed_item_types == ["FG_PALLET", "ROLL"]


async def test_get_ne_retourne_pas_session_expiree(db, store, clock):
    await add_location(db, "R-01", "RACK_LOCATION")
    session = await store.open_session(db, "R-01")

    assert await store.get(session.session_id) is session
    clock.advance(400)
    assert await store.get(session.session_id) is None


async def test_evict_uniquement_si_expiree(db, store, clock):
    await add_location(db, "R-01", "RACK_LOCATION")
    session = await store.open_session(db, "R-01")

    assert await store.evict(session.session_id) is False
    clock.advance(300)
    assert await store.evict(session.session_id) is True
    assert len(store) == 0


async def test_purge_expired(db, store, clock):
    await add_location(db, "R-01", "RACK_LOCATION")
    await store.open_session(db, "R-01")
    clock.advance(200)
    recent = await store.open_session(db, "R-01")
    clock.advance(150)

    assert await store.purge_expired() == 1
    assert len(store) == 1
    assert await store.get(recent.session_id) is recent


async def test_job_eviction_planifie(db, clock):
    """Avec un planificateur, chaque session planifie son éviction à l'heure d'expiration."""
    scheduler = MagicMock()
    scheduler.get_job.return_value = None
    store = ScanSessionStore(ttl_seconds=300, scheduler=scheduler, clock=clock)
    await add_location(db, "R-01", "RACK_LOCATION")

    session = await store.open_session(db, "R-01")

    scheduler.add_job.assert_called_once()
    kwargs = scheduler.add_job.call_args.kwargs
    assert kwargs["run_date"] == session.expires_at
    assert kwargs["args"] == [session.session_id]
    assert kwargs["trigger"] == "date"


async def test_discard_annule_job(db, clock):
    scheduler = MagicMock()
    job = MagicMock()
    scheduler.get_job.return_value = job
    store = ScanSessionStore(ttl_seconds=300, scheduler=scheduler, clock=clock)
    await add_location(db, "R-01", "RACK_LOCATION")
    session = await store.open_session(db, "R-01")

    await store.discard(session.session_id)

    job.remove.assert_called_once()
