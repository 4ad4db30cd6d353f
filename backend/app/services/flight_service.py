"""
Service d'historique des vols de drone.

Un vol terminé est enregistré en une seule transaction : en-tête + journal de
mouvements complet (tout ou rien). Ensuite, seuls le favori, le nom et la
suppression modifient le vol ; les mouvements ne sont jamais édités.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import unit_of_work
from app.exceptions import FlightNotFoundError
from app.models.flight import FlightSession, MovementLog
from app.models.label import Label
from app.schemas.flight import (
    FlightCoverage,
    FlightCreate,
    FlightSessionResponse,
    LocationRelocationCount,
    LocationScanCount,
    MovementHistoryEntry,
    MovementLogResponse,
    MovementStat,
)

logger = logging.getLogger(__name__)

RELOCATE = "relocate"
HISTORY_LIMIT = 50


async def record_flight(db: AsyncSession, data: FlightCreate) -> FlightSessionResponse:
    """
    Enregistre un vol et tous ses mouvements dans la même transaction.
    Un journal vide crée quand même l'en-tête du vol.
    """
    summary = data.session_summary

    async with unit_of_work(db):
        flight = FlightSession(
            start_time=summary.start_time,
            end_time=summary.end_time,
            end_reason=data.end_reason,
            battery_start=summary.battery_start,
            battery_end=summary.battery_end,
            total_commands=summary.total_commands,
            name=data.name,
            is_starred=False,
        )
        db.add(flight)
        await db.flush()  # Obtenir le session_id avant les mouvements

        movements = [
            MovementLog(
                session_id=flight.session_id,
                action=m.action,
                timestamp=m.timestamp,
                battery_level=m.battery_level,
                distance=m.distance,
                label_id=m.label_id,
                error_type=m.error_type,
                error_message=m.error_message,
            )
            for m in data.flight_data
        ]
        db.add_all(movements)

    logger.info(
        "Vol %s enregistré : %d mouvements, batterie %s → %s",
        flight.session_id, len(movements), flight.battery_start, flight.battery_end,
    )
    return _to_response(flight, movements)


async def list_flights(db: AsyncSession) -> List[FlightSessionResponse]:
    """Tous les vols avec leurs mouvements, du plus récent au plus ancien."""
    flights = (await db.execute(
        select(FlightSession).order_by(FlightSession.start_time.desc())
    )).scalars().all()
    if not flights:
        return []

    rows = (await db.execute(
        select(MovementLog)
        .where(MovementLog.session_id.in_([f.session_id for f in flights]))
        .order_by(MovementLog.timestamp, MovementLog.log_id)
    )).scalars().all()

    by_flight: Dict[uuid.UUID, List[MovementLog]] = {}
    for row in rows:
        by_flight.setdefault(row.session_id, []).append(row)

    return [_to_response(f, by_flight.get(f.session_id, [])) for f in flights]


async def get_flight(db: AsyncSession, session_id: uuid.UUID) -> FlightSessionResponse:
    """Détail d'un vol ; lève FlightNotFoundError."""
    flight = await _require(db, session_id)
    return _to_response(flight, await _movements(db, session_id))


async def set_starred(db: AsyncSession, session_id: uuid.UUID, is_starred: bool) -> FlightSessionResponse:
    async with unit_of_work(db):
        flight = await _require(db, session_id)
        flight.is_starred = is_starred
        flight.last_modified = datetime.now(timezone.utc)
    return _to_response(flight, await _movements(db, session_id))


async def rename_flight(db: AsyncSession, session_id: uuid.UUID, name: str) -> FlightSessionResponse:
    async with unit_of_work(db):
        flight = await _require(db, session_id)
        flight.name = name
        flight.last_modified = datetime.now(timezone.utc)
    logger.info("Vol %s renommé : %s", session_id, name)
    return _to_response(flight, await _movements(db, session_id))


async def delete_flight(db: AsyncSession, session_id: uuid.UUID) -> None:
    """
    Supprime un vol : les mouvements d'abord, puis l'en-tête, dans la même transaction.
    Lève FlightNotFoundError si le vol n'existe pas.
    """
    async with unit_of_work(db):
        flight = await _require(db, session_id)
        result = await db.execute(delete(MovementLog).where(MovementLog.session_id == session_id))
        await db.delete(flight)

    logger.info("Vol %s supprimé (%d mouvements)", session_id, result.rowcount)


async def get_movement_stats(db: AsyncSession) -> List[MovementStat]:
    """Statistiques par action : nombre, batterie moyenne, distance moyenne."""
    count = func.count(MovementLog.log_id)
    rows = (await db.execute(
        select(
            MovementLog.action,
            count,
            func.avg(MovementLog.battery_level),
            func.avg(MovementLog.distance),
        )
        .group_by(MovementLog.action)
        .order_by(count.desc(), MovementLog.action)
    )).all()

    return [
        MovementStat(
            action=action,
            count=n,
            avg_battery_level=_round(avg_battery),
            avg_distance=_round(avg_distance),
        )
        for action, n, avg_battery, avg_distance in rows
    ]


# ----------------------------------------------------------------
# Statistiques d'un vol (mouvements rattachés aux étiquettes scannées)
# ----------------------------------------------------------------
# Les mouvements sans label_id, ou dont l'étiquette n'est pas enregistrée,
# n'entrent pas dans ces statistiques (jointure sur labels.label_id).

async def get_coverage_stats(db: AsyncSession, session_id: uuid.UUID) -> FlightCoverage:
    """Nombre de scans d'étiquettes du vol et nombre d'emplacements distincts couverts."""
    await _require(db, session_id)
    total, unique = (await db.execute(
        select(func.count(), func.count(func.distinct(Label.location_id)))
        .select_from(MovementLog)
        .join(Label, MovementLog.label_id == Label.label_id)
        .where(MovementLog.session_id == session_id)
    )).one()
    return FlightCoverage(total_scans=total, unique_locations=unique)


async def get_stock_take_stats(db: AsyncSession, session_id: uuid.UUID) -> List[LocationScanCount]:
    """Articles scannés par emplacement pendant le vol, du plus au moins scanné."""
    await _require(db, session_id)
    items_scanned = func.count(MovementLog.label_id)
    rows = (await db.execute(
        select(Label.location_id, items_scanned)
        .select_from(MovementLog)
        .join(Label, MovementLog.label_id == Label.label_id)
        .where(MovementLog.session_id == session_id)
        .group_by(Label.location_id)
        .order_by(items_scanned.desc(), Label.location_id)
    )).all()
    return [LocationScanCount(location_id=loc, items_scanned=n) for loc, n in rows]


async def get_relocation_stats(db: AsyncSession, session_id: uuid.UUID) -> List[LocationRelocationCount]:
    """Relocalisations (action 'relocate') par emplacement pendant le vol."""
    await _require(db, session_id)
    relocations = func.count()
    rows = (await db.execute(
        select(Label.location_id, relocations)
        .select_from(MovementLog)
        .join(Label, MovementLog.label_id == Label.label_id)
        .where(MovementLog.session_id == session_id, MovementLog.action == RELOCATE)
        .group_by(Label.location_id)
        .order_by(relocations.desc(), Label.location_id)
    )).all()
    return [LocationRelocationCount(location_id=loc, relocations=n) for loc, n in rows]


async def get_movement_history(
    db: AsyncSession, session_id: uuid.UUID, limit: int = HISTORY_LIMIT
) -> List[MovementHistoryEntry]:
    """Derniers mouvements du vol sur des étiquettes, du plus récent au plus ancien."""
    await _require(db, session_id)
    rows = (await db.execute(
        select(MovementLog.action, Label.location_id, MovementLog.timestamp)
        .select_from(MovementLog)
        .join(Label, MovementLog.label_id == Label.label_id)
        .where(MovementLog.session_id == session_id)
        .order_by(MovementLog.timestamp.desc(), MovementLog.log_id.desc())
        .limit(limit)
    )).all()
    return [
        MovementHistoryEntry(action=action, location_id=loc, timestamp=ts)
        for action, loc, ts in rows
    ]


async def _require(db: AsyncSession, session_id: uuid.UUID) -> FlightSession:
    flight = await db.get(FlightSession, session_id)
    if flight is None:
        raise FlightNotFoundError(f"Vol {session_id} introuvable.")
    return flight


async def _movements(db: AsyncSession, session_id: uuid.UUID) -> List[MovementLog]:
    return list((await db.execute(
        select(MovementLog)
        .where(MovementLog.session_id == session_id)
        .order_by(MovementLog.timestamp, MovementLog.log_id)
    )).scalars().all())


def _round(value) -> Optional[float]:
    return round(float(value), 2) if value is not None else None


def _to_response(flight: FlightSession, movements: List[MovementLog]) -> FlightSessionResponse:
    return FlightSessionResponse(
        session_id=flight.session_id,
        start_time=flight.start_time,
        end_time=flight.end_time,
        end_reason=flight.end_reason,
        battery_start=flight.battery_start,
        battery_end=flight.battery_end,
        total_commands=flight.total_commands,
        name=flight.name,
        is_starred=flight.is_starred,
        last_modified=flight.last_modified,
        total_movements=len(movements),
        movements=[MovementLogResponse.model_validate(m) for m in movements],
    )
