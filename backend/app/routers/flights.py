"""
Router pour l'historique des vols de drone.
"""

import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.flight import (
    FlightCoverage,
    FlightCreate,
    FlightRename,
    FlightSessionResponse,
    FlightStarUpdate,
    LocationRelocationCount,
    LocationScanCount,
    MovementHistoryEntry,
    MovementStat,
)
from app.services import flight_service

router = APIRouter(prefix="/api/v1/flights", tags=["Vols"])


@router.post("", response_model=FlightSessionResponse, status_code=201, summary="Enregistrer un vol")
async def record_flight(data: FlightCreate, db: AsyncSession = Depends(get_db)):
    """
    Enregistre un vol terminé et son journal de mouvements (tout ou rien).
    Un journal vide est accepté.
    """
    return await flight_service.record_flight(db, data)


@router.get("", response_model=List[FlightSessionResponse], summary="Lister les vols")
async def list_flights(db: AsyncSession = Depends(get_db)):
    """Retourne tous les vols avec leurs mouvements, du plus récent au plus ancien."""
    return await flight_service.list_flights(db)


@router.get("/movement-stats", response_model=List[MovementStat], summary="Statistiques des mouvements")
async def movement_stats(db: AsyncSession = Depends(get_db)):
    return await flight_service.get_movement_stats(db)


@router.get("/{session_id}", response_model=FlightSessionResponse, summary="Détail d'un vol")
async def get_flight(session_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await flight_service.get_flight(db, session_id)


@router.patch("/{session_id}/star", response_model=FlightSessionResponse, summary="Marquer un vol favori")
async def set_starred(session_id: uuid.UUID, data: FlightStarUpdate, db: AsyncSession = Depends(get_db)):
    return await flight_service.set_starred(db, session_id, data.is_starred)


@router.patch("/{session_id}/name", response_model=FlightSessionResponse, summary="Renommer un vol")
async def rename_flight(session_id: uuid.UUID, data: FlightRename, db: AsyncSession = Depends(get_db)):
    return await flight_service.rename_flight(db, session_id, data.name)


@router.delete("/{session_id}", status_code=204, summary="Supprimer un vol")
async def delete_flight(session_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Supprime le vol et tout son journal de mouvements."""
    await flight_service.delete_flight(db, session_id)


# ----------------------------------------------------------------
# Tableau de bord d'un vol
# ----------------------------------------------------------------

@router.get("/{session_id}/coverage", response_model=FlightCoverage, summary="Couverture d'un vol")
async def coverage_stats(session_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Nombre de scans d'étiquettes et d'emplacements distincts couverts par le vol."""
    return await flight_service.get_coverage_stats(db, session_id)


@router.get("/{session_id}/stock-take", response_model=List[LocationScanCount], summary="Inventaire d'un vol")
async def stock_take_stats(session_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await flight_service.get_stock_take_stats(db, session_id)


@router.get(
    "/{session_id}/relocations",
    response_model=List[LocationRelocationCount],
    summary="Relocalisations d'un vol",
)
async def relocation_stats(session_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await flight_service.get_relocation_stats(db, session_id)


@router.get("/{session_id}/history", response_model=List[MovementHistoryEntry], summary="Historique d'un vol")
async def movement_history(session_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Les 50 derniers mouvements du vol sur des étiquettes, du plus récent au plus ancien."""
    return await flight_service.get_movement_history(db, session_id)
