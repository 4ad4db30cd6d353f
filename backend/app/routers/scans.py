"""
Router du protocole de scan drone : scan rack (ouvre une session), puis scans articles.
"""

import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.scan import (
    ItemScanRequest,
    ItemScanVerdict,
    RackScanRequest,
    RackScanResponse,
    ScanAuditEntry,
)
from app.services import scan_service
from app.services.scan_session_store import ScanSessionStore, get_scan_session_store

router = APIRouter(prefix="/api/v1/scans", tags=["Scans drone"])


@router.post("/rack", response_model=RackScanResponse, status_code=201, summary="Scanner un rack")
async def rack_scan(
    data: RackScanRequest,
    db: AsyncSession = Depends(get_db),
    store: ScanSessionStore = Depends(get_scan_session_store),
):
    """
    Enregistre le scan d'un emplacement et ouvre une session de scan.
    Le session_id retourné doit accompagner chaque scan article qui suit.
    """
    return await scan_service.rack_scan(db, store, data.location_id)


@router.post("/item", response_model=ItemScanVerdict, summary="Scanner un article")
async def item_scan(
    data: ItemScanRequest,
    db: AsyncSession = Depends(get_db),
    store: ScanSessionStore = Depends(get_scan_session_store),
):
    """
    Valide un article par rapport au rack de la session.

    - 409 si aucune session n'a été ouverte (scanner le rack d'abord)
    - 410 si la session a expiré
    - Un mauvais emplacement est renvoyé dans le verdict (200), pas en erreur
    """
    return await scan_service.item_scan(
        db, store, data.label_id, str(data.session_id), data.label_type
    )


@router.get(
    "/sessions/{session_id}",
    response_model=List[ScanAuditEntry],
    summary="Historique d'une session de scan",
)
async def get_session_history(session_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await scan_service.get_session_history(db, str(session_id))
