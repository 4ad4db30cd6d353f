"""
Router pour le registre des étiquettes (bobines, palettes PF, étiquettes d'emplacement).
CRUD, changement de statut / d'emplacement et export CSV.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.label import (
    ItemExistsResponse,
    LabelCreate,
    LabelListResponse,
    LabelLocationUpdate,
    LabelResponse,
    LabelStatusResult,
    LabelStatusUpdate,
    validate_label_type,
    validate_status,
)
from app.services import label_service

router = APIRouter(prefix="/api/v1/labels", tags=["Étiquettes"])


def _normalized(validator, value: Optional[str]) -> Optional[str]:
    """Applique un validateur de schéma à un paramètre d'URL (400 si invalide)."""
    if value is None:
        return None
    try:
        return validator(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("", response_model=LabelResponse, status_code=201, summary="Enregistrer une étiquette")
async def create_label(data: LabelCreate, db: AsyncSession = Depends(get_db)):
    """
    Enregistre une étiquette et son extension (bobine, palette PF ou emplacement).
    Un couple (type, identifiant) déjà enregistré est refusé (409).
    """
    return await label_service.create_label(db, data)


@router.get("", response_model=LabelListResponse, summary="Lister les étiquettes")
async def list_labels(
    label_type: Optional[str] = None,
    status: Optional[str] = None,
    location_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: AsyncSession = Depends(get_db),
):
    """Filtres optionnels : type, statut, emplacement, période d'enregistrement."""
    return await label_service.list_labels(
        db,
        label_type=_normalized(validate_label_type, label_type),
        status=_normalized(validate_status, status),
        location_id=location_id,
        start=start,
        end=end,
    )


@router.get("/export", summary="Exporter les étiquettes en CSV")
async def export_labels(
    label_types: List[str] = Query(default=[]),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: AsyncSession = Depends(get_db),
):
    """Télécharge les étiquettes au format CSV (séparateur ;, compatible Excel)."""
    types = [_normalized(validate_label_type, t) for t in label_types]
    content = await label_service.export_labels_csv(db, label_types=types or None, start=start, end=end)
    filename = f"labels_{datetime.now().strftime('%Y%m%d_%H%M')}.csv"
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get(
    "/items/{label_id}/exists",
    response_model=ItemExistsResponse,
    summary="Vérifier l'existence d'un article",
)
async def item_exists(label_id: str, label_type: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    """exists=False si aucune étiquette ne porte cet identifiant (pas de 404)."""
    return await label_service.item_exists(db, label_id, _normalized(validate_label_type, label_type))


@router.get("/{label_type}/{label_id}", response_model=LabelResponse, summary="Détail d'une étiquette")
async def get_label(label_type: str, label_id: str, db: AsyncSession = Depends(get_db)):
    return await label_service.get_label(db, _normalized(validate_label_type, label_type), label_id)


@router.put(
    "/{label_type}/{label_id}/status",
    response_model=LabelStatusResult,
    summary="Changer le statut d'une étiquette",
)
async def update_status(
    label_type: str,
    label_id: str,
    data: LabelStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Change le statut (AVAILABLE, CHECKED_OUT, LOST, UNRESOLVED).
    Idempotent : changed=False si l'étiquette avait déjà ce statut.
    """
    return await label_service.update_status(
        db, _normalized(validate_label_type, label_type), label_id, data.status, data.notes
    )


@router.put(
    "/{label_type}/{label_id}/location",
    response_model=LabelResponse,
    summary="Changer l'emplacement d'une étiquette",
)
async def update_location(
    label_type: str,
    label_id: str,
    data: LabelLocationUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Affectation manuelle d'un emplacement (hors protocole de scan drone)."""
    return await label_service.update_location(
        db, _normalized(validate_label_type, label_type), label_id, data.location_id
    )


@router.delete("/{label_type}/{label_id}", status_code=204, summary="Supprimer une étiquette")
async def delete_label(label_type: str, label_id: str, db: AsyncSession = Depends(get_db)):
    """Supprime l'étiquette et son extension."""
    await label_service.delete_label(db, _normalized(validate_label_type, label_type), label_id)
