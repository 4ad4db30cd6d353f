"""
Router pour les emplacements (racks, zones bobines, zones palettes PF).
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.location import LocationCreate, LocationResponse, validate_location_type
from app.services import location_service

router = APIRouter(prefix="/api/v1/locations", tags=["Emplacements"])


@router.post("", response_model=LocationResponse, status_code=201, summary="Créer un emplacement")
async def create_location(data: LocationCreate, db: AsyncSession = Depends(get_db)):
    """
    Crée un emplacement. Sans allowed_item_types, les types d'articles acceptés
    sont ceux de la table de compatibilité pour ce type d'emplacement.
    """
    return await location_service.create_location(db, data)


@router.get("", response_model=List[LocationResponse], summary="Lister les emplacements")
async def list_locations(type_name: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    if type_name is not None:
        try:
            type_name = validate_location_type(type_name)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    return await location_service.get_locations(db, type_name)


@router.get("/{location_id}", response_model=LocationResponse, summary="Détail d'un emplacement")
async def get_location(location_id: str, db: AsyncSession = Depends(get_db)):
    return await location_service.get_location(db, location_id)


@router.delete("/{location_id}", status_code=204, summary="Supprimer un emplacement")
async def delete_location(location_id: str, db: AsyncSession = Depends(get_db)):
    """Refusé (409) tant qu'une étiquette est rangée ou rattachée à cet emplacement."""
    await location_service.delete_location(db, location_id)
