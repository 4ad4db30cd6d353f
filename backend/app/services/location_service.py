"""
Service métier pour les emplacements (racks, zones bobines, zones palettes PF).
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import unit_of_work
from app.exceptions import (
    ConflictError,
    LocationInUseError,
    LocationNotFoundError,
    ValidationError,
)
from app.models.label import Label, LocationLabel
from app.models.location import Location
from app.schemas.location import LocationCreate, LocationResponse
from app.services.compatibility import allowed_item_types

logger = logging.getLogger(__name__)


async def create_location(db: AsyncSession, data: LocationCreate) -> LocationResponse:
    """
    Crée un emplacement.

    Sans allowed_item_types, l'emplacement accepte les types compatibles avec son
    type d'après la table de compatibilité ; une liste explicite ne peut que la restreindre.
    Lève ConflictError si l'identifiant existe déjà.
    """
    defaults = allowed_item_types(data.type_name)
    if data.allowed_item_types is None:
        allowed = defaults
    else:
        refused = sorted(set(data.allowed_item_types) - set(defaults))
        if refused:
            raise ValidationError(
                f"Types non compatibles avec un emplacement {data.type_name} : {refused}."
            )
        allowed = list(data.allowed_item_types)

    async with unit_of_work(db):
        if await db.get(Location, data.location_id) is not None:
            raise ConflictError(f"L'emplacement '{data.location_id}' existe déjà.")
        location = Location(
            location_id=data.location_id,
            type_name=data.type_name,
            allowed_item_types=allowed,
            description=data.description,
        )
        db.add(location)

    await db.refresh(location)
    logger.info("Emplacement créé : %s (%s)", location.location_id, location.type_name)
    return LocationResponse.model_validate(location)


async def get_location(db: AsyncSession, location_id: str) -> Location:
    """Retourne l'emplacement ou lève LocationNotFoundError."""
    location = await db.get(Location, location_id)
    if location is None:
        raise LocationNotFoundError(f"Emplacement {location_id} introuvable.")
    return location


async def get_locations(db: AsyncSession, type_name: Optional[str] = None) -> List[LocationResponse]:
    """Liste les emplacements, triés par identifiant."""
    stmt = select(Location).order_by(Location.location_id)
    if type_name:
        stmt = stmt.where(Location.type_name == type_name)
    locations = (await db.execute(stmt)).scalars().all()
    return [LocationResponse.model_validate(loc) for loc in locations]


async def locations_accepting(db: AsyncSession, label_type: str) -> List[str]:
    """Identifiants des emplacements qui acceptent ce type d'article."""
    locations = (await db.execute(select(Location).order_by(Location.location_id))).scalars().all()
    return [loc.location_id for loc in locations if label_type in (loc.allowed_item_types or [])]


async def delete_location(db: AsyncSession, location_id: str) -> None:
    """
    Supprime un emplacement.

    Refusé (LocationInUseError) tant qu'une étiquette y est rangée ou qu'une
    étiquette d'emplacement le désigne. Vérification explicite, pas de cascade.
    """
    async with unit_of_work(db):
        location = await get_location(db, location_id)

        stored = (await db.execute(
            select(Label.id).where(Label.location_id == location_id).limit(1)
        )).scalar()
        tagged = (await db.execute(
            select(LocationLabel.label_pk).where(LocationLabel.tagged_location_id == location_id).limit(1)
        )).scalar()

        if stored is not None or tagged is not None:
            raise LocationInUseError(
                "Impossible de supprimer l'emplacement : des étiquettes y sont encore rattachées."
            )

        await db.delete(location)

    logger.info("Emplacement supprimé : %s", location_id)
