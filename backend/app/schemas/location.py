"""
Schémas Pydantic pour les emplacements.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator

from app.schemas.label import validate_label_type

FG_PALLET_LOCATION = "FG_PALLET_LOCATION"
PAPER_ROLL_LOCATION_TYPE = "PAPER_ROLL_LOCATION"
RACK_LOCATION_TYPE = "RACK_LOCATION"

VALID_LOCATION_TYPES = {FG_PALLET_LOCATION, PAPER_ROLL_LOCATION_TYPE, RACK_LOCATION_TYPE}


def validate_location_type(v: str) -> str:
    v = v.strip().upper()
    if v not in VALID_LOCATION_TYPES:
        raise ValueError(f"Type d'emplacement invalide. Valeurs acceptées : {sorted(VALID_LOCATION_TYPES)}")
    return v


class LocationCreate(BaseModel):
    location_id: str
    type_name: str
    allowed_item_types: Optional[List[str]] = None  # None = valeurs par défaut du type
    description: Optional[str] = None

    @field_validator("location_id")
    @classmethod
    def location_id_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("L'identifiant de l'emplacement ne peut pas être vide.")
        return v.strip()

    @field_validator("type_name")
    @classmethod
    def valid_type_name(cls, v: str) -> str:
        return validate_location_type(v)

    @field_validator("allowed_item_types")
    @classmethod
    def valid_item_types(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        return sorted({validate_label_type(t) for t in v})


class LocationResponse(BaseModel):
    location_id: str
    type_name: str
    allowed_item_types: List[str]
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
