"""
Schémas Pydantic pour les étiquettes (bobines, palettes PF, étiquettes d'emplacement).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ValidationError, field_validator, model_validator

ROLL = "ROLL"
FG_PALLET = "FG_PALLET"
FG_LOCATION = "FG_LOCATION"
PAPER_ROLL_LOCATION = "PAPER_ROLL_LOCATION"
RACK_LOCATION = "RACK_LOCATION"

VALID_LABEL_TYPES = {ROLL, FG_PALLET, FG_LOCATION, PAPER_ROLL_LOCATION, RACK_LOCATION}
ITEM_LABEL_TYPES = {ROLL, FG_PALLET}                        # Articles déplaçables
LOCATION_LABEL_TYPES = {FG_LOCATION, PAPER_ROLL_LOCATION, RACK_LOCATION}

VALID_STATUSES = {"AVAILABLE", "CHECKED_OUT", "LOST", "UNRESOLVED"}
DEFAULT_STATUS = "UNRESOLVED"


def validate_label_type(v: str) -> str:
    v = v.strip().upper()
    if v not in VALID_LABEL_TYPES:
        raise ValueError(f"Type d'étiquette invalide. Valeurs acceptées : {sorted(VALID_LABEL_TYPES)}")
    return v


def validate_status(v: str) -> str:
    v = v.strip().upper()
    if v not in VALID_STATUSES:
        raise ValueError(f"Statut invalide. Valeurs acceptées : {sorted(VALID_STATUSES)}")
    return v


class RollDetails(BaseModel):
    code: str
    name: Optional[str] = None
    size_mm: Optional[float] = None

    @field_validator("code")
    @classmethod
    def code_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le code de la bobine ne peut pas être vide.")
        return v.strip()


class FgPalletDetails(BaseModel):
    raw_value: Optional[str] = None
    work_order: Optional[str] = None
    quantity: Optional[int] = None
    total_pieces: Optional[int] = None

    @field_validator("quantity", "total_pieces")
    @classmethod
    def not_negative(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("Les quantités ne peuvent pas être négatives.")
        return v


class LocationLabelDetails(BaseModel):
    tagged_location_id: Optional[str] = None
    description: Optional[str] = None


DETAILS_SCHEMAS = {
    ROLL: RollDetails,
    FG_PALLET: FgPalletDetails,
    FG_LOCATION: LocationLabelDetails,
    PAPER_ROLL_LOCATION: LocationLabelDetails,
    RACK_LOCATION: LocationLabelDetails,
}


class LabelCreate(BaseModel):
    """Données nécessaires pour enregistrer une étiquette et son extension."""
    label_type: str
    label_id: str
    location_id: Optional[str] = None
    status: str = DEFAULT_STATUS
    details: Dict[str, Any] = {}

    @field_validator("label_type")
    @classmethod
    def valid_label_type(cls, v: str) -> str:
        return validate_label_type(v)

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        return validate_status(v)

    @field_validator("label_id")
    @classmethod
    def label_id_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("L'identifiant de l'étiquette ne peut pas être vide.")
        return v.strip()

    @model_validator(mode="after")
    def details_match_type(self) -> "LabelCreate":
        # Les attributs propres au type sont validés par le schéma d'extension correspondant
        try:
            parsed = DETAILS_SCHEMAS[self.label_type].model_validate(self.details)
        except ValidationError as e:
            raise ValueError(f"Détails invalides pour le type {self.label_type} : {e.errors()}")
        self.details = parsed.model_dump()
        return self


class LabelStatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        return validate_status(v)


class LabelLocationUpdate(BaseModel):
    location_id: str


class LabelResponse(BaseModel):
    """Étiquette de base + attributs de son extension."""
    label_type: str
    label_id: str
    status: str
    status_notes: Optional[str] = None
    location_id: Optional[str] = None
    last_scan_time: Optional[datetime] = None
    check_in: Optional[datetime] = None
    details: Dict[str, Any] = {}


class LabelStatusResult(BaseModel):
    """Résultat d'un changement de statut (changed=False si le statut était déjà le bon)."""
    changed: bool
    label: LabelResponse


class LabelListResponse(BaseModel):
    count: int
    data: List[LabelResponse]


class ItemExistsResponse(BaseModel):
    exists: bool
    item: Optional[LabelResponse] = None
