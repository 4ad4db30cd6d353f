"""
Schémas Pydantic pour le protocole de scan drone (scan rack puis scan article).
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator

from app.schemas.label import validate_label_type
from app.schemas.location import LocationResponse

MESSAGE_OK = "Article dans le bon rack et conforme à son emplacement assigné."
MESSAGE_WRONG_TYPE = "ATTENTION : l'article est dans un rack d'un type incompatible."
MESSAGE_WRONG_LOCATION = "ATTENTION : l'article n'est pas à son emplacement assigné."


class RackScanRequest(BaseModel):
    location_id: str

    @field_validator("location_id")
    @classmethod
    def location_id_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("L'identifiant de l'emplacement ne peut pas être vide.")
        return v.strip()


class RackScanResponse(BaseModel):
    session_id: uuid.UUID
    location: LocationResponse
    expires_at: datetime
    message: str = "Scan rack enregistré."


class ItemScanRequest(BaseModel):
    session_id: uuid.UUID
    label_id: str
    label_type: Optional[str] = None  # Utile si le même identifiant existe pour plusieurs types

    @field_validator("label_id")
    @classmethod
    def label_id_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("L'identifiant de l'article ne peut pas être vide.")
        return v.strip()

    @field_validator("label_type")
    @classmethod
    def valid_label_type(cls, v: Optional[str]) -> Optional[str]:
        return validate_label_type(v) if v is not None else v


class ItemScanVerdict(BaseModel):
    """
    Verdict d'un scan article. Un mauvais emplacement est un résultat normal,
    pas une erreur : seul committed indique si le registre a été mis à jour.
    """
    session_id: uuid.UUID
    label_id: str
    label_type: str
    correct_location_type: bool
    in_assigned_location: bool
    current_location: Optional[str]
    scanned_location: str
    valid_locations: List[str]
    committed: bool
    message: str


class ScanAuditEntry(BaseModel):
    location_id: str
    label_id: Optional[str]
    label_type: Optional[str]
    scan_sequence: int
    scan_session_id: str
    correct_location_type: Optional[bool]
    in_assigned_location: Optional[bool]
    scan_timestamp: Optional[datetime]

    model_config = {"from_attributes": True}
