"""
Schémas Pydantic pour l'historique des vols de drone.
Endpoint : POST /api/v1/flights (un vol complet + son journal de mouvements)
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator, model_validator

MAX_MOVEMENTS = 10000


class MovementLogItem(BaseModel):
    action: str
    timestamp: datetime
    battery_level: float
    distance: Optional[float] = None
    label_id: Optional[str] = None
    error_type: Optional[str] = None       # Présent uniquement sur les actions en échec
    error_message: Optional[str] = None

    @field_validator("action")
    @classmethod
    def action_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("L'action ne peut pas être vide.")
        return v.strip()


class FlightSummary(BaseModel):
    start_time: datetime
    end_time: datetime
    battery_start: float
    battery_end: float
    total_commands: int = 0

    @model_validator(mode="after")
    def end_after_start(self) -> "FlightSummary":
        if self.end_time < self.start_time:
            raise ValueError("La fin du vol doit être postérieure à son début.")
        return self


class FlightCreate(BaseModel):
    session_summary: FlightSummary
    end_reason: Optional[str] = None
    flight_data: List[MovementLogItem] = []
    name: Optional[str] = None

    @field_validator("flight_data")
    @classmethod
    def not_too_large(cls, v: List[MovementLogItem]) -> List[MovementLogItem]:
        if len(v) > MAX_MOVEMENTS:
            raise ValueError(f"Journal trop grand : maximum {MAX_MOVEMENTS} mouvements par vol.")
        return v


class FlightStarUpdate(BaseModel):
    is_starred: bool


class FlightRename(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le nom du vol ne peut pas être vide.")
        return v.strip()


class MovementLogResponse(BaseModel):
    action: str
    timestamp: datetime
    battery_level: float
    distance: Optional[float]
    label_id: Optional[str]
    error_type: Optional[str]
    error_message: Optional[str]

    model_config = {"from_attributes": True}


class FlightSessionResponse(BaseModel):
    session_id: uuid.UUID
    start_time: datetime
    end_time: datetime
    end_reason: Optional[str]
    battery_start: float
    battery_end: float
    total_commands: int
    name: Optional[str]
    is_starred: bool
    last_modified: Optional[datetime]
    total_movements: int
    movements: List[MovementLogResponse] = []


class MovementStat(BaseModel):
    action: str
    count: int
    avg_battery_level: Optional[float]
    avg_distance: Optional[float]


# Statistiques d'un vol (couverture, inventaire, relocalisations, historique)

class FlightCoverage(BaseModel):
    total_scans: int
    unique_locations: int


class LocationScanCount(BaseModel):
    location_id: Optional[str]
    items_scanned: int


class LocationRelocationCount(BaseModel):
    location_id: Optional[str]
    relocations: int


class MovementHistoryEntry(BaseModel):
    action: str
    location_id: Optional[str]
    timestamp: datetime
