"""
Règles de compatibilité type d'article ↔ type d'emplacement.

Table explicite et totale : chaque type d'étiquette a une réponse définie pour
chaque type d'emplacement. Un type inconnu lève une ValidationError, jamais
une réponse par défaut silencieuse.
"""

from typing import Dict, List

from app.exceptions import ValidationError
from app.schemas.label import (
    FG_LOCATION,
    FG_PALLET,
    PAPER_ROLL_LOCATION,
    RACK_LOCATION,
    ROLL,
    VALID_LABEL_TYPES,
)
from app.schemas.location import (
    FG_PALLET_LOCATION,
    PAPER_ROLL_LOCATION_TYPE,
    RACK_LOCATION_TYPE,
    VALID_LOCATION_TYPES,
)

# Les étiquettes d'emplacement ne se rangent nulle part : ce sont des repères fixes.
COMPATIBILITY: Dict[str, Dict[str, bool]] = {
    ROLL: {
        FG_PALLET_LOCATION: False,
        PAPER_ROLL_LOCATION_TYPE: True,
        RACK_LOCATION_TYPE: True,
    },
    FG_PALLET: {
        FG_PALLET_LOCATION: True,
        PAPER_ROLL_LOCATION_TYPE: False,
        RACK_LOCATION_TYPE: True,
    },
    FG_LOCATION: {
        FG_PALLET_LOCATION: False,
        PAPER_ROLL_LOCATION_TYPE: False,
        RACK_LOCATION_TYPE: False,
    },
    PAPER_ROLL_LOCATION: {
        FG_PALLET_LOCATION: False,
        PAPER_ROLL_LOCATION_TYPE: False,
        RACK_LOCATION_TYPE: False,
    },
    RACK_LOCATION: {
        FG_PALLET_LOCATION: False,
        PAPER_ROLL_LOCATION_TYPE: False,
        RACK_LOCATION_TYPE: False,
    },
}


def is_compatible(label_type: str, location_type: str) -> bool:
    """Indique si un article de type label_type peut être stocké dans un emplacement location_type."""
    if label_type not in COMPATIBILITY:
        raise ValidationError(f"Type d'étiquette inconnu : {label_type}.")
    row = COMPATIBILITY[label_type]
    if location_type not in row:
        raise ValidationError(f"Type d'emplacement inconnu : {location_type}.")
    return row[location_type]


def allowed_item_types(location_type: str) -> List[str]:
    """Types d'étiquettes acceptés par défaut pour un type d'emplacement (triés)."""
    return sorted(
        label_type
        for label_type in COMPATIBILITY
        if is_compatible(label_type, location_type)
    )


def _check_table() -> None:
    missing = [
        (label_type, location_type)
        for label_type in VALID_LABEL_TYPES
        for location_type in VALID_LOCATION_TYPES
        if location_type not in COMPATIBILITY.get(label_type, {})
    ]
    if missing:
        raise RuntimeError(f"Table de compatibilité incomplète : {missing}")


_check_table()
