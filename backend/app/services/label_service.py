"""
Registre des étiquettes : bobines, palettes PF et étiquettes d'emplacement.

Chaque étiquette est composée d'un enregistrement de base (labels) et d'une extension
propre à son type. Les deux sont écrits et supprimés dans la même unité de travail.

Concurrence : toute lecture-modification-écriture d'une étiquette se fait sous un
verrou par clé (label_type, label_id), pour éviter les mises à jour perdues quand
deux scans visent la même étiquette en même temps.
"""

import csv
import io
import logging
from datetime import datetime, timezone
from typing import Any, AsyncContextManager, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import unit_of_work
from app.exceptions import (
    DuplicateLabelError,
    ItemNotFoundError,
    LabelNotFoundError,
    ValidationError,
)
from app.locks import KeyedLock
from app.models.label import FgPalletLabel, Label, LocationLabel, RollLabel
from app.schemas.label import (
    FG_LOCATION,
    FG_PALLET,
    PAPER_ROLL_LOCATION,
    RACK_LOCATION,
    ROLL,
    LabelCreate,
    LabelListResponse,
    LabelResponse,
    ItemExistsResponse,
    LabelStatusResult,
    validate_label_type,
    validate_status,
)
from app.services.location_service import get_location

logger = logging.getLogger(__name__)

EXTENSION_MODELS = {
    ROLL: RollLabel,
    FG_PALLET: FgPalletLabel,
    FG_LOCATION: LocationLabel,
    PAPER_ROLL_LOCATION: LocationLabel,
    RACK_LOCATION: LocationLabel,
}

label_locks = KeyedLock()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def label_lock(label_type: str, label_id: str) -> AsyncContextManager[None]:
    """Verrou exclusif sur une étiquette (à tenir pendant toute lecture-modification-écriture)."""
    return label_locks.hold((label_type, label_id))


# ----------------------------------------------------------------
# Création / lecture
# ----------------------------------------------------------------

async def create_label(db: AsyncSession, data: LabelCreate) -> LabelResponse:
    """
    Enregistre une étiquette et son extension.

    Lève DuplicateLabelError si (label_type, label_id) existe déjà : une étiquette
    n'est jamais réenregistrée. Lève LocationNotFoundError si l'emplacement fourni
    n'existe pas. Si l'écriture de l'extension échoue, la base est annulée aussi.
    """
    async with label_lock(data.label_type, data.label_id):
        async with unit_of_work(db):
            if await _load(db, data.label_type, data.label_id) is not None:
                raise DuplicateLabelError(
                    f"L'étiquette {data.label_type} '{data.label_id}' existe déjà."
                )
            if data.location_id is not None:
                await get_location(db, data.location_id)
            tagged = data.details.get("tagged_location_id")
            if tagged:
                await get_location(db, tagged)

            now = _now()
            label = Label(
                label_type=data.label_type,
                label_id=data.label_id,
                status=data.status,
                location_id=data.location_id,
                last_scan_time=now,
                check_in=now,
            )
            db.add(label)
            try:
                await db.flush()  # Obtenir l'ID avant l'extension
            except IntegrityError:
                raise DuplicateLabelError(
                    f"L'étiquette {data.label_type} '{data.label_id}' existe déjà."
                )

            extension = _extension_for(label, data.details)
            db.add(extension)
            await db.flush()

    logger.info("Étiquette créée : %s %s (emplacement %s)", label.label_type, label.label_id, label.location_id)
    return _to_response(label, extension)


async def get_label(db: AsyncSession, label_type: str, label_id: str) -> LabelResponse:
    """Retourne une étiquette avec ses détails, ou lève LabelNotFoundError."""
    label_type = _checked_type(label_type)
    label = await _require(db, label_type, label_id)
    extension = await _load_extension(db, label)
    return _to_response(label, extension)


async def find_item(db: AsyncSession, label_id: str, label_type: Optional[str] = None) -> Label:
    """
    Retrouve l'étiquette scannée par un drone à partir de son seul identifiant.

    Lève ItemNotFoundError si aucune étiquette ne correspond, ValidationError si
    l'identifiant existe pour plusieurs types (label_type doit alors être précisé).
    """
    stmt = (
        select(Label)
        .where(Label.label_id == label_id)
        .execution_options(populate_existing=True)
    )
    if label_type is not None:
        stmt = stmt.where(Label.label_type == _checked_type(label_type))
    labels = (await db.execute(stmt)).scalars().all()

    if not labels:
        raise ItemNotFoundError(f"Article {label_id} introuvable.")
    if len(labels) > 1:
        types = sorted(label.label_type for label in labels)
        raise ValidationError(
            f"L'identifiant {label_id} existe pour plusieurs types {types} : préciser label_type."
        )
    return labels[0]


async def item_exists(
    db: AsyncSession, label_id: str, label_type: Optional[str] = None
) -> ItemExistsResponse:
    """Indique si un article scanné est connu, avec l'étiquette trouvée."""
    try:
        label = await find_item(db, label_id, label_type)
    except ItemNotFoundError:
        return ItemExistsResponse(exists=False, item=None)
    extension = await _load_extension(db, label)
    return ItemExistsResponse(exists=True, item=_to_response(label, extension))


async def list_labels(
    db: AsyncSession,
    label_type: Optional[str] = None,
    status: Optional[str] = None,
    location_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> LabelListResponse:
    """Liste les étiquettes filtrées, de la plus récente à la plus ancienne."""
    labels = await _query_labels(
        db,
        label_types=[label_type] if label_type else None,
        status=status,
        location_id=location_id,
        start=start,
        end=end,
    )
    extensions = await _load_extensions(db, labels)
    data = [_to_response(label, extensions.get(label.id)) for label in labels]
    return LabelListResponse(count=len(data), data=data)


# ----------------------------------------------------------------
# Mises à jour
# ----------------------------------------------------------------

async def update_status(
    db: AsyncSession,
    label_type: str,
    label_id: str,
    status: str,
    notes: Optional[str] = None,
) -> LabelStatusResult:
    """
    Change le statut d'une étiquette.

    Sans effet si le statut est déjà celui demandé : last_scan_time et les notes
    ne sont pas modifiés. Sinon statut, notes et horodatage changent ensemble.
    Lève ValidationError si le type ou le statut n'existe pas (avant toute écriture).
    """
    label_type = _checked_type(label_type)
    status = _checked_status(status)
    async with label_lock(label_type, label_id):
        async with unit_of_work(db):
            label = await _require(db, label_type, label_id)
            changed = label.status != status
            if changed:
                label.status = status
                label.status_notes = notes
                label.last_scan_time = _now()
            extension = await _load_extension(db, label)

    if changed:
        logger.info("Statut de %s %s → %s", label_type, label_id, status)
    else:
        logger.debug("Statut de %s %s déjà %s, aucun changement", label_type, label_id, status)
    return LabelStatusResult(changed=changed, label=_to_response(label, extension))


async def update_location(
    db: AsyncSession,
    label_type: str,
    label_id: str,
    location_id: str,
) -> LabelResponse:
    """
    Range une étiquette dans un emplacement. last_scan_time est toujours mis à jour.
    Lève LabelNotFoundError / LocationNotFoundError.
    """
    label_type = _checked_type(label_type)
    async with label_lock(label_type, label_id):
        async with unit_of_work(db):
            label = await _require(db, label_type, label_id)
            await get_location(db, location_id)
            apply_location(label, location_id)
            extension = await _load_extension(db, label)

    logger.info("Emplacement de %s %s → %s", label_type, label_id, location_id)
    return _to_response(label, extension)


def apply_location(label: Label, location_id: str) -> None:
    """Écrit l'emplacement sur une étiquette déjà chargée (appelant détenteur du verrou)."""
    label.location_id = location_id
    label.last_scan_time = _now()


async def delete_label(db: AsyncSession, label_type: str, label_id: str) -> None:
    """Supprime l'extension puis l'étiquette de base, dans la même transaction."""
    label_type = _checked_type(label_type)
    async with label_lock(label_type, label_id):
        async with unit_of_work(db):
            label = await _require(db, label_type, label_id)
            extension = await _load_extension(db, label)
            if extension is not None:
                await db.delete(extension)
                await db.flush()  # L'extension référence la base : la retirer d'abord
            await db.delete(label)

    logger.info("Étiquette supprimée : %s %s", label_type, label_id)


# ----------------------------------------------------------------
# Export CSV
# ----------------------------------------------------------------

async def export_labels_csv(
    db: AsyncSession,
    label_types: Optional[List[str]] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> str:
    """
    Génère un CSV des étiquettes (UTF-8 BOM, séparateur ;), compatible Excel.
    """
    labels = await _query_labels(db, label_types=label_types, start=start, end=end)
    extensions = await _load_extensions(db, labels)

    output = io.StringIO()
    writer = csv.writer(output, delimiter=";")
    writer.writerow([
        "label_type", "label_id", "status", "location_id", "check_in", "last_scan_time",
        "code", "work_order", "raw_value",
    ])

    for label in labels:
        details = _details(extensions.get(label.id))
        writer.writerow([
            label.label_type,
            label.label_id,
            label.status,
            label.location_id or "",
            _fmt(label.check_in),
            _fmt(label.last_scan_time),
            details.get("code") or "",
            details.get("work_order") or "",
            details.get("raw_value") or "",
        ])

    return "\ufeff" + output.getvalue()  # BOM pour compatibilité Excel


# ----------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------

def _checked_type(label_type: str) -> str:
    try:
        return validate_label_type(label_type)
    except ValueError as e:
        raise ValidationError(str(e))


def _checked_status(status: str) -> str:
    try:
        return validate_status(status)
    except ValueError as e:
        raise ValidationError(str(e))


async def _load(db: AsyncSession, label_type: str, label_id: str) -> Optional[Label]:
    # populate_existing : relire la ligne même si l'objet est déjà dans la session
    return (await db.execute(
        select(Label)
        .where(Label.label_type == label_type, Label.label_id == label_id)
        .execution_options(populate_existing=True)
    )).scalar()


async def _require(db: AsyncSession, label_type: str, label_id: str) -> Label:
    label = await _load(db, label_type, label_id)
    if label is None:
        raise LabelNotFoundError(f"Étiquette {label_type} {label_id} introuvable.")
    return label


async def _load_extension(db: AsyncSession, label: Label):
    return await db.get(EXTENSION_MODELS[label.label_type], label.id)


async def _load_extensions(db: AsyncSession, labels: Iterable[Label]) -> Dict[int, Any]:
    """Charge les extensions d'une liste d'étiquettes (une requête par table)."""
    pks_by_model: Dict[Any, List[int]] = {}
    for label in labels:
        pks_by_model.setdefault(EXTENSION_MODELS[label.label_type], []).append(label.id)

    extensions: Dict[int, Any] = {}
    for model, pks in pks_by_model.items():
        rows = (await db.execute(select(model).where(model.label_pk.in_(pks)))).scalars().all()
        extensions.update({row.label_pk: row for row in rows})
    return extensions


async def _query_labels(
    db: AsyncSession,
    label_types: Optional[List[str]] = None,
    status: Optional[str] = None,
    location_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[Label]:
    stmt = select(Label)
    if label_types:
        stmt = stmt.where(Label.label_type.in_(label_types))
    if status:
        stmt = stmt.where(Label.status == status)
    if location_id:
        stmt = stmt.where(Label.location_id == location_id)
    if start:
        stmt = stmt.where(Label.check_in >= start)
    if end:
        stmt = stmt.where(Label.check_in <= end)
    stmt = stmt.order_by(Label.check_in.desc(), Label.id.desc())
    return list((await db.execute(stmt)).scalars().all())


def _extension_for(label: Label, details: Dict[str, Any]):
    model = EXTENSION_MODELS[label.label_type]
    return model(label_pk=label.id, **details)


def _details(extension) -> Dict[str, Any]:
    if extension is None:
        return {}
    return {
        column.name: getattr(extension, column.name)
        for column in extension.__table__.columns
        if column.name != "label_pk"
    }


def _fmt(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else ""


def _to_response(label: Label, extension) -> LabelResponse:
    return LabelResponse(
        label_type=label.label_type,
        label_id=label.label_id,
        status=label.status,
        status_notes=label.status_notes,
        location_id=label.location_id,
        last_scan_time=label.last_scan_time,
        check_in=label.check_in,
        details=_details(extension),
    )
