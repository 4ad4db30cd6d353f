"""
Moteur de réconciliation des scans drone (scan rack puis scan article).

Protocole :
  1. Scan rack : l'emplacement doit exister → ouverture d'une session de scan
     + ligne d'audit (sequence 1). En cas d'échec, aucune session ne subsiste.
  2. Scan article (avec l'identifiant de session) :
     a. Résoudre la session (SessionRequiredError / SessionExpiredError)
     b. Charger l'article depuis le registre (ItemNotFoundError)
     c. correct_location_type : type d'article compatible avec le type du rack
        et autorisé par l'emplacement
     d. in_assigned_location : l'article est enregistré sur ce rack
     e. Ligne d'audit (sequence 2), écrite quel que soit le verdict
     f. Mise à jour de l'emplacement uniquement si c et d sont vrais
     g. Retour d'un verdict structuré (jamais d'exception pour un mauvais emplacement)

Une même session sert pour plusieurs articles jusqu'à son expiration.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import unit_of_work
from app.exceptions import DependencyError
from app.models.scan import RackItemAssignment
from app.schemas.scan import (
    MESSAGE_OK,
    MESSAGE_WRONG_LOCATION,
    MESSAGE_WRONG_TYPE,
    ItemScanVerdict,
    RackScanResponse,
    ScanAuditEntry,
)
from app.services import label_service, location_service
from app.services.compatibility import is_compatible
from app.services.scan_session_store import ScanSessionStore

logger = logging.getLogger(__name__)

RACK_SCAN_SEQUENCE = 1
ITEM_SCAN_SEQUENCE = 2


async def rack_scan(db: AsyncSession, store: ScanSessionStore, location_id: str) -> RackScanResponse:
    """
    Étape 1 : enregistre le scan d'un rack et ouvre une session de scan.
    Lève LocationNotFoundError si l'emplacement est inconnu.
    """
    session = await store.open_session(db, location_id)

    try:
        async with unit_of_work(db):
            db.add(RackItemAssignment(
                location_id=location_id,
                scan_sequence=RACK_SCAN_SEQUENCE,
                scan_session_id=session.session_id,
            ))
    except DependencyError:
        # Pas de session sans trace du scan rack
        await store.discard(session.session_id)
        raise

    return RackScanResponse(
        session_id=uuid.UUID(session.session_id),
        location=session.location,
        expires_at=session.expires_at,
    )


async def item_scan(
    db: AsyncSession,
    store: ScanSessionStore,
    label_id: str,
    session_id: str,
    label_type: Optional[str] = None,
) -> ItemScanVerdict:
    """
    Étape 2 : valide un article scanné par rapport au rack de la session.

    Les scans d'une même session sont traités un par un ; la vérification de
    l'emplacement et son éventuelle mise à jour se font sous le verrou de l'article.
    """
    async with store.hold(session_id) as session:
        item = await label_service.find_item(db, label_id, label_type)
        location = await location_service.get_location(db, session.location_id)

        async with label_service.label_lock(item.label_type, item.label_id):
            # Relecture sous verrou : l'emplacement a pu changer entre-temps
            item = await label_service.find_item(db, item.label_id, item.label_type)

            correct_location_type = (
                is_compatible(item.label_type, location.type_name)
                and item.label_type in (location.allowed_item_types or [])
            )
            current_location = item.location_id
            in_assigned_location = current_location == session.location_id

            async with unit_of_work(db):
                db.add(RackItemAssignment(
                    location_id=session.location_id,
                    label_id=item.label_id,
                    label_type=item.label_type,
                    scan_sequence=ITEM_SCAN_SEQUENCE,
                    scan_session_id=session.session_id,
                    correct_location_type=correct_location_type,
                    in_assigned_location=in_assigned_location,
                ))

            committed = False
            if correct_location_type and in_assigned_location:
                async with unit_of_work(db):
                    label_service.apply_location(item, session.location_id)
                committed = True

        valid_locations = await location_service.locations_accepting(db, item.label_type)

    verdict = ItemScanVerdict(
        session_id=uuid.UUID(session.session_id),
        label_id=item.label_id,
        label_type=item.label_type,
        correct_location_type=correct_location_type,
        in_assigned_location=in_assigned_location,
        current_location=current_location,
        scanned_location=session.location_id,
        valid_locations=valid_locations,
        committed=committed,
        message=_message(correct_location_type, in_assigned_location),
    )

    if committed:
        logger.info("Scan %s %s sur %s : conforme", item.label_type, item.label_id, session.location_id)
    else:
        logger.warning(
            "Scan %s %s sur %s : type_ok=%s, emplacement_assigné=%s (emplacement actuel %s)",
            item.label_type, item.label_id, session.location_id,
            correct_location_type, in_assigned_location, current_location,
        )
    return verdict


async def get_session_history(db: AsyncSession, session_id: str) -> List[ScanAuditEntry]:
    """Journal d'audit d'une session de scan, dans l'ordre chronologique."""
    rows = (await db.execute(
        select(RackItemAssignment)
        .where(RackItemAssignment.scan_session_id == session_id)
        .order_by(RackItemAssignment.scan_timestamp, RackItemAssignment.id)
    )).scalars().all()
    return [ScanAuditEntry.model_validate(row) for row in rows]


def _message(correct_location_type: bool, in_assigned_location: bool) -> str:
    if correct_location_type and in_assigned_location:
        return MESSAGE_OK
    if not correct_location_type:
        return MESSAGE_WRONG_TYPE
    return MESSAGE_WRONG_LOCATION
