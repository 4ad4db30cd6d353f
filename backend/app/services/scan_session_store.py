"""
Stockage en mémoire des sessions de scan rack → article.

Une session est ouverte au scan d'un rack et reste utilisable pour plusieurs scans
d'articles jusqu'à l'expiration de sa durée de vie (5 minutes par défaut), ce qui
permet d'inventorier tous les articles trouvés sur un même rack.

Stockage local au processus : un redémarrage invalide les sessions en cours
(il suffit de rescanner le rack). L'interface open / consume / discard / evict
reste la même si on remplace le dictionnaire par un cache distribué.

Expiration : une session dont la durée de vie est dépassée est refusée au moment du
consume, même si le job d'éviction n'est pas encore passé. Le test d'expiration et
le retrait sont faits sous le même verrou. Une session retirée pour expiration reste
connue comme expirée pendant une durée de vie supplémentaire : le client reçoit
SessionExpiredError (rescanner le rack) et non SessionRequiredError.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import SessionExpiredError, SessionRequiredError
from app.locks import KeyedLock
from app.schemas.location import LocationResponse
from app.services.location_service import get_location

logger = logging.getLogger(__name__)

ITEM_SCAN_STEP = 2


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ScanSession:
    session_id: str
    location_id: str
    created_at: datetime
    expires_at: datetime
    location: Optional[LocationResponse] = None    # Emplacement tel que lu au scan rack
    scan_sequence_expected: int = ITEM_SCAN_STEP  # Scan rack effectué, scan article attendu
    item_scans: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class ScanSessionStore:
    def __init__(
        self,
        ttl_seconds: int = 300,
        scheduler=None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.ttl = timedelta(seconds=ttl_seconds)
        self.scheduler = scheduler
        self._clock = clock
        self._lock = asyncio.Lock()
        self._sessions: Dict[str, ScanSession] = {}
        # session expirée → date à partir de laquelle on l'oublie (expiration + une durée de vie)
        self._expired: Dict[str, datetime] = {}
        self._session_locks = KeyedLock()

    async def open_session(self, db: AsyncSession, location_id: str) -> ScanSession:
        """
        Ouvre une session pour un rack scanné.
        Lève LocationNotFoundError si l'emplacement n'existe pas (aucune session créée).
        """
        location = await get_location(db, location_id)

        now = self._clock()
        session = ScanSession(
            session_id=str(uuid.uuid4()),
            location_id=location_id,
            created_at=now,
            expires_at=now + self.ttl,
            location=LocationResponse.model_validate(location),
        )
        async with self._lock:
            self._sessions[session.session_id] = session
        self._schedule_eviction(session)

        logger.info("Session de scan %s ouverte sur %s", session.session_id, location_id)
        return session

    async def consume_session(self, session_id: str) -> ScanSession:
        """
        Retourne la session active pour un scan article.

        Lève SessionExpiredError si sa durée de vie est dépassée, y compris quand elle
        a déjà été évincée (pendant encore une durée de vie), SessionRequiredError si
        la session est inconnue.
        La session n'est pas invalidée : d'autres articles peuvent être scannés.
        """
        async with self._lock:
            now = self._clock()
            session = self._sessions.get(session_id)
            if session is not None and session.is_expired(now):
                self._bury(session)
                logger.info("Session de scan %s expirée", session_id)
                session = None
            if session is None:
                forget_at = self._expired.get(session_id)
                if forget_at is not None and now < forget_at:
                    raise SessionExpiredError("Session de scan expirée : rescannez l'emplacement du rack.")
                raise SessionRequiredError("Session inconnue : scannez d'abord l'emplacement du rack.")
            session.item_scans += 1
            return session

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[ScanSession]:
        """
        Sérialise les scans articles d'une même session : un seul scan à la fois
        par session, de la résolution de la session jusqu'à la fin du traitement.
        """
        async with self._session_locks.hold(session_id):
            yield await self.consume_session(session_id)

    async def get(self, session_id: str) -> Optional[ScanSession]:
        """Session active ou None (sans compter de scan)."""
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.is_expired(self._clock()):
                return None
            return session

    async def discard(self, session_id: str) -> None:
        """Retire une session sans condition (ex. échec d'écriture du scan rack)."""
        async with self._lock:
            self._sessions.pop(session_id, None)
            self._expired.pop(session_id, None)
        self._cancel_eviction(session_id)

    async def evict(self, session_id: str) -> bool:
        """
        Retire une session si elle est expirée. Appelé par le job d'éviction.
        Son identifiant reste reconnu comme expiré pendant une durée de vie.
        """
        async with self._lock:
            now = self._clock()
            self._forget_old(now)
            session = self._sessions.get(session_id)
            if session is None or not session.is_expired(now):
                return False
            self._bury(session)
        logger.debug("Session de scan %s évincée", session_id)
        return True

    async def purge_expired(self) -> int:
        """Retire toutes les sessions expirées. Retourne leur nombre."""
        async with self._lock:
            now = self._clock()
            self._forget_old(now)
            expired = [s for s in self._sessions.values() if s.is_expired(now)]
            for session in expired:
                self._bury(session)
        if expired:
            logger.info("%d session(s) de scan expirée(s) purgée(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)

    def _bury(self, session: ScanSession) -> None:
        # Appelant détenteur de self._lock
        del self._sessions[session.session_id]
        self._expired[session.session_id] = session.expires_at + self.ttl

    def _forget_old(self, now: datetime) -> None:
        for sid in [sid for sid, forget_at in self._expired.items() if now >= forget_at]:
            del self._expired[sid]

    def _schedule_eviction(self, session: ScanSession) -> None:
        if self.scheduler is None:
            return
        self.scheduler.add_job(
            self.evict,
            trigger="date",
            run_date=session.expires_at,
            args=[session.session_id],
            id=_job_id(session.session_id),
            replace_existing=True,
            misfire_grace_time=None,
        )

    def _cancel_eviction(self, session_id: str) -> None:
        if self.scheduler is None:
            return
        job = self.scheduler.get_job(_job_id(session_id))
        if job is not None:
            job.remove()


def _job_id(session_id: str) -> str:
    return f"scan_session_eviction_{session_id}"


scan_session_store = ScanSessionStore(ttl_seconds=settings.SCAN_SESSION_TTL_SECONDS)


def get_scan_session_store() -> ScanSessionStore:
    """Dépendance FastAPI : store des sessions de scan du processus."""
    return scan_session_store
