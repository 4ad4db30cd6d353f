"""
Planificateur APScheduler de l'API.

Utilisé pour l'éviction des sessions de scan rack → article : chaque ouverture de
session planifie un job unique à son heure d'expiration.
Le planificateur est créé au démarrage, dans la boucle asyncio qui sert l'API.
"""

import asyncio
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.services.scan_session_store import scan_session_store

logger = logging.getLogger(__name__)

scheduler: Optional[AsyncIOScheduler] = None


def start_scheduler() -> None:
    """Démarre le planificateur en arrière-plan (appelé au démarrage de l'API)."""
    global scheduler
    scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop(), timezone="UTC")
    scheduler.start()
    scan_session_store.scheduler = scheduler
    logger.info("Scheduler démarré, éviction des sessions de scan après %s.", scan_session_store.ttl)


def stop_scheduler() -> None:
    """Arrête le planificateur proprement (appelé à l'arrêt de l'API)."""
    global scheduler
    scan_session_store.scheduler = None
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler arrêté.")
    scheduler = None
