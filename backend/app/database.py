"""
Configuration de la connexion à la base de données PostgreSQL.
Utilise SQLAlchemy avec un moteur asynchrone.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.config import settings
from app.exceptions import DependencyError

logger = logging.getLogger(__name__)

engine = create_async_engine(settings.DATABASE_URL, pool_pre_ping=True)

SessionLocal = async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

Base = declarative_base()


async def get_db() -> AsyncIterator[AsyncSession]:
    """Dépendance FastAPI : fournit une session BDD et la ferme après usage."""
    async with SessionLocal() as db:
        yield db


@asynccontextmanager
async def unit_of_work(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Transaction à portée limitée : commit si le bloc se termine sans erreur,
    rollback sur toute exception.

    Les erreurs SQLAlchemy sont converties en DependencyError ; les erreurs
    métier (TrackingError) sont relancées telles quelles après le rollback.
    """
    try:
        yield db
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Transaction annulée suite à une erreur BDD : %s", exc)
        raise DependencyError("Erreur de la base de données, opération annulée.") from exc
    except BaseException:
        await db.rollback()
        raise


async def create_tables() -> None:
    """Crée les tables manquantes (développement uniquement, AUTO_CREATE_TABLES)."""
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
