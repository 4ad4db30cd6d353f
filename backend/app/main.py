"""
Point d'entrée principal de l'API DroneStock.
Démarrage : uvicorn app.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import app.models  # noqa: F401  (enregistre les modèles dans Base.metadata)
from app.config import settings
from app.database import create_tables
from app.exceptions import TrackingError
from app.routers import analytics, flights, labels, locations, scans
from app.scheduler import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Cycle de vie : tables (en développement) et planificateur d'éviction des sessions de scan."""
    if settings.AUTO_CREATE_TABLES:
        await create_tables()
    start_scheduler()
    yield
    stop_scheduler()


app = FastAPI(
    title="DroneStock API",
    description="API de suivi d'inventaire d'entrepôt par scans drone (étiquettes, emplacements, vols)",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# CORS : tous les ports localhost en développement (à restreindre en production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)


app.include_router(labels.router)
app.include_router(locations.router)
app.include_router(scans.router)
app.include_router(flights.router)
app.include_router(analytics.router)


@app.exception_handler(TrackingError)
async def tracking_error_handler(request: Request, exc: TrackingError) -> JSONResponse:
    """Erreurs métier → code HTTP de l'erreur + type (not_found, session_expired, ...)."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.kind},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte toutes les exceptions non gérées pour que la réponse 500
    passe bien par CORSMiddleware (qui injecte les headers CORS).
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que l'API est opérationnelle."""
    return {"status": "ok", "service": "DroneStock API", "version": "0.1.0"}
