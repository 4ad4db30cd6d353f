"""
Router des analyses de vols (métriques + synthèse IA).
Si le service IA est indisponible, les métriques sont renvoyées avec analysis=null.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.analytics import (
    BatteryEfficiencyAnalysis,
    MovementPatternsAnalysis,
    PerformanceAnalysis,
)
from app.services import analytics_service

router = APIRouter(prefix="/api/v1/analytics", tags=["Analyses"])


@router.get("/battery", response_model=BatteryEfficiencyAnalysis, summary="Efficacité batterie")
async def battery_efficiency(db: AsyncSession = Depends(get_db)):
    return await analytics_service.battery_efficiency(db)


@router.get("/movements", response_model=MovementPatternsAnalysis, summary="Schémas de mouvements")
async def movement_patterns(db: AsyncSession = Depends(get_db)):
    return await analytics_service.movement_patterns(db)


@router.get("/performance", response_model=PerformanceAnalysis, summary="Performance des drones")
async def drone_performance(db: AsyncSession = Depends(get_db)):
    return await analytics_service.drone_performance(db)
