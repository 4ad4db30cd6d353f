"""
Analyses agrégées de l'historique des vols (batterie, mouvements, performance).

Chaque analyse renvoie ses métriques et une synthèse rédigée par le service IA.
La synthèse est gardée en cache par type d'analyse et n'est redemandée que si une
métrique a varié de plus de ANALYSIS_CHANGE_THRESHOLD (10 % par défaut).
Un échec du service IA ne fait jamais échouer l'analyse : analysis vaut alors None.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import SummarizationError
from app.models.flight import FlightSession, MovementLog
from app.schemas.analytics import (
    BATTERY_EFFICIENCY,
    MOVEMENT_PATTERNS,
    PERFORMANCE,
    BatteryEfficiencyAnalysis,
    BatteryEfficiencyMetrics,
    MovementPattern,
    MovementPatternsAnalysis,
    PerformanceAnalysis,
    PerformanceMetrics,
)
from app.services import ai_summary_service

logger = logging.getLogger(__name__)

# type d'analyse → (métriques ayant servi à la synthèse, synthèse)
_analysis_cache: Dict[str, Tuple[Dict[str, Any], str]] = {}


@dataclass
class _FlightFigures:
    battery_used: float
    duration_minutes: float
    total_commands: int
    items_scanned: int
    unique_movements: int


def has_significant_change(
    old: Optional[Dict[str, Any]],
    new: Optional[Dict[str, Any]],
    threshold: float = 0.1,
) -> bool:
    """
    Vrai si au moins une métrique numérique a varié de plus de threshold (relatif).
    Une métrique absente de l'ancien jeu compte comme un changement.
    """
    if not old or not new:
        return True
    for key, new_value in new.items():
        if not _is_number(new_value):
            continue
        if key not in old:
            return True
        old_value = old[key]
        if not _is_number(old_value):
            continue
        if old_value == 0:
            if new_value != 0:
                return True
            continue
        if abs((new_value - old_value) / old_value) > threshold:
            return True
    return False


async def battery_efficiency(db: AsyncSession) -> BatteryEfficiencyAnalysis:
    """Consommation batterie moyenne par vol, par article scanné et par minute."""
    flights = [f for f in await _flight_figures(db) if f.battery_used > 0]

    metrics = BatteryEfficiencyMetrics(
        flights=len(flights),
        avg_battery_consumption=_avg(f.battery_used for f in flights),
        avg_items_scanned=_avg(f.items_scanned for f in flights),
        avg_flight_duration=_avg(f.duration_minutes for f in flights),
        battery_per_scan=_avg(f.battery_used / f.items_scanned for f in flights if f.items_scanned > 0),
        battery_per_minute=_avg(f.battery_used / f.duration_minutes for f in flights if f.duration_minutes > 0),
    )
    analysis = await _summary(BATTERY_EFFICIENCY, metrics.model_dump())
    return BatteryEfficiencyAnalysis(metrics=metrics, analysis=analysis)


async def movement_patterns(db: AsyncSession) -> MovementPatternsAnalysis:
    """Usage de chaque type de mouvement, du plus fréquent au moins fréquent."""
    usage = func.count(MovementLog.log_id)
    rows = (await db.execute(
        select(
            MovementLog.action,
            usage,
            func.count(func.distinct(MovementLog.session_id)),
            func.avg(MovementLog.battery_level),
            func.avg(MovementLog.distance),
        )
        .group_by(MovementLog.action)
        .order_by(usage.desc(), MovementLog.action)
    )).all()

    total = sum(row[1] for row in rows)
    patterns = [
        MovementPattern(
            action=action,
            usage_count=count,
            session_count=sessions,
            avg_battery_level=_round(avg_battery),
            avg_distance=_round(avg_distance),
            usage_percentage=round(count / total * 100, 2) if total else 0.0,
        )
        for action, count, sessions, avg_battery, avg_distance in rows
    ]

    flat = {
        f"{p.action}.{field}": value
        for p in patterns
        for field, value in p.model_dump(exclude={"action"}).items()
    }
    analysis = await _summary(MOVEMENT_PATTERNS, flat, payload=[p.model_dump() for p in patterns])
    return MovementPatternsAnalysis(patterns=patterns, analysis=analysis)


async def drone_performance(db: AsyncSession) -> PerformanceAnalysis:
    """Indicateurs globaux : commandes, durée, articles par minute et par unité de batterie."""
    flights = await _flight_figures(db)

    metrics = PerformanceMetrics(
        flights=len(flights),
        avg_battery_consumption=_avg(f.battery_used for f in flights),
        avg_commands_per_flight=_avg(f.total_commands for f in flights),
        avg_flight_duration=_avg(f.duration_minutes for f in flights),
        avg_items_scanned=_avg(f.items_scanned for f in flights),
        avg_unique_movements=_avg(f.unique_movements for f in flights),
        items_per_minute=_avg(f.items_scanned / f.duration_minutes for f in flights if f.duration_minutes > 0),
        items_per_battery_unit=_avg(f.items_scanned / f.battery_used for f in flights if f.battery_used > 0),
    )
    analysis = await _summary(PERFORMANCE, metrics.model_dump())
    return PerformanceAnalysis(metrics=metrics, analysis=analysis)


def clear_cache() -> None:
    _analysis_cache.clear()


async def _flight_figures(db: AsyncSession) -> List[_FlightFigures]:
    per_flight = (
        select(
            MovementLog.session_id.label("session_id"),
            func.count(func.distinct(MovementLog.label_id)).label("items"),
            func.count(func.distinct(MovementLog.action)).label("movements"),
        )
        .group_by(MovementLog.session_id)
        .subquery()
    )
    rows = (await db.execute(
        select(
            FlightSession,
            func.coalesce(per_flight.c["items"], 0),
            func.coalesce(per_flight.c.movements, 0),
        )
        .outerjoin(per_flight, per_flight.c.session_id == FlightSession.session_id)
    )).all()

    return [
        _FlightFigures(
            battery_used=flight.battery_start - flight.battery_end,
            duration_minutes=(flight.end_time - flight.start_time).total_seconds() / 60,
            total_commands=flight.total_commands or 0,
            items_scanned=items,
            unique_movements=movements,
        )
        for flight, items, movements in rows
    ]


async def _summary(kind: str, metrics: Dict[str, Any], payload: Any = None) -> Optional[str]:
    cached = _analysis_cache.get(kind)
    if cached is not None and not has_significant_change(
        cached[0], metrics, settings.ANALYSIS_CHANGE_THRESHOLD
    ):
        logger.debug("Analyse %s reprise du cache (pas de variation significative)", kind)
        return cached[1]

    try:
        text = await ai_summary_service.summarize(kind, payload if payload is not None else metrics)
    except SummarizationError as exc:
        logger.warning("Analyse %s sans synthèse IA : %s", kind, exc)
        return None

    _analysis_cache[kind] = (metrics, text)
    return text


def _avg(values) -> Optional[float]:
    values = list(values)
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def _round(value) -> Optional[float]:
    return round(float(value), 2) if value is not None else None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
