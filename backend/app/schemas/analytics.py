"""
Schémas Pydantic pour les analyses de vols (métriques agrégées + synthèse IA).
"""

from typing import List, Optional

from pydantic import BaseModel

BATTERY_EFFICIENCY = "BATTERY_EFFICIENCY"
MOVEMENT_PATTERNS = "MOVEMENT_PATTERNS"
PERFORMANCE = "PERFORMANCE"

ANALYSIS_KINDS = {BATTERY_EFFICIENCY, MOVEMENT_PATTERNS, PERFORMANCE}


class BatteryEfficiencyMetrics(BaseModel):
    flights: int
    avg_battery_consumption: Optional[float]
    avg_items_scanned: Optional[float]
    avg_flight_duration: Optional[float]    # minutes
    battery_per_scan: Optional[float]
    battery_per_minute: Optional[float]


class MovementPattern(BaseModel):
    action: str
    usage_count: int
    session_count: int
    avg_battery_level: Optional[float]
    avg_distance: Optional[float]
    usage_percentage: float


class PerformanceMetrics(BaseModel):
    flights: int
    avg_battery_consumption: Optional[float]
    avg_commands_per_flight: Optional[float]
    avg_flight_duration: Optional[float]
    avg_items_scanned: Optional[float]
    avg_unique_movements: Optional[float]
    items_per_minute: Optional[float]
    items_per_battery_unit: Optional[float]


class BatteryEfficiencyAnalysis(BaseModel):
    metrics: BatteryEfficiencyMetrics
    analysis: Optional[str]      # None si le service IA est indisponible


class MovementPatternsAnalysis(BaseModel):
    patterns: List[MovementPattern]
    analysis: Optional[str]


class PerformanceAnalysis(BaseModel):
    metrics: PerformanceMetrics
    analysis: Optional[str]
