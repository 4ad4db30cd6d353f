"""
Modèles SQLAlchemy pour l'historique des vols de drone.
Un vol terminé est enregistré en une fois avec son journal de mouvements complet.
"""

import uuid
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
    func,
)

from app.database import Base


class FlightSession(Base):
    """Vol de drone terminé (en-tête du journal)."""
    __tablename__ = "flight_sessions"

    session_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    end_reason = Column(String(100), nullable=True)
    battery_start = Column(Float, nullable=False)
    battery_end = Column(Float, nullable=False)
    total_commands = Column(Integer, nullable=False, default=0)

    name = Column(String(255), nullable=True)       # Annotation utilisateur
    is_starred = Column(Boolean, nullable=False, default=False)
    last_modified = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class MovementLog(Base):
    """Action enregistrée pendant un vol. Jamais modifiée après création."""
    __tablename__ = "movement_logs"

    log_id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(Uuid, ForeignKey("flight_sessions.session_id"), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    battery_level = Column(Float, nullable=False)
    distance = Column(Float, nullable=True)
    label_id = Column(String(100), nullable=True)   # Étiquette lue lors d'une action de scan
    error_type = Column(String(100), nullable=True)
    error_message = Column(Text, nullable=True)
