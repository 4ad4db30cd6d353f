"""
Modèle SQLAlchemy du journal des scans rack → article.

Append-only : une ligne par scan rack (sequence 1) et par scan article (sequence 2),
que la validation de l'emplacement soit positive ou non.
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, func

from app.database import Base


class RackItemAssignment(Base):
    __tablename__ = "rack_item_assignments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    location_id = Column(String(100), nullable=False, index=True)
    label_id = Column(String(100), nullable=True)          # NULL pour le scan rack
    label_type = Column(String(30), nullable=True)
    scan_sequence = Column(Integer, nullable=False)        # 1 = scan rack, 2 = scan article
    scan_session_id = Column(String(36), nullable=False, index=True)
    correct_location_type = Column(Boolean, nullable=True)
    in_assigned_location = Column(Boolean, nullable=True)
    scan_timestamp = Column(DateTime(timezone=True), server_default=func.now())
