"""
Modèle SQLAlchemy pour les emplacements physiques (racks, zones de stockage).
Le type d'emplacement conditionne les types d'articles qui peuvent y être stockés.
"""

from sqlalchemy import JSON, Column, DateTime, String, Text, func

from app.database import Base


class Location(Base):
    """Emplacement nommé d'un type donné (rack bobines, zone palettes PF...)."""
    __tablename__ = "locations"

    location_id = Column(String(100), primary_key=True)
    type_name = Column(String(30), nullable=False)       # FG_PALLET_LOCATION, PAPER_ROLL_LOCATION, RACK_LOCATION
    allowed_item_types = Column(JSON, nullable=False, default=list)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
