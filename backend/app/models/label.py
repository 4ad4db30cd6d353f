"""
Modèles SQLAlchemy pour les étiquettes physiques suivies.

Une étiquette = un enregistrement de base (labels) + un enregistrement d'extension
propre à son type (roll_labels, fg_pallet_labels ou location_labels).
Les deux sont toujours créés et supprimés ensemble, dans la même transaction.
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)

from app.database import Base


class Label(Base):
    """Étiquette de base : identité immuable + statut et emplacement modifiables."""
    __tablename__ = "labels"
    __table_args__ = (UniqueConstraint("label_type", "label_id", name="uq_labels_type_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    label_type = Column(String(30), nullable=False)   # ROLL, FG_PALLET, FG_LOCATION, PAPER_ROLL_LOCATION, RACK_LOCATION
    label_id = Column(String(100), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="UNRESOLVED")  # AVAILABLE, CHECKED_OUT, LOST, UNRESOLVED
    status_notes = Column(Text, nullable=True)
    location_id = Column(String(100), ForeignKey("locations.location_id"), nullable=True, index=True)
    last_scan_time = Column(DateTime(timezone=True), nullable=True)  # Mis à jour à chaque changement statut/emplacement
    check_in = Column(DateTime(timezone=True), server_default=func.now())


class RollLabel(Base):
    """Extension bobine de papier."""
    __tablename__ = "roll_labels"

    label_pk = Column(Integer, ForeignKey("labels.id"), primary_key=True)
    code = Column(String(50), nullable=False)
    name = Column(String(255), nullable=True)
    size_mm = Column(Float, nullable=True)


class FgPalletLabel(Base):
    """Extension palette de produits finis."""
    __tablename__ = "fg_pallet_labels"

    label_pk = Column(Integer, ForeignKey("labels.id"), primary_key=True)
    raw_value = Column(String(255), nullable=True)    # Contenu brut lu sur l'étiquette
    work_order = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=True)
    total_pieces = Column(Integer, nullable=True)


class LocationLabel(Base):
    """Extension des étiquettes d'emplacement (FG_LOCATION, PAPER_ROLL_LOCATION, RACK_LOCATION)."""
    __tablename__ = "location_labels"

    label_pk = Column(Integer, ForeignKey("labels.id"), primary_key=True)
    tagged_location_id = Column(String(100), ForeignKey("locations.location_id"), nullable=True, index=True)
    description = Column(Text, nullable=True)
