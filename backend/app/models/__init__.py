# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères inter-modèles.
# locations doit précéder labels (labels.location_id → locations.location_id).

from app.models.location import Location  # noqa: F401  (doit précéder label)
from app.models.label import Label, RollLabel, FgPalletLabel, LocationLabel  # noqa: F401
from app.models.scan import RackItemAssignment  # noqa: F401
from app.models.flight import FlightSession, MovementLog  # noqa: F401
