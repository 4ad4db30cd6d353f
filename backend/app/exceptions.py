"""
Erreurs métier du suivi d'étiquettes.

Toutes dérivent de TrackingError (elle-même une ValueError) et portent le code HTTP
et le type d'erreur renvoyés par le gestionnaire d'exceptions de l'API.
Un verdict de scan « mauvais emplacement » n'est jamais une erreur.
"""


class TrackingError(ValueError):
    """Erreur métier de base."""
    status_code = 400
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TrackingError):
    """Entrée invalide, rejetée avant toute écriture."""
    status_code = 400
    kind = "validation_error"


class NotFoundError(TrackingError):
    status_code = 404
    kind = "not_found"


class LabelNotFoundError(NotFoundError):
    pass


class ItemNotFoundError(LabelNotFoundError):
    """Article scanné inconnu du registre."""


class LocationNotFoundError(NotFoundError):
    pass


class FlightNotFoundError(NotFoundError):
    pass


class ConflictError(TrackingError):
    status_code = 409
    kind = "conflict"


class DuplicateLabelError(ConflictError):
    pass


class LocationInUseError(ConflictError):
    """Emplacement encore référencé par au moins une étiquette."""


class SessionInvalidError(TrackingError):
    status_code = 409
    kind = "session_invalid"


class SessionRequiredError(SessionInvalidError):
    """Scan article sans scan rack préalable (session inconnue)."""
    kind = "session_required"


class SessionExpiredError(SessionRequiredError):
    """Session de scan dépassée : il faut rescanner le rack."""
    status_code = 410
    kind = "session_expired"


class DependencyError(TrackingError):
    """Échec d'un service sous-jacent (base de données, service IA)."""
    status_code = 503
    kind = "dependency_error"


class SummarizationError(DependencyError):
    kind = "summarization_error"
