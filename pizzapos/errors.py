"""
Error taxonomy for the order core.

``ValidationError``, ``NotFound`` and ``InvalidTransition`` are caller
correctable and get mapped to client responses by the request layer.
``CycleDetected`` and anything else are server faults.
"""


class PosError(Exception):
    """Base exception for order core errors."""
    status_code = 500


class ValidationError(PosError):
    """Raised when input values break a pricing or recipe rule."""
    status_code = 400


class NotFound(PosError):
    """Raised when a referenced row is absent or belongs to another tenant."""
    status_code = 404

    def __init__(self, entity, entity_id=None, message=None):
        self.entity = entity
        self.entity_id = entity_id
        if message is None:
            message = f"{entity} not found" if entity_id is None else f"{entity} {entity_id} not found"
        super().__init__(message)


class InvalidTransition(PosError):
    """Raised when an order status change is not in the transition table."""
    status_code = 409

    def __init__(self, from_status, to_status, message=None):
        self.from_status = from_status
        self.to_status = to_status
        if message is None:
            message = f"invalid transition: {_name(from_status)} -> {_name(to_status)}"
        super().__init__(message)


class CycleDetected(PosError):
    """Raised when a recipe refers back to a product still being expanded."""
    status_code = 500

    def __init__(self, path, message=None):
        self.path = list(path)
        if message is None:
            message = "cycle detected in recipe: " + " -> ".join(self.path)
        super().__init__(message)


def _name(status):
    return getattr(status, "value", status)
