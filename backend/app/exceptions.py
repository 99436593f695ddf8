"""Domain errors raised by the status and notification engines.

Routes translate these into HTTP responses; nothing below the API layer
imports FastAPI.
"""


class StatusEngineError(Exception):
    """Base class for shipment status / notification errors."""


class ValidationError(StatusEngineError):
    """Caller supplied an invalid override (short reason, unknown status, no actor)."""


class NotFoundError(StatusEngineError):
    """Shipment, override or notification does not exist."""


class ComputationError(StatusEngineError):
    """Corrupt snapshot data, e.g. an unparseable date.

    Raised by the snapshot coercion helpers and handled inside the reader,
    which logs it and treats the field as absent.
    """
