"""
Error taxonomy for the geozone engine
"""
from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    # Shape validation
    INVALID_RADIUS = "INVALID_RADIUS"
    INSUFFICIENT_VERTICES = "INSUFFICIENT_VERTICES"
    COORDINATE_OUT_OF_RANGE = "COORDINATE_OUT_OF_RANGE"

    # Form / session validation
    NON_NUMERIC_INPUT = "NON_NUMERIC_INPUT"
    INVALID_FIELD = "INVALID_FIELD"
    MISSING_METADATA = "MISSING_METADATA"
    INVALID_STATE = "INVALID_STATE"

    # Geometry decoding
    UNKNOWN_GEOMETRY_TYPE = "UNKNOWN_GEOMETRY_TYPE"
    MALFORMED_COORDINATES = "MALFORMED_COORDINATES"
    INVALID_RECORD = "INVALID_RECORD"


class GeozoneError(Exception):
    """Base class for all engine errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class GeofenceValidationError(GeozoneError):
    """Local, recoverable validation failure surfaced inline to the user"""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code

    def __repr__(self):
        return f"<{type(self).__name__} {self.code.value}: {self.message}>"


class ShapeValidationError(GeofenceValidationError):
    pass


class FormValidationError(GeofenceValidationError):
    pass


class GeometryDecodeError(GeozoneError):
    """Persisted geometry that cannot be turned into a shape"""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code


class TransientCollaboratorError(GeozoneError):
    """External collaborator failure that must degrade gracefully"""
    pass


class GeocodingError(TransientCollaboratorError):
    pass


class MapSurfaceError(TransientCollaboratorError):
    pass


class PersistenceError(GeozoneError):
    """Create/update/delete/list failure from the geofence API"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
