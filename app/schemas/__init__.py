"""
Pydantic schemas package
"""
from app.schemas.geometry import (
    ShapeType, GeometryType, Coordinate, Circle, Polygon, Rectangle, AnyShape, Shape,
    GeometryPayload, GeoCodeData, ShapeMetrics, shape_type_of
)
from app.schemas.geofence import (
    Visibility, AddressComponents, Geofence, GeofencePayload, PaginatedGeofences,
    FormField, GeofenceForm
)
from app.schemas.session import (
    ErrorDetail, ShapeValidationResponse, PointCheckRequest, PointCheckResponse,
    StartDrawingRequest, ShapeTypeRequest, OverlayMutationRequest, FormEditRequest,
    OverlayResponse, SessionResponse, CommitResponse, GeofenceListResponse
)

__all__ = [
    # Geometry
    "ShapeType", "GeometryType", "Coordinate", "Circle", "Polygon", "Rectangle", "AnyShape", "Shape",
    "GeometryPayload", "GeoCodeData", "ShapeMetrics", "shape_type_of",
    # Geofence
    "Visibility", "AddressComponents", "Geofence", "GeofencePayload", "PaginatedGeofences",
    "FormField", "GeofenceForm",
    # Session API
    "ErrorDetail", "ShapeValidationResponse", "PointCheckRequest", "PointCheckResponse",
    "StartDrawingRequest", "ShapeTypeRequest", "OverlayMutationRequest", "FormEditRequest",
    "OverlayResponse", "SessionResponse", "CommitResponse", "GeofenceListResponse",
]
