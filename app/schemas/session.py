"""
Pydantic schemas for the geometry and edit session API
"""
from typing import Optional, List, Union
from pydantic import BaseModel, Field

from app.schemas.geofence import FormField, Geofence, GeofenceForm
from app.schemas.geometry import Coordinate, GeometryPayload, Shape, ShapeMetrics, ShapeType


class ErrorDetail(BaseModel):
    code: Optional[str] = None
    message: str


class ShapeValidationResponse(BaseModel):
    valid: bool
    code: Optional[str] = None
    message: Optional[str] = None


class PointCheckRequest(BaseModel):
    shape: Shape
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class PointCheckResponse(BaseModel):
    inside: bool
    distance_from_center: Optional[float] = None  # For circles


class StartDrawingRequest(BaseModel):
    shape_type: ShapeType = ShapeType.CIRCLE
    center: Optional[Coordinate] = None


class ShapeTypeRequest(BaseModel):
    shape_type: ShapeType


class OverlayMutationRequest(BaseModel):
    overlay_handle: Optional[str] = None
    geometry: GeometryPayload


class FormEditRequest(BaseModel):
    field: FormField
    value: Union[float, str, None] = None
    index: Optional[int] = Field(None, ge=0)


class OverlayResponse(BaseModel):
    handle: str
    shape: Shape
    editable: bool
    color: str


class SessionResponse(BaseModel):
    surface_id: str
    state: str
    shape: Optional[Shape] = None
    geometry: Optional[GeometryPayload] = None
    metrics: ShapeMetrics
    form: GeofenceForm
    overlay_handle: Optional[str] = None
    editing_geofence_id: Optional[str] = None
    error: Optional[ErrorDetail] = None
    overlays: List[OverlayResponse] = Field(default_factory=list)
    bounds: List[Coordinate] = Field(default_factory=list)


class CommitResponse(BaseModel):
    geofence: Geofence
    geometry: GeometryPayload


class GeofenceListResponse(BaseModel):
    geofences: List[Geofence]
    total: int
    page: int
    limit: int
    total_pages: int
    skipped: int = 0
