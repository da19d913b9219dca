"""
Pydantic schemas for Geofence records and the geofence form
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from app.core.config import settings
from app.schemas.geometry import Coordinate, GeoCodeData, Shape, ShapeType, shape_type_of


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class AddressComponents(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    zip_code: str = ""
    country: str = ""
    state: str = ""
    area: str = ""
    city: str = ""
    district: str = ""


class Geofence(BaseModel):
    id: str
    name: str
    phone_number: str
    shape_type: ShapeType
    visibility: Visibility = Visibility.PUBLIC
    shape: Shape
    color: str = settings.DEFAULT_GEOFENCE_COLOR

    # Derived from shape, never authoritative
    perimeter_meters: float = 0.0
    area_square_meters: float = 0.0

    created_at: datetime
    updated_at: Optional[datetime] = None

    address: AddressComponents = Field(default_factory=AddressComponents)
    final_address: str = ""
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    created_by: Optional[str] = None

    @model_validator(mode='after')
    def check_shape_type(self):
        if shape_type_of(self.shape) != self.shape_type:
            raise ValueError(
                f"shape_type '{self.shape_type.value}' does not match shape '{self.shape.kind}'"
            )
        return self

    @property
    def is_public(self) -> bool:
        return self.visibility == Visibility.PUBLIC

    @property
    def is_private(self) -> bool:
        return self.visibility == Visibility.PRIVATE


class GeofencePayload(BaseModel):
    """Body sent to the geofence API on create/update (camelCase on the wire)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    mobile_number: str
    geo_code_data: GeoCodeData
    is_public: bool = True
    is_private: bool = False
    color: Optional[str] = None
    address: AddressComponents = Field(default_factory=AddressComponents)
    final_address: str = ""
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    created_by: Optional[str] = None

    @model_validator(mode='after')
    def check_visibility(self):
        if self.is_public == self.is_private:
            raise ValueError("Exactly one of isPublic/isPrivate must be true")
        return self

    def to_wire(self) -> dict:
        data = self.model_dump(by_alias=True, exclude_none=True, exclude={"geo_code_data"})
        data["geoCodeData"] = self.geo_code_data.to_wire()
        return data


class PaginatedGeofences(BaseModel):
    items: List[Geofence] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = settings.DEFAULT_PAGE_LIMIT
    skipped: int = 0  # Records dropped because their geometry could not be decoded


class FormField(str, Enum):
    NAME = "name"
    PHONE_NUMBER = "phone_number"
    VISIBILITY = "visibility"
    COLOR = "color"
    FINAL_ADDRESS = "final_address"
    CENTER_LAT = "center_lat"
    CENTER_LNG = "center_lng"
    RADIUS = "radius"
    VERTEX_LAT = "vertex_lat"
    VERTEX_LNG = "vertex_lng"


GEOMETRY_FIELDS = frozenset({
    FormField.CENTER_LAT,
    FormField.CENTER_LNG,
    FormField.RADIUS,
    FormField.VERTEX_LAT,
    FormField.VERTEX_LNG,
})


class GeofenceForm(BaseModel):
    """Values shown in the geofence form while a shape is being edited"""
    name: str = ""
    phone_number: str = ""
    visibility: Visibility = Visibility.PUBLIC
    color: str = settings.DEFAULT_GEOFENCE_COLOR
    final_address: str = ""
    address: AddressComponents = Field(default_factory=AddressComponents)

    # Circle
    center_lat: Optional[float] = None
    center_lng: Optional[float] = None
    radius: Optional[float] = None

    # Polygon
    vertices: List[Coordinate] = Field(default_factory=list)

    # Read-only calculated values
    perimeter_meters: float = 0.0
    area_square_meters: float = 0.0
