"""
Pydantic schemas for geofence geometry
"""
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field


class ShapeType(str, Enum):
    CIRCLE = "circle"
    POLYGON = "polygon"
    RECTANGLE = "rectangle"  # Legacy records only


class GeometryType(str, Enum):
    """Type tag of the persisted geometry"""
    CIRCLE = "Circle"
    POLYGON = "Polygon"
    RECTANGLE = "Rectangle"


class Coordinate(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class Circle(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["circle"] = "circle"
    center: Coordinate
    radius_meters: float


class Polygon(BaseModel):
    """Open ring: vertices in boundary order, closing vertex not repeated"""
    model_config = ConfigDict(frozen=True)

    kind: Literal["polygon"] = "polygon"
    vertices: Tuple[Coordinate, ...]


class Rectangle(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["rectangle"] = "rectangle"
    north_east: Coordinate
    south_west: Coordinate

    def corners(self) -> Tuple[Coordinate, ...]:
        """NE, NW, SW, SE"""
        ne, sw = self.north_east, self.south_west
        return (
            ne,
            Coordinate(lat=ne.lat, lng=sw.lng),
            sw,
            Coordinate(lat=sw.lat, lng=ne.lng),
        )


AnyShape = Union[Circle, Polygon, Rectangle]
Shape = Annotated[AnyShape, Field(discriminator="kind")]

SHAPE_TYPE_BY_KIND = {
    "circle": ShapeType.CIRCLE,
    "polygon": ShapeType.POLYGON,
    "rectangle": ShapeType.RECTANGLE,
}


def shape_type_of(shape: Shape) -> ShapeType:
    return SHAPE_TYPE_BY_KIND[shape.kind]


class GeometryPayload(BaseModel):
    """
    Persisted geometry as stored by the geofence API.
    `coordinates` changes structure with `type`, see geometry_codec.
    """
    type: str
    coordinates: List[Any]
    radius: Optional[float] = None

    def to_wire(self) -> dict:
        data = {"type": self.type, "coordinates": self.coordinates}
        if self.radius is not None:
            data["radius"] = self.radius
        return data


class GeoCodeData(BaseModel):
    type: Literal["Feature"] = "Feature"
    geometry: GeometryPayload

    def to_wire(self) -> dict:
        return {"type": self.type, "geometry": self.geometry.to_wire()}


class ShapeMetrics(BaseModel):
    perimeter_meters: float = 0.0
    area_square_meters: float = 0.0
