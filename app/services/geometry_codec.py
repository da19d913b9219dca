"""
Translation between shapes and the geometry persisted by the geofence API.

The `coordinates` field changes structure with the geometry type:

    Circle     [lat, lng]                      radius present
    Polygon    [[lat, lng], ...]  (open ring)  no radius
    Rectangle  [[neLat, neLng], [swLat, swLng]] no radius (legacy)

This module is the only place that knows those quirks.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError

from app.core.config import settings
from app.core.errors import ErrorCode, GeometryDecodeError
from app.schemas.geofence import AddressComponents, Geofence, GeofencePayload, Visibility
from app.schemas.geometry import (
    Circle, Coordinate, GeoCodeData, GeometryPayload, GeometryType, Polygon, Rectangle, Shape,
    shape_type_of,
)
from app.services.geofence_service import geofence_service

logger = logging.getLogger(__name__)


def encode_geometry(shape: Shape) -> GeometryPayload:
    if isinstance(shape, Circle):
        return GeometryPayload(
            type=GeometryType.CIRCLE.value,
            coordinates=[shape.center.lat, shape.center.lng],
            radius=shape.radius_meters,
        )
    if isinstance(shape, Polygon):
        return GeometryPayload(
            type=GeometryType.POLYGON.value,
            coordinates=[[v.lat, v.lng] for v in shape.vertices],
        )
    return GeometryPayload(
        type=GeometryType.RECTANGLE.value,
        coordinates=[
            [shape.north_east.lat, shape.north_east.lng],
            [shape.south_west.lat, shape.south_west.lng],
        ],
    )


def _malformed(message: str) -> GeometryDecodeError:
    return GeometryDecodeError(ErrorCode.MALFORMED_COORDINATES, message)


def _to_number(value: Any) -> float:
    # The console coerced stored values with Number(), so numeric strings are accepted
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise _malformed(f"Expected a number, got {value!r}")
    try:
        number = float(value)
    except ValueError:
        raise _malformed(f"Expected a number, got {value!r}")
    if not math.isfinite(number):
        raise _malformed(f"Expected a finite number, got {value!r}")
    return number


def _to_coordinate(value: Any) -> Coordinate:
    if isinstance(value, Mapping):
        if "lat" not in value or "lng" not in value:
            raise _malformed(f"Coordinate mapping needs 'lat' and 'lng', got {value!r}")
        return Coordinate(lat=_to_number(value["lat"]), lng=_to_number(value["lng"]))
    if isinstance(value, (list, tuple)):
        if len(value) != 2:
            raise _malformed(f"Coordinate pair needs 2 values, got {len(value)}")
        return Coordinate(lat=_to_number(value[0]), lng=_to_number(value[1]))
    raise _malformed(f"Expected a [lat, lng] pair, got {value!r}")


def _decode_circle(coordinates: List[Any], radius: Any, radius_fallback: bool) -> Circle:
    if len(coordinates) == 2 and not isinstance(coordinates[0], (list, tuple, Mapping)):
        center = _to_coordinate(coordinates)
    elif len(coordinates) == 1:
        center = _to_coordinate(coordinates[0])
    else:
        raise _malformed(
            f"Circle coordinates must be a single [lat, lng] pair, got {len(coordinates)} entries"
        )

    try:
        radius_meters = _to_number(radius) if radius is not None else None
    except GeometryDecodeError:
        radius_meters = None
    if radius_meters is None or radius_meters <= 0:
        if not radius_fallback:
            raise GeometryDecodeError(
                ErrorCode.INVALID_RADIUS,
                f"Circle radius must be a number greater than 0, got {radius!r}"
            )
        logger.debug(f"Circle without usable radius ({radius!r}), using default")
        radius_meters = settings.DEFAULT_PERSISTED_RADIUS_METERS

    return Circle(center=center, radius_meters=radius_meters)


def _decode_polygon(coordinates: List[Any], allow_degenerate: bool) -> Polygon:
    if len(coordinates) < 3 and not allow_degenerate:
        raise _malformed(f"Polygon needs at least 3 coordinate pairs, got {len(coordinates)}")
    return Polygon(vertices=tuple(_to_coordinate(c) for c in coordinates))


def _decode_rectangle(coordinates: List[Any]) -> Rectangle:
    if len(coordinates) != 2:
        raise _malformed(f"Rectangle needs exactly 2 coordinate pairs, got {len(coordinates)}")
    ne, sw = coordinates
    if not isinstance(ne, (list, tuple, Mapping)) or not isinstance(sw, (list, tuple, Mapping)):
        raise _malformed("Rectangle coordinates must be [[neLat, neLng], [swLat, swLng]]")
    return Rectangle(north_east=_to_coordinate(ne), south_west=_to_coordinate(sw))


def decode_geometry(
    payload: Union[GeometryPayload, Mapping[str, Any]],
    allow_degenerate: bool = False,
    radius_fallback: bool = True
) -> Shape:
    """
    Turn persisted geometry into a shape.
    Raises GeometryDecodeError for unknown type tags and malformed coordinates.
    `allow_degenerate` accepts polygons with fewer than 3 vertices, as reported
    by an overlay while the user is deleting vertices. `radius_fallback`
    gives stored circles without a usable radius the default radius; live
    overlay input passes False and gets INVALID_RADIUS instead.
    """
    if isinstance(payload, GeometryPayload):
        geometry_type, coordinates, radius = payload.type, payload.coordinates, payload.radius
    elif isinstance(payload, Mapping):
        geometry_type = payload.get("type")
        coordinates = payload.get("coordinates")
        radius = payload.get("radius")
    else:
        raise _malformed(f"Geometry must be an object, got {type(payload).__name__}")

    try:
        kind = GeometryType(geometry_type)
    except ValueError:
        raise GeometryDecodeError(
            ErrorCode.UNKNOWN_GEOMETRY_TYPE,
            f"Unknown geometry type: {geometry_type!r}"
        )

    if not isinstance(coordinates, (list, tuple)):
        raise _malformed(f"Coordinates must be an array, got {coordinates!r}")
    coordinates = list(coordinates)

    if kind == GeometryType.CIRCLE:
        return _decode_circle(coordinates, radius, radius_fallback)
    if kind == GeometryType.POLYGON:
        return _decode_polygon(coordinates, allow_degenerate)
    return _decode_rectangle(coordinates)


def wrap_feature(shape: Shape) -> GeoCodeData:
    """GeoJSON-style wrapper stored under `geoCodeData`"""
    return GeoCodeData(geometry=encode_geometry(shape))


# ----------------------------------------------------------------------
# Geofence records
# ----------------------------------------------------------------------

def geofence_to_payload(geofence: Geofence) -> GeofencePayload:
    return GeofencePayload(
        name=geofence.name,
        mobile_number=geofence.phone_number,
        geo_code_data=wrap_feature(geofence.shape),
        is_public=geofence.is_public,
        is_private=geofence.is_private,
        color=geofence.color,
        address=geofence.address,
        final_address=geofence.final_address,
        user_id=geofence.user_id,
        user_email=geofence.user_email,
        created_by=geofence.created_by,
    )


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable timestamp {value!r}")
        return None


def _optional_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _parse_address(value: Any) -> AddressComponents:
    """Stored address components; null or numeric parts are normalized to text."""
    if not isinstance(value, Mapping):
        return AddressComponents()
    return AddressComponents.model_validate({
        key: str(part) for key, part in value.items() if part is not None
    })


def record_to_geofence(record: Mapping[str, Any]) -> Geofence:
    """
    Build a Geofence from a record returned by the geofence API.
    Raises GeometryDecodeError when the stored geometry is missing or malformed,
    or when other fields cannot be read.
    """
    geo_code_data = record.get("geoCodeData") or {}
    geometry = geo_code_data.get("geometry") if isinstance(geo_code_data, Mapping) else None
    if geometry is None:
        raise _malformed(f"Record {record.get('_id')!r} has no geoCodeData.geometry")

    shape = decode_geometry(geometry)
    metrics = geofence_service.compute_metrics(shape)

    visibility = Visibility.PRIVATE if record.get("isPrivate") else Visibility.PUBLIC

    try:
        return Geofence(
            id=str(record.get("_id") or record.get("id") or ""),
            name=record.get("name") or "",
            phone_number=str(record.get("mobileNumber") or record.get("phoneNumber") or ""),
            shape_type=shape_type_of(shape),
            visibility=visibility,
            shape=shape,
            color=record.get("color") or settings.DEFAULT_GEOFENCE_COLOR,
            perimeter_meters=metrics.perimeter_meters,
            area_square_meters=metrics.area_square_meters,
            created_at=_parse_timestamp(record.get("createdAt")) or datetime.now(timezone.utc),
            updated_at=_parse_timestamp(record.get("updatedAt")),
            address=_parse_address(record.get("address")),
            final_address=record.get("finalAddress") or "",
            user_id=_optional_text(record.get("userId")),
            user_email=_optional_text(record.get("userEmail")),
            created_by=_optional_text(record.get("createdBy")),
        )
    except ValidationError as e:
        raise GeometryDecodeError(
            ErrorCode.INVALID_RECORD,
            f"Record {record.get('_id')!r} has invalid fields: {e.error_count()} error(s)"
        ) from e
