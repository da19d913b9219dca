"""
Stateless geometry routes: metrics, codec, validation and point checks
"""
from fastapi import APIRouter, Body

from app.api.deps import raise_for_error
from app.core.errors import GeometryDecodeError, ShapeValidationError
from app.schemas.geometry import AnyShape, GeometryPayload, ShapeMetrics
from app.schemas.session import PointCheckRequest, PointCheckResponse, ShapeValidationResponse
from app.services import geofence_service
from app.services.geometry_codec import decode_geometry, encode_geometry

router = APIRouter(prefix="/geometry", tags=["Geometry"])


@router.post("/metrics", response_model=ShapeMetrics)
async def compute_metrics(shape: AnyShape = Body(..., discriminator="kind")):
    """
    Perimeter and area of a shape.
    """
    return geofence_service.compute_metrics(shape)


@router.post("/encode", response_model=GeometryPayload, response_model_exclude_none=True)
async def encode_shape(shape: AnyShape = Body(..., discriminator="kind")):
    """
    Encode a shape into the persisted geometry format.
    """
    return encode_geometry(shape)


@router.post("/decode", response_model=AnyShape)
async def decode_payload(payload: GeometryPayload):
    """
    Decode persisted geometry into a shape.
    """
    try:
        return decode_geometry(payload)
    except GeometryDecodeError as e:
        raise_for_error(e)


@router.post("/validate", response_model=ShapeValidationResponse)
async def validate_shape(shape: AnyShape = Body(..., discriminator="kind")):
    """
    Check whether a shape can be committed.
    """
    try:
        geofence_service.validate_shape(shape)
    except ShapeValidationError as e:
        return ShapeValidationResponse(valid=False, code=e.code.value, message=e.message)
    return ShapeValidationResponse(valid=True)


@router.post("/contains", response_model=PointCheckResponse)
async def check_point(check_data: PointCheckRequest):
    """
    Check if a point is inside a shape.
    """
    inside, distance = geofence_service.check_point_in_shape(
        check_data.shape, check_data.latitude, check_data.longitude
    )
    return PointCheckResponse(inside=inside, distance_from_center=distance)
