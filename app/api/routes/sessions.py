"""
Edit session routes for a map surface
"""
from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import error_detail, get_session_manager, raise_for_error
from app.core.errors import GeometryDecodeError, MapSurfaceError
from app.schemas.geometry import Polygon
from app.schemas.session import (
    CommitResponse, FormEditRequest, OverlayMutationRequest, OverlayResponse, SessionResponse,
    ShapeTypeRequest, StartDrawingRequest,
)
from app.services.edit_session import EditSessionManager, GeofenceEditSession
from app.services.geometry_codec import decode_geometry, encode_geometry
from app.services.map_surface import ServerMapSurface

router = APIRouter(prefix="/surfaces/{surface_id}/session", tags=["Edit Session"])


def build_session_response(surface_id: str, session: GeofenceEditSession) -> SessionResponse:
    snapshot = session.snapshot()
    overlays = []
    bounds = []
    surface = session.map_surface
    if isinstance(surface, ServerMapSurface):
        overlays = [
            OverlayResponse(
                handle=record.handle,
                shape=record.shape,
                editable=record.style.editable,
                color=record.style.stroke_color,
            )
            for record in surface.overlays.values()
        ]
        bounds = surface.bounds

    shape = snapshot["shape"]
    # Polygons below 3 vertices are kept while editing but have no wire form yet
    encodable = shape is not None and (not isinstance(shape, Polygon) or len(shape.vertices) >= 3)
    error = snapshot["error"]
    return SessionResponse(
        surface_id=surface_id,
        state=snapshot["state"].value,
        shape=shape,
        geometry=encode_geometry(shape) if encodable else None,
        metrics=snapshot["metrics"],
        form=snapshot["form"],
        overlay_handle=snapshot["overlay_handle"],
        editing_geofence_id=snapshot["editing_geofence_id"],
        error=error_detail(error) if error else None,
        overlays=overlays,
        bounds=bounds,
    )


def get_existing_session(surface_id: str, manager: EditSessionManager) -> GeofenceEditSession:
    session = manager.get(surface_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Edit session not found"
        )
    return session


@router.get("", response_model=SessionResponse)
async def get_session(
    surface_id: str,
    manager: EditSessionManager = Depends(get_session_manager)
):
    """
    Current state, form values, metrics and overlays of a surface.
    """
    session = get_existing_session(surface_id, manager)
    return build_session_response(surface_id, session)


@router.post("/drawing", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def start_drawing(
    surface_id: str,
    request_data: StartDrawingRequest,
    manager: EditSessionManager = Depends(get_session_manager)
):
    """
    Start drawing a new geofence seeded with a default shape.
    """
    session = manager.open(surface_id)
    error = session.start_drawing(request_data.shape_type, request_data.center)
    if error:
        raise_for_error(error)
    await session.refresh_address()
    return build_session_response(surface_id, session)


@router.post("/edit/{geofence_id}", response_model=SessionResponse)
async def begin_edit(
    surface_id: str,
    geofence_id: str,
    manager: EditSessionManager = Depends(get_session_manager)
):
    """
    Start editing a geofence from the surface's loaded list.
    """
    session = manager.open(surface_id)
    geofence = session.registry.get(geofence_id)
    if geofence is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Geofence not found"
        )
    error = session.begin_edit(geofence)
    if error:
        raise_for_error(error)
    return build_session_response(surface_id, session)


@router.post("/overlay-mutations", response_model=SessionResponse)
async def report_overlay_mutation(
    surface_id: str,
    mutation: OverlayMutationRequest,
    manager: EditSessionManager = Depends(get_session_manager)
):
    """
    The user dragged, resized or reshaped the overlay in the browser.
    """
    session = get_existing_session(surface_id, manager)
    surface = session.map_surface
    handle = mutation.overlay_handle or session.overlay_handle

    if not isinstance(surface, ServerMapSurface) or handle is None:
        error = session.apply_overlay_mutation(mutation.geometry)
        if error:
            raise_for_error(error)
        return build_session_response(surface_id, session)

    if handle != session.overlay_handle:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Overlay is not being edited"
        )
    try:
        shape = decode_geometry(mutation.geometry, allow_degenerate=True, radius_fallback=False)
    except GeometryDecodeError as e:
        raise_for_error(e)

    # The surface forwards the mutation to the session's listener
    session.last_error = None
    try:
        surface.report_mutation(handle, shape)
    except MapSurfaceError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    if session.last_error:
        raise_for_error(session.last_error)

    return build_session_response(surface_id, session)


@router.patch("/form", response_model=SessionResponse)
async def edit_form(
    surface_id: str,
    edit: FormEditRequest,
    manager: EditSessionManager = Depends(get_session_manager)
):
    """
    The user typed into a form field.
    """
    session = get_existing_session(surface_id, manager)
    error = session.apply_form_edit(edit.field, edit.value, edit.index)
    if error:
        raise_for_error(error)
    return build_session_response(surface_id, session)


@router.post("/shape-type", response_model=SessionResponse)
async def switch_shape_type(
    surface_id: str,
    request_data: ShapeTypeRequest,
    manager: EditSessionManager = Depends(get_session_manager)
):
    """
    Switch between circle and polygon, discarding the current overlay.
    """
    session = get_existing_session(surface_id, manager)
    error = session.switch_shape_type(request_data.shape_type)
    if error:
        raise_for_error(error)
    return build_session_response(surface_id, session)


@router.post("/commit", response_model=CommitResponse)
async def commit_session(
    surface_id: str,
    manager: EditSessionManager = Depends(get_session_manager)
):
    """
    Validate and save the geofence being edited.
    """
    session = get_existing_session(surface_id, manager)
    result = await session.commit()
    if isinstance(result, Exception):
        raise_for_error(result)
    return CommitResponse(geofence=result, geometry=encode_geometry(result.shape))


@router.post("/cancel", response_model=SessionResponse)
async def cancel_session(
    surface_id: str,
    manager: EditSessionManager = Depends(get_session_manager)
):
    """
    Discard the shape being drawn or edited.
    """
    session = get_existing_session(surface_id, manager)
    session.cancel()
    return build_session_response(surface_id, session)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(
    surface_id: str,
    manager: EditSessionManager = Depends(get_session_manager)
):
    """
    Close the surface and release all of its overlays.
    """
    get_existing_session(surface_id, manager)
    manager.close(surface_id)
