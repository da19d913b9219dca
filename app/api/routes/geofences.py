"""
Geofence list routes for a map surface
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query

from app.api.deps import get_session_manager, raise_for_error
from app.core.config import settings
from app.core.errors import PersistenceError
from app.schemas.geofence import Geofence
from app.schemas.session import GeofenceListResponse
from app.services.edit_session import EditSessionManager
from app.services.geofence_registry import GeofenceRegistry

router = APIRouter(prefix="/surfaces/{surface_id}/geofences", tags=["Geofence Management"])


def build_list_response(registry: GeofenceRegistry) -> GeofenceListResponse:
    return GeofenceListResponse(
        geofences=registry.geofences,
        total=registry.total,
        page=registry.page,
        limit=registry.limit,
        total_pages=registry.total_pages,
        skipped=registry.skipped,
    )


@router.get("", response_model=GeofenceListResponse)
async def list_geofences(
    surface_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=100),
    search: Optional[str] = None,
    manager: EditSessionManager = Depends(get_session_manager)
):
    """
    Load a page of geofences and draw them on the surface.
    """
    session = manager.open(surface_id)
    try:
        await session.registry.load(page=page, limit=limit, search_text=search or "")
    except PersistenceError as e:
        raise_for_error(e)
    return build_list_response(session.registry)


@router.get("/{geofence_id}", response_model=Geofence)
async def get_geofence(
    surface_id: str,
    geofence_id: str,
    manager: EditSessionManager = Depends(get_session_manager)
):
    """
    Get a loaded geofence by ID.
    """
    session = manager.open(surface_id)
    geofence = session.registry.get(geofence_id)

    if not geofence:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Geofence not found"
        )

    return geofence


@router.delete("/{geofence_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_geofence(
    surface_id: str,
    geofence_id: str,
    manager: EditSessionManager = Depends(get_session_manager)
):
    """
    Delete a geofence and release its overlay.
    """
    session = manager.open(surface_id)
    if session.editing_geofence_id == geofence_id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Geofence is being edited"
        )

    try:
        await session.registry.delete(geofence_id)
    except PersistenceError as e:
        raise_for_error(e)
