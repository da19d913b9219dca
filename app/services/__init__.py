"""
Services package
"""
from app.services.geofence_service import geofence_service, GeofenceService
from app.services.geocoding_service import geocoding_service, GeocodingService
from app.services.persistence_client import GeofenceApiClient
from app.services.geofence_registry import GeofenceRegistry
from app.services.map_surface import MapSurface, ServerMapSurface, OverlayStyle
from app.services.edit_session import EditSessionManager, GeofenceEditSession, SessionState

__all__ = [
    "geofence_service",
    "GeofenceService",
    "geocoding_service",
    "GeocodingService",
    "GeofenceApiClient",
    "GeofenceRegistry",
    "MapSurface",
    "ServerMapSurface",
    "OverlayStyle",
    "EditSessionManager",
    "GeofenceEditSession",
    "SessionState",
]
