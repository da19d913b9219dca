"""
Shared fixtures: an in-memory geofence API behind httpx.MockTransport and a
map surface that records every programmatic overlay write.
"""
import json
from datetime import datetime, timezone
from typing import Any, Dict, List

import httpx
import pytest

from app.schemas.geofence import Geofence, Visibility
from app.schemas.geometry import Circle, Coordinate, ShapeType
from app.services.edit_session import GeofenceEditSession
from app.services.geofence_registry import GeofenceRegistry
from app.services.map_surface import ServerMapSurface
from app.services.persistence_client import GeofenceApiClient

API_URL = "http://geofence-api.test"

# Small square near the equator, about 12,392 m²
SQUARE = (
    Coordinate(lat=0.0, lng=0.0),
    Coordinate(lat=0.0, lng=0.001),
    Coordinate(lat=0.001, lng=0.001),
    Coordinate(lat=0.001, lng=0.0),
)


class RecordingMapSurface(ServerMapSurface):
    """ServerMapSurface that counts programmatic overlay writes"""

    def __init__(self, surface_id: str = "test-surface", geocoder=None):
        super().__init__(surface_id, geocoder)
        self.updates: List[str] = []
        self.removed: List[str] = []

    def update_overlay(self, handle, shape):
        self.updates.append(handle)
        super().update_overlay(handle, shape)

    def remove_overlay(self, handle):
        self.removed.append(handle)
        super().remove_overlay(handle)


class FakeGeofenceApi:
    """In-memory stand-in for the geofence REST API"""

    def __init__(self):
        self.records: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.next_id = 1
        self.fail_with: int = 0

    def add(self, record: Dict[str, Any]) -> Dict[str, Any]:
        record.setdefault("_id", f"gf-{self.next_id}")
        self.next_id += 1
        self.records[record["_id"]] = record
        return record

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with:
            return httpx.Response(self.fail_with, json={"success": False, "message": "API unavailable"})

        path = request.url.path
        if request.method == "GET":
            records = list(self.records.values())
            search = request.url.params.get("searchText")
            if path.endswith("/search") and search:
                records = [r for r in records if search.lower() in r.get("name", "").lower()]
            page = int(request.url.params.get("page", 1))
            limit = int(request.url.params.get("limit", 10))
            start = (page - 1) * limit
            return httpx.Response(200, json={
                "success": True,
                "data": records[start:start + limit],
                "total": len(records),
            })

        if request.method == "POST":
            record = self.add(json.loads(request.content))
            record["createdAt"] = "2024-05-01T10:00:00Z"
            return httpx.Response(201, json={"success": True, "data": record})

        geofence_id = path.rsplit("/", 1)[-1]
        if geofence_id not in self.records:
            return httpx.Response(404, json={"success": False, "message": "Geofence not found"})

        if request.method == "PUT":
            record = json.loads(request.content)
            record["updatedAt"] = "2024-05-02T10:00:00Z"
            self.records[geofence_id].update(record)
            return httpx.Response(200, json={"success": True, "data": self.records[geofence_id]})

        del self.records[geofence_id]
        return httpx.Response(200, json={"success": True, "message": "Deleted"})


def circle_record(name: str = "Depot", lat: float = 28.6, lng: float = 77.2, radius: Any = 500) -> Dict[str, Any]:
    geometry = {"type": "Circle", "coordinates": [lat, lng]}
    if radius is not None:
        geometry["radius"] = radius
    return {
        "name": name,
        "mobileNumber": "9876543210",
        "isPublic": True,
        "isPrivate": False,
        "color": "#FF0000",
        "geoCodeData": {"type": "Feature", "geometry": geometry},
        "finalAddress": "Connaught Place, New Delhi, Delhi, India 110001",
        "createdAt": "2024-04-01T08:30:00Z",
    }


def polygon_record(name: str = "Yard") -> Dict[str, Any]:
    return {
        "name": name,
        "mobileNumber": "9876543210",
        "isPrivate": True,
        "geoCodeData": {
            "type": "Feature",
            "geometry": {"type": "Polygon", "coordinates": [[v.lat, v.lng] for v in SQUARE]},
        },
        "createdAt": "2024-04-01T08:30:00Z",
    }


def make_geofence(shape=None, geofence_id: str = "gf-1", name: str = "Depot") -> Geofence:
    shape = shape or Circle(center=Coordinate(lat=28.6, lng=77.2), radius_meters=500)
    return Geofence(
        id=geofence_id,
        name=name,
        phone_number="9876543210",
        shape_type=ShapeType.CIRCLE if isinstance(shape, Circle) else ShapeType.POLYGON,
        visibility=Visibility.PUBLIC,
        shape=shape,
        created_at=datetime(2024, 4, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def fake_api():
    return FakeGeofenceApi()


@pytest.fixture
def api_client(fake_api):
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler))
    return GeofenceApiClient(base_url=API_URL, client=client)


@pytest.fixture
def surface():
    return RecordingMapSurface()


@pytest.fixture
def registry(api_client, surface):
    return GeofenceRegistry(api_client, surface)


@pytest.fixture
def session(surface, registry):
    return GeofenceEditSession(surface, registry, default_center=Coordinate(lat=28.6, lng=77.2))
