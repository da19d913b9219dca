"""
Tests for the geofence REST API client.

Run with: python -m pytest tests/test_persistence_client.py -v
"""
import json

import httpx
import pytest

from app.core.errors import PersistenceError
from app.services.geometry_codec import geofence_to_payload
from app.services.persistence_client import GeofenceApiClient
from tests.conftest import API_URL, circle_record, make_geofence


def client_for(handler):
    return GeofenceApiClient(
        base_url=API_URL + "/",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestRequests:
    async def test_create_posts_wire_payload(self, api_client, fake_api):
        payload = geofence_to_payload(make_geofence())
        saved = await api_client.create_geofence(payload)

        request = fake_api.requests[-1]
        assert request.method == "POST"
        assert request.url.path == "/geofences"
        body = json.loads(request.content)
        assert body["mobileNumber"] == "9876543210"
        assert body["geoCodeData"]["geometry"]["type"] == "Circle"
        assert saved.id == "gf-1"

    async def test_update_sends_id(self, api_client, fake_api):
        fake_api.add(dict(circle_record(), _id="gf-5"))
        await api_client.update_geofence("gf-5", geofence_to_payload(make_geofence(geofence_id="gf-5")))

        request = fake_api.requests[-1]
        assert request.method == "PUT"
        assert json.loads(request.content)["_id"] == "gf-5"

    async def test_delete_missing_geofence(self, api_client):
        with pytest.raises(PersistenceError) as exc_info:
            await api_client.delete_geofence("nope")
        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Geofence not found"

    def test_trailing_slash_is_stripped(self):
        assert client_for(lambda request: httpx.Response(200)).base_url == API_URL


class TestListShapes:
    async def test_nested_data_envelope(self):
        def handler(request):
            return httpx.Response(200, json={
                "success": True,
                "data": {"data": [dict(circle_record(), _id="x1")], "total": 41},
            })

        result = await client_for(handler).list_geofences(page=1, limit=10)
        assert result.total == 41
        assert [g.id for g in result.items] == ["x1"]

    async def test_bare_list(self):
        def handler(request):
            return httpx.Response(200, json=[dict(circle_record(), _id="x1"), "junk"])

        result = await client_for(handler).list_geofences()
        assert result.total == 1
        assert len(result.items) == 1

    async def test_query_params(self, api_client, fake_api):
        await api_client.list_geofences(page=3, limit=25)
        params = fake_api.requests[-1].url.params
        assert params["page"] == "3"
        assert params["limit"] == "25"
        assert "searchText" not in params


class TestFailures:
    async def test_success_false(self):
        def handler(request):
            return httpx.Response(200, json={"success": False, "message": "Duplicate name"})

        with pytest.raises(PersistenceError) as exc_info:
            await client_for(handler).create_geofence(geofence_to_payload(make_geofence()))
        assert exc_info.value.message == "Duplicate name"

    async def test_non_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(PersistenceError):
            await client_for(handler).list_geofences()

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(PersistenceError) as exc_info:
            await client_for(handler).list_geofences()
        assert exc_info.value.status_code is None

    async def test_unreadable_geometry_on_create(self):
        def handler(request):
            record = dict(circle_record(), _id="bad")
            record["geoCodeData"] = {"geometry": {"type": "Blob", "coordinates": []}}
            return httpx.Response(201, json={"success": True, "data": record})

        with pytest.raises(PersistenceError):
            await client_for(handler).create_geofence(geofence_to_payload(make_geofence()))

    async def test_empty_body_on_delete(self):
        def handler(request):
            return httpx.Response(204)

        assert await client_for(handler).delete_geofence("x") is None
