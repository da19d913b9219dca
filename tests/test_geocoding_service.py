"""
Tests for reverse geocoding and formatted address parsing.

Run with: python -m pytest tests/test_geocoding_service.py -v
"""
import httpx
import pytest

from app.core.errors import GeocodingError
from app.schemas.geometry import Coordinate
from app.services.geocoding_service import GeocodingService, extract_components, parse_formatted_address

POINT = Coordinate(lat=28.6139, lng=77.209)


def geocoder_for(handler, api_key="test-key"):
    return GeocodingService(api_key=api_key, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestParseFormattedAddress:
    def test_full_address(self):
        components = parse_formatted_address(
            "Block A, Connaught Place, Central Delhi, New Delhi, Delhi, India 110001"
        )
        assert components.zip_code == "110001"
        assert components.country == "India"
        assert components.state == "Delhi"
        assert components.city == "New Delhi"
        assert components.district == "Central Delhi"
        assert components.area == "Connaught Place"

    def test_short_address(self):
        components = parse_formatted_address("Mumbai, India")
        assert components.country == "India"
        assert components.state == ""
        assert components.zip_code == ""

    def test_empty(self):
        assert parse_formatted_address("").model_dump() == parse_formatted_address(" , ").model_dump()


class TestExtractComponents:
    def test_google_components(self):
        components = extract_components([
            {"long_name": "110001", "types": ["postal_code"]},
            {"long_name": "India", "types": ["country", "political"]},
            {"long_name": "Delhi", "types": ["administrative_area_level_1", "political"]},
            {"long_name": "New Delhi", "types": ["locality", "political"]},
        ])
        assert components.zip_code == "110001"
        assert components.country == "India"
        assert components.state == "Delhi"
        assert components.city == "New Delhi"
        assert components.area == ""


class TestReverseGeocode:
    async def test_ok(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={
                "status": "OK",
                "results": [{
                    "formatted_address": "Janpath, New Delhi, Delhi 110001, India",
                    "address_components": [{"long_name": "110001", "types": ["postal_code"]}],
                }],
            })

        result = await geocoder_for(handler).reverse_geocode(POINT)
        assert result.address == "Janpath, New Delhi, Delhi 110001, India"
        assert result.components.zip_code == "110001"
        assert seen[0].url.params["latlng"] == "28.6139,77.209"
        assert seen[0].url.params["key"] == "test-key"

    async def test_zero_results(self):
        def handler(request):
            return httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []})

        with pytest.raises(GeocodingError) as exc_info:
            await geocoder_for(handler).reverse_geocode(POINT)
        assert "ZERO_RESULTS" in exc_info.value.message

    async def test_http_error(self):
        def handler(request):
            return httpx.Response(500)

        with pytest.raises(GeocodingError):
            await geocoder_for(handler).reverse_geocode(POINT)

    async def test_missing_api_key(self):
        def handler(request):
            raise AssertionError("no request expected")

        with pytest.raises(GeocodingError):
            await geocoder_for(handler, api_key="").reverse_geocode(POINT)
