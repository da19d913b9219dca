"""Reverse geocoding through the Google Geocoding API."""
import logging
import re
from typing import List, Optional

import httpx
from pydantic import BaseModel, Field

from app.core.config import settings
from app.core.errors import GeocodingError
from app.schemas.geofence import AddressComponents
from app.schemas.geometry import Coordinate

logger = logging.getLogger(__name__)

# Google component type -> AddressComponents field
COMPONENT_FIELDS = {
    "postal_code": "zip_code",
    "country": "country",
    "administrative_area_level_1": "state",
    "locality": "city",
    "sublocality_level_1": "district",
    "sublocality_level_2": "area",
}

ZIP_CODE_PATTERN = re.compile(r"\d{5,6}")


class ReverseGeocodeResult(BaseModel):
    address: str
    components: AddressComponents = Field(default_factory=AddressComponents)


def extract_components(address_components: List[dict]) -> AddressComponents:
    """Pick the fields we store from Google's address_components list."""
    values = {}
    for component in address_components:
        for component_type in component.get("types", []):
            field_name = COMPONENT_FIELDS.get(component_type)
            if field_name and field_name not in values:
                values[field_name] = component.get("long_name", "")
                break
    return AddressComponents(**values)


def parse_formatted_address(address: str) -> AddressComponents:
    """
    Guess address components from a comma separated formatted address,
    walking backwards: country (with zip code), state, city, district, area.
    """
    parts = [part.strip() for part in address.split(",") if part.strip()]
    components = AddressComponents()
    if not parts:
        return components

    zip_match = ZIP_CODE_PATTERN.search(parts[-1])
    if zip_match:
        components.zip_code = zip_match.group(0)
    if len(parts) > 1:
        components.country = re.sub(r"\d+", "", parts[-1]).strip()
    if len(parts) > 2:
        components.state = parts[-2]
    if len(parts) > 3:
        components.city = parts[-3]
    if len(parts) > 4:
        components.district = parts[-4]
    if len(parts) > 5:
        components.area = parts[-5]
    return components


class GeocodingService:
    """Async client for reverse geocoding"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self.url = url or settings.GEOCODE_URL
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def reverse_geocode(self, coordinate: Coordinate) -> ReverseGeocodeResult:
        if not self.api_key:
            raise GeocodingError("GOOGLE_MAPS_API_KEY is not configured")

        try:
            resp = await self.client.get(
                self.url,
                params={"latlng": f"{coordinate.lat},{coordinate.lng}", "key": self.api_key},
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise GeocodingError(f"Reverse geocoding request failed: {e}") from e

        if data.get("status") != "OK" or not data.get("results"):
            raise GeocodingError(f"Geocoder failed due to: {data.get('status')}")

        result = data["results"][0]
        return ReverseGeocodeResult(
            address=result.get("formatted_address", ""),
            components=extract_components(result.get("address_components", [])),
        )


geocoding_service = GeocodingService()
