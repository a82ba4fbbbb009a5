"""Google Geocoding: forward (address parts) and reverse (lat/lng) lookups."""
from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field, model_validator

from ..config import settings
from .base import IntegrationConfigError, IntegrationError, http_client, transient_retry

logger = logging.getLogger(__name__)

CITY_COMPONENT_TYPES = ("locality", "sublocality", "administrative_area_level_3", "postal_town")


class GeocodingError(IntegrationError):
    """Raised when Google cannot geocode the request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message, provider="google_geocoding", status_code=status_code)


class GeocodeRequest(BaseModel):
    """Either coordinates for a reverse lookup or at least one address part."""
    address: str | None = Field(default=None, max_length=500)
    city: str | None = Field(default=None, max_length=100)
    state: str | None = Field(default=None, max_length=100)
    zip: str | None = Field(default=None, pattern=r"^\d{5}(-\d{4})?$")
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)

    @model_validator(mode="after")
    def require_location(self) -> GeocodeRequest:
        has_coords = self.lat is not None and self.lng is not None
        has_address = any((self.address, self.city, self.state, self.zip))
        if not has_coords and not has_address:
            raise ValueError("Provide lat/lng or at least one of address, city, state, zip")
        return self

    @property
    def is_reverse(self) -> bool:
        return self.lat is not None and self.lng is not None

    def query_params(self) -> dict[str, str]:
        if self.is_reverse:
            return {"latlng": f"{self.lat},{self.lng}"}
        parts = [p for p in (self.address, self.city, self.state, self.zip) if p]
        return {"address": ", ".join(parts)}


class GeocodeResult(BaseModel):
    formatted_address: str | None = None
    street_number: str | None = None
    street_name: str | None = None
    city: str | None = None
    county: str | None = None
    state: str | None = None
    state_code: str | None = None
    zip: str | None = None
    country: str | None = None
    lat: float | None = None
    lng: float | None = None
    place_id: str | None = None


def _component(components: list[dict[str, Any]], *types: str, short: bool = False) -> str | None:
    for wanted in types:
        for component in components:
            if wanted in component.get("types", []):
                return component.get("short_name" if short else "long_name")
    return None


def parse_result(result: dict[str, Any]) -> GeocodeResult:
    """Flatten a Google geocoding result into address fields."""
    components = result.get("address_components", [])
    location = result.get("geometry", {}).get("location", {})
    return GeocodeResult(
        formatted_address=result.get("formatted_address"),
        street_number=_component(components, "street_number"),
        street_name=_component(components, "route"),
        city=_component(components, *CITY_COMPONENT_TYPES),
        county=_component(components, "administrative_area_level_2"),
        state=_component(components, "administrative_area_level_1"),
        state_code=_component(components, "administrative_area_level_1", short=True),
        zip=_component(components, "postal_code"),
        country=_component(components, "country"),
        lat=location.get("lat"),
        lng=location.get("lng"),
        place_id=result.get("place_id"),
    )


@transient_retry
async def _get(http: httpx.AsyncClient, params: dict[str, str]) -> httpx.Response:
    return await http.get(settings.geocoding.api_url, params=params)


async def geocode(request: GeocodeRequest, client: httpx.AsyncClient | None = None) -> GeocodeResult:
    """Resolve an address or coordinates to structured location data.

    Raises:
        IntegrationConfigError: Google key not configured
        GeocodingError: Request failed or returned no results
    """
    api_key = settings.geocoding.google_api_key
    if not api_key:
        raise IntegrationConfigError("GEOCODING_GOOGLE_API_KEY not configured", provider="google_geocoding")

    params = {**request.query_params(), "key": api_key}
    try:
        async with http_client(client) as http:
            response = await _get(http, params)
            response.raise_for_status()
    except httpx.HTTPError as e:
        raise GeocodingError(f"Geocoding request failed: {e}", status_code=502) from e

    data = response.json()
    if data.get("status") != "OK" or not data.get("results"):
        status_text = data.get("status", "UNKNOWN")
        logger.warning(f"Geocoding returned {status_text}")
        raise GeocodingError(f"Geocoding failed: {status_text}", status_code=404 if status_text == "ZERO_RESULTS" else 502)

    return parse_result(data["results"][0])
