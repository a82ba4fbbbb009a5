"""Geographic helpers: great-circle distance and territory overlap."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping

from .pipelines.normalization import normalized_set

EARTH_RADIUS_MILES = 3959.0


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in miles."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_between(a: Mapping[str, Any], b: Mapping[str, Any]) -> float | None:
    """Distance between two records with latitude/longitude, None if either lacks coordinates."""
    coords = (a.get("latitude"), a.get("longitude"), b.get("latitude"), b.get("longitude"))
    if any(c is None for c in coords):
        return None
    return haversine_miles(*(float(c) for c in coords))


@dataclass
class TerritoryOverlap:
    """Shared zips, cities and states between a pro and a territory."""
    zip_codes: set[str]
    cities: set[str]
    states: set[str]
    neighborhoods: set[str]

    @property
    def any(self) -> bool:
        return bool(self.zip_codes or self.cities or self.states)


def territory_overlap(pro: Mapping[str, Any], territory: Mapping[str, Any]) -> TerritoryOverlap:
    """Compare a pro's service area against a client's or bid's territory.

    Neighborhoods are matched against the territory's cities.
    """
    territory_cities = normalized_set(territory.get("cities"))
    return TerritoryOverlap(
        zip_codes=normalized_set(pro.get("zip_codes")) & normalized_set(territory.get("zip_codes")),
        cities=normalized_set(pro.get("cities")) & territory_cities,
        states=normalized_set(pro.get("states")) & normalized_set(territory.get("states")),
        neighborhoods=normalized_set(pro.get("primary_neighborhoods")) & territory_cities,
    )
