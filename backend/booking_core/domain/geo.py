from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


def _clamp_unit(value: float) -> float:
    # Rounding can push the cosine slightly outside [-1, 1] for identical or
    # antipodal points, where acos would raise.
    return max(-1.0, min(1.0, value))


def great_circle_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in km (spherical law of cosines)."""
    lat1, lng1 = math.radians(a.lat), math.radians(a.lng)
    lat2, lng2 = math.radians(b.lat), math.radians(b.lng)
    cos_angle = math.cos(lat1) * math.cos(lat2) * math.cos(lng2 - lng1) + math.sin(lat1) * math.sin(lat2)
    return EARTH_RADIUS_KM * math.acos(_clamp_unit(cos_angle))


def hotel_point(hotel: Mapping[str, Any]) -> Optional[GeoPoint]:
    """Coordinates of a hotel document, or None when either one is missing."""
    lat = hotel.get("latitude")
    lng = hotel.get("longitude")
    if lat is None or lng is None:
        return None
    return GeoPoint(lat=float(lat), lng=float(lng))


def has_coordinates_condition() -> Dict[str, Any]:
    """Hotels without coordinates never take part in geo filtering or sorting."""
    return {
        "latitude": {"$type": "number"},
        "longitude": {"$type": "number"},
    }


def distance_expression(origin: GeoPoint) -> Dict[str, Any]:
    """Aggregation expression computing `great_circle_km(origin, hotel)` server-side."""
    lat1 = math.radians(origin.lat)
    lng1 = math.radians(origin.lng)
    hotel_lat = {"$degreesToRadians": "$latitude"}
    hotel_lng = {"$degreesToRadians": "$longitude"}

    cos_angle = {
        "$add": [
            {
                "$multiply": [
                    math.cos(lat1),
                    {"$cos": hotel_lat},
                    {"$cos": {"$subtract": [hotel_lng, lng1]}},
                ]
            },
            {"$multiply": [math.sin(lat1), {"$sin": hotel_lat}]},
        ]
    }
    clamped = {"$min": [1.0, {"$max": [-1.0, cos_angle]}]}
    return {"$multiply": [EARTH_RADIUS_KM, {"$acos": clamped}]}
