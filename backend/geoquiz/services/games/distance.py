import math

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometers."""
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlng / 2) ** 2
    )
    # Float overshoot can push h a hair above 1 for antipodal points
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def adjusted_km(raw_km: float, free_radius_km: float) -> float:
    return max(0.0, raw_km - free_radius_km)


def parse_coordinate(lat, lng):
    """Coerce a client-supplied (lat, lng) pair to floats.

    Raises ValueError for anything that is not a finite, in-range coordinate.
    """
    if isinstance(lat, bool) or isinstance(lng, bool):
        raise ValueError('coordinates must be numbers')
    try:
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        raise ValueError('coordinates must be numbers')
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise ValueError('coordinates must be finite')
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        raise ValueError('coordinates out of range')
    return lat, lng
