import math
from typing import Tuple

import requests

from .errors import GeocodingError


class NominatimGeocoder:
    """Resolve a place name to a coordinate with an OpenStreetMap Nominatim search.

    Nominatim's usage policy requires an identifying User-Agent; pass one
    through ``GEOCODER_USER_AGENT``.
    """

    def __init__(self, url: str, user_agent: str, timeout: float = 5.0, http=None):
        self.url = url
        self.user_agent = user_agent
        self.timeout = timeout
        self.http = http or requests.Session()

    def geocode(self, name: str) -> Tuple[float, float]:
        query = (name or '').strip()
        if not query:
            raise GeocodingError('A place name is required')
        try:
            res = self.http.get(
                self.url,
                params={'q': query, 'format': 'json', 'limit': 1},
                headers={'User-Agent': self.user_agent, 'Accept': 'application/json'},
                timeout=self.timeout,
            )
            res.raise_for_status()
            data = res.json()
        except (requests.RequestException, ValueError) as exc:
            raise GeocodingError(f'Geocoding service unavailable: {exc}') from exc
        if not data:
            raise GeocodingError(f'Could not find "{query}"')
        try:
            lat, lng = float(data[0]['lat']), float(data[0]['lon'])
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise GeocodingError(f'Unexpected geocoding response for "{query}"') from exc
        if not (math.isfinite(lat) and math.isfinite(lng)):
            raise GeocodingError(f'Unexpected geocoding response for "{query}"')
        return lat, lng
