import enum
import json
import math
import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

MIN_POPULATION = 500000


class Region(str, enum.Enum):
    EUROPE = 'EUROPE'
    NORTH_AMERICA = 'NORTH_AMERICA'
    OTHER = 'OTHER'


# Cities drawn per region for one random game, in draw order
DEFAULT_QUOTAS = {
    Region.EUROPE: 4,
    Region.NORTH_AMERICA: 3,
    Region.OTHER: 3,
}


def normalize_region(label) -> Region:
    """Map free-text or enum-style region labels onto the canonical taxonomy.

    'north america', 'North_America' and 'NORTH-AMERICA' all land on
    Region.NORTH_AMERICA; anything unrecognised is Region.OTHER.
    """
    if not label:
        return Region.OTHER
    key = '_'.join(str(label).replace('-', ' ').replace('_', ' ').split()).upper()
    try:
        return Region(key)
    except ValueError:
        return Region.OTHER


@dataclass(frozen=True)
class City:
    name: str
    lat: float
    lng: float
    population: int
    region: Region

    @classmethod
    def from_record(cls, record: dict) -> Optional['City']:
        name = (record.get('name') or '').strip()
        try:
            lat = float(record['lat'])
            lng = float(record['lng'])
            population = int(record.get('population') or 0)
        except (KeyError, TypeError, ValueError):
            return None
        if not name or not (math.isfinite(lat) and math.isfinite(lng)):
            return None
        region = normalize_region(record.get('region') or record.get('continent'))
        return cls(name, lat, lng, population, region)

    def to_dict(self):
        return {
            'name': self.name,
            'lat': self.lat,
            'lng': self.lng,
            'population': self.population,
            'region': self.region.value,
        }

    def public_dict(self):
        # Candidate lists go to every player; coordinates stay server-side
        return {'name': self.name, 'region': self.region.value}


def parse_cities(records: Iterable[dict]) -> List[City]:
    """Normalize raw records, dropping unusable rows and duplicates."""
    seen = set()
    cities = []
    for record in records:
        city = City.from_record(record) if isinstance(record, dict) else None
        if city is None:
            continue
        key = (city.name, round(city.lat, 4), round(city.lng, 4))
        if key in seen:
            continue
        seen.add(key)
        cities.append(city)
    return cities


def load_cities(path: str) -> List[City]:
    with open(path, encoding='utf-8') as fh:
        return parse_cities(json.load(fh))


def pick_random_cities(
    pool: Iterable[City],
    quotas: Optional[Dict[Region, int]] = None,
    min_population: int = MIN_POPULATION,
    rng: Optional[random.Random] = None,
) -> List[City]:
    """Stratified draw: a fixed quota per region, without replacement.

    Regions with fewer eligible cities than their quota contribute what they
    have.
    """
    quotas = DEFAULT_QUOTAS if quotas is None else quotas
    rng = rng or random.Random()
    buckets: Dict[Region, List[City]] = {region: [] for region in quotas}
    for city in pool:
        if city.population >= min_population and city.region in buckets:
            buckets[city.region].append(city)
    picked = []
    for region, quota in quotas.items():
        bucket = list(buckets[region])
        rng.shuffle(bucket)
        picked.extend(bucket[:quota])
    return picked
