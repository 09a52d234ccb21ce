from dataclasses import asdict
from datetime import date
from typing import Iterable, List, Optional

from common.cache import RedisJsonCache

from .engine import OccupancyDay

OCCUPANCY_CACHE_TTL = 60

_cache = RedisJsonCache("tapechart:occupancy", default_ttl=OCCUPANCY_CACHE_TTL)


def get_occupancy(organization_id: int, start: date, end: date) -> Optional[List[OccupancyDay]]:
    cached = _cache.get(organization_id, start.isoformat(), end.isoformat())
    if cached is None:
        return None
    return [OccupancyDay(**day) for day in cached]


def store_occupancy(organization_id: int, start: date, end: date, days: Iterable[OccupancyDay]) -> List[OccupancyDay]:
    days = list(days)
    _cache.set([asdict(day) for day in days], organization_id, start.isoformat(), end.isoformat())
    return days


def invalidate_occupancy(organization_id: int) -> None:
    """Drop every cached window of the organization after a reservation or block write."""
    _cache.invalidate(organization_id)
