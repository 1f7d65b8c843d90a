import math
from typing import Any, Dict, List

import structlog

from .filters import FilterCriteria
from .openmeteo_client import OpenMeteoClient
from .repository import PropertyRepository
from .schemas import PropertiesResponse
from .settings import SCAN_BATCH_SIZE
from .weather import classify

log = structlog.get_logger(__name__)


def has_coordinates(row: Dict[str, Any]) -> bool:
    lat, lng = row.get("lat"), row.get("lng")
    for value, limit in ((lat, 90.0), (lng, 180.0)):
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return False
        if not math.isfinite(value) or abs(value) > limit:
            return False
    return True


class PropertySearchService:
    """Paginated property search with optional live-weather filtering.

    Parameters
    ----------
    repository : PropertyRepository
        Datastore providing text search, `count` and skip/take paging.
    weather_client : OpenMeteoClient
        Shared weather fetcher (cache + concurrency limiter).
    batch_size : int
        Rows scanned per datastore round trip on the filtered path.

    Notes
    -----
    - Without weather filters the datastore pages directly and `total` is exact.
    - With weather filters rows are scanned batch by batch, weather is fetched
      for each batch and rows are filtered in memory until the requested page
      is covered or the datastore runs out. `total` then only counts rows
      found so far and `isEstimate` tells whether the scan stopped early.
    """

    def __init__(self, repository: PropertyRepository, weather_client: OpenMeteoClient, batch_size: int = SCAN_BATCH_SIZE):
        self.repository = repository
        self.weather_client = weather_client
        self.batch_size = batch_size

    async def search(self, criteria: FilterCriteria) -> PropertiesResponse:
        if not criteria.has_weather_filters:
            return await self._plain_page(criteria)
        return await self._weather_page(criteria)

    async def _plain_page(self, criteria: FilterCriteria) -> PropertiesResponse:
        total = await self.repository.count(criteria.search_text)
        rows = await self.repository.find_many(criteria.search_text, skip=criteria.offset, take=criteria.take)
        return PropertiesResponse(
            data=rows,
            page=criteria.page,
            take=criteria.take,
            total=total,
            hasNextPage=criteria.page * criteria.take < total,
        )

    async def _filter_batch(self, batch: List[Dict[str, Any]], criteria: FilterCriteria) -> List[Dict[str, Any]]:
        with_coords = [row for row in batch if has_coordinates(row)]
        dropped = len(batch) - len(with_coords)
        if dropped:
            log.info("rows_without_coordinates", dropped=dropped, batch=len(batch))
        if not with_coords:
            return []

        fetched = await self.weather_client.fetch_weather_for_properties(
            [{"id": row["id"], "lat": row["lat"], "lng": row["lng"]} for row in with_coords]
        )

        matched = []
        for row, pw in zip(with_coords, fetched):
            if not criteria.accepts(pw.weather):
                continue
            group = classify(pw.weather.weathercode)
            weather = pw.weather.model_dump()
            weather["weatherGroup"] = group.value if group else None
            matched.append({**row, "weather": weather, "weatherError": pw.weatherError})
        return matched

    async def _weather_page(self, criteria: FilterCriteria) -> PropertiesResponse:
        needed = criteria.page * criteria.take
        filtered: List[Dict[str, Any]] = []
        scanned = 0
        exhausted = False

        while len(filtered) < needed:
            batch = await self.repository.find_many(criteria.search_text, skip=scanned, take=self.batch_size)
            scanned += len(batch)
            filtered.extend(await self._filter_batch(batch, criteria))
            log.debug("search_batch_scanned", scanned=scanned, batch=len(batch), matched=len(filtered))
            if len(batch) < self.batch_size:
                exhausted = True
                break

        start, end = criteria.offset, needed
        total = len(filtered)
        return PropertiesResponse(
            data=filtered[start:end],
            page=criteria.page,
            take=criteria.take,
            total=total,
            hasNextPage=end < total,
            isEstimate=not exhausted,
        )
