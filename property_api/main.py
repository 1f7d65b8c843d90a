import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import List, Optional

import structlog
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from .cache import TTLCache
from .filters import FilterCriteria, parse_number
from .logging_config import init_logging
from .openmeteo_client import OpenMeteoClient
from .repository import PropertyRepository, SQLitePropertyRepository
from .schemas import PropertiesResponse
from .search import PropertySearchService
from .settings import Settings, settings as default_settings

log = structlog.get_logger(__name__)


async def _sweep_cache(cache: TTLCache, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        removed = cache.purge_expired()
        if removed:
            log.debug("cache_sweep", removed=removed, remaining=len(cache))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the periodic cache sweep for the lifetime of the app."""

    task = asyncio.create_task(_sweep_cache(app.state.weather_cache, app.state.settings.cache_sweep_interval))
    try:
        yield
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[PropertyRepository] = None,
    weather_client: Optional[OpenMeteoClient] = None,
) -> FastAPI:
    """Build the API with its process-wide services.

    Parameters
    ----------
    settings : Optional[Settings]
        Configuration; defaults to the environment-loaded `settings`.
    repository : Optional[PropertyRepository]
        Property datastore; defaults to SQLite at `settings.database_path`.
    weather_client : Optional[OpenMeteoClient]
        Weather fetcher; defaults to one built on a fresh cache and limiter.

    Notes
    -----
    - The weather cache and concurrency limiter are created once here and shared
      by every request served by this app.
    """

    settings = settings or default_settings
    init_logging(settings.log_level)

    if repository is None:
        repository = SQLitePropertyRepository(settings.database_path)
        repository.ensure_schema()
    if weather_client is None:
        weather_client = OpenMeteoClient(
            cache=TTLCache(settings.weather_cache_ttl),
            limiter=asyncio.Semaphore(settings.weather_concurrency),
            base_url=settings.openmeteo_base_url,
            cache_ttl=settings.weather_cache_ttl,
        )

    app = FastAPI(title=settings.app_name, version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.weather_cache = weather_client.cache
    app.state.search_service = PropertySearchService(repository, weather_client)

    app.add_api_route("/health", health, methods=["GET"])
    app.add_api_route("/properties", list_properties, methods=["GET"], response_model=PropertiesResponse)
    return app


async def health():
    """Liveness probe for the service.

    Returns
    -------
    dict
        A fixed payload `{"status": "ok"}` used by orchestrators and uptime checks.
    """

    return {"status": "ok"}


async def list_properties(
        request: Request,
        searchText: Optional[str] = Query(None, description="Case-insensitive match on name, city or state"),
        tempMin: Optional[str] = Query(None, description="Minimum current temperature, °C (clamped to -20..50)"),
        tempMax: Optional[str] = Query(None, description="Maximum current temperature, °C (clamped to -20..50)"),
        humMin: Optional[str] = Query(None, description="Minimum relative humidity, % (clamped to 0..100)"),
        humMax: Optional[str] = Query(None, description="Maximum relative humidity, % (clamped to 0..100)"),
        weather: Optional[List[str]] = Query(None, description="Comma-separated groups: clear, cloudy, drizzle, rainy, snow"),
        take: Optional[str] = Query(None, description="Page size, 1..200 (default 20)"),
        pageSize: Optional[str] = Query(None, description="Alias of `take`"),
        page: Optional[str] = Query(None, description="1-based page number"),
):
    """Search properties, optionally filtered by live weather at their coordinates.

    Parameters
    ----------
    searchText : Optional[str]
        Free text matched against name, city and state.
    tempMin, tempMax : Optional[str]
        Temperature bounds in °C.
    humMin, humMax : Optional[str]
        Relative humidity bounds in %.
    weather : Optional[List[str]]
        Weather groups; comma-separated and/or repeated.
    take, pageSize : Optional[str]
        Page size; a usable `take` wins over `pageSize`.
    page : Optional[str]
        1-based page number.

    Returns
    -------
    PropertiesResponse
        `{data, page, take, total, hasNextPage, isEstimate}`.

    Notes
    -----
    - Numeric inputs are taken as raw strings: malformed or out-of-range values
      are dropped or clamped, never rejected. Unknown weather groups are ignored.
    - With any weather filter, each returned row carries `weather` (including
      `weatherGroup`) and `weatherError`.
    - Any unexpected failure yields HTTP 500 `{"error": "Internal Server Error"}`.

    Examples
    --------
    - `GET /properties?searchText=austin&page=2&take=10`
    - `GET /properties?tempMin=10&tempMax=20&weather=clear,cloudy`
    """

    try:
        criteria = FilterCriteria.from_query(
            search_text=searchText,
            temp_min=tempMin,
            temp_max=tempMax,
            hum_min=humMin,
            hum_max=humMax,
            weather=weather,
            take=take if parse_number(take) is not None else pageSize,
            page=page,
        )
        result = await request.app.state.search_service.search(criteria)
    except Exception:
        log.exception("properties_search_failed", path=request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})
    return result
