import asyncio
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
import structlog

from .cache import TTLCache, cache_key
from .schemas import PropertyWeather, WeatherResult
from .settings import REQUEST_TIMEOUT_SECONDS, settings

log = structlog.get_logger(__name__)


class WeatherFetchError(Exception):
    """Open-Meteo could not produce weather for one coordinate.

    Raised for transport errors, timeouts, non-2xx responses and undecodable
    bodies. Callers fetching many coordinates turn it into a per-row error.
    """

    def __init__(self, lat: float, lng: float, reason: str):
        super().__init__(f"Open-Meteo fetch failed for {lat},{lng}: {reason}")
        self.lat = lat
        self.lng = lng
        self.reason = reason


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_timestamp(raw: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is given."""

    if not isinstance(raw, str):
        return None
    for candidate in (raw, raw + "+00:00"):
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def nearest_humidity(times: Sequence[Any], humidities: Sequence[Any], now: datetime) -> Optional[float]:
    """Pick the humidity sample closest in time to `now`.

    Parameters
    ----------
    times : Sequence[Any]
        Hourly timestamps (Open-Meteo sends `YYYY-MM-DDTHH:MM`, UTC).
    humidities : Sequence[Any]
        Relative humidity values aligned with `times`.
    now : datetime
        Reference instant (timezone-aware).

    Returns
    -------
    Optional[float]
        The selected humidity, or `None` when the series is empty, the two
        series differ in length, no timestamp parses, or the chosen value is
        not a number. Unparsable timestamps are skipped.
    """

    if not times or not humidities or len(times) != len(humidities):
        return None
    best_idx = None
    best_diff = math.inf
    for i, raw in enumerate(times):
        ts = _parse_timestamp(raw)
        if ts is None:
            continue
        diff = abs((now - ts).total_seconds())
        if diff < best_diff:
            best_diff = diff
            best_idx = i
    if best_idx is None:
        return None
    value = humidities[best_idx]
    return float(value) if _is_number(value) else None


def parse_weather_payload(payload: Any, now: datetime) -> WeatherResult:
    """Extract the consumed fields from an Open-Meteo forecast payload.

    Missing or malformed sections degrade to `None` fields, never an error.
    """

    payload = payload if isinstance(payload, dict) else {}
    current = payload.get("current_weather")
    temperature = None
    weathercode = None
    if isinstance(current, dict):
        t = current.get("temperature")
        temperature = float(t) if _is_number(t) else None
        code = current.get("weathercode")
        if _is_number(code) and float(code).is_integer():
            weathercode = int(code)

    hourly = payload.get("hourly")
    humidity = None
    if isinstance(hourly, dict):
        times = hourly.get("time")
        hums = hourly.get("relativehumidity_2m")
        if isinstance(times, list) and isinstance(hums, list):
            humidity = nearest_humidity(times, hums, now)

    return WeatherResult(
        temperature=temperature,
        weathercode=weathercode,
        humidity=humidity,
        fetchedAt=now.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    )


class OpenMeteoClient:
    """Async client for Open-Meteo current weather with caching and a concurrency cap.

    Parameters
    ----------
    cache : TTLCache
        Process-wide cache keyed by `cache_key(lat, lng)`.
    limiter : asyncio.Semaphore
        Process-wide bound on in-flight upstream requests.
    base_url : Optional[str]
        Forecast endpoint. Defaults to `settings.openmeteo_base_url`.
    cache_ttl : Optional[int]
        TTL for stored results. Defaults to `settings.weather_cache_ttl`.
    timeout : float
        Per-request timeout in seconds.
    transport : Optional[httpx.AsyncBaseTransport]
        Custom transport, used by tests to stub the provider.

    Notes
    -----
    - Cache hits never touch the network or the limiter.
    - Uses `httpx` with a fresh `AsyncClient` per request.
    """

    def __init__(
        self,
        cache: TTLCache,
        limiter: asyncio.Semaphore,
        base_url: Optional[str] = None,
        cache_ttl: Optional[int] = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cache = cache
        self.limiter = limiter
        self.base_url = base_url or settings.openmeteo_base_url
        self.cache_ttl = settings.weather_cache_ttl if cache_ttl is None else cache_ttl
        self.timeout = timeout
        self._transport = transport

    async def _get_json(self, lat: float, lng: float) -> Any:
        """Perform the forecast request and return the parsed JSON payload.

        Raises
        ------
        httpx.HTTPStatusError
            If the response has a non-2xx status code.
        httpx.RequestError
            For transport-level errors (DNS, timeouts, etc.).
        ValueError
            If the body is not valid JSON.
        """

        params = {
            "latitude": lat,
            "longitude": lng,
            "current_weather": "true",
            "hourly": "relativehumidity_2m",
            "timezone": "UTC",
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            r = await client.get(self.base_url, params=params)
            r.raise_for_status()
            return r.json()

    async def fetch_weather(self, lat: float, lng: float) -> WeatherResult:
        """Return current weather for a coordinate, from cache when fresh.

        Parameters
        ----------
        lat : float
            Latitude in decimal degrees.
        lng : float
            Longitude in decimal degrees.

        Returns
        -------
        WeatherResult
            Temperature, weather code and nearest hourly humidity.

        Raises
        ------
        WeatherFetchError
            If the upstream call fails for any reason.
        """

        key = cache_key(lat, lng)
        cached = self.cache.get(key)
        if cached is not None:
            log.debug("weather_cache_hit", key=key)
            return cached

        async with self.limiter:
            try:
                data = await self._get_json(lat, lng)
            except (httpx.HTTPError, ValueError) as e:
                raise WeatherFetchError(lat, lng, str(e) or type(e).__name__) from e

        result = parse_weather_payload(data, datetime.now(tz=timezone.utc))
        self.cache.set(key, result, ttl=self.cache_ttl)
        return result

    async def _fetch_outcome(self, lat: float, lng: float) -> Tuple[Optional[WeatherResult], Optional[str]]:
        try:
            return await self.fetch_weather(lat, lng), None
        except WeatherFetchError as e:
            log.warning("weather_fetch_failed", lat=lat, lng=lng, error=e.reason)
            return None, str(e)

    async def fetch_weather_for_properties(self, items: Sequence[Dict[str, Any]]) -> List[PropertyWeather]:
        """Fetch weather for many `{id, lat, lng}` items concurrently.

        Items sharing a rounded coordinate are fetched once. Every item gets
        exactly one entry in the result, in input order, carrying either
        `weather` or `weatherError`; one failure never affects the others.
        """

        coords: Dict[str, Tuple[float, float]] = {}
        for it in items:
            coords.setdefault(cache_key(it["lat"], it["lng"]), (it["lat"], it["lng"]))

        keys = list(coords)
        outcomes = await asyncio.gather(*(self._fetch_outcome(*coords[k]) for k in keys))
        by_key = dict(zip(keys, outcomes))

        results = []
        for it in items:
            weather, error = by_key[cache_key(it["lat"], it["lng"])]
            results.append(
                PropertyWeather(id=it["id"], lat=it["lat"], lng=it["lng"], weather=weather, weatherError=error)
            )
        return results
