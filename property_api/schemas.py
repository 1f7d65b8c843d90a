from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class WeatherResult(BaseModel):
    """Current weather at one (rounded) coordinate.

    Notes
    -----
    - Built once per successful Open-Meteo fetch and shared, read-only, by every
      caller hitting the same cache entry, hence `frozen`.
    - Any field may be `None` when the provider omitted it; `fetchedAt` is an
      ISO-8601 UTC timestamp.
    """

    model_config = ConfigDict(frozen=True)

    temperature: Optional[float] = None
    weathercode: Optional[int] = None
    humidity: Optional[float] = None
    fetchedAt: str


class PropertyWeather(BaseModel):
    id: Any
    lat: float
    lng: float
    weather: Optional[WeatherResult] = None
    weatherError: Optional[str] = None


class PropertiesResponse(BaseModel):
    """Paginated envelope for `GET /properties`.

    `total` counts the filtered rows discovered so far. When the weather scan
    stopped early `isEstimate` is true and `total` is a lower bound.
    """

    data: List[Dict[str, Any]]
    page: int
    take: int
    total: int
    hasNextPage: bool
    isEstimate: bool = False
