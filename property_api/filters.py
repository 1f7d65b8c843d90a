import math
from typing import Any, Iterable, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict

from .schemas import WeatherResult
from .weather import WeatherGroup, matches_any_group, parse_weather_groups

TEMP_RANGE = (-20.0, 50.0)
HUMIDITY_RANGE = (0.0, 100.0)
DEFAULT_TAKE = 20
MAX_TAKE = 200
DEFAULT_PAGE = 1


def parse_number(raw: Any) -> Optional[float]:
    """Parse a query value into a finite number, or `None` if missing/invalid."""

    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        n = float(raw)
    elif isinstance(raw, str) and raw.strip():
        try:
            n = float(raw.strip())
        except ValueError:
            return None
    else:
        return None
    return n if math.isfinite(n) else None


def clamp(n: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, n))


def _bound(raw: Any, limits: Tuple[float, float]) -> Optional[float]:
    n = parse_number(raw)
    return clamp(n, *limits) if n is not None else None


class FilterCriteria(BaseModel):
    """Validated search input for one `GET /properties` request.

    Built with `from_query`, which clamps or drops bad values instead of
    rejecting them.
    """

    model_config = ConfigDict(frozen=True)

    search_text: Optional[str] = None
    temp_min: Optional[float] = None
    temp_max: Optional[float] = None
    hum_min: Optional[float] = None
    hum_max: Optional[float] = None
    weather_groups: Tuple[WeatherGroup, ...] = ()
    page: int = DEFAULT_PAGE
    take: int = DEFAULT_TAKE

    @classmethod
    def from_query(
        cls,
        search_text: Any = None,
        temp_min: Any = None,
        temp_max: Any = None,
        hum_min: Any = None,
        hum_max: Any = None,
        weather: Union[str, Iterable[str], None] = None,
        take: Any = None,
        page: Any = None,
    ) -> "FilterCriteria":
        text = search_text.strip() if isinstance(search_text, str) else None

        take_n = parse_number(take)
        take_n = DEFAULT_TAKE if take_n is None else math.floor(take_n)
        page_n = parse_number(page)
        page_n = DEFAULT_PAGE if page_n is None else math.floor(page_n)

        return cls(
            search_text=text or None,
            temp_min=_bound(temp_min, TEMP_RANGE),
            temp_max=_bound(temp_max, TEMP_RANGE),
            hum_min=_bound(hum_min, HUMIDITY_RANGE),
            hum_max=_bound(hum_max, HUMIDITY_RANGE),
            weather_groups=parse_weather_groups(weather),
            page=max(1, page_n),
            take=int(clamp(take_n, 1, MAX_TAKE)),
        )

    @property
    def has_weather_filters(self) -> bool:
        bounds = (self.temp_min, self.temp_max, self.hum_min, self.hum_max)
        return any(b is not None for b in bounds) or bool(self.weather_groups)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.take

    def accepts(self, weather: Optional[WeatherResult]) -> bool:
        """Check fetched weather against every requested weather predicate.

        A row without weather never passes, and a missing value on a bounded
        dimension fails that row.
        """

        if weather is None:
            return False
        t, h = weather.temperature, weather.humidity
        if self.temp_min is not None and (t is None or t < self.temp_min):
            return False
        if self.temp_max is not None and (t is None or t > self.temp_max):
            return False
        if self.hum_min is not None and (h is None or h < self.hum_min):
            return False
        if self.hum_max is not None and (h is None or h > self.hum_max):
            return False
        if self.weather_groups:
            return matches_any_group(weather.weathercode, self.weather_groups)
        return True
