from enum import Enum
from typing import Any, Iterable, Optional, Tuple, Union


class WeatherGroup(str, Enum):
    CLEAR = "clear"
    CLOUDY = "cloudy"
    DRIZZLE = "drizzle"
    RAINY = "rainy"
    SNOW = "snow"


# WMO weather interpretation codes as reported by Open-Meteo `current_weather.weathercode`.
WEATHER_GROUP_CODES = {
    WeatherGroup.CLEAR: frozenset({0}),
    WeatherGroup.CLOUDY: frozenset({1, 2, 3}),
    WeatherGroup.DRIZZLE: frozenset({51, 52, 53, 54, 55, 56, 57}),
    WeatherGroup.RAINY: frozenset({61, 62, 63, 64, 65, 66, 67, 80, 81, 82}),
    WeatherGroup.SNOW: frozenset({71, 72, 73, 74, 75, 76, 77, 85, 86}),
}

WEATHER_GROUP_KEYS = tuple(g.value for g in WeatherGroup)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _to_group(name: Any) -> Optional[WeatherGroup]:
    if isinstance(name, WeatherGroup):
        return name
    try:
        return WeatherGroup(name)
    except ValueError:
        return None


def classify(code: Any) -> Optional[WeatherGroup]:
    """Map a weather code to its group.

    Parameters
    ----------
    code : Any
        Weather code as received from the provider. Anything that is not a
        number (including `None` and booleans) classifies as `None`.

    Returns
    -------
    Optional[WeatherGroup]
        The group whose code set contains `code`, or `None` if no group does.
    """

    if not _is_number(code):
        return None
    for group, codes in WEATHER_GROUP_CODES.items():
        if code in codes:
            return group
    return None


def matches_any_group(code: Any, requested_groups: Optional[Iterable[Union[WeatherGroup, str]]]) -> bool:
    """Check whether `code` belongs to at least one of `requested_groups`.

    Unknown group names are ignored. When nothing (valid) was requested the
    check passes for every code, so a bad filter token never rejects all
    results; only a valid group with a non-matching code does.
    """

    if not requested_groups:
        return True
    valid = [g for g in (_to_group(name) for name in requested_groups) if g is not None]
    if not valid:
        return True
    if not _is_number(code):
        return False
    return any(code in WEATHER_GROUP_CODES[g] for g in valid)


def parse_weather_groups(raw: Union[str, Iterable[str], None]) -> Tuple[WeatherGroup, ...]:
    """Parse `weather` query input into known groups.

    Accepts a comma-separated string (`"clear,rainy"`) or a list of such
    strings, as produced by repeated query parameters. Empty and unknown
    tokens are dropped and duplicates collapsed, keeping first-seen order.
    """

    if not raw:
        return ()
    chunks = [raw] if isinstance(raw, str) else list(raw)
    groups = []
    for chunk in chunks:
        for token in str(chunk).split(","):
            group = _to_group(token.strip().lower())
            if group is not None and group not in groups:
                groups.append(group)
    return tuple(groups)
