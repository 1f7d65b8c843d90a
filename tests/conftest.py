import asyncio
import sqlite3
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from property_api.cache import TTLCache
from property_api.openmeteo_client import OpenMeteoClient
from property_api.repository import SQLitePropertyRepository


def openmeteo_payload(temperature=None, weathercode=None, humidity=None, now=None):
    """Forecast payload shaped like Open-Meteo's, with humidity `humidity` at the current hour."""

    now = now or datetime.now(tz=timezone.utc)
    hour = now.replace(minute=0, second=0, microsecond=0)
    times = [(hour + timedelta(hours=h)).strftime("%Y-%m-%dT%H:%M") for h in (-2, -1, 0, 1, 2)]
    # current and next hour share the value, so the minute of the hour never matters
    offsets = (-20, -10, 0, 0, 20)
    hums = [None if humidity is None else humidity + d for d in offsets]
    return {
        "latitude": 0.0,
        "longitude": 0.0,
        "current_weather": {"temperature": temperature, "weathercode": weathercode, "windspeed": 3.1},
        "hourly": {"time": times, "relativehumidity_2m": hums},
    }


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeOpenMeteo:
    """Callable handler for `httpx.MockTransport` answering by latitude.

    `weather` maps latitude -> (temperature, weathercode, humidity); latitudes
    listed in `failing` answer 503.
    """

    def __init__(self, weather=None, failing=(), delay=0.0):
        self.weather = dict(weather or {})
        self.failing = set(failing)
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        lat = float(request.url.params["latitude"])
        self.calls.append((lat, float(request.url.params["longitude"])))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if lat in self.failing:
            return httpx.Response(503, json={"error": True, "reason": "unavailable"})
        temperature, code, humidity = self.weather.get(lat, (None, None, None))
        return httpx.Response(200, json=openmeteo_payload(temperature, code, humidity))


@pytest.fixture
def fake_openmeteo():
    return FakeOpenMeteo()


@pytest.fixture
def weather_client(fake_openmeteo):
    return OpenMeteoClient(
        cache=TTLCache(600),
        limiter=asyncio.Semaphore(5),
        base_url="https://api.open-meteo.test/v1/forecast",
        transport=httpx.MockTransport(fake_openmeteo),
    )


class FakeRepository:
    """In-memory `PropertyRepository` recording every `find_many` call."""

    def __init__(self, rows, fail=False):
        self.rows = list(rows)
        self.fail = fail
        self.calls = []

    def _matching(self, search_text):
        if not search_text:
            return self.rows
        q = search_text.lower()
        return [r for r in self.rows if any(q in str(r.get(k, "")).lower() for k in ("name", "city", "state"))]

    async def count(self, search_text):
        if self.fail:
            raise RuntimeError("datastore unavailable")
        return len(self._matching(search_text))

    async def find_many(self, search_text, skip, take):
        if self.fail:
            raise RuntimeError("datastore unavailable")
        self.calls.append((skip, take))
        return self._matching(search_text)[skip:skip + take]


def make_row(i, lat=None, lng=None, **extra):
    row = {"id": i, "name": f"Property {i}", "city": "Austin", "state": "TX", "lat": lat, "lng": lng}
    row.update(extra)
    return row


@pytest.fixture
def sqlite_repo(tmp_path):
    repo = SQLitePropertyRepository(tmp_path / "properties.sqlite")
    repo.ensure_schema()
    return repo


def insert_properties(repo: SQLitePropertyRepository, rows):
    conn = sqlite3.connect(str(repo.path))
    try:
        conn.executemany(
            "INSERT INTO properties (name, street, city, state, zip, lat, lng) VALUES (?, ?, ?, ?, ?, ?, ?)",
            [
                (r["name"], r.get("street"), r.get("city"), r.get("state"), r.get("zip"), r.get("lat"), r.get("lng"))
                for r in rows
            ],
        )
        conn.commit()
    finally:
        conn.close()
