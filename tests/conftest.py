"""Pytest fixtures for weather aggregator tests.

This module provides test fixtures that ensure:
1. No external API calls are made (every source gets an `httpx.MockTransport`)
2. No build keys leak in from the environment
3. Isolated test environment with controlled configuration
"""

import json as jsonlib
import os
from typing import Any, Callable

import httpx
import pytest

# Set test environment BEFORE importing application modules
os.environ.setdefault("LANGUAGE", "en")
for _key in ("MF_WSFT_KEY", "MF_WSFT_JWT_KEY", "BMKG_KEY"):
    os.environ.pop(_key, None)

from weather_aggregator.config import MemoryConfigBackend, Settings
from weather_aggregator.models.location import Location
from weather_aggregator.providers.base import WeatherProvider


# =============================================================================
# Test Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset settings cache before each test to ensure clean state."""
    from weather_aggregator.config import get_settings
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class MockRouter:
    """Serve canned JSON by URL path and record every request.

    Unknown paths answer 404, so a test only registers the endpoints it
    expects to be called.
    """

    def __init__(self):
        self.routes: dict[str, tuple[int, Any]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, path: str, json: Any, status: int = 200) -> "MockRouter":
        self.routes[path] = (status, json)
        return self

    def fail(self, path: str, status: int = 500) -> "MockRouter":
        self.routes[path] = (status, {"error": "boom"})
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.routes.get(request.url.path, (404, {"error": "not found"}))
        # Encode explicitly: httpx treats json=None as "no body", not JSON null.
        return httpx.Response(
            status,
            content=jsonlib.dumps(body).encode(),
            headers={"Content-Type": "application/json"},
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]


@pytest.fixture
def router() -> MockRouter:
    return MockRouter()


@pytest.fixture
def config_backend() -> MemoryConfigBackend:
    return MemoryConfigBackend()


@pytest.fixture
def make_provider(
    router: MockRouter,
    config_backend: MemoryConfigBackend,
) -> Callable[..., WeatherProvider]:
    """Build a source wired to the mock router.

    Keyword arguments are Settings overrides (e.g. `mf_wsft_key="k"`).
    """

    def factory(provider_class: type[WeatherProvider], language: str = "en", **overrides: Any):
        settings = Settings(**{"request_timeout": 5.0, "call_timeout": 5.0, **overrides})
        return provider_class(
            settings=settings,
            config_backend=config_backend,
            transport=router.transport,
            language_resolver=lambda: language,
        )

    return factory


# =============================================================================
# Locations
# =============================================================================


@pytest.fixture
def paris() -> Location:
    """Paris, with its department code."""
    return Location(
        latitude=48.8566,
        longitude=2.3522,
        country_code="FR",
        admin2_code="75",
        city="Paris",
        timezone="Europe/Paris",
    )


@pytest.fixture
def jakarta() -> Location:
    return Location(latitude=-6.2088, longitude=106.8456, country_code="ID", city="Jakarta")


@pytest.fixture
def macau() -> Location:
    return Location(latitude=22.1987, longitude=113.5439, country_code="MO", city="Macau")


@pytest.fixture
def beijing() -> Location:
    return Location(
        latitude=39.9042,
        longitude=116.4074,
        country_code="CN",
        city="北京市",
        city_id="101010100",
    )


@pytest.fixture
def new_york() -> Location:
    return Location(latitude=40.7128, longitude=-74.0060, country_code="US", city="New York")


# =============================================================================
# Payloads
# =============================================================================


@pytest.fixture
def mf_payloads() -> dict[str, Any]:
    """Météo-France responses keyed by path."""
    return {
        "/v2/observation": {
            "properties": {
                "gridded": {
                    "time": "2024-06-15T12:00:00Z",
                    "T": 21.5,
                    "wind_speed": 3,
                    "wind_direction": 270,
                    "weather_icon": "p2j",
                    "weather_description": "Eclaircies",
                }
            }
        },
        "/forecast": {
            "position": {
                "lat": 48.8566,
                "lon": 2.3522,
                "name": "Paris",
                "country": "FR - France",
                "dept": "75",
                "insee": "751010",
                "timezone": "Europe/Paris",
            },
            "forecast": [
                {
                    "dt": "2024-06-15T12:00:00Z",
                    "T": {"value": 22.0, "windchill": 23.0},
                    "humidity": 60,
                    "sea_level": 1015.2,
                    "wind": {"speed": 4, "gust": 0, "direction": 180},
                    "rain": {"1h": 0.2},
                    "clouds": 40,
                    "weather": {"icon": "p3j", "desc": "Eclaircies"},
                },
                {
                    "dt": "2024-06-15T13:00:00Z",
                    "T": {"value": 23.0, "windchill": 23.5},
                    "humidity": 55,
                    "wind": {"speed": 5, "gust": 9, "direction": "Variable"},
                    "clouds": 20,
                    "weather": {"icon": "p1n", "desc": "Ensoleillé"},
                },
            ],
            "daily_forecast": [
                {
                    "dt": "2024-06-15T00:00:00Z",
                    "T": {"min": 14.0, "max": 25.0},
                    "precipitation": {"24h": 1.2},
                    "uv": 7,
                    "weather12H": {"icon": "p2j", "desc": "Eclaircies"},
                    "sun": {"rise": "2024-06-15T03:46:00Z", "set": "2024-06-15T19:56:00Z"},
                }
            ],
            "probability_forecast": [
                {"dt": "2024-06-15T12:00:00Z", "rain": {"3h": 30, "6h": None}},
            ],
        },
        "/v2/ephemeris": {
            "properties": {
                "ephemeris": {
                    "sunrise_time": "2024-06-15T03:45:00Z",
                    "sunset_time": "2024-06-15T19:57:00Z",
                    "moonrise_time": "2024-06-15T12:30:00Z",
                    "moonset_time": "2024-06-15T01:10:00Z",
                    "moon_phase": "First Quarter",
                }
            }
        },
        "/v3/rain": {
            "properties": {
                "forecast": [
                    {
                        "time": "2024-06-15T12:00:00Z",
                        "rain_intensity": 1,
                        "rain_intensity_description": "Temps sec",
                    },
                    {
                        "time": "2024-06-15T12:05:00Z",
                        "rain_intensity": 3,
                        "rain_intensity_description": "Pluie modérée",
                    },
                ]
            }
        },
        "/v3/warning/currentphenomenons": {
            "update_time": "2024-06-15T06:00:00Z",
            "end_validity_time": "2024-06-16T06:00:00Z",
            "domain_id": "75",
            "phenomenons_max_colors": [
                {"phenomenon_id": "1", "phenomenon_max_color_id": 1},
                {"phenomenon_id": "3", "phenomenon_max_color_id": 2},
                {"phenomenon_id": "6", "phenomenon_max_color_id": 3},
            ],
        },
        "/v2/climate": {
            "properties": {
                "stats": [
                    {"month": 7, "T_min": 15.8, "T_max": 25.2},
                    {"month": 6, "T_min": 13.0, "T_max": 22.8},
                ]
            }
        },
    }


@pytest.fixture
def bmkg_payloads() -> dict[str, Any]:
    entry = {
        "utc_datetime": "2024-06-15 00:00:00",
        "local_datetime": "2024-06-15 07:00:00",
        "t": 27,
        "hu": 80,
        "tcc": 50,
        "tp": 0.5,
        "weather": 3,
        "weather_desc_en": "Mostly Cloudy",
        "ws": 7.2,
        "wd_deg": 90,
        "vs": 9000,
    }
    return {
        "/api/presentwx/coord": {"data": {"lokasi": {"adm4": "31.71.01.1001"}, "cuaca": entry}},
        "/api/df/v1/forecast/coord": {
            "data": [
                {
                    "lokasi": {"adm4": "31.71.01.1001"},
                    "cuaca": [
                        [
                            entry,
                            {**entry, "utc_datetime": "2024-06-15 03:00:00",
                             "local_datetime": "2024-06-15 10:00:00", "t": 31, "tp": 1.0},
                        ],
                        [
                            {**entry, "utc_datetime": "2024-06-15 18:00:00",
                             "local_datetime": "2024-06-16 01:00:00", "t": 24, "weather": 61},
                        ],
                    ],
                }
            ]
        },
        "/api/v1/public/weather/warning": {
            "data": {
                "today": {
                    "kode": "CJB20240615001",
                    "description": {
                        "headline": "Hujan lebat disertai kilat",
                        "description": "Waspada potensi hujan lebat.",
                        "instruction": "Hindari bepergian.",
                        "effective": "2024-06-15T05:00:00+00:00",
                        "expires": "2024-06-15T08:00:00+00:00",
                    },
                }
            }
        },
        "/api/v1/public/weather/impact-based-forecast": {
            "data": {"date": "2024-06-16", "category": "Siaga", "description": "Hujan lebat"}
        },
        "/storage/public/pm25.json": [
            {"station": "Kemayoran", "lat": -6.16, "lon": 106.85, "pm25": 42.0,
             "time": "2024-06-15T00:00:00Z"},
            {"station": "Bandung", "lat": -6.91, "lon": 107.61, "pm25": 18.0,
             "time": "2024-06-15T00:00:00Z"},
        ],
    }
