"""Tests for the Open-Meteo source."""

import pytest

from weather_aggregator.models.source import SourceFeature
from weather_aggregator.models.weather import WeatherCondition
from weather_aggregator.providers.base import LocationSearchError, UnsupportedFeatureError
from weather_aggregator.providers.openmeteo import OpenMeteoProvider

FORECAST = {
    "latitude": 40.71,
    "longitude": -74.0,
    "utc_offset_seconds": -14400,
    "timezone": "America/New_York",
    "current": {
        "time": "2024-06-15T12:00",
        "temperature_2m": 24.3,
        "relative_humidity_2m": 55,
        "apparent_temperature": 25.0,
        "is_day": 1,
        "weather_code": 2,
        "cloud_cover": 40,
        "pressure_msl": 1016.4,
        "wind_speed_10m": 3.2,
        "wind_direction_10m": 200,
        "wind_gusts_10m": 6.1,
    },
    "hourly": {
        "time": ["2024-06-15T12:00", "2024-06-15T13:00"],
        "temperature_2m": [24.3, 25.1],
        "precipitation": [0.0, 1.4],
        "precipitation_probability": [5, 60],
        "weather_code": [2, 63],
        "wind_speed_10m": [3.2, 4.0],
        "wind_direction_10m": [200, 360],
        "is_day": [1, 1],
    },
    "daily": {
        "time": ["2024-06-15", "2024-06-16"],
        "weather_code": [63, 0],
        "temperature_2m_max": [27.0, 29.5],
        "temperature_2m_min": [18.2, 19.0],
        "sunrise": ["2024-06-15T05:24", "2024-06-16T05:24"],
        "sunset": ["2024-06-15T20:29", "2024-06-16T20:30"],
        "precipitation_sum": [3.1, 0.0],
    },
}

AIR_QUALITY = {
    "utc_offset_seconds": -14400,
    "hourly": {
        "time": ["2024-06-15T12:00"],
        "pm10": [14.0],
        "pm2_5": [8.5],
        "carbon_monoxide": [210.0],
        "nitrogen_dioxide": [12.0],
        "sulphur_dioxide": [1.0],
        "ozone": [80.0],
    },
}


@pytest.fixture
def openmeteo(make_provider, router):
    router.add("/v1/forecast", FORECAST)
    router.add("/v1/air-quality", AIR_QUALITY)
    return make_provider(OpenMeteoProvider)


class TestOpenMeteoRequestWeather:
    """Tests for request cycles."""

    async def test_one_call_serves_forecast_and_current(self, openmeteo, router, new_york):
        result = await openmeteo.request_weather(new_york)

        assert sorted(router.paths) == ["/v1/air-quality", "/v1/forecast"]
        assert result.current is not None
        assert result.daily
        assert result.air_quality
        assert result.failed_features == ()

    async def test_forecast_failure_fails_both_owners(self, make_provider, router, new_york):
        router.fail("/v1/forecast")
        router.add("/v1/air-quality", AIR_QUALITY)
        openmeteo = make_provider(OpenMeteoProvider)

        result = await openmeteo.request_weather(new_york)

        assert set(result.failed_features) == {SourceFeature.FORECAST, SourceFeature.CURRENT}
        assert result.current is None
        assert result.daily is None
        assert result.air_quality

    async def test_ignoring_current_keeps_forecast_call(self, openmeteo, router, new_york):
        result = await openmeteo.request_weather(
            new_york, ignored_features=[SourceFeature.CURRENT, SourceFeature.AIR_QUALITY]
        )
        assert router.paths == ["/v1/forecast"]
        assert result.current is None
        assert result.hourly

    async def test_secondary_air_quality_only(self, openmeteo, router, new_york):
        result = await openmeteo.request_secondary_weather(
            new_york, [SourceFeature.AIR_QUALITY]
        )
        assert router.paths == ["/v1/air-quality"]
        assert result.air_quality[0].pm25 == 8.5
        assert result.daily is None

    async def test_secondary_current_unsupported(self, openmeteo, new_york):
        with pytest.raises(UnsupportedFeatureError):
            await openmeteo.request_secondary_weather(new_york, [SourceFeature.CURRENT])

    async def test_wind_speed_requested_in_ms(self, openmeteo, router, new_york):
        await openmeteo.request_weather(new_york)
        (request,) = router.requests_to("/v1/forecast")
        assert request.url.params["wind_speed_unit"] == "ms"
        assert request.url.params["timezone"] == "auto"


class TestOpenMeteoConversion:
    """Tests for payload translation."""

    async def test_current(self, openmeteo, new_york):
        result = await openmeteo.request_weather(new_york)
        current = result.current
        assert current.temperature_c == 24.3
        assert current.condition == WeatherCondition.PARTLY_CLOUDY
        assert current.wind.gust_ms == 6.1
        assert current.time.utcoffset().total_seconds() == -14400

    async def test_hourly(self, openmeteo, new_york):
        result = await openmeteo.request_weather(new_york)
        first, second = result.hourly
        assert second.condition == WeatherCondition.RAIN
        assert second.precipitation.amount_mm == 1.4
        assert second.precipitation.probability_percent == 60
        # 360 degrees wraps to north
        assert second.wind.direction_deg == 0
        assert first.is_daylight is True

    async def test_daily(self, openmeteo, new_york):
        result = await openmeteo.request_weather(new_york)
        first, second = result.daily
        assert first.condition == WeatherCondition.RAIN
        assert first.temperature_max_c == 27.0
        assert first.astro.sunrise.hour == 5
        assert second.condition == WeatherCondition.CLEAR

    async def test_air_quality_co_in_mg(self, openmeteo, new_york):
        result = await openmeteo.request_weather(new_york)
        (air,) = result.air_quality
        assert air.co == pytest.approx(0.21)
        assert air.o3 == 80.0


class TestOpenMeteoLocations:
    """Tests for location search and reverse geocoding."""

    async def test_search(self, make_provider, router):
        router.add("/v1/search", {
            "results": [
                {
                    "id": 2988507,
                    "name": "Paris",
                    "latitude": 48.85341,
                    "longitude": 2.3488,
                    "country_code": "FR",
                    "country": "France",
                    "admin1": "Île-de-France",
                    "admin2": "Paris",
                    "timezone": "Europe/Paris",
                }
            ]
        })
        openmeteo = make_provider(OpenMeteoProvider, language="fr")

        (paris,) = await openmeteo.request_location_search("Paris")

        assert paris.city == "Paris"
        assert paris.country_code == "FR"
        assert paris.city_id == "2988507"
        (request,) = router.requests
        assert request.url.params["name"] == "Paris"
        assert request.url.params["language"] == "fr"

    async def test_search_without_results(self, make_provider, router):
        router.add("/v1/search", {"generationtime_ms": 0.5})
        openmeteo = make_provider(OpenMeteoProvider)
        with pytest.raises(LocationSearchError):
            await openmeteo.request_location_search("Nowhereville")

    async def test_reverse_geocoding_echoes_location(self, openmeteo, router, new_york):
        (resolved,) = await openmeteo.request_reverse_geocoding(new_york)
        assert resolved.city == "New York"
        assert resolved.city_id == "40.7128,-74.006"
        assert router.requests == []
