"""Tests for the BMKG source."""

import pytest

from weather_aggregator.models.location import Location
from weather_aggregator.models.source import SourceFeature
from weather_aggregator.models.weather import AlertSeverity, WeatherCondition
from weather_aggregator.providers.base import ConfigurationError
from weather_aggregator.providers.bmkg import BmkgProvider

IBF_PATH = "/api/v1/public/weather/impact-based-forecast"
WARNING_PATH = "/api/v1/public/weather/warning"


@pytest.fixture
def serve_bmkg(router, bmkg_payloads):
    for path, payload in bmkg_payloads.items():
        router.add(path, payload)
    return router


@pytest.fixture
def bmkg(make_provider, serve_bmkg):
    return make_provider(BmkgProvider, bmkg_key="bmkg-key")


class TestBmkgCredentials:
    """Tests for the alert-only API key."""

    async def test_alert_without_key_is_configuration_error(self, make_provider, router, jakarta):
        bmkg = make_provider(BmkgProvider)
        with pytest.raises(ConfigurationError):
            await bmkg.request_weather(jakarta)
        assert router.requests == []

    async def test_ignoring_alert_needs_no_key(self, make_provider, serve_bmkg, jakarta):
        bmkg = make_provider(BmkgProvider)
        result = await bmkg.request_weather(jakarta, ignored_features=[SourceFeature.ALERT])

        assert result.current is not None
        assert result.alerts is None
        assert WARNING_PATH not in serve_bmkg.paths

    async def test_user_key_configures_source(self, make_provider, serve_bmkg, jakarta):
        bmkg = make_provider(BmkgProvider)
        assert not bmkg.is_feature_supported(jakarta, SourceFeature.ALERT)

        bmkg.credentials.user_key = "user-key"
        assert bmkg.is_feature_supported(jakarta, SourceFeature.ALERT)
        await bmkg.request_secondary_weather(jakarta, [SourceFeature.ALERT])
        (request,) = serve_bmkg.requests_to(WARNING_PATH)
        assert request.headers["X-API-KEY"] == "user-key"


class TestBmkgRequestWeather:
    """Tests for main request cycles."""

    async def test_full_cycle(self, bmkg, serve_bmkg, jakarta):
        result = await bmkg.request_weather(jakarta)

        assert result.failed_features == ()
        assert len(serve_bmkg.requests_to(IBF_PATH)) == 3
        days = sorted(r.url.params["day"] for r in serve_bmkg.requests_to(IBF_PATH))
        assert days == ["1", "2", "3"]

    async def test_one_impact_forecast_failing_fails_alert_once(
        self, make_provider, router, bmkg_payloads, jakarta
    ):
        for path, payload in bmkg_payloads.items():
            if path != IBF_PATH:
                router.add(path, payload)
        router.fail(IBF_PATH)
        bmkg = make_provider(BmkgProvider, bmkg_key="bmkg-key")

        result = await bmkg.request_weather(jakarta)

        assert result.failed_features == (SourceFeature.ALERT,)
        assert result.alerts is None
        assert result.current is not None

    async def test_outside_indonesia_nothing_is_fetched(self, bmkg, serve_bmkg, paris):
        result = await bmkg.request_weather(paris)
        assert serve_bmkg.requests == []
        assert result.current is None
        assert result.failed_features == ()


class TestBmkgConversion:
    """Tests for payload translation."""

    async def test_current(self, bmkg, jakarta):
        result = await bmkg.request_weather(jakarta)
        current = result.current
        assert current.temperature_c == 27
        assert current.condition == WeatherCondition.CLOUDY
        assert current.wind.speed_ms == pytest.approx(2.0)
        assert current.visibility_m == 9000
        assert current.time.tzinfo is not None

    async def test_daily_grouped_by_local_date(self, bmkg, jakarta):
        result = await bmkg.request_weather(jakarta)
        first, second = result.daily
        assert first.temperature_max_c == 31
        assert first.temperature_min_c == 27
        assert first.precipitation.amount_mm == pytest.approx(1.5)
        assert second.date.day == 16

    async def test_hourly(self, bmkg, jakarta):
        result = await bmkg.request_weather(jakarta)
        assert len(result.hourly) == 3
        assert result.hourly[2].condition == WeatherCondition.RAIN

    async def test_alerts(self, bmkg, jakarta):
        result = await bmkg.request_weather(jakarta)
        warning = result.alerts[0]
        assert warning.alert_id == "CJB20240615001"
        assert warning.instruction == "Hindari bepergian."
        impact = result.alerts[1:]
        assert len(impact) == 3
        assert all(a.severity == AlertSeverity.SEVERE for a in impact)

    async def test_nearest_pm25_station(self, bmkg, jakarta):
        result = await bmkg.request_weather(jakarta)
        (air,) = result.air_quality
        assert air.pm25 == 42.0


class TestBmkgReverseGeocoding:
    """Tests for reverse geocoding."""

    async def test_fills_administrative_hierarchy(self, make_provider, router):
        router.add("/api/df/v1/adm/coord", {
            "adm1": "31",
            "adm2": "31.71",
            "adm4": "31.71.01.1001",
            "provinsi": "DKI Jakarta",
            "kotkab": "Kota Adm. Jakarta Pusat",
            "kecamatan": "Gambir",
            "desa": "Gambir",
            "timezone": "Asia/Jakarta",
        })
        bmkg = make_provider(BmkgProvider)
        (resolved,) = await bmkg.request_reverse_geocoding(
            Location(latitude=-6.17, longitude=106.82)
        )
        assert resolved.country_code == "ID"
        assert resolved.admin1 == "DKI Jakarta"
        assert resolved.admin2_code == "31.71"
        assert resolved.city_id == "31.71.01.1001"
        assert resolved.timezone == "Asia/Jakarta"
