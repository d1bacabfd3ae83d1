"""Tests for weather models."""

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from weather_aggregator.models.source import FeatureRequest, SourceFeature, SourceRole
from weather_aggregator.models.weather import (
    AirQuality,
    AlertSeverity,
    DailyForecast,
    Minutely,
    Normals,
    Precipitation,
    WeatherResult,
    Wind,
)


class TestWind:
    """Tests for Wind model."""

    def test_basic_wind(self):
        wind = Wind(speed_ms=5.0)
        assert wind.speed_ms == 5.0
        assert wind.gust_ms is None

    def test_speed_kph(self):
        # 10 m/s should be 36 km/h
        assert Wind(speed_ms=10.0).speed_kph == pytest.approx(36.0)
        assert Wind().speed_kph is None

    def test_direction_cardinal(self):
        """Test wind direction cardinal conversion."""
        assert Wind(direction_deg=0).direction_cardinal() == "N"
        assert Wind(direction_deg=45).direction_cardinal() == "NE"
        assert Wind(direction_deg=90).direction_cardinal() == "E"
        assert Wind(direction_deg=180).direction_cardinal() == "S"
        assert Wind(direction_deg=270).direction_cardinal() == "W"
        # Rounds back to north
        assert Wind(direction_deg=355).direction_cardinal() == "N"

    def test_direction_cardinal_none(self):
        assert Wind(speed_ms=5.0).direction_cardinal() is None

    def test_invalid_values(self):
        with pytest.raises(ValueError):
            Wind(speed_ms=-1)

        with pytest.raises(ValueError):
            Wind(direction_deg=360)


class TestBoundedFields:
    """Tests for percentage and range validation."""

    def test_precipitation_probability(self):
        assert Precipitation(probability_percent=100).probability_percent == 100
        with pytest.raises(ValueError):
            Precipitation(probability_percent=101)

    def test_normals_month(self):
        assert Normals(month=12).month == 12
        with pytest.raises(ValueError):
            Normals(month=0)

    def test_air_quality_non_negative(self):
        with pytest.raises(ValueError):
            AirQuality(pm25=-3)

    def test_minutely_interval(self):
        now = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
        assert Minutely(time=now).minute_interval == 5
        with pytest.raises(ValueError):
            Minutely(time=now, minute_interval=0)

    def test_daily_date_from_string(self):
        day = DailyForecast.model_validate({"date": "2024-06-15"})
        assert day.date == date(2024, 6, 15)


class TestAlertSeverity:
    """Tests for alert severity ordering."""

    def test_ordering(self):
        assert AlertSeverity.EXTREME > AlertSeverity.SEVERE > AlertSeverity.MODERATE
        assert AlertSeverity.MINOR > AlertSeverity.UNKNOWN

    def test_sorting(self):
        levels = [AlertSeverity.MINOR, AlertSeverity.EXTREME, AlertSeverity.UNKNOWN]
        assert sorted(levels, reverse=True)[0] == AlertSeverity.EXTREME


class TestWeatherResult:
    """Tests for the unified result."""

    def test_empty_result(self):
        result = WeatherResult(source="mf")
        assert result.current is None
        assert result.failed_features == ()
        assert not result.has_failed(SourceFeature.CURRENT)

    def test_has_failed(self):
        result = WeatherResult(source="mf", failed_features=(SourceFeature.NORMALS,))
        assert result.has_failed(SourceFeature.NORMALS)
        assert not result.has_failed(SourceFeature.ALERT)

    def test_frozen(self):
        result = WeatherResult(source="mf")
        with pytest.raises(ValidationError):
            result.alerts = []

    def test_features_serialize_by_value(self):
        result = WeatherResult(source="smg", failed_features=(SourceFeature.AIR_QUALITY,))
        assert result.model_dump(mode="json")["failed_features"] == ["air_quality"]


class TestFeatureRequest:
    """Tests for main and secondary feature requests."""

    def test_ignore(self):
        request = FeatureRequest.ignore([SourceFeature.NORMALS])
        assert request.role == SourceRole.MAIN
        assert request.wants(SourceFeature.FORECAST)
        assert not request.wants(SourceFeature.NORMALS)

    def test_include(self):
        request = FeatureRequest.include([SourceFeature.MINUTELY])
        assert request.role == SourceRole.SECONDARY
        assert request.wants(SourceFeature.MINUTELY)
        assert not request.wants(SourceFeature.FORECAST)
