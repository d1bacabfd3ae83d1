"""Domain models for the weather aggregator."""

from weather_aggregator.models.location import Location
from weather_aggregator.models.source import FeatureRequest, SourceFeature, SourceRole
from weather_aggregator.models.weather import (
    AirQuality,
    Alert,
    AlertSeverity,
    Astro,
    Current,
    DailyForecast,
    HourlyForecast,
    Minutely,
    Normals,
    Precipitation,
    WeatherCondition,
    WeatherResult,
    Wind,
)

__all__ = [
    # Location
    "Location",
    # Source
    "FeatureRequest",
    "SourceFeature",
    "SourceRole",
    # Weather
    "AirQuality",
    "Alert",
    "AlertSeverity",
    "Astro",
    "Current",
    "DailyForecast",
    "HourlyForecast",
    "Minutely",
    "Normals",
    "Precipitation",
    "WeatherCondition",
    "WeatherResult",
    "Wind",
]
