"""Canonical weather models.

Every source converts its payloads into these models. Units are SI-based:

- Temperature: Celsius (°C)
- Wind speed: meters per second (m/s)
- Pressure: hectopascals (hPa)
- Precipitation: millimeters (mm) for amounts, mm/h for intensity
- Visibility: meters (m)
- Cloud cover, humidity, probabilities: percentage (0-100)
- Wind direction: degrees (0-359, where 0=N, 90=E, 180=S, 270=W)
- Pollutants: µg/m³ (CO in mg/m³)

A field set to `None` means "no data": either the feature was not requested
or its call failed. It never stands for a zero value.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from weather_aggregator.models.source import SourceFeature


class WeatherCondition(str, Enum):
    """General weather condition categories."""

    CLEAR = "clear"
    PARTLY_CLOUDY = "partly_cloudy"
    CLOUDY = "cloudy"
    FOG = "fog"
    HAZE = "haze"
    LIGHT_RAIN = "light_rain"
    RAIN = "rain"
    HEAVY_RAIN = "heavy_rain"
    DRIZZLE = "drizzle"
    THUNDERSTORM = "thunderstorm"
    SNOW = "snow"
    LIGHT_SNOW = "light_snow"
    HEAVY_SNOW = "heavy_snow"
    SLEET = "sleet"
    HAIL = "hail"
    WINDY = "windy"
    UNKNOWN = "unknown"


class AlertSeverity(int, Enum):
    """Alert severity, ordered so that larger means worse."""

    UNKNOWN = 0
    MINOR = 1
    MODERATE = 2
    SEVERE = 3
    EXTREME = 4


class Wind(BaseModel):
    """Wind information."""

    speed_ms: float | None = Field(
        default=None, ge=0, description="Wind speed in meters per second"
    )
    gust_ms: float | None = Field(
        default=None, ge=0, description="Wind gust speed in meters per second"
    )
    direction_deg: float | None = Field(
        default=None, ge=0, lt=360, description="Wind direction in degrees (0=N, 90=E)"
    )

    @property
    def speed_kph(self) -> float | None:
        """Wind speed in kilometers per hour."""
        return self.speed_ms * 3.6 if self.speed_ms is not None else None

    def direction_cardinal(self) -> str | None:
        """Get cardinal direction (N, NE, E, etc.)."""
        if self.direction_deg is None:
            return None
        directions = ["N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
                      "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW"]
        index = round(self.direction_deg / 22.5) % 16
        return directions[index]


class Precipitation(BaseModel):
    """Precipitation information."""

    probability_percent: float | None = Field(
        default=None, ge=0, le=100, description="Probability of precipitation (%)"
    )
    amount_mm: float | None = Field(
        default=None, ge=0, description="Expected precipitation amount in mm"
    )
    type: str | None = Field(
        default=None, description="Type of precipitation (rain, snow, sleet, etc.)"
    )


class Astro(BaseModel):
    """Sun and moon data for one day."""

    sunrise: datetime | None = None
    sunset: datetime | None = None
    moonrise: datetime | None = None
    moonset: datetime | None = None
    moon_phase: float | None = Field(
        default=None, ge=0, le=1, description="Moon phase (0=new, 0.5=full, 1=new)"
    )


class Current(BaseModel):
    """Observed (or nowcast) conditions."""

    time: datetime | None = None
    condition: WeatherCondition = WeatherCondition.UNKNOWN
    description: str | None = None
    temperature_c: float | None = None
    feels_like_c: float | None = None
    dew_point_c: float | None = None
    relative_humidity_percent: float | None = Field(default=None, ge=0, le=100)
    pressure_hpa: float | None = None
    wind: Wind | None = None
    uv_index: float | None = Field(default=None, ge=0)
    visibility_m: float | None = Field(default=None, ge=0)
    cloud_cover_percent: float | None = Field(default=None, ge=0, le=100)
    summary: str | None = Field(
        default=None, description="Free-text outlook, e.g. a bulletin headline"
    )


class HourlyForecast(BaseModel):
    """Weather forecast for a single hour."""

    time: datetime = Field(..., description="Forecast time (start of hour)")
    condition: WeatherCondition = WeatherCondition.UNKNOWN
    temperature_c: float | None = None
    feels_like_c: float | None = None
    dew_point_c: float | None = None
    relative_humidity_percent: float | None = Field(default=None, ge=0, le=100)
    cloud_cover_percent: float | None = Field(default=None, ge=0, le=100)
    precipitation: Precipitation | None = None
    wind: Wind | None = None
    pressure_hpa: float | None = None
    visibility_m: float | None = Field(default=None, ge=0)
    uv_index: float | None = Field(default=None, ge=0)
    is_daylight: bool | None = None


class DailyForecast(BaseModel):
    """Weather forecast for a single day."""

    date: date
    condition: WeatherCondition = WeatherCondition.UNKNOWN
    description: str | None = None
    temperature_max_c: float | None = None
    temperature_min_c: float | None = None
    precipitation: Precipitation | None = None
    wind: Wind | None = None
    uv_index: float | None = Field(default=None, ge=0)
    astro: Astro | None = None


class Minutely(BaseModel):
    """Precipitation nowcast for a short interval."""

    time: datetime
    minute_interval: int = Field(default=5, gt=0)
    precipitation_intensity_mm_h: float | None = Field(default=None, ge=0)
    description: str | None = None


class Alert(BaseModel):
    """Weather warning issued by an authority."""

    alert_id: str
    start: datetime | None = None
    end: datetime | None = None
    headline: str | None = None
    description: str | None = None
    instruction: str | None = None
    source: str | None = None
    severity: AlertSeverity = AlertSeverity.UNKNOWN
    color: str | None = Field(default=None, description="Hex color, e.g. '#FF0000'")


class AirQuality(BaseModel):
    """Pollutant concentrations at one point in time."""

    time: datetime | None = None
    pm25: float | None = Field(default=None, ge=0)
    pm10: float | None = Field(default=None, ge=0)
    so2: float | None = Field(default=None, ge=0)
    no2: float | None = Field(default=None, ge=0)
    o3: float | None = Field(default=None, ge=0)
    co: float | None = Field(default=None, ge=0, description="Carbon monoxide in mg/m³")


class Normals(BaseModel):
    """Climate normals for one month."""

    month: int = Field(..., ge=1, le=12)
    daytime_temperature_c: float | None = None
    nighttime_temperature_c: float | None = None


class WeatherResult(BaseModel):
    """Unified output of one request cycle against one source.

    Built once by the source's converter and never modified afterwards.
    """

    model_config = ConfigDict(frozen=True)

    source: str = Field(..., description="Id of the source that produced this result")
    current: Current | None = None
    daily: list[DailyForecast] | None = None
    hourly: list[HourlyForecast] | None = None
    minutely: list[Minutely] | None = None
    alerts: list[Alert] | None = None
    air_quality: list[AirQuality] | None = None
    normals: list[Normals] | None = None
    failed_features: tuple[SourceFeature, ...] = ()

    def has_failed(self, feature: SourceFeature) -> bool:
        """Check if a feature was requested but could not be resolved."""
        return feature in self.failed_features
