"""Open-Meteo weather source.

Open-Meteo is a free, open-source weather API with global coverage and no
API key.

## Endpoints
- Forecast: https://api.open-meteo.com/v1/forecast
- Air quality: https://air-quality-api.open-meteo.com/v1/air-quality
- Geocoding: https://geocoding-api.open-meteo.com/v1/search

## Calls per cycle
| Call | Feature | Notes |
|------|---------|-------|
| forecast | FORECAST, CURRENT | one request, `current`/`hourly`/`daily` blocks |
| air_quality | AIR_QUALITY | hourly pollutants |

Times are requested with `timezone=auto` and come back as local ISO strings;
`utc_offset_seconds` turns them into aware datetimes.

## Variable Translation (Open-Meteo -> Canonical)
| Open-Meteo Field | Canonical Field | Unit | Notes |
|------------------|-----------------|------|-------|
| temperature_2m | temperature_c | °C | |
| apparent_temperature | feels_like_c | °C | |
| dew_point_2m | dew_point_c | °C | |
| relative_humidity_2m | relative_humidity_percent | % | |
| pressure_msl | pressure_hpa | hPa | |
| wind_speed_10m | wind.speed_ms | m/s | `wind_speed_unit=ms` |
| wind_gusts_10m | wind.gust_ms | m/s | |
| wind_direction_10m | wind.direction_deg | degrees | |
| precipitation | precipitation.amount_mm | mm | |
| precipitation_probability | precipitation.probability_percent | % | |
| cloud_cover | cloud_cover_percent | % | |
| visibility | visibility_m | m | |
| weather_code | condition | WMO code | see WMO_TO_CONDITION |
| carbon_monoxide | co | µg/m³ | Divide by 1000 (mg/m³) |
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from pydantic import BaseModel, Field

from weather_aggregator.models.location import Location
from weather_aggregator.models.source import SourceFeature
from weather_aggregator.models.weather import (
    AirQuality,
    Astro,
    Current,
    DailyForecast,
    HourlyForecast,
    Precipitation,
    WeatherCondition,
    WeatherResult,
    Wind,
)
from weather_aggregator.providers.base import (
    LocationSearchError,
    RequestContext,
    WeatherProvider,
)
from weather_aggregator.providers.capabilities import SourceCapabilities
from weather_aggregator.providers.engine import CycleResults, FeatureCall

CURRENT_VARIABLES = (
    "temperature_2m",
    "relative_humidity_2m",
    "apparent_temperature",
    "dew_point_2m",
    "is_day",
    "weather_code",
    "cloud_cover",
    "pressure_msl",
    "wind_speed_10m",
    "wind_direction_10m",
    "wind_gusts_10m",
    "uv_index",
    "visibility",
)
HOURLY_VARIABLES = (
    "temperature_2m",
    "relative_humidity_2m",
    "apparent_temperature",
    "dew_point_2m",
    "precipitation_probability",
    "precipitation",
    "weather_code",
    "cloud_cover",
    "pressure_msl",
    "visibility",
    "wind_speed_10m",
    "wind_direction_10m",
    "wind_gusts_10m",
    "uv_index",
    "is_day",
)
DAILY_VARIABLES = (
    "weather_code",
    "temperature_2m_max",
    "temperature_2m_min",
    "sunrise",
    "sunset",
    "uv_index_max",
    "precipitation_sum",
    "precipitation_probability_max",
    "wind_speed_10m_max",
    "wind_gusts_10m_max",
    "wind_direction_10m_dominant",
)
AIR_QUALITY_VARIABLES = (
    "pm10",
    "pm2_5",
    "carbon_monoxide",
    "nitrogen_dioxide",
    "sulphur_dioxide",
    "ozone",
)


# =============================================================================
# Payloads
# =============================================================================


class OpenMeteoCurrent(BaseModel):
    time: str
    temperature_2m: float | None = None
    relative_humidity_2m: float | None = None
    apparent_temperature: float | None = None
    dew_point_2m: float | None = None
    is_day: int | None = None
    weather_code: int | None = None
    cloud_cover: float | None = None
    pressure_msl: float | None = None
    wind_speed_10m: float | None = None
    wind_direction_10m: float | None = None
    wind_gusts_10m: float | None = None
    uv_index: float | None = None
    visibility: float | None = None


class OpenMeteoHourly(BaseModel):
    time: list[str] = Field(default_factory=list)
    temperature_2m: list[float | None] = Field(default_factory=list)
    relative_humidity_2m: list[float | None] = Field(default_factory=list)
    apparent_temperature: list[float | None] = Field(default_factory=list)
    dew_point_2m: list[float | None] = Field(default_factory=list)
    precipitation_probability: list[float | None] = Field(default_factory=list)
    precipitation: list[float | None] = Field(default_factory=list)
    weather_code: list[int | None] = Field(default_factory=list)
    cloud_cover: list[float | None] = Field(default_factory=list)
    pressure_msl: list[float | None] = Field(default_factory=list)
    visibility: list[float | None] = Field(default_factory=list)
    wind_speed_10m: list[float | None] = Field(default_factory=list)
    wind_direction_10m: list[float | None] = Field(default_factory=list)
    wind_gusts_10m: list[float | None] = Field(default_factory=list)
    uv_index: list[float | None] = Field(default_factory=list)
    is_day: list[int | None] = Field(default_factory=list)


class OpenMeteoDaily(BaseModel):
    time: list[date] = Field(default_factory=list)
    weather_code: list[int | None] = Field(default_factory=list)
    temperature_2m_max: list[float | None] = Field(default_factory=list)
    temperature_2m_min: list[float | None] = Field(default_factory=list)
    sunrise: list[str | None] = Field(default_factory=list)
    sunset: list[str | None] = Field(default_factory=list)
    uv_index_max: list[float | None] = Field(default_factory=list)
    precipitation_sum: list[float | None] = Field(default_factory=list)
    precipitation_probability_max: list[float | None] = Field(default_factory=list)
    wind_speed_10m_max: list[float | None] = Field(default_factory=list)
    wind_gusts_10m_max: list[float | None] = Field(default_factory=list)
    wind_direction_10m_dominant: list[float | None] = Field(default_factory=list)


class OpenMeteoForecastResult(BaseModel):
    utc_offset_seconds: int = 0
    timezone: str | None = None
    current: OpenMeteoCurrent | None = None
    hourly: OpenMeteoHourly = Field(default_factory=OpenMeteoHourly)
    daily: OpenMeteoDaily = Field(default_factory=OpenMeteoDaily)


class OpenMeteoAirQualityHourly(BaseModel):
    time: list[str] = Field(default_factory=list)
    pm10: list[float | None] = Field(default_factory=list)
    pm2_5: list[float | None] = Field(default_factory=list)
    carbon_monoxide: list[float | None] = Field(default_factory=list)
    nitrogen_dioxide: list[float | None] = Field(default_factory=list)
    sulphur_dioxide: list[float | None] = Field(default_factory=list)
    ozone: list[float | None] = Field(default_factory=list)


class OpenMeteoAirQualityResult(BaseModel):
    utc_offset_seconds: int = 0
    hourly: OpenMeteoAirQualityHourly = Field(default_factory=OpenMeteoAirQualityHourly)


class OpenMeteoPlace(BaseModel):
    id: int | None = None
    name: str
    latitude: float
    longitude: float
    country_code: str | None = None
    country: str | None = None
    admin1: str | None = None
    admin2: str | None = None
    admin3: str | None = None
    timezone: str | None = None


class OpenMeteoSearchResult(BaseModel):
    results: list[OpenMeteoPlace] = Field(default_factory=list)


# =============================================================================
# Lookup tables
# =============================================================================

# WMO weather interpretation codes
WMO_TO_CONDITION: dict[int, WeatherCondition] = {
    0: WeatherCondition.CLEAR,
    1: WeatherCondition.PARTLY_CLOUDY,
    2: WeatherCondition.PARTLY_CLOUDY,
    3: WeatherCondition.CLOUDY,
    45: WeatherCondition.FOG,
    48: WeatherCondition.FOG,
    51: WeatherCondition.DRIZZLE,
    53: WeatherCondition.DRIZZLE,
    55: WeatherCondition.DRIZZLE,
    56: WeatherCondition.SLEET,
    57: WeatherCondition.SLEET,
    61: WeatherCondition.LIGHT_RAIN,
    63: WeatherCondition.RAIN,
    65: WeatherCondition.HEAVY_RAIN,
    66: WeatherCondition.SLEET,
    67: WeatherCondition.SLEET,
    71: WeatherCondition.LIGHT_SNOW,
    73: WeatherCondition.SNOW,
    75: WeatherCondition.HEAVY_SNOW,
    77: WeatherCondition.SNOW,
    80: WeatherCondition.LIGHT_RAIN,
    81: WeatherCondition.RAIN,
    82: WeatherCondition.HEAVY_RAIN,
    85: WeatherCondition.SNOW,
    86: WeatherCondition.HEAVY_SNOW,
    95: WeatherCondition.THUNDERSTORM,
    96: WeatherCondition.HAIL,
    99: WeatherCondition.HAIL,
}


def _condition(code: int | None) -> WeatherCondition:
    if code is None:
        return WeatherCondition.UNKNOWN
    return WMO_TO_CONDITION.get(code, WeatherCondition.UNKNOWN)


def _at(values: list, index: int):
    """Value at index, or None when the series is shorter."""
    return values[index] if index < len(values) else None


def _local_time(value: str | None, offset: timezone) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value).replace(tzinfo=offset)


def _wind(
    speed: float | None,
    direction: float | None,
    gust: float | None = None,
) -> Wind | None:
    if speed is None:
        return None
    return Wind(
        speed_ms=speed,
        gust_ms=gust,
        direction_deg=direction % 360 if direction is not None else None,
    )


class OpenMeteoProvider(WeatherProvider):
    """Open-Meteo global weather API."""

    id = "openmeteo"
    name = "Open-Meteo"
    base_url = "https://api.open-meteo.com/v1"
    air_quality_url = "https://air-quality-api.open-meteo.com/v1"
    geocoding_url = "https://geocoding-api.open-meteo.com/v1"

    capabilities = SourceCapabilities(
        main=frozenset({
            SourceFeature.FORECAST,
            SourceFeature.CURRENT,
            SourceFeature.AIR_QUALITY,
        }),
        secondary=frozenset({SourceFeature.AIR_QUALITY}),
    )

    def build_calls(self, location: Location, context: RequestContext) -> list[FeatureCall]:
        coords = {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "timezone": "auto",
        }
        return [
            FeatureCall(
                key="forecast",
                features=(SourceFeature.FORECAST, SourceFeature.CURRENT),
                fetch=lambda: self._fetch_model(
                    OpenMeteoForecastResult,
                    f"{self.base_url}/forecast",
                    params={
                        **coords,
                        "current": ",".join(CURRENT_VARIABLES),
                        "hourly": ",".join(HOURLY_VARIABLES),
                        "daily": ",".join(DAILY_VARIABLES),
                        "wind_speed_unit": "ms",
                        "forecast_days": 16,
                    },
                ),
                sentinel=OpenMeteoForecastResult,
            ),
            FeatureCall(
                key="air_quality",
                features=(SourceFeature.AIR_QUALITY,),
                fetch=lambda: self._fetch_model(
                    OpenMeteoAirQualityResult,
                    f"{self.air_quality_url}/air-quality",
                    params={**coords, "hourly": ",".join(AIR_QUALITY_VARIABLES)},
                ),
                sentinel=OpenMeteoAirQualityResult,
            ),
        ]

    def convert(self, location: Location, results: CycleResults) -> WeatherResult:
        forecast: OpenMeteoForecastResult = results["forecast"]
        offset = timezone(timedelta(seconds=forecast.utc_offset_seconds))
        return WeatherResult(
            source=self.id,
            current=self.when_available(
                results, SourceFeature.CURRENT, lambda: self._convert_current(forecast, offset)
            ),
            daily=self.when_available(
                results, SourceFeature.FORECAST, lambda: self._convert_daily(forecast, offset)
            ),
            hourly=self.when_available(
                results, SourceFeature.FORECAST, lambda: self._convert_hourly(forecast, offset)
            ),
            air_quality=self.when_available(
                results,
                SourceFeature.AIR_QUALITY,
                lambda: self._convert_air_quality(results["air_quality"]),
            ),
            failed_features=results.failed_features,
        )

    def _convert_current(
        self,
        result: OpenMeteoForecastResult,
        offset: timezone,
    ) -> Current | None:
        current = result.current
        if current is None:
            return None
        return Current(
            time=_local_time(current.time, offset),
            condition=_condition(current.weather_code),
            temperature_c=current.temperature_2m,
            feels_like_c=current.apparent_temperature,
            dew_point_c=current.dew_point_2m,
            relative_humidity_percent=current.relative_humidity_2m,
            pressure_hpa=current.pressure_msl,
            wind=_wind(current.wind_speed_10m, current.wind_direction_10m, current.wind_gusts_10m),
            uv_index=current.uv_index,
            visibility_m=current.visibility,
            cloud_cover_percent=current.cloud_cover,
        )

    def _convert_hourly(
        self,
        result: OpenMeteoForecastResult,
        offset: timezone,
    ) -> list[HourlyForecast]:
        h = result.hourly
        hourly: list[HourlyForecast] = []
        for i, time in enumerate(h.time):
            amount = _at(h.precipitation, i)
            probability = _at(h.precipitation_probability, i)
            is_day = _at(h.is_day, i)
            hourly.append(
                HourlyForecast(
                    time=_local_time(time, offset),
                    condition=_condition(_at(h.weather_code, i)),
                    temperature_c=_at(h.temperature_2m, i),
                    feels_like_c=_at(h.apparent_temperature, i),
                    dew_point_c=_at(h.dew_point_2m, i),
                    relative_humidity_percent=_at(h.relative_humidity_2m, i),
                    cloud_cover_percent=_at(h.cloud_cover, i),
                    precipitation=Precipitation(amount_mm=amount, probability_percent=probability)
                    if amount is not None or probability is not None else None,
                    wind=_wind(
                        _at(h.wind_speed_10m, i),
                        _at(h.wind_direction_10m, i),
                        _at(h.wind_gusts_10m, i),
                    ),
                    pressure_hpa=_at(h.pressure_msl, i),
                    visibility_m=_at(h.visibility, i),
                    uv_index=_at(h.uv_index, i),
                    is_daylight=bool(is_day) if is_day is not None else None,
                )
            )
        return hourly

    def _convert_daily(
        self,
        result: OpenMeteoForecastResult,
        offset: timezone,
    ) -> list[DailyForecast]:
        d = result.daily
        daily: list[DailyForecast] = []
        for i, day in enumerate(d.time):
            amount = _at(d.precipitation_sum, i)
            probability = _at(d.precipitation_probability_max, i)
            sunrise = _at(d.sunrise, i)
            sunset = _at(d.sunset, i)
            daily.append(
                DailyForecast(
                    date=day,
                    condition=_condition(_at(d.weather_code, i)),
                    temperature_max_c=_at(d.temperature_2m_max, i),
                    temperature_min_c=_at(d.temperature_2m_min, i),
                    precipitation=Precipitation(amount_mm=amount, probability_percent=probability)
                    if amount is not None or probability is not None else None,
                    wind=_wind(
                        _at(d.wind_speed_10m_max, i),
                        _at(d.wind_direction_10m_dominant, i),
                        _at(d.wind_gusts_10m_max, i),
                    ),
                    uv_index=_at(d.uv_index_max, i),
                    astro=Astro(
                        sunrise=_local_time(sunrise, offset),
                        sunset=_local_time(sunset, offset),
                    ) if sunrise or sunset else None,
                )
            )
        return daily

    def _convert_air_quality(self, result: OpenMeteoAirQualityResult) -> list[AirQuality]:
        offset = timezone(timedelta(seconds=result.utc_offset_seconds))
        h = result.hourly
        entries: list[AirQuality] = []
        for i, time in enumerate(h.time):
            co = _at(h.carbon_monoxide, i)
            entries.append(
                AirQuality(
                    time=_local_time(time, offset),
                    pm25=_at(h.pm2_5, i),
                    pm10=_at(h.pm10, i),
                    so2=_at(h.sulphur_dioxide, i),
                    no2=_at(h.nitrogen_dioxide, i),
                    o3=_at(h.ozone, i),
                    co=co / 1000 if co is not None else None,
                )
            )
        return entries

    async def request_location_search(self, query: str) -> list[Location]:
        """Search places by name with the Open-Meteo geocoding API.

        Raises:
            LocationSearchError: If nothing matches
        """
        result = await self._fetch_model(
            OpenMeteoSearchResult,
            f"{self.geocoding_url}/search",
            params={
                "name": query,
                "count": 20,
                "language": self._language_resolver(),
                "format": "json",
            },
        )
        if not result.results:
            raise LocationSearchError(f"No location found for '{query}'", provider=self.id)
        return [
            Location(
                latitude=place.latitude,
                longitude=place.longitude,
                country_code=place.country_code,
                country=place.country,
                admin1=place.admin1,
                admin2=place.admin2,
                city=place.name,
                district=place.admin3,
                city_id=str(place.id) if place.id is not None else None,
                timezone=place.timezone,
            )
            for place in result.results
        ]

    async def request_reverse_geocoding(self, location: Location) -> list[Location]:
        """Open-Meteo has no reverse geocoding: the coordinates become the id."""
        return [location.copy_with(city_id=f"{location.latitude},{location.longitude}")]
