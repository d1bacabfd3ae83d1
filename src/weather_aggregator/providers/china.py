"""China weather source, backed by the weather API of the Xiaomi weather app.

## Endpoint
- Base URL: https://weatherapi.market.xiaomi.com/wtr-v3/
- Every call carries the app's static `appKey` / `sign` pair and a
  `locationKey` of the form `weathercn:<city_id>`

## Calls per cycle
| Call | Path | Feature |
|------|------|---------|
| forecast | weather/all | FORECAST, CURRENT, ALERT, AIR_QUALITY |
| minutely | weather/xm/forecast/minutely | MINUTELY |

## Location search
City names are only known in Chinese. Queries (and, for reverse geocoding,
the city name of the location) written in any other script are rejected
before any request is made.

## Variable Translation (Xiaomi -> Canonical)
| Field | Canonical Field | Unit | Notes |
|-------|-----------------|------|-------|
| temperature | temperature_c | °C | string values |
| feelsLike | feels_like_c | °C | |
| humidity | relative_humidity_percent | % | |
| pressure | pressure_hpa | hPa | |
| wind.speed | wind.speed_ms | km/h | Divide by 3.6 |
| visibility | visibility_m | km | Multiply by 1000 |
| weather | condition | code | see CODE_TO_CONDITION |
| aqi.co | co | mg/m³ | |
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator
from pydantic.alias_generators import to_camel

from weather_aggregator.models.location import Location
from weather_aggregator.models.source import SourceFeature
from weather_aggregator.models.weather import (
    AirQuality,
    Alert,
    AlertSeverity,
    Astro,
    Current,
    DailyForecast,
    HourlyForecast,
    Minutely,
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
from weather_aggregator.providers.capabilities import SourceCapabilities, country_predicate
from weather_aggregator.providers.engine import CycleResults, FeatureCall

logger = logging.getLogger(__name__)

APP_KEY = "weather20151024"
SIGN = "zUFJoAR2ZVrDy1vF3D07"
FORECAST_DAYS = 15

HAN_PATTERN = re.compile(r"^[\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff\s\u00b7]+$")

# Administrative suffixes stripped before comparing place names
ADMIN_SUFFIXES = (
    "维吾尔自治区",
    "壮族自治区",
    "回族自治区",
    "自治区",
    "自治州",
    "地区",
    "省",
    "市",
    "县",
    "区",
)
# Names where the suffix is part of the name itself
KEEP_SUFFIX = ("新区", "矿区", "郊区", "东区", "西区", "沙市", "津市", "芒市")


def is_han(text: str | None) -> bool:
    """Check if a text is written in Chinese characters only."""
    return bool(text) and HAN_PATTERN.match(text) is not None


def format_place_name(name: str | None) -> str:
    """Strip the administrative suffix of a Chinese place name.

    Two-character names keep their suffix ("和县" stays "和县").
    """
    if not name:
        return ""
    if name.endswith(KEEP_SUFFIX):
        return name
    for suffix in ADMIN_SUFFIXES:
        if name.endswith(suffix) and len(name) - len(suffix) >= 2:
            return name[: -len(suffix)]
    return name


# =============================================================================
# Payloads
# =============================================================================


class ChinaModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChinaValue(ChinaModel):
    value: str | None = None


class ChinaRange(ChinaModel):
    # "from" is a keyword
    start: str | None = Field(default=None, alias="from")
    end: str | None = Field(default=None, alias="to")


class ChinaWind(ChinaModel):
    direction: ChinaValue = Field(default_factory=ChinaValue)
    speed: ChinaValue = Field(default_factory=ChinaValue)


class ChinaCurrent(ChinaModel):
    pub_time: datetime | None = None
    weather: str | None = None
    temperature: ChinaValue = Field(default_factory=ChinaValue)
    feels_like: ChinaValue = Field(default_factory=ChinaValue)
    humidity: ChinaValue = Field(default_factory=ChinaValue)
    pressure: ChinaValue = Field(default_factory=ChinaValue)
    visibility: ChinaValue = Field(default_factory=ChinaValue)
    uv_index: str | None = None
    wind: ChinaWind = Field(default_factory=ChinaWind)


class ChinaRangeSeries(ChinaModel):
    value: list[ChinaRange] = Field(default_factory=list)


class ChinaStringSeries(ChinaModel):
    value: list[str | None] = Field(default_factory=list)


class ChinaDailyWind(ChinaModel):
    direction: ChinaRangeSeries = Field(default_factory=ChinaRangeSeries)
    speed: ChinaRangeSeries = Field(default_factory=ChinaRangeSeries)


class ChinaForecastDaily(ChinaModel):
    pub_time: datetime | None = None
    temperature: ChinaRangeSeries = Field(default_factory=ChinaRangeSeries)
    weather: ChinaRangeSeries = Field(default_factory=ChinaRangeSeries)
    precipitation_probability: ChinaStringSeries = Field(default_factory=ChinaStringSeries)
    sun_rise_set: ChinaRangeSeries = Field(default_factory=ChinaRangeSeries)
    wind: ChinaDailyWind = Field(default_factory=ChinaDailyWind)


class ChinaHourlyWind(ChinaModel):
    datetime: str | None = None
    direction: str | None = None
    speed: str | None = None


class ChinaHourlyWindSeries(ChinaModel):
    value: list[ChinaHourlyWind] = Field(default_factory=list)


class ChinaForecastHourly(ChinaModel):
    temperature: ChinaStringSeries = Field(default_factory=ChinaStringSeries)
    weather: ChinaStringSeries = Field(default_factory=ChinaStringSeries)
    wind: ChinaHourlyWindSeries = Field(default_factory=ChinaHourlyWindSeries)


class ChinaAqi(ChinaModel):
    pub_time: datetime | None = None
    pm25: str | None = None
    pm10: str | None = None
    so2: str | None = None
    no2: str | None = None
    o3: str | None = None
    co: str | None = None


class ChinaAlert(ChinaModel):
    alert_id: str | None = None
    title: str | None = None
    detail: str | None = None
    level: str | None = None
    pub_time: datetime | None = None
    type: str | None = None


class ChinaForecastResult(ChinaModel):
    current: ChinaCurrent | None = None
    forecast_daily: ChinaForecastDaily | None = None
    forecast_hourly: ChinaForecastHourly | None = None
    aqi: ChinaAqi | None = None
    alerts: list[ChinaAlert] = Field(default_factory=list)


class ChinaPrecipitation(ChinaModel):
    pub_time: datetime | None = None
    description: str | None = None
    value: list[float | None] = Field(default_factory=list)


class ChinaMinutelyData(ChinaModel):
    precipitation: ChinaPrecipitation | None = None


class ChinaMinutelyResult(ChinaModel):
    minutely: ChinaMinutelyData | None = None


class ChinaCity(ChinaModel):
    key: str
    name: str
    affiliation: str | None = None
    latitude: float
    longitude: float


class ChinaCityList(RootModel[list[ChinaCity]]):
    @field_validator("root", mode="before")
    @classmethod
    def empty_when_null(cls, v: object) -> object:
        return [] if v is None else v


# =============================================================================
# Lookup tables
# =============================================================================

CODE_TO_CONDITION: dict[int, WeatherCondition] = {
    0: WeatherCondition.CLEAR,
    1: WeatherCondition.PARTLY_CLOUDY,
    2: WeatherCondition.CLOUDY,
    3: WeatherCondition.RAIN,
    4: WeatherCondition.THUNDERSTORM,
    5: WeatherCondition.HAIL,
    6: WeatherCondition.SLEET,
    7: WeatherCondition.LIGHT_RAIN,
    8: WeatherCondition.RAIN,
    9: WeatherCondition.HEAVY_RAIN,
    10: WeatherCondition.HEAVY_RAIN,
    11: WeatherCondition.HEAVY_RAIN,
    12: WeatherCondition.HEAVY_RAIN,
    13: WeatherCondition.SNOW,
    14: WeatherCondition.LIGHT_SNOW,
    15: WeatherCondition.SNOW,
    16: WeatherCondition.HEAVY_SNOW,
    17: WeatherCondition.HEAVY_SNOW,
    18: WeatherCondition.FOG,
    19: WeatherCondition.SLEET,
    20: WeatherCondition.WINDY,
    29: WeatherCondition.HAZE,
    30: WeatherCondition.HAZE,
    31: WeatherCondition.HAZE,
    32: WeatherCondition.FOG,
    35: WeatherCondition.HAZE,
    53: WeatherCondition.HAZE,
}

LEVEL_SEVERITY: dict[str, tuple[AlertSeverity, str]] = {
    "蓝色": (AlertSeverity.MINOR, "#4A90E2"),
    "黄色": (AlertSeverity.MODERATE, "#FFFF00"),
    "橙色": (AlertSeverity.SEVERE, "#FF8C00"),
    "红色": (AlertSeverity.EXTREME, "#FF0000"),
}


def _float(value: str | None) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _condition(code: str | None) -> WeatherCondition:
    number = _float(code)
    if number is None:
        return WeatherCondition.UNKNOWN
    return CODE_TO_CONDITION.get(int(number), WeatherCondition.UNKNOWN)


def _wind(speed_kph: float | None, direction: float | None) -> Wind | None:
    if speed_kph is None:
        return None
    return Wind(
        speed_ms=speed_kph / 3.6,
        direction_deg=direction % 360 if direction is not None else None,
    )


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class ChinaProvider(WeatherProvider):
    """Weather for mainland China."""

    id = "china"
    name = "China"
    base_url = "https://weatherapi.market.xiaomi.com/wtr-v3"

    capabilities = SourceCapabilities(
        main=frozenset({
            SourceFeature.FORECAST,
            SourceFeature.CURRENT,
            SourceFeature.MINUTELY,
            SourceFeature.ALERT,
            SourceFeature.AIR_QUALITY,
        }),
        secondary=frozenset({SourceFeature.MINUTELY}),
        predicate=country_predicate("CN"),
    )

    def _params(self, location: Location, context: RequestContext) -> dict[str, object]:
        return {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "isLocated": str(location.is_current_position).lower(),
            "locationKey": f"weathercn:{location.city_id or ''}",
            "appKey": APP_KEY,
            "sign": SIGN,
            "isGlobal": "false",
            "locale": context.language,
        }

    def build_calls(self, location: Location, context: RequestContext) -> list[FeatureCall]:
        params = self._params(location, context)
        return [
            FeatureCall(
                key="forecast",
                features=(
                    SourceFeature.FORECAST,
                    SourceFeature.CURRENT,
                    SourceFeature.ALERT,
                    SourceFeature.AIR_QUALITY,
                ),
                fetch=lambda: self._fetch_model(
                    ChinaForecastResult,
                    f"{self.base_url}/weather/all",
                    params={**params, "days": FORECAST_DAYS},
                ),
                sentinel=ChinaForecastResult,
            ),
            FeatureCall(
                key="minutely",
                features=(SourceFeature.MINUTELY,),
                fetch=lambda: self._fetch_model(
                    ChinaMinutelyResult,
                    f"{self.base_url}/weather/xm/forecast/minutely",
                    params=params,
                ),
                sentinel=ChinaMinutelyResult,
            ),
        ]

    def convert(self, location: Location, results: CycleResults) -> WeatherResult:
        forecast: ChinaForecastResult = results["forecast"]
        return WeatherResult(
            source=self.id,
            current=self.when_available(
                results, SourceFeature.CURRENT, lambda: self._convert_current(forecast.current)
            ),
            daily=self.when_available(
                results, SourceFeature.FORECAST, lambda: self._convert_daily(forecast.forecast_daily)
            ),
            hourly=self.when_available(
                results,
                SourceFeature.FORECAST,
                lambda: self._convert_hourly(forecast.forecast_hourly),
            ),
            minutely=self.when_available(
                results, SourceFeature.MINUTELY, lambda: self._convert_minutely(results["minutely"])
            ),
            alerts=self.when_available(
                results, SourceFeature.ALERT, lambda: self._convert_alerts(forecast.alerts)
            ),
            air_quality=self.when_available(
                results, SourceFeature.AIR_QUALITY, lambda: self._convert_air_quality(forecast.aqi)
            ),
            failed_features=results.failed_features,
        )

    def _convert_current(self, current: ChinaCurrent | None) -> Current | None:
        if current is None:
            return None
        visibility_km = _float(current.visibility.value)
        return Current(
            time=current.pub_time,
            condition=_condition(current.weather),
            temperature_c=_float(current.temperature.value),
            feels_like_c=_float(current.feels_like.value),
            relative_humidity_percent=_float(current.humidity.value),
            pressure_hpa=_float(current.pressure.value),
            wind=_wind(_float(current.wind.speed.value), _float(current.wind.direction.value)),
            uv_index=_float(current.uv_index),
            visibility_m=visibility_km * 1000 if visibility_km is not None else None,
        )

    def _convert_daily(self, daily: ChinaForecastDaily | None) -> list[DailyForecast]:
        if daily is None or daily.pub_time is None:
            return []
        start = daily.pub_time.date()
        forecasts: list[DailyForecast] = []
        for i, temperature in enumerate(daily.temperature.value):
            weather = daily.weather.value[i] if i < len(daily.weather.value) else ChinaRange()
            sun = daily.sun_rise_set.value[i] if i < len(daily.sun_rise_set.value) else ChinaRange()
            probability = (
                _float(daily.precipitation_probability.value[i])
                if i < len(daily.precipitation_probability.value) else None
            )
            speed = daily.wind.speed.value[i] if i < len(daily.wind.speed.value) else ChinaRange()
            direction = (
                daily.wind.direction.value[i]
                if i < len(daily.wind.direction.value) else ChinaRange()
            )
            forecasts.append(
                DailyForecast(
                    date=start + timedelta(days=i),
                    condition=_condition(weather.start),
                    temperature_max_c=_float(temperature.start),
                    temperature_min_c=_float(temperature.end),
                    precipitation=Precipitation(probability_percent=probability)
                    if probability is not None else None,
                    wind=_wind(_float(speed.start), _float(direction.start)),
                    astro=Astro(sunrise=_parse_time(sun.start), sunset=_parse_time(sun.end))
                    if sun.start or sun.end else None,
                )
            )
        return forecasts

    def _convert_hourly(self, hourly: ChinaForecastHourly | None) -> list[HourlyForecast]:
        if hourly is None:
            return []
        forecasts: list[HourlyForecast] = []
        for i, wind in enumerate(hourly.wind.value):
            time = _parse_time(wind.datetime)
            if time is None:
                continue
            forecasts.append(
                HourlyForecast(
                    time=time,
                    condition=_condition(
                        hourly.weather.value[i] if i < len(hourly.weather.value) else None
                    ),
                    temperature_c=_float(
                        hourly.temperature.value[i] if i < len(hourly.temperature.value) else None
                    ),
                    wind=_wind(_float(wind.speed), _float(wind.direction)),
                )
            )
        return forecasts

    def _convert_minutely(self, result: ChinaMinutelyResult) -> list[Minutely]:
        precipitation = result.minutely.precipitation if result.minutely else None
        if precipitation is None or precipitation.pub_time is None:
            return []
        start = precipitation.pub_time.replace(second=0, microsecond=0)
        return [
            Minutely(
                time=start + timedelta(minutes=i),
                minute_interval=1,
                precipitation_intensity_mm_h=value,
                description=precipitation.description if i == 0 else None,
            )
            for i, value in enumerate(precipitation.value)
        ]

    def _convert_alerts(self, alerts: list[ChinaAlert]) -> list[Alert]:
        converted: list[Alert] = []
        for alert in alerts:
            severity, color = LEVEL_SEVERITY.get(alert.level or "", (AlertSeverity.UNKNOWN, None))
            converted.append(
                Alert(
                    alert_id=alert.alert_id or f"{alert.type}-{alert.pub_time}",
                    start=alert.pub_time,
                    headline=alert.title,
                    description=alert.detail,
                    source=self.name,
                    severity=severity,
                    color=color,
                )
            )
        return sorted(converted, key=lambda a: a.severity, reverse=True)

    def _convert_air_quality(self, aqi: ChinaAqi | None) -> list[AirQuality]:
        if aqi is None:
            return []
        return [
            AirQuality(
                time=aqi.pub_time,
                pm25=_float(aqi.pm25),
                pm10=_float(aqi.pm10),
                so2=_float(aqi.so2),
                no2=_float(aqi.no2),
                o3=_float(aqi.o3),
                co=_float(aqi.co),
            )
        ]

    # -------------------------------------------------------------------------
    # Location search
    # -------------------------------------------------------------------------

    def _to_location(self, city: ChinaCity) -> Location:
        parts = [p.strip() for p in (city.affiliation or "").split(",") if p.strip()]
        return Location(
            latitude=city.latitude,
            longitude=city.longitude,
            country_code="CN",
            country=parts[-1] if parts else None,
            admin1=parts[-2] if len(parts) >= 2 else None,
            city=city.name,
            city_id=city.key.removeprefix("weathercn:"),
            timezone="Asia/Shanghai",
        )

    async def _fetch_cities(self, path: str, params: dict[str, object]) -> list[ChinaCity]:
        cities = await self._fetch_model(
            ChinaCityList,
            f"{self.base_url}/location/city/{path}",
            params={**params, "locale": "zh_cn"},
        )
        return cities.root

    async def request_location_search(self, query: str) -> list[Location]:
        """Search Chinese cities by name.

        Raises:
            LocationSearchError: If the query is not written in Chinese, or
                nothing matches
        """
        if not is_han(query.strip()):
            raise LocationSearchError(
                f"{self.name} only supports searching in Chinese", provider=self.id
            )
        cities = await self._fetch_cities("search", {"name": query.strip()})
        if not cities:
            raise LocationSearchError(f"No location found for '{query}'", provider=self.id)
        return [self._to_location(city) for city in cities]

    async def request_reverse_geocoding(self, location: Location) -> list[Location]:
        """Find the Chinese city matching a location.

        Raises:
            LocationSearchError: If the location's city name is not written
                in Chinese, or nothing matches
        """
        name = location.city or location.district or location.admin2 or location.admin1
        if name and not is_han(name):
            raise LocationSearchError(
                f"{self.name} cannot match non-Chinese place names", provider=self.id
            )
        cities = await self._fetch_cities(
            "geo",
            {"latitude": location.latitude, "longitude": location.longitude},
        )
        if not cities:
            raise LocationSearchError(
                f"No Chinese city near {location}", provider=self.id
            )
        wanted = format_place_name(location.city)
        for city in cities:
            if wanted and format_place_name(city.name) == wanted:
                return [self._to_location(city)]
        logger.debug(f"[{self.id}] no exact name match for '{wanted}', using nearest city")
        return [self._to_location(cities[0])]
