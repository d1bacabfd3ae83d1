"""SMG (Direcção dos Serviços Meteorológicos e Geofísicos) weather source.

Macao's weather bureau. Every feature is gated to `country_code == "MO"`.

## Endpoints
- Weather: https://new-api.smg.gov.mo/
- Air quality (CMS): https://cms.smg.gov.mo/

## Calls per cycle
| Call | Path | Feature |
|------|------|---------|
| daily | api/forecast/7days | FORECAST, NORMALS |
| hourly | api/forecast/hourly | FORECAST |
| astro | api/astro (POST `{"date": ...}`) | FORECAST (silent) |
| current | api/observation/current | CURRENT |
| bulletin | api/bulletin?lang= | CURRENT |
| uv | api/uv | CURRENT |
| warning_<type> | api/warning/<type>?lang= | ALERT (x6) |
| air_quality | api/airquality (CMS) | AIR_QUALITY |

Climate normals come with the 7-day forecast, so the daily call is owned by
both FORECAST and NORMALS. Any of the three CURRENT calls or the six warning
calls failing marks the whole feature failed.

Languages: Chinese -> `c`, Portuguese -> `p`, anything else -> `e`.

## Variable Translation (SMG -> Canonical)
| SMG Field | Canonical Field | Unit | Notes |
|-----------|-----------------|------|-------|
| temperature | temperature_c | °C | |
| humidity | relative_humidity_percent | % | |
| pressure | pressure_hpa | hPa | |
| wind_speed | wind.speed_ms | km/h | Divide by 3.6 |
| wind_direction | wind.direction_deg | degrees | |
| weather | condition | code | see CODE_TO_CONDITION |
| co | co | µg/m³ | Divide by 1000 (mg/m³) |
"""

from __future__ import annotations

from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

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
    Normals,
    Precipitation,
    WeatherCondition,
    WeatherResult,
    Wind,
)
from weather_aggregator.providers.base import RequestContext, WeatherProvider
from weather_aggregator.providers.capabilities import SourceCapabilities, country_predicate
from weather_aggregator.providers.engine import CycleResults, FeatureCall

MACAU_TZ = ZoneInfo("Asia/Macau")

ALERT_TYPES = ("typhoon", "rainstorm", "monsoon", "thunderstorm", "stormsurge", "tsunami")


# =============================================================================
# Payloads
# =============================================================================


class SmgRange(BaseModel):
    min: float | None = None
    max: float | None = None


class SmgDay(BaseModel):
    date: date
    weather: int | None = None
    description: str | None = None
    temperature: SmgRange = Field(default_factory=SmgRange)
    humidity: SmgRange = Field(default_factory=SmgRange)
    wind_speed: float | None = None
    wind_direction: float | None = None


class SmgNormal(BaseModel):
    month: int
    max_temperature: float | None = None
    min_temperature: float | None = None


class SmgDailyResult(BaseModel):
    forecast: list[SmgDay] = Field(default_factory=list)
    normals: list[SmgNormal] = Field(default_factory=list)


class SmgHour(BaseModel):
    time: datetime
    weather: int | None = None
    temperature: float | None = None
    humidity: float | None = None
    wind_speed: float | None = None
    wind_direction: float | None = None
    precipitation_probability: float | None = None


class SmgHourlyResult(BaseModel):
    forecast: list[SmgHour] = Field(default_factory=list)


class SmgAstroResult(BaseModel):
    day: date | None = Field(default=None, alias="date")
    sunrise: time | None = None
    sunset: time | None = None
    moonrise: time | None = None
    moonset: time | None = None


class SmgCurrentResult(BaseModel):
    time: datetime | None = None
    weather: int | None = None
    temperature: float | None = None
    humidity: float | None = None
    dew_point: float | None = None
    pressure: float | None = None
    wind_speed: float | None = None
    wind_direction: float | None = None
    visibility: float | None = None


class SmgBulletinResult(BaseModel):
    headline: str | None = None
    summary: str | None = None


class SmgUvResult(BaseModel):
    time: datetime | None = None
    index: float | None = None


class SmgWarningResult(BaseModel):
    active: bool = False
    code: str | None = None
    level: int | None = None
    title: str | None = None
    content: str | None = None
    issued: datetime | None = None


class SmgStation(BaseModel):
    name: str | None = None
    lat: float
    lon: float
    time: datetime | None = None
    pm25: float | None = None
    pm10: float | None = None
    no2: float | None = None
    o3: float | None = None
    so2: float | None = None
    co: float | None = None


class SmgAirQualityResult(BaseModel):
    stations: list[SmgStation] = Field(default_factory=list)


# =============================================================================
# Lookup tables
# =============================================================================

CODE_TO_CONDITION: dict[int, WeatherCondition] = {
    1: WeatherCondition.CLEAR,
    2: WeatherCondition.PARTLY_CLOUDY,
    3: WeatherCondition.CLOUDY,
    4: WeatherCondition.LIGHT_RAIN,
    5: WeatherCondition.RAIN,
    6: WeatherCondition.HEAVY_RAIN,
    7: WeatherCondition.THUNDERSTORM,
    8: WeatherCondition.FOG,
    9: WeatherCondition.HAZE,
    10: WeatherCondition.WINDY,
    11: WeatherCondition.DRIZZLE,
}

LEVEL_SEVERITY: dict[int, tuple[AlertSeverity, str]] = {
    1: (AlertSeverity.MINOR, "#00A0E9"),
    2: (AlertSeverity.MODERATE, "#FFFF00"),
    3: (AlertSeverity.SEVERE, "#FF8C00"),
    4: (AlertSeverity.EXTREME, "#FF0000"),
}


def smg_language(language: str) -> str:
    """Map a language code to SMG's one-letter language parameter."""
    if language.startswith("zh"):
        return "c"
    if language.startswith("pt"):
        return "p"
    return "e"


def _condition(code: int | None) -> WeatherCondition:
    if code is None:
        return WeatherCondition.UNKNOWN
    return CODE_TO_CONDITION.get(code, WeatherCondition.UNKNOWN)


def _wind(speed_kph: float | None, direction: float | None) -> Wind | None:
    if speed_kph is None:
        return None
    return Wind(
        speed_ms=speed_kph / 3.6,
        direction_deg=direction % 360 if direction is not None else None,
    )


def _on_day(day: date, value: time | None) -> datetime | None:
    if value is None:
        return None
    return datetime.combine(day, value, tzinfo=MACAU_TZ)


class SmgProvider(WeatherProvider):
    """Macao Meteorological and Geophysical Bureau."""

    id = "smg"
    name = "SMG"
    base_url = "https://new-api.smg.gov.mo"
    cms_url = "https://cms.smg.gov.mo"

    capabilities = SourceCapabilities(
        main=frozenset({
            SourceFeature.FORECAST,
            SourceFeature.CURRENT,
            SourceFeature.ALERT,
            SourceFeature.AIR_QUALITY,
            SourceFeature.NORMALS,
        }),
        secondary=frozenset({
            SourceFeature.CURRENT,
            SourceFeature.ALERT,
            SourceFeature.AIR_QUALITY,
            SourceFeature.NORMALS,
        }),
        predicate=country_predicate("MO"),
    )

    def build_calls(self, location: Location, context: RequestContext) -> list[FeatureCall]:
        base = self.base_url
        lang = smg_language(context.language)
        today = datetime.now(MACAU_TZ).date().isoformat()

        def warning_call(alert_type: str) -> FeatureCall:
            return FeatureCall(
                key=f"warning_{alert_type}",
                features=(SourceFeature.ALERT,),
                fetch=lambda: self._fetch_model(
                    SmgWarningResult, f"{base}/api/warning/{alert_type}", params={"lang": lang},
                ),
                sentinel=SmgWarningResult,
            )

        return [
            FeatureCall(
                key="daily",
                features=(SourceFeature.FORECAST, SourceFeature.NORMALS),
                fetch=lambda: self._fetch_model(SmgDailyResult, f"{base}/api/forecast/7days"),
                sentinel=SmgDailyResult,
            ),
            FeatureCall(
                key="hourly",
                features=(SourceFeature.FORECAST,),
                fetch=lambda: self._fetch_model(SmgHourlyResult, f"{base}/api/forecast/hourly"),
                sentinel=SmgHourlyResult,
            ),
            FeatureCall(
                key="astro",
                features=(SourceFeature.FORECAST,),
                fetch=lambda: self._fetch_model(
                    SmgAstroResult, f"{base}/api/astro", method="POST", json={"date": today},
                ),
                sentinel=SmgAstroResult,
                report_failure=False,
            ),
            FeatureCall(
                key="current",
                features=(SourceFeature.CURRENT,),
                fetch=lambda: self._fetch_model(SmgCurrentResult, f"{base}/api/observation/current"),
                sentinel=SmgCurrentResult,
            ),
            FeatureCall(
                key="bulletin",
                features=(SourceFeature.CURRENT,),
                fetch=lambda: self._fetch_model(
                    SmgBulletinResult, f"{base}/api/bulletin", params={"lang": lang},
                ),
                sentinel=SmgBulletinResult,
            ),
            FeatureCall(
                key="uv",
                features=(SourceFeature.CURRENT,),
                fetch=lambda: self._fetch_model(SmgUvResult, f"{base}/api/uv"),
                sentinel=SmgUvResult,
            ),
            *(warning_call(alert_type) for alert_type in ALERT_TYPES),
            FeatureCall(
                key="air_quality",
                features=(SourceFeature.AIR_QUALITY,),
                fetch=lambda: self._fetch_model(
                    SmgAirQualityResult,
                    f"{self.cms_url}/api/airquality",
                    # Cache buster expected by the CMS
                    params={"t": int(datetime.now().timestamp() * 1000)},
                ),
                sentinel=SmgAirQualityResult,
            ),
        ]

    def convert(self, location: Location, results: CycleResults) -> WeatherResult:
        daily: SmgDailyResult = results["daily"]
        return WeatherResult(
            source=self.id,
            current=self.when_available(
                results,
                SourceFeature.CURRENT,
                lambda: self._convert_current(results["current"], results["bulletin"], results["uv"]),
            ),
            daily=self.when_available(
                results, SourceFeature.FORECAST, lambda: self._convert_daily(daily, results["astro"])
            ),
            hourly=self.when_available(
                results, SourceFeature.FORECAST, lambda: self._convert_hourly(results["hourly"])
            ),
            alerts=self.when_available(
                results,
                SourceFeature.ALERT,
                lambda: self._convert_alerts([results[f"warning_{t}"] for t in ALERT_TYPES]),
            ),
            air_quality=self.when_available(
                results,
                SourceFeature.AIR_QUALITY,
                lambda: self._convert_air_quality(location, results["air_quality"]),
            ),
            normals=self.when_available(
                results, SourceFeature.NORMALS, lambda: self._convert_normals(daily)
            ),
            failed_features=results.failed_features,
        )

    def _convert_current(
        self,
        current: SmgCurrentResult,
        bulletin: SmgBulletinResult,
        uv: SmgUvResult,
    ) -> Current:
        return Current(
            time=current.time,
            condition=_condition(current.weather),
            description=bulletin.headline,
            temperature_c=current.temperature,
            dew_point_c=current.dew_point,
            relative_humidity_percent=current.humidity,
            pressure_hpa=current.pressure,
            wind=_wind(current.wind_speed, current.wind_direction),
            uv_index=uv.index,
            visibility_m=current.visibility,
            summary=bulletin.summary,
        )

    def _convert_daily(self, result: SmgDailyResult, astro: SmgAstroResult) -> list[DailyForecast]:
        daily: list[DailyForecast] = []
        for day in result.forecast:
            day_astro = None
            if astro.day == day.date:
                day_astro = Astro(
                    sunrise=_on_day(day.date, astro.sunrise),
                    sunset=_on_day(day.date, astro.sunset),
                    moonrise=_on_day(day.date, astro.moonrise),
                    moonset=_on_day(day.date, astro.moonset),
                )
            daily.append(
                DailyForecast(
                    date=day.date,
                    condition=_condition(day.weather),
                    description=day.description,
                    temperature_max_c=day.temperature.max,
                    temperature_min_c=day.temperature.min,
                    wind=_wind(day.wind_speed, day.wind_direction),
                    astro=day_astro,
                )
            )
        return daily

    def _convert_hourly(self, result: SmgHourlyResult) -> list[HourlyForecast]:
        return [
            HourlyForecast(
                time=hour.time,
                condition=_condition(hour.weather),
                temperature_c=hour.temperature,
                relative_humidity_percent=hour.humidity,
                wind=_wind(hour.wind_speed, hour.wind_direction),
                precipitation=Precipitation(probability_percent=hour.precipitation_probability)
                if hour.precipitation_probability is not None else None,
            )
            for hour in result.forecast
        ]

    def _convert_alerts(self, warnings: list[SmgWarningResult]) -> list[Alert]:
        alerts: list[Alert] = []
        for alert_type, warning in zip(ALERT_TYPES, warnings):
            if not warning.active:
                continue
            severity, color = LEVEL_SEVERITY.get(warning.level or 0, (AlertSeverity.UNKNOWN, None))
            alerts.append(
                Alert(
                    alert_id=f"{alert_type}-{warning.code or 'active'}",
                    start=warning.issued,
                    headline=warning.title,
                    description=warning.content,
                    source=self.name,
                    severity=severity,
                    color=color,
                )
            )
        return sorted(alerts, key=lambda a: a.severity, reverse=True)

    def _convert_air_quality(
        self,
        location: Location,
        result: SmgAirQualityResult,
    ) -> list[AirQuality]:
        if not result.stations:
            return []
        nearest = min(
            result.stations,
            key=lambda s: (s.lat - location.latitude) ** 2 + (s.lon - location.longitude) ** 2,
        )
        return [
            AirQuality(
                time=nearest.time,
                pm25=nearest.pm25,
                pm10=nearest.pm10,
                no2=nearest.no2,
                o3=nearest.o3,
                so2=nearest.so2,
                co=nearest.co / 1000 if nearest.co is not None else None,
            )
        ]

    def _convert_normals(self, result: SmgDailyResult) -> list[Normals]:
        return [
            Normals(
                month=normal.month,
                daytime_temperature_c=normal.max_temperature,
                nighttime_temperature_c=normal.min_temperature,
            )
            for normal in sorted(result.normals, key=lambda n: n.month)
        ]
