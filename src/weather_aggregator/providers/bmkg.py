"""BMKG (Badan Meteorologi, Klimatologi, dan Geofisika) weather source.

## Endpoints
- Weather: https://cuaca.bmkg.go.id/
- PM2.5 stations: https://api-apps.bmkg.go.id/

## Authentication
An API key (`X-API-KEY` header) is needed for warnings and impact-based
forecasts only. Current conditions and forecasts are open.

## Calls per cycle
| Call | Path | Feature |
|------|------|---------|
| current | api/presentwx/coord | CURRENT |
| forecast | api/df/v1/forecast/coord | FORECAST |
| warning | api/v1/public/weather/warning | ALERT |
| ibf_1..ibf_3 | api/v1/public/weather/impact-based-forecast?day=N | ALERT |
| pm25 | storage/public/pm25.json | AIR_QUALITY |

Impact-based forecasts give early warnings of heavy rain up to 3 days ahead.
If any of the four alert calls fails, ALERT is reported as failed.

## Variable Translation (BMKG -> Canonical)
| BMKG Field | Canonical Field | Unit | Notes |
|------------|-----------------|------|-------|
| t | temperature_c | °C | |
| hu | relative_humidity_percent | % | |
| tcc | cloud_cover_percent | % | |
| tp | precipitation.amount_mm | mm | |
| ws | wind.speed_ms | km/h | Divide by 3.6 |
| wd_deg | wind.direction_deg | degrees | |
| vs | visibility_m | m | |
| weather | condition | code | see CODE_TO_CONDITION |
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, RootModel

from weather_aggregator.models.location import Location
from weather_aggregator.models.source import SourceFeature
from weather_aggregator.models.weather import (
    AirQuality,
    Alert,
    AlertSeverity,
    Current,
    DailyForecast,
    HourlyForecast,
    Precipitation,
    WeatherCondition,
    WeatherResult,
    Wind,
)
from weather_aggregator.providers.base import RequestContext, WeatherProvider
from weather_aggregator.providers.capabilities import SourceCapabilities, country_predicate
from weather_aggregator.providers.credentials import CredentialConfig, CredentialResolver
from weather_aggregator.providers.engine import CycleResults, FeatureCall

IBF_DAYS = (1, 2, 3)


# =============================================================================
# Payloads
# =============================================================================


class BmkgLocation(BaseModel):
    adm1: str | None = None
    adm2: str | None = None
    adm4: str | None = None
    provinsi: str | None = None
    kotkab: str | None = None
    kecamatan: str | None = None
    desa: str | None = None
    lat: float | None = None
    lon: float | None = None
    timezone: str | None = None


class BmkgWeather(BaseModel):
    utc_datetime: str | None = None
    local_datetime: str | None = None
    t: float | None = None
    hu: float | None = None
    tcc: float | None = None
    tp: float | None = None
    weather: int | None = None
    weather_desc_en: str | None = None
    ws: float | None = None
    wd_deg: float | None = None
    vs: float | None = None


class BmkgCurrentData(BaseModel):
    lokasi: BmkgLocation | None = None
    cuaca: BmkgWeather | None = None


class BmkgCurrentResult(BaseModel):
    data: BmkgCurrentData | None = None


class BmkgForecastData(BaseModel):
    lokasi: BmkgLocation | None = None
    # One list of 3-hourly entries per day
    cuaca: list[list[BmkgWeather]] = Field(default_factory=list)


class BmkgForecastResult(BaseModel):
    data: list[BmkgForecastData] = Field(default_factory=list)


class BmkgWarningDescription(BaseModel):
    headline: str | None = None
    description: str | None = None
    instruction: str | None = None
    effective: str | None = None
    expires: str | None = None


class BmkgWarningToday(BaseModel):
    kode: str | None = None
    description: BmkgWarningDescription | None = None


class BmkgWarningData(BaseModel):
    today: BmkgWarningToday | None = None


class BmkgWarningResult(BaseModel):
    data: BmkgWarningData | None = None


class BmkgIbfData(BaseModel):
    date: str | None = None
    category: str | None = None
    description: str | None = None


class BmkgIbfResult(BaseModel):
    data: BmkgIbfData | None = None


class BmkgPm25Station(BaseModel):
    station: str | None = None
    lat: float
    lon: float
    pm25: float | None = None
    time: str | None = None


class BmkgPm25Result(RootModel[list[BmkgPm25Station]]):
    root: list[BmkgPm25Station] = Field(default_factory=list)


# =============================================================================
# Lookup tables
# =============================================================================

CODE_TO_CONDITION: dict[int, WeatherCondition] = {
    0: WeatherCondition.CLEAR,
    1: WeatherCondition.PARTLY_CLOUDY,
    2: WeatherCondition.PARTLY_CLOUDY,
    3: WeatherCondition.CLOUDY,
    4: WeatherCondition.CLOUDY,
    5: WeatherCondition.HAZE,
    10: WeatherCondition.HAZE,
    45: WeatherCondition.FOG,
    60: WeatherCondition.LIGHT_RAIN,
    61: WeatherCondition.RAIN,
    63: WeatherCondition.HEAVY_RAIN,
    80: WeatherCondition.RAIN,
    95: WeatherCondition.THUNDERSTORM,
    97: WeatherCondition.THUNDERSTORM,
}

IBF_CATEGORIES: dict[str, tuple[AlertSeverity, str]] = {
    "waspada": (AlertSeverity.MODERATE, "#FFFF00"),
    "siaga": (AlertSeverity.SEVERE, "#FF8C00"),
    "awas": (AlertSeverity.EXTREME, "#FF0000"),
}


def _parse_utc(value: str | None) -> datetime | None:
    """Parse BMKG's 'YYYY-MM-DD HH:MM:SS' UTC timestamps."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _local_date(entry: BmkgWeather) -> date | None:
    if not entry.local_datetime:
        return None
    try:
        return datetime.fromisoformat(entry.local_datetime).date()
    except ValueError:
        return None


def _parse_wind(entry: BmkgWeather) -> Wind | None:
    if entry.ws is None:
        return None
    return Wind(
        speed_ms=entry.ws / 3.6,
        direction_deg=entry.wd_deg % 360 if entry.wd_deg is not None else None,
    )


class BmkgProvider(WeatherProvider):
    """Indonesian national weather service."""

    id = "bmkg"
    name = "BMKG"
    base_url = "https://cuaca.bmkg.go.id"
    app_base_url = "https://api-apps.bmkg.go.id"

    capabilities = SourceCapabilities(
        main=frozenset({
            SourceFeature.FORECAST,
            SourceFeature.CURRENT,
            SourceFeature.ALERT,
            SourceFeature.AIR_QUALITY,
        }),
        secondary=frozenset({
            SourceFeature.CURRENT,
            SourceFeature.ALERT,
            SourceFeature.AIR_QUALITY,
        }),
        predicate=country_predicate("ID"),
        credential_required_for=frozenset({SourceFeature.ALERT}),
    )

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.credentials = CredentialResolver(
            CredentialConfig(default_key=self.settings.bmkg_key),
            self.config,
        )

    def _coords(self, location: Location) -> dict[str, Any]:
        return {"lat": location.latitude, "lon": location.longitude}

    def build_calls(self, location: Location, context: RequestContext) -> list[FeatureCall]:
        base = self.base_url
        coords = self._coords(location)
        key_header = {"X-API-KEY": context.token or ""}

        def ibf_call(day: int) -> FeatureCall:
            return FeatureCall(
                key=f"ibf_{day}",
                features=(SourceFeature.ALERT,),
                fetch=lambda: self._fetch_model(
                    BmkgIbfResult, f"{base}/api/v1/public/weather/impact-based-forecast",
                    params={**coords, "day": day}, headers=key_header,
                ),
                sentinel=BmkgIbfResult,
            )

        return [
            FeatureCall(
                key="current",
                features=(SourceFeature.CURRENT,),
                fetch=lambda: self._fetch_model(
                    BmkgCurrentResult, f"{base}/api/presentwx/coord", params=coords,
                ),
                sentinel=BmkgCurrentResult,
            ),
            FeatureCall(
                key="forecast",
                features=(SourceFeature.FORECAST,),
                fetch=lambda: self._fetch_model(
                    BmkgForecastResult, f"{base}/api/df/v1/forecast/coord", params=coords,
                ),
                sentinel=BmkgForecastResult,
            ),
            FeatureCall(
                key="warning",
                features=(SourceFeature.ALERT,),
                fetch=lambda: self._fetch_model(
                    BmkgWarningResult, f"{base}/api/v1/public/weather/warning",
                    params=coords, headers=key_header,
                ),
                sentinel=BmkgWarningResult,
            ),
            *(ibf_call(day) for day in IBF_DAYS),
            FeatureCall(
                key="pm25",
                features=(SourceFeature.AIR_QUALITY,),
                fetch=lambda: self._fetch_model(
                    BmkgPm25Result, f"{self.app_base_url}/storage/public/pm25.json",
                ),
                sentinel=BmkgPm25Result,
            ),
        ]

    def convert(self, location: Location, results: CycleResults) -> WeatherResult:
        forecast: BmkgForecastResult = results["forecast"]
        return WeatherResult(
            source=self.id,
            current=self.when_available(
                results, SourceFeature.CURRENT, lambda: self._convert_current(results["current"])
            ),
            daily=self.when_available(
                results, SourceFeature.FORECAST, lambda: self._convert_daily(forecast)
            ),
            hourly=self.when_available(
                results, SourceFeature.FORECAST, lambda: self._convert_hourly(forecast)
            ),
            alerts=self.when_available(
                results,
                SourceFeature.ALERT,
                lambda: self._convert_alerts(
                    results["warning"], [results[f"ibf_{day}"] for day in IBF_DAYS]
                ),
            ),
            air_quality=self.when_available(
                results,
                SourceFeature.AIR_QUALITY,
                lambda: self._convert_air_quality(location, results["pm25"]),
            ),
            failed_features=results.failed_features,
        )

    def _entries(self, result: BmkgForecastResult) -> list[BmkgWeather]:
        if not result.data:
            return []
        return [entry for day in result.data[0].cuaca for entry in day]

    def _convert_current(self, result: BmkgCurrentResult) -> Current | None:
        entry = result.data.cuaca if result.data else None
        if entry is None:
            return None
        return Current(
            time=_parse_utc(entry.utc_datetime),
            condition=CODE_TO_CONDITION.get(entry.weather, WeatherCondition.UNKNOWN)
            if entry.weather is not None else WeatherCondition.UNKNOWN,
            description=entry.weather_desc_en,
            temperature_c=entry.t,
            relative_humidity_percent=entry.hu,
            cloud_cover_percent=entry.tcc,
            wind=_parse_wind(entry),
            visibility_m=entry.vs,
        )

    def _convert_hourly(self, result: BmkgForecastResult) -> list[HourlyForecast]:
        hourly: list[HourlyForecast] = []
        for entry in self._entries(result):
            time = _parse_utc(entry.utc_datetime)
            if time is None:
                continue
            hourly.append(
                HourlyForecast(
                    time=time,
                    condition=CODE_TO_CONDITION.get(entry.weather, WeatherCondition.UNKNOWN)
                    if entry.weather is not None else WeatherCondition.UNKNOWN,
                    temperature_c=entry.t,
                    relative_humidity_percent=entry.hu,
                    cloud_cover_percent=entry.tcc,
                    precipitation=Precipitation(amount_mm=entry.tp) if entry.tp is not None else None,
                    wind=_parse_wind(entry),
                    visibility_m=entry.vs,
                )
            )
        return hourly

    def _convert_daily(self, result: BmkgForecastResult) -> list[DailyForecast]:
        by_day: dict[date, list[BmkgWeather]] = defaultdict(list)
        for entry in self._entries(result):
            day = _local_date(entry)
            if day is not None:
                by_day[day].append(entry)

        daily: list[DailyForecast] = []
        for day in sorted(by_day):
            temperatures = [e.t for e in by_day[day] if e.t is not None]
            amounts = [e.tp for e in by_day[day] if e.tp is not None]
            daily.append(
                DailyForecast(
                    date=day,
                    temperature_max_c=max(temperatures) if temperatures else None,
                    temperature_min_c=min(temperatures) if temperatures else None,
                    precipitation=Precipitation(amount_mm=sum(amounts)) if amounts else None,
                )
            )
        return daily

    def _convert_alerts(
        self,
        warning: BmkgWarningResult,
        ibf_results: list[BmkgIbfResult],
    ) -> list[Alert]:
        alerts: list[Alert] = []
        today = warning.data.today if warning.data else None
        if today and today.description and today.description.headline:
            desc = today.description
            alerts.append(
                Alert(
                    alert_id=today.kode or "warning",
                    start=_parse_utc(desc.effective),
                    end=_parse_utc(desc.expires),
                    headline=desc.headline,
                    description=desc.description,
                    instruction=desc.instruction,
                    source=self.name,
                    severity=AlertSeverity.SEVERE,
                )
            )

        for day, ibf in zip(IBF_DAYS, ibf_results):
            if ibf.data is None or not ibf.data.category:
                continue
            severity_color = IBF_CATEGORIES.get(ibf.data.category.lower())
            if severity_color is None:
                continue
            severity, color = severity_color
            alerts.append(
                Alert(
                    alert_id=f"ibf-{day}-{ibf.data.date or ''}",
                    start=_parse_utc(ibf.data.date),
                    headline=f"Impact-based forecast: {ibf.data.category}",
                    description=ibf.data.description,
                    source=self.name,
                    severity=severity,
                    color=color,
                )
            )
        return alerts

    def _convert_air_quality(
        self,
        location: Location,
        result: BmkgPm25Result,
    ) -> list[AirQuality]:
        stations = [s for s in result.root if s.pm25 is not None]
        if not stations:
            return []
        nearest = min(
            stations,
            key=lambda s: (s.lat - location.latitude) ** 2 + (s.lon - location.longitude) ** 2,
        )
        return [AirQuality(time=_parse_utc(nearest.time), pm25=nearest.pm25)]

    async def request_reverse_geocoding(self, location: Location) -> list[Location]:
        """Resolve the Indonesian administrative hierarchy of a location."""
        result = await self._fetch_model(
            BmkgLocation,
            f"{self.base_url}/api/df/v1/adm/coord",
            params=self._coords(location),
        )
        return [
            location.copy_with(
                country_code="ID",
                country="Indonesia",
                admin1=result.provinsi or location.admin1,
                admin1_code=result.adm1 or location.admin1_code,
                admin2=result.kotkab or location.admin2,
                admin2_code=result.adm2 or location.admin2_code,
                city=result.kecamatan or location.city,
                district=result.desa or location.district,
                city_id=result.adm4 or location.city_id,
                timezone=result.timezone or location.timezone,
            )
        ]
