"""Météo-France weather source.

## Endpoint
- Base URL: https://webservice.meteofrance.com/
- All calls take `formatDate=iso` and a `token` query parameter
- The mobile app's User-Agent is expected: `okhttp/4.9.2`

## Authentication
A user key overrides everything. Otherwise a fresh HS256 JWT
(`{"class": "mobile", "iat", "jti"}`) is minted per cycle with
`MF_WSFT_JWT_KEY`, falling back to the static `MF_WSFT_KEY`.

## Calls per cycle
| Call | Path | Feature | Notes |
|------|------|---------|-------|
| current | v2/observation | CURRENT | |
| forecast | forecast | FORECAST | daily + hourly |
| ephemeris | v2/ephemeris | FORECAST (silent) | `lang=en`, needed to parse the moon phase |
| rain | v3/rain | MINUTELY | 5-minute intensity levels 1-4 |
| warnings | v3/warning/currentphenomenons | ALERT | FR only, needs a department (`admin2_code`) |
| normals | v2/climate | NORMALS | monthly T_min/T_max |

## Variable Translation (forecast -> Canonical)
| MF Field | Canonical Field | Unit |
|----------|-----------------|------|
| T.value | temperature_c | °C |
| T.windchill | feels_like_c | °C |
| relative_humidity | relative_humidity_percent | % |
| sea_level | pressure_hpa | hPa |
| wind.speed / wind.gust | wind.speed_ms / wind.gust_ms | m/s |
| wind.direction | wind.direction_deg | degrees ("Variable" -> None) |
| rain.1h | precipitation.amount_mm | mm |
| clouds | cloud_cover_percent | % |
| weather.icon | condition | see ICON_TO_CONDITION |
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from weather_aggregator.models.location import Location
from weather_aggregator.models.source import SourceFeature
from weather_aggregator.models.weather import (
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
from weather_aggregator.providers.base import RequestContext, WeatherProvider
from weather_aggregator.providers.capabilities import SourceCapabilities, country_predicate
from weather_aggregator.providers.credentials import CredentialConfig, CredentialResolver
from weather_aggregator.providers.engine import CycleResults, FeatureCall


# =============================================================================
# Payloads
# =============================================================================


class MfTemperature(BaseModel):
    value: float | None = None
    windchill: float | None = None


class MfWind(BaseModel):
    speed: float | None = None
    gust: float | None = None
    direction: int | str | None = None


class MfWeather(BaseModel):
    icon: str | None = None
    desc: str | None = None


class MfObservation(BaseModel):
    time: datetime | None = None
    temperature: float | None = Field(default=None, alias="T")
    wind_speed: float | None = None
    wind_direction: int | None = None
    weather_icon: str | None = None
    weather_description: str | None = None


class MfCurrentProperties(BaseModel):
    gridded: MfObservation | None = None


class MfCurrentResult(BaseModel):
    properties: MfCurrentProperties | None = None


class MfPosition(BaseModel):
    lat: float | None = None
    lon: float | None = None
    name: str | None = None
    country: str | None = None
    dept: str | None = None
    insee: str | None = None
    timezone: str | None = None


class MfHourly(BaseModel):
    dt: datetime
    T: MfTemperature | None = None
    humidity: float | None = None
    sea_level: float | None = None
    wind: MfWind | None = None
    rain: dict[str, float] | None = None
    snow: dict[str, float] | None = None
    clouds: float | None = None
    weather: MfWeather | None = None


class MfDailyTemperature(BaseModel):
    min: float | None = None
    max: float | None = None


class MfDaily(BaseModel):
    dt: datetime
    T: MfDailyTemperature | None = None
    precipitation: dict[str, float] | None = None
    uv: float | None = None
    weather12H: MfWeather | None = None
    sun: dict[str, datetime | None] | None = None


class MfProbability(BaseModel):
    dt: datetime
    rain: dict[str, float | None] | None = None


class MfForecastResult(BaseModel):
    position: MfPosition | None = None
    forecast: list[MfHourly] = Field(default_factory=list)
    daily_forecast: list[MfDaily] = Field(default_factory=list)
    probability_forecast: list[MfProbability] = Field(default_factory=list)


class MfEphemeris(BaseModel):
    sunrise_time: datetime | None = None
    sunset_time: datetime | None = None
    moonrise_time: datetime | None = None
    moonset_time: datetime | None = None
    moon_phase: str | None = None


class MfEphemerisProperties(BaseModel):
    ephemeris: MfEphemeris | None = None


class MfEphemerisResult(BaseModel):
    properties: MfEphemerisProperties | None = None


class MfRainEntry(BaseModel):
    time: datetime
    rain_intensity: int | None = None
    rain_intensity_description: str | None = None


class MfRainProperties(BaseModel):
    forecast: list[MfRainEntry] = Field(default_factory=list)


class MfRainResult(BaseModel):
    properties: MfRainProperties | None = None


class MfPhenomenonColor(BaseModel):
    phenomenon_id: str
    phenomenon_max_color_id: int


class MfWarningsResult(BaseModel):
    update_time: datetime | None = None
    end_validity_time: datetime | None = None
    domain_id: str | None = None
    phenomenons_max_colors: list[MfPhenomenonColor] = Field(default_factory=list)


class MfNormalsStat(BaseModel):
    month: int
    T_min: float | None = None
    T_max: float | None = None


class MfNormalsProperties(BaseModel):
    stats: list[MfNormalsStat] = Field(default_factory=list)


class MfNormalsResult(BaseModel):
    properties: MfNormalsProperties | None = None


# =============================================================================
# Lookup tables
# =============================================================================

# Icon number (p<N>j / p<N>n / p<N>bisj) to WeatherCondition
ICON_TO_CONDITION: dict[int, WeatherCondition] = {
    1: WeatherCondition.CLEAR,
    2: WeatherCondition.PARTLY_CLOUDY,
    3: WeatherCondition.PARTLY_CLOUDY,
    4: WeatherCondition.CLOUDY,
    5: WeatherCondition.CLOUDY,
    6: WeatherCondition.FOG,
    7: WeatherCondition.FOG,
    8: WeatherCondition.HAZE,
    9: WeatherCondition.LIGHT_RAIN,
    10: WeatherCondition.LIGHT_RAIN,
    11: WeatherCondition.DRIZZLE,
    12: WeatherCondition.LIGHT_RAIN,
    13: WeatherCondition.RAIN,
    14: WeatherCondition.RAIN,
    15: WeatherCondition.HEAVY_RAIN,
    16: WeatherCondition.THUNDERSTORM,
    17: WeatherCondition.SLEET,
    18: WeatherCondition.SLEET,
    19: WeatherCondition.LIGHT_SNOW,
    20: WeatherCondition.SNOW,
    21: WeatherCondition.SNOW,
    22: WeatherCondition.HEAVY_SNOW,
    23: WeatherCondition.SLEET,
    24: WeatherCondition.THUNDERSTORM,
    25: WeatherCondition.THUNDERSTORM,
    26: WeatherCondition.THUNDERSTORM,
    27: WeatherCondition.THUNDERSTORM,
    28: WeatherCondition.THUNDERSTORM,
    29: WeatherCondition.THUNDERSTORM,
    30: WeatherCondition.HAIL,
}

ICON_PATTERN = re.compile(r"^p(?P<number>\d+)")

# Rain intensity level (1-4) to mm/h
RAIN_INTENSITY_MM_H: dict[int, float] = {1: 0.0, 2: 1.0, 3: 4.0, 4: 10.0}

PHENOMENONS: dict[str, str] = {
    "1": "Wind",
    "2": "Rain-Flood",
    "3": "Thunderstorms",
    "4": "Flood",
    "5": "Snow-Ice",
    "6": "Heat wave",
    "7": "Extreme cold",
    "8": "Avalanches",
    "9": "Waves-Submersion",
}

# Vigilance color id -> (severity, color). Green (1) means no warning.
COLOR_SEVERITY: dict[int, tuple[AlertSeverity, str]] = {
    2: (AlertSeverity.MODERATE, "#FFFF00"),
    3: (AlertSeverity.SEVERE, "#FF8C00"),
    4: (AlertSeverity.EXTREME, "#FF0000"),
}

MOON_PHASES: dict[str, float] = {
    "new moon": 0.0,
    "waxing crescent": 0.125,
    "first quarter": 0.25,
    "waxing gibbous": 0.375,
    "full moon": 0.5,
    "waning gibbous": 0.625,
    "last quarter": 0.75,
    "third quarter": 0.75,
    "waning crescent": 0.875,
}


def _parse_icon(icon: str | None) -> WeatherCondition:
    """Parse an MF icon name to WeatherCondition."""
    if not icon:
        return WeatherCondition.UNKNOWN
    match = ICON_PATTERN.match(icon)
    if not match:
        return WeatherCondition.UNKNOWN
    return ICON_TO_CONDITION.get(int(match.group("number")), WeatherCondition.UNKNOWN)


def _parse_wind(wind: MfWind | None) -> Wind | None:
    if wind is None or wind.speed is None:
        return None
    # "Variable" direction is reported as a string
    direction = wind.direction if isinstance(wind.direction, int) else None
    return Wind(
        speed_ms=wind.speed,
        gust_ms=wind.gust or None,
        direction_deg=direction % 360 if direction is not None else None,
    )


class MfProvider(WeatherProvider):
    """Météo-France mobile API.

    Serves France in full (including department warnings), and forecasts
    worldwide as a main source.
    """

    id = "mf"
    name = "Météo-France"
    base_url = "https://webservice.meteofrance.com"
    user_agent = "okhttp/4.9.2"

    capabilities = SourceCapabilities(
        main=frozenset({
            SourceFeature.FORECAST,
            SourceFeature.CURRENT,
            SourceFeature.MINUTELY,
            SourceFeature.ALERT,
            SourceFeature.NORMALS,
        }),
        secondary=frozenset({
            SourceFeature.CURRENT,
            SourceFeature.MINUTELY,
            SourceFeature.ALERT,
            # Works anywhere, but kept to France as a secondary source
            SourceFeature.NORMALS,
        }),
        predicate=country_predicate("FR", alert_requires_admin2=True, main_anywhere=True),
        credential_required_for=frozenset(SourceFeature),
    )

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.credentials = CredentialResolver(
            CredentialConfig(
                default_key=self.settings.mf_wsft_key,
                signing_key=self.settings.mf_wsft_jwt_key or None,
                claims={"class": "mobile"},
            ),
            self.config,
            store_key="wsft_key",
        )

    def _params(self, location: Location | None, token: str | None, **extra: Any) -> dict[str, Any]:
        params: dict[str, Any] = {"formatDate": "iso", "token": token or ""}
        if location is not None:
            params["lat"] = location.latitude
            params["lon"] = location.longitude
        params.update(extra)
        return params

    def build_calls(self, location: Location, context: RequestContext) -> list[FeatureCall]:
        token = context.token
        lang = context.language
        base = self.base_url
        return [
            FeatureCall(
                key="current",
                features=(SourceFeature.CURRENT,),
                fetch=lambda: self._fetch_model(
                    MfCurrentResult, f"{base}/v2/observation",
                    params=self._params(location, token, lang=lang),
                ),
                sentinel=MfCurrentResult,
            ),
            FeatureCall(
                key="forecast",
                features=(SourceFeature.FORECAST,),
                fetch=lambda: self._fetch_model(
                    MfForecastResult, f"{base}/forecast",
                    params=self._params(location, token),
                ),
                sentinel=MfForecastResult,
            ),
            FeatureCall(
                key="ephemeris",
                features=(SourceFeature.FORECAST,),
                fetch=lambda: self._fetch_model(
                    MfEphemerisResult, f"{base}/v2/ephemeris",
                    # English required to convert moon phase
                    params=self._params(location, token, lang="en"),
                ),
                sentinel=MfEphemerisResult,
                report_failure=False,
            ),
            FeatureCall(
                key="rain",
                features=(SourceFeature.MINUTELY,),
                fetch=lambda: self._fetch_model(
                    MfRainResult, f"{base}/v3/rain",
                    params=self._params(location, token, lang=lang),
                ),
                sentinel=MfRainResult,
            ),
            FeatureCall(
                key="warnings",
                features=(SourceFeature.ALERT,),
                fetch=lambda: self._fetch_model(
                    MfWarningsResult, f"{base}/v3/warning/currentphenomenons",
                    params=self._params(
                        None, token, domain=location.admin2_code, depth=1, with_coast=True,
                    ),
                ),
                sentinel=MfWarningsResult,
            ),
            FeatureCall(
                key="normals",
                features=(SourceFeature.NORMALS,),
                fetch=lambda: self._fetch_model(
                    MfNormalsResult, f"{base}/v2/climate",
                    params=self._params(location, token),
                ),
                sentinel=MfNormalsResult,
            ),
        ]

    def convert(self, location: Location, results: CycleResults) -> WeatherResult:
        """Translate MF payloads to canonical format.

        See module docstring for detailed field mapping.
        """
        forecast: MfForecastResult = results["forecast"]
        ephemeris: MfEphemerisResult = results["ephemeris"]

        return WeatherResult(
            source=self.id,
            current=self.when_available(
                results, SourceFeature.CURRENT, lambda: self._convert_current(results["current"])
            ),
            daily=self.when_available(
                results, SourceFeature.FORECAST, lambda: self._convert_daily(forecast, ephemeris)
            ),
            hourly=self.when_available(
                results, SourceFeature.FORECAST, lambda: self._convert_hourly(forecast)
            ),
            minutely=self.when_available(
                results, SourceFeature.MINUTELY, lambda: self._convert_minutely(results["rain"])
            ),
            alerts=self.when_available(
                results, SourceFeature.ALERT, lambda: self._convert_alerts(results["warnings"])
            ),
            normals=self.when_available(
                results, SourceFeature.NORMALS, lambda: self._convert_normals(results["normals"])
            ),
            failed_features=results.failed_features,
        )

    def _convert_current(self, result: MfCurrentResult) -> Current | None:
        gridded = result.properties.gridded if result.properties else None
        if gridded is None:
            return None
        return Current(
            time=gridded.time,
            condition=_parse_icon(gridded.weather_icon),
            description=gridded.weather_description,
            temperature_c=gridded.temperature,
            wind=Wind(
                speed_ms=gridded.wind_speed,
                direction_deg=gridded.wind_direction % 360
                if gridded.wind_direction is not None else None,
            ) if gridded.wind_speed is not None else None,
        )

    def _convert_hourly(self, result: MfForecastResult) -> list[HourlyForecast]:
        probabilities: dict[datetime, float] = {}
        for entry in result.probability_forecast:
            values = [v for v in (entry.rain or {}).values() if v is not None]
            if values:
                # 3-hour probability blocks cover the next three hours
                probabilities[entry.dt] = max(values)

        hourly: list[HourlyForecast] = []
        for entry in result.forecast:
            amount = (entry.rain or {}).get("1h")
            probability = probabilities.get(entry.dt)
            precipitation = None
            if amount is not None or probability is not None:
                precipitation = Precipitation(probability_percent=probability, amount_mm=amount)

            hourly.append(
                HourlyForecast(
                    time=entry.dt,
                    condition=_parse_icon(entry.weather.icon if entry.weather else None),
                    temperature_c=entry.T.value if entry.T else None,
                    feels_like_c=entry.T.windchill if entry.T else None,
                    relative_humidity_percent=entry.humidity,
                    cloud_cover_percent=entry.clouds,
                    precipitation=precipitation,
                    wind=_parse_wind(entry.wind),
                    pressure_hpa=entry.sea_level,
                    is_daylight=entry.weather.icon.endswith("j")
                    if entry.weather and entry.weather.icon else None,
                )
            )
        return hourly

    def _convert_daily(
        self,
        result: MfForecastResult,
        ephemeris: MfEphemerisResult,
    ) -> list[DailyForecast]:
        eph = ephemeris.properties.ephemeris if ephemeris.properties else None
        daily: list[DailyForecast] = []
        for i, entry in enumerate(result.daily_forecast):
            sun = entry.sun or {}
            astro = Astro(sunrise=sun.get("rise"), sunset=sun.get("set"))
            # Ephemeris only covers today: moon data goes on the first day
            if i == 0 and eph is not None:
                astro = Astro(
                    sunrise=eph.sunrise_time or astro.sunrise,
                    sunset=eph.sunset_time or astro.sunset,
                    moonrise=eph.moonrise_time,
                    moonset=eph.moonset_time,
                    moon_phase=MOON_PHASES.get((eph.moon_phase or "").lower()),
                )
            amount = (entry.precipitation or {}).get("24h")
            daily.append(
                DailyForecast(
                    date=entry.dt.date(),
                    condition=_parse_icon(entry.weather12H.icon if entry.weather12H else None),
                    description=entry.weather12H.desc if entry.weather12H else None,
                    temperature_max_c=entry.T.max if entry.T else None,
                    temperature_min_c=entry.T.min if entry.T else None,
                    precipitation=Precipitation(amount_mm=amount) if amount is not None else None,
                    uv_index=entry.uv,
                    astro=astro,
                )
            )
        return daily

    def _convert_minutely(self, result: MfRainResult) -> list[Minutely]:
        entries = result.properties.forecast if result.properties else []
        return [
            Minutely(
                time=entry.time,
                minute_interval=5,
                precipitation_intensity_mm_h=RAIN_INTENSITY_MM_H.get(entry.rain_intensity)
                if entry.rain_intensity is not None else None,
                description=entry.rain_intensity_description,
            )
            for entry in entries
        ]

    def _convert_alerts(self, result: MfWarningsResult) -> list[Alert]:
        alerts: list[Alert] = []
        for phenomenon in result.phenomenons_max_colors:
            severity_color = COLOR_SEVERITY.get(phenomenon.phenomenon_max_color_id)
            if severity_color is None:
                continue
            severity, color = severity_color
            alerts.append(
                Alert(
                    alert_id=f"{result.domain_id}-{phenomenon.phenomenon_id}",
                    start=result.update_time,
                    end=result.end_validity_time,
                    headline=PHENOMENONS.get(phenomenon.phenomenon_id, phenomenon.phenomenon_id),
                    source=self.name,
                    severity=severity,
                    color=color,
                )
            )
        return sorted(alerts, key=lambda a: a.severity, reverse=True)

    def _convert_normals(self, result: MfNormalsResult) -> list[Normals]:
        stats = result.properties.stats if result.properties else []
        return [
            Normals(
                month=stat.month,
                daytime_temperature_c=stat.T_max,
                nighttime_temperature_c=stat.T_min,
            )
            for stat in sorted(stats, key=lambda s: s.month)
        ]

    async def request_reverse_geocoding(self, location: Location) -> list[Location]:
        """Resolve the city and department from the forecast endpoint.

        Raises:
            ConfigurationError: If no token can be produced
            ProviderError: If the request fails
        """
        self._check_credentials(frozenset({SourceFeature.FORECAST}))
        result = await self._fetch_model(
            MfForecastResult,
            f"{self.base_url}/forecast",
            params=self._params(location, self._token()),
        )
        position = result.position or MfPosition()
        return [
            location.copy_with(
                city=position.name or location.city,
                country_code=(position.country or location.country_code or "")[:2].upper()
                or None,
                admin2_code=position.dept or location.admin2_code,
                city_id=position.insee or location.city_id,
                timezone=position.timezone or location.timezone,
            )
        ]
