"""Weather data sources."""

from weather_aggregator.providers.base import (
    ConfigurationError,
    LocationSearchError,
    ProviderError,
    RateLimitError,
    UnsupportedFeatureError,
    WeatherProvider,
)
from weather_aggregator.providers.bmkg import BmkgProvider
from weather_aggregator.providers.china import ChinaProvider
from weather_aggregator.providers.mf import MfProvider
from weather_aggregator.providers.openmeteo import OpenMeteoProvider
from weather_aggregator.providers.smg import SmgProvider

# All built-in sources, in the order they are listed to users
PROVIDER_CLASSES: tuple[type[WeatherProvider], ...] = (
    OpenMeteoProvider,
    MfProvider,
    BmkgProvider,
    SmgProvider,
    ChinaProvider,
)

__all__ = [
    "WeatherProvider",
    "ProviderError",
    "RateLimitError",
    "ConfigurationError",
    "UnsupportedFeatureError",
    "LocationSearchError",
    "BmkgProvider",
    "ChinaProvider",
    "MfProvider",
    "OpenMeteoProvider",
    "SmgProvider",
    "PROVIDER_CLASSES",
]
