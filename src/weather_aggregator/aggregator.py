"""Aggregation façade over every weather source.

This is the single entry point used by callers: it looks up a source by id
and forwards to the source's request cycle. Sources are looked up, never
re-implemented here.

Example:
    ```python
    async with build_default_aggregator() as aggregator:
        paris = Location(latitude=48.85, longitude=2.35, country_code="FR",
                         admin2_code="75")
        result = await aggregator.request_weather(
            "mf", paris, ignored_features=[SourceFeature.NORMALS]
        )
        if result.has_failed(SourceFeature.ALERT):
            ...
    ```
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

import httpx

from weather_aggregator.config import ConfigBackend, MemoryConfigBackend, Settings
from weather_aggregator.models.location import Location
from weather_aggregator.models.source import SourceFeature, SourceRole
from weather_aggregator.models.weather import WeatherResult
from weather_aggregator.providers import PROVIDER_CLASSES
from weather_aggregator.providers.base import WeatherProvider

logger = logging.getLogger(__name__)


class UnknownSourceError(KeyError):
    """Raised when no source is registered under an id."""

    def __init__(self, source_id: str):
        super().__init__(source_id)
        self.source_id = source_id

    def __str__(self) -> str:
        return f"Unknown weather source: '{self.source_id}'"


class WeatherAggregator:
    """Dispatch weather requests to registered sources by id."""

    def __init__(self, providers: Iterable[WeatherProvider]):
        self._providers: dict[str, WeatherProvider] = {}
        for provider in providers:
            if provider.id in self._providers:
                raise ValueError(f"Duplicate weather source id: '{provider.id}'")
            self._providers[provider.id] = provider

    async def __aenter__(self) -> WeatherAggregator:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client of every source."""
        await asyncio.gather(*(provider.aclose() for provider in self._providers.values()))

    @property
    def source_ids(self) -> list[str]:
        return list(self._providers)

    def get(self, source_id: str) -> WeatherProvider:
        try:
            return self._providers[source_id]
        except KeyError:
            raise UnknownSourceError(source_id) from None

    def is_configured(self, source_id: str) -> bool:
        return self.get(source_id).is_configured

    def is_feature_supported(
        self,
        source_id: str,
        location: Location,
        feature: SourceFeature,
        role: SourceRole = SourceRole.SECONDARY,
    ) -> bool:
        return self.get(source_id).is_feature_supported(location, feature, role)

    def secondary_sources_for(self, location: Location, feature: SourceFeature) -> list[str]:
        """Ids of the sources able to supplement `feature` at a location."""
        return [
            source_id
            for source_id, provider in self._providers.items()
            if provider.is_feature_supported(location, feature, SourceRole.SECONDARY)
        ]

    async def request_weather(
        self,
        source_id: str,
        location: Location,
        ignored_features: Iterable[SourceFeature] = (),
    ) -> WeatherResult:
        """Run a main request cycle against one source.

        Raises:
            UnknownSourceError: If no source has this id
            ConfigurationError: If a wanted feature needs a missing credential
        """
        return await self.get(source_id).request_weather(location, ignored_features)

    async def request_secondary_weather(
        self,
        source_id: str,
        location: Location,
        requested_features: Iterable[SourceFeature],
    ) -> WeatherResult:
        """Run a secondary request cycle against one source.

        Raises:
            UnknownSourceError: If no source has this id
            UnsupportedFeatureError: If a requested feature is not served here
            ConfigurationError: If a requested feature needs a missing credential
        """
        return await self.get(source_id).request_secondary_weather(location, requested_features)

    async def request_reverse_geocoding(
        self,
        source_id: str,
        location: Location,
    ) -> list[Location]:
        return await self.get(source_id).request_reverse_geocoding(location)

    async def request_location_search(self, source_id: str, query: str) -> list[Location]:
        return await self.get(source_id).request_location_search(query)


def build_default_aggregator(
    settings: Settings | None = None,
    config_backend: ConfigBackend | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> WeatherAggregator:
    """Create an aggregator with every built-in source.

    All sources share one config backend, so user keys set through any of
    them are visible to the others' stores (each scoped by source id).
    """
    backend = config_backend if config_backend is not None else MemoryConfigBackend()
    providers = [
        provider_class(settings=settings, config_backend=backend, transport=transport)
        for provider_class in PROVIDER_CLASSES
    ]
    logger.debug(f"Registered weather sources: {[p.id for p in providers]}")
    return WeatherAggregator(providers)
