"""Base weather source abstraction.

This module defines the interface every weather source implements, the
HTTP plumbing they share, and the errors that cross the package boundary.

## Request Cycle

A source does not orchestrate its own calls. It declares:

- `capabilities`: which features it serves, in which role, where
- `build_calls()`: the endpoint calls it can make, each owned by features
- `convert()`: a pure mapping from call payloads to a `WeatherResult`

and `WeatherProvider` runs the cycle through `weather_aggregator.providers.engine`:

```
request_weather / request_secondary_weather
    -> preconditions (unsupported features, credentials)
    -> engine.run_cycle (plan, fan out, join)
    -> convert
```

## Error Taxonomy

Only `ConfigurationError`, `UnsupportedFeatureError` and
`LocationSearchError` escape `request_weather` / `request_secondary_weather`.
Any other failure inside one call is recovered by the engine and reported in
`WeatherResult.failed_features`. Reverse geocoding and location search have
no recovery: transport errors (`ProviderError`) propagate.

## Canonical Data Format

All sources translate their responses into `weather_aggregator.models.weather`.
Unit conversion and code-to-condition lookups happen in each converter.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Iterable, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from weather_aggregator.config import (
    ConfigBackend,
    Settings,
    SourceConfigStore,
    current_language_code,
    get_settings,
)
from weather_aggregator.models.location import Location
from weather_aggregator.models.source import FeatureRequest, SourceFeature, SourceRole
from weather_aggregator.models.weather import WeatherResult
from weather_aggregator.providers.capabilities import SourceCapabilities
from weather_aggregator.providers.credentials import CredentialResolver
from weather_aggregator.providers.engine import (
    CycleResults,
    FeatureCall,
    included_features,
    run_cycle,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
T = TypeVar("T")


class ProviderError(Exception):
    """Base exception for weather source errors."""

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(ProviderError):
    """Raised when provider rate limit is exceeded."""

    def __init__(
        self,
        provider: str,
        retry_after: int | None = None,
        status_code: int | None = None,
    ):
        super().__init__(
            f"Rate limit exceeded for {provider}",
            provider=provider,
            status_code=status_code,
        )
        self.retry_after = retry_after


class ConfigurationError(ProviderError):
    """Raised when a required credential is missing. Nothing was dispatched."""

    pass


class UnsupportedFeatureError(ProviderError):
    """Raised when a secondary request names features the source cannot serve
    at the given location."""

    def __init__(self, provider: str, features: Iterable[SourceFeature]):
        self.features = tuple(features)
        super().__init__(
            f"{provider} cannot serve {', '.join(f.value for f in self.features)} "
            "at this location",
            provider=provider,
        )


class LocationSearchError(ProviderError):
    """Raised when a search or reverse geocoding yields no usable result."""

    pass


@dataclass(frozen=True)
class RequestContext:
    """Per-cycle values handed to `build_calls()`."""

    role: SourceRole
    language: str
    token: str | None = None


class WeatherProvider(ABC):
    """Abstract base class for weather sources.

    Attributes:
        id: Stable source identifier (used as config scope)
        name: Human-readable source name
        base_url: Base URL for the API
        capabilities: Feature-support matrix
        user_agent: Mandated User-Agent, if the API expects a specific one

    Example:
        ```python
        async with MfProvider() as provider:
            result = await provider.request_weather(
                Location(latitude=48.85, longitude=2.35, country_code="FR"),
                ignored_features=[SourceFeature.NORMALS],
            )
        ```
    """

    id: str
    name: str
    base_url: str
    capabilities: SourceCapabilities
    user_agent: str | None = None

    def __init__(
        self,
        settings: Settings | None = None,
        config_backend: ConfigBackend | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        language_resolver: Callable[[], str] | None = None,
    ):
        """Initialize the source.

        Args:
            settings: Settings to use (defaults to `get_settings()`)
            config_backend: Storage for user-supplied keys
            transport: httpx transport override (tests use `httpx.MockTransport`)
            language_resolver: Returns the current language code
        """
        self.settings = settings or get_settings()
        self.config = SourceConfigStore(self.id, config_backend)
        self.credentials: CredentialResolver | None = None
        self.timeout = self.settings.request_timeout
        self.call_timeout = self.settings.call_timeout
        self._transport = transport
        self._language_resolver = language_resolver or current_language_code
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> WeatherProvider:
        """Enter async context manager."""
        self._get_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager."""
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _get_default_headers(self) -> dict[str, str]:
        """Get default headers for requests."""
        return {
            "User-Agent": self.user_agent or self.settings.user_agent,
            "Accept": "application/json",
        }

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        reraise=True,
    )
    async def _fetch(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        method: str = "GET",
        json: Any = None,
    ) -> httpx.Response:
        """Fetch data from the API with retry logic.

        Args:
            url: Full URL to fetch
            params: Query parameters
            headers: Additional headers
            method: HTTP method
            json: JSON body (POST requests)

        Returns:
            HTTP response

        Raises:
            ProviderError: If the API answers with an error status
            RateLimitError: If rate limit is exceeded
        """
        client = self._get_client()
        request_headers = self._get_default_headers()
        if headers:
            request_headers.update(headers)

        response = await client.request(
            method, url, params=params, headers=request_headers, json=json
        )

        # Handle rate limiting
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                self.id,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                status_code=429,
            )

        if response.status_code >= 400:
            raise ProviderError(
                f"API request failed: {response.status_code}",
                provider=self.id,
                status_code=response.status_code,
                response_body=response.text,
            )

        return response

    async def _get_json(self, url: str, **kwargs: Any) -> Any:
        """Fetch a URL and decode its JSON body."""
        response = await self._fetch(url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                f"Failed to parse response: {e}",
                provider=self.id,
                status_code=response.status_code,
                response_body=response.text,
            ) from e

    async def _fetch_model(self, model: type[ModelT], url: str, **kwargs: Any) -> ModelT:
        """Fetch a URL and decode it into a payload model."""
        data = await self._get_json(url, **kwargs)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise ProviderError(
                f"Unexpected {model.__name__} payload: {e.error_count()} errors",
                provider=self.id,
            ) from e

    # -------------------------------------------------------------------------
    # Capabilities
    # -------------------------------------------------------------------------

    @property
    def is_configured(self) -> bool:
        """Check if every credential the source needs is available."""
        if self.credentials is None:
            return True
        return self.credentials.is_configured

    def is_feature_supported(
        self,
        location: Location,
        feature: SourceFeature,
        role: SourceRole = SourceRole.SECONDARY,
    ) -> bool:
        """Check if the source can serve a feature at a location at all."""
        if feature in self.capabilities.credential_required_for and not self.is_configured:
            return False
        return self.capabilities.is_feature_supported(location, feature, role)

    # -------------------------------------------------------------------------
    # Request cycle
    # -------------------------------------------------------------------------

    @abstractmethod
    def build_calls(self, location: Location, context: RequestContext) -> list[FeatureCall]:
        """Declare every endpoint call this source can make for a cycle.

        Calls are not awaited here; the engine decides which ones run.
        """
        pass

    @abstractmethod
    def convert(self, location: Location, results: CycleResults) -> WeatherResult:
        """Translate call payloads to canonical format.

        Must be pure and must accept sentinel payloads. Fields of features
        that were not requested or failed stay `None`.
        """
        pass

    def _token(self) -> str | None:
        return self.credentials.resolve_token() if self.credentials else None

    def _check_credentials(self, features: frozenset[SourceFeature]) -> None:
        needed = features & self.capabilities.credential_required_for
        if needed and not self.is_configured:
            raise ConfigurationError(
                f"API key required for {', '.join(sorted(f.value for f in needed))}",
                provider=self.id,
            )

    async def _run(self, location: Location, request: FeatureRequest) -> WeatherResult:
        included = included_features(location, request, self.capabilities)
        self._check_credentials(included)

        context = RequestContext(
            role=request.role,
            language=self._language_resolver(),
            token=self._token(),
        )
        logger.info(
            f"[{self.id}] {request.role.value} cycle for {location}: "
            f"{sorted(f.value for f in included)}"
        )
        results = await run_cycle(
            self.build_calls(location, context),
            location,
            request,
            self.capabilities,
            timeout=self.call_timeout,
            source_id=self.id,
        )
        result = self.convert(location, results)
        if result.failed_features:
            logger.info(
                f"[{self.id}] cycle finished with failed features: "
                f"{[f.value for f in result.failed_features]}"
            )
        return result

    async def request_weather(
        self,
        location: Location,
        ignored_features: Iterable[SourceFeature] = (),
    ) -> WeatherResult:
        """Fetch everything this source supports, minus ignored features.

        Raises:
            ConfigurationError: If a wanted feature needs a missing credential
        """
        return await self._run(location, FeatureRequest.ignore(ignored_features))

    async def request_secondary_weather(
        self,
        location: Location,
        requested_features: Iterable[SourceFeature],
    ) -> WeatherResult:
        """Fetch only the requested features, to supplement another source.

        Raises:
            UnsupportedFeatureError: If a requested feature cannot be served
                at this location
            ConfigurationError: If a requested feature needs a missing credential
        """
        request = FeatureRequest.include(requested_features)
        unsupported = [
            feature
            for feature in SourceFeature
            if feature in request.features
            and not self.capabilities.is_feature_supported(location, feature, SourceRole.SECONDARY)
        ]
        if unsupported:
            raise UnsupportedFeatureError(self.id, unsupported)
        return await self._run(location, request)

    async def request_reverse_geocoding(self, location: Location) -> list[Location]:
        """Resolve administrative metadata for a location."""
        raise LocationSearchError(
            f"{self.name} does not support reverse geocoding",
            provider=self.id,
        )

    async def request_location_search(self, query: str) -> list[Location]:
        """Search locations by name."""
        raise LocationSearchError(
            f"{self.name} does not support location search",
            provider=self.id,
        )

    # -------------------------------------------------------------------------
    # Converter helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def when_available(
        results: CycleResults,
        feature: SourceFeature,
        build: Callable[[], T],
    ) -> T | None:
        """Build a canonical field only if its feature was fetched successfully."""
        if not results.is_available(feature):
            return None
        return build()
