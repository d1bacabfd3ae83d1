"""Location model shared by every weather source."""

from __future__ import annotations

import re
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Regex for parsing lat/long coordinates: "latitude,longitude"
# Supports optional +/- prefix for both values
COORDINATE_PATTERN = re.compile(
    r"^(?P<lat>[-+]?\d*\.?\d+)\s*,\s*(?P<lon>[-+]?\d*\.?\d+)$"
)


class Location(BaseModel):
    """A geographic point plus the administrative metadata sources need.

    Latitude/longitude are WGS84 decimal degrees. The administrative fields
    are optional and provider-specific: `admin2_code` is a French department
    number for Météo-France, `city_id` is a provider-assigned key for China
    Weather, and so on.

    Locations are immutable; use `copy_with()` to derive an enriched copy
    (e.g. after reverse geocoding).
    """

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90, description="Latitude in decimal degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in decimal degrees")

    country_code: str | None = Field(
        default=None, description="ISO 3166-1 alpha-2 country code"
    )
    country: str | None = Field(default=None, description="Country display name")
    admin1: str | None = Field(default=None, description="First-level region name")
    admin1_code: str | None = Field(default=None, description="First-level region code")
    admin2: str | None = Field(default=None, description="Second-level region name")
    admin2_code: str | None = Field(default=None, description="Second-level region code")
    city: str | None = Field(default=None, description="City name")
    district: str | None = Field(default=None, description="District name")
    city_id: str | None = Field(default=None, description="Provider-assigned city key")
    timezone: str | None = Field(
        default=None,
        description="IANA timezone identifier (e.g., 'Europe/Paris')",
    )
    is_current_position: bool = False

    @field_validator("country_code", mode="before")
    @classmethod
    def normalize_country_code(cls, v: str | None) -> str | None:
        """Store country codes upper-cased, and empty strings as missing."""
        if not v:
            return None
        return v.strip().upper()

    @classmethod
    def from_string(cls, value: str, **fields: Any) -> Self:
        """Parse a location from the string format 'latitude,longitude'.

        Examples:
            '48.8566,2.3522' -> Paris
            '-6.2088,106.8456' -> Jakarta
            '+22.1987,113.5439' -> Macao
        """
        match = COORDINATE_PATTERN.match(value.strip())
        if not match:
            raise ValueError(
                f"Invalid coordinate format: '{value}'. "
                "Expected format: 'latitude,longitude' (e.g., '48.8566,2.3522')"
            )
        return cls(
            latitude=float(match.group("lat")),
            longitude=float(match.group("lon")),
            **fields,
        )

    def __str__(self) -> str:
        return f"{self.latitude},{self.longitude}"

    def to_tuple(self) -> tuple[float, float]:
        """Return coordinates as (latitude, longitude) tuple."""
        return (self.latitude, self.longitude)

    def country_code_is(self, *codes: str) -> bool:
        """Case-insensitive check against one or more country codes."""
        if not self.country_code:
            return False
        return self.country_code in {code.upper() for code in codes}

    def has_geocode_information(self) -> bool:
        """Check if the location carries any administrative names."""
        return bool(self.country or self.admin1 or self.admin2 or self.city or self.district)

    def copy_with(self, **changes: Any) -> Self:
        """Return a copy with some fields replaced."""
        return self.model_copy(update=changes)

    def display_name(self) -> str:
        """Get a display name for this location."""
        parts = [p for p in (self.district, self.city, self.admin1) if p]
        if parts:
            return ", ".join(dict.fromkeys(parts))
        return str(self)
