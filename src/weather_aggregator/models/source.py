"""Source features, roles and per-cycle feature requests."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Self


class SourceFeature(str, Enum):
    """One independently fetchable category of weather data."""

    FORECAST = "forecast"
    CURRENT = "current"
    MINUTELY = "minutely"
    ALERT = "alert"
    AIR_QUALITY = "air_quality"
    NORMALS = "normals"


class SourceRole(str, Enum):
    """Whether a source is the primary one or fills gaps for another."""

    MAIN = "main"
    SECONDARY = "secondary"


@dataclass(frozen=True)
class FeatureRequest:
    """Which features one request cycle asks for.

    In main mode (`ignore`), every supported feature is wanted except the
    listed ones. In secondary mode (`include`), only the listed features are
    wanted. Either way, the provider's capabilities filter the result again
    before anything is dispatched.
    """

    role: SourceRole
    features: frozenset[SourceFeature]

    @classmethod
    def ignore(cls, features: Iterable[SourceFeature] = ()) -> Self:
        return cls(role=SourceRole.MAIN, features=frozenset(features))

    @classmethod
    def include(cls, features: Iterable[SourceFeature]) -> Self:
        return cls(role=SourceRole.SECONDARY, features=frozenset(features))

    def wants(self, feature: SourceFeature) -> bool:
        if self.role == SourceRole.MAIN:
            return feature not in self.features
        return feature in self.features
