"""Static capability declarations of a weather source.

A source declares which features it can serve as a main source and as a
secondary source, and a location predicate gating each feature (usually by
country code). Both checks apply: a feature missing from the role's set is
never requested, even if the predicate would accept the location.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from weather_aggregator.models.location import Location
from weather_aggregator.models.source import SourceFeature, SourceRole

LocationPredicate = Callable[[Location, SourceFeature, SourceRole], bool]


def _anywhere(location: Location, feature: SourceFeature, role: SourceRole) -> bool:
    return True


def country_predicate(
    *country_codes: str,
    alert_requires_admin2: bool = False,
    main_anywhere: bool = False,
) -> LocationPredicate:
    """Build a predicate restricting features to some countries.

    Args:
        country_codes: Accepted ISO 3166-1 alpha-2 codes (case-insensitive)
        alert_requires_admin2: ALERT also needs `admin2_code` to be set.
            Applies in both roles.
        main_anywhere: As a main source, features other than ALERT are
            accepted everywhere.
    """

    def predicate(location: Location, feature: SourceFeature, role: SourceRole) -> bool:
        if feature == SourceFeature.ALERT and alert_requires_admin2:
            if not location.admin2_code:
                return False
        elif main_anywhere and role == SourceRole.MAIN:
            return True
        return location.country_code_is(*country_codes)

    return predicate


@dataclass(frozen=True)
class SourceCapabilities:
    """Feature-support matrix of one source.

    Attributes:
        main: Features served when acting as the main source
        secondary: Features served when supplementing another source
        predicate: Location gate, applied on top of the role sets
        credential_required_for: Features that cannot be fetched without a
            configured credential
    """

    main: frozenset[SourceFeature]
    secondary: frozenset[SourceFeature] = frozenset()
    predicate: LocationPredicate = _anywhere
    credential_required_for: frozenset[SourceFeature] = field(default_factory=frozenset)

    def supported_features(self, role: SourceRole) -> frozenset[SourceFeature]:
        return self.main if role == SourceRole.MAIN else self.secondary

    def is_feature_supported(
        self,
        location: Location,
        feature: SourceFeature,
        role: SourceRole,
    ) -> bool:
        """Check if the source can serve a feature at a location at all."""
        if feature not in self.supported_features(role):
            return False
        return self.predicate(location, feature, role)

    def supports_location(self, location: Location, role: SourceRole) -> bool:
        """Check if at least one feature is served at this location."""
        return any(
            self.predicate(location, feature, role)
            for feature in self.supported_features(role)
        )
