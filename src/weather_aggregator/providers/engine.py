"""Fan-out / join engine shared by every weather source.

One request cycle goes through three steps:

1. **Plan**: each `FeatureCall` the source declares is kept only if one of
   its owning features is supported for the role, passes the location
   predicate, and is wanted by the `FeatureRequest`. Calls that are not kept
   get their sentinel payload immediately, without I/O.
2. **Fan out**: every kept call runs as its own task in an
   `asyncio.TaskGroup`, under its own timeout. A failing call never raises:
   it reports a `CallOutcome` carrying the sentinel payload and the error.
3. **Join**: once the task group exits (every task has reported), a single
   consumer folds the outcomes into `CycleResults`, including the list of
   failed features.

There is no shared mutable state between tasks: each task returns its own
outcome, and the failed-feature list is built after the barrier. If the
caller cancels the cycle, the task group cancels every in-flight call and
nothing is delivered.

## Failure semantics

- A feature appears at most once in `failed_features`, even when several of
  its sub-calls failed (e.g. one alert subtype out of six).
- When any sub-call of a feature fails, the whole feature is marked failed.
  Converters drop the data of failed features altogether.
- Calls created with `report_failure=False` (auxiliary data such as sun and
  moon times) fall back to their sentinel silently.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterator, Mapping

from weather_aggregator.models.location import Location
from weather_aggregator.models.source import FeatureRequest, SourceFeature
from weather_aggregator.providers.capabilities import SourceCapabilities

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureCall:
    """One endpoint call belonging to a request cycle.

    Attributes:
        key: Unique name of the call within the cycle (e.g. "warning_typhoon")
        features: Features owning this call; dispatched if any is wanted
        fetch: Zero-argument coroutine factory performing the call
        sentinel: Zero-argument factory for the empty payload
        report_failure: Record failures in `failed_features`
    """

    key: str
    features: tuple[SourceFeature, ...]
    fetch: Callable[[], Awaitable[Any]]
    sentinel: Callable[[], Any]
    report_failure: bool = True


@dataclass(frozen=True)
class CallOutcome:
    """What one call reported back to the join step."""

    key: str
    features: tuple[SourceFeature, ...]
    payload: Any
    error: BaseException | None = None
    dispatched: bool = True
    report_failure: bool = True

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class CycleResults(Mapping[str, Any]):
    """Payloads of one request cycle, keyed by call key.

    Every declared call has an entry: the decoded payload, or its sentinel
    when the call was skipped or failed.
    """

    payloads: Mapping[str, Any]
    requested: frozenset[SourceFeature]
    failed_features: tuple[SourceFeature, ...] = ()
    outcomes: tuple[CallOutcome, ...] = field(default=(), repr=False)

    def __getitem__(self, key: str) -> Any:
        return self.payloads[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.payloads)

    def __len__(self) -> int:
        return len(self.payloads)

    def is_available(self, feature: SourceFeature) -> bool:
        """Check if a feature was requested and did not fail."""
        return feature in self.requested and feature not in self.failed_features

    @property
    def dispatched_keys(self) -> tuple[str, ...]:
        return tuple(o.key for o in self.outcomes if o.dispatched)


def included_features(
    location: Location,
    request: FeatureRequest,
    capabilities: SourceCapabilities,
) -> frozenset[SourceFeature]:
    """Features that will actually be fetched for this request."""
    return frozenset(
        feature
        for feature in capabilities.supported_features(request.role)
        if request.wants(feature)
        and capabilities.is_feature_supported(location, feature, request.role)
    )


def plan_calls(
    calls: list[FeatureCall],
    included: frozenset[SourceFeature],
) -> tuple[list[FeatureCall], list[FeatureCall]]:
    """Split calls into (dispatched, synthesized)."""
    keys = [call.key for call in calls]
    if len(keys) != len(set(keys)):
        raise ValueError(f"Duplicate call keys: {keys}")

    dispatched: list[FeatureCall] = []
    synthesized: list[FeatureCall] = []
    for call in calls:
        if any(feature in included for feature in call.features):
            dispatched.append(call)
        else:
            synthesized.append(call)
    return dispatched, synthesized


async def _run_call(
    call: FeatureCall,
    timeout: float | None,
    source_id: str,
) -> CallOutcome:
    """Run one call and turn any failure into a sentinel outcome."""
    try:
        async with asyncio.timeout(timeout):
            payload = await call.fetch()
    except Exception as e:
        if call.report_failure:
            logger.warning(
                f"[{source_id}] call '{call.key}' failed "
                f"({', '.join(f.value for f in call.features)}): {e!r}"
            )
        else:
            logger.debug(f"[{source_id}] auxiliary call '{call.key}' failed: {e!r}")
        return CallOutcome(
            key=call.key,
            features=call.features,
            payload=call.sentinel(),
            error=e,
            report_failure=call.report_failure,
        )
    return CallOutcome(key=call.key, features=call.features, payload=payload)


def collect(
    outcomes: list[CallOutcome],
    included: frozenset[SourceFeature],
) -> CycleResults:
    """Fold call outcomes into cycle results (single consumer)."""
    failed: list[SourceFeature] = []
    for outcome in outcomes:
        if not (outcome.failed and outcome.dispatched and outcome.report_failure):
            continue
        for feature in outcome.features:
            if feature in included and feature not in failed:
                failed.append(feature)

    return CycleResults(
        payloads={o.key: o.payload for o in outcomes},
        requested=included,
        failed_features=tuple(failed),
        outcomes=tuple(outcomes),
    )


async def run_cycle(
    calls: list[FeatureCall],
    location: Location,
    request: FeatureRequest,
    capabilities: SourceCapabilities,
    timeout: float | None = None,
    source_id: str = "source",
) -> CycleResults:
    """Plan, fan out and join the calls of one request cycle.

    Args:
        calls: Every call the source can make for this cycle
        location: Location being requested
        request: Ignore-list (main) or include-list (secondary) request
        capabilities: Feature-support matrix of the source
        timeout: Per-call timeout in seconds (None for no limit)
        source_id: Used in log messages

    Returns:
        Results with one payload per declared call
    """
    included = included_features(location, request, capabilities)
    dispatched, synthesized = plan_calls(calls, included)

    synthesized_outcomes = {
        call.key: CallOutcome(
            key=call.key,
            features=call.features,
            payload=call.sentinel(),
            dispatched=False,
        )
        for call in synthesized
    }

    tasks: dict[str, asyncio.Task[CallOutcome]] = {}
    async with asyncio.TaskGroup() as group:
        for call in dispatched:
            tasks[call.key] = group.create_task(_run_call(call, timeout, source_id))

    # Barrier passed: every dispatched task has reported.
    outcomes = [
        tasks[call.key].result() if call.key in tasks else synthesized_outcomes[call.key]
        for call in calls
    ]
    results = collect(outcomes, included)
    logger.debug(
        f"[{source_id}] cycle done: {len(dispatched)} dispatched, "
        f"{len(synthesized)} synthesized, failed={[f.value for f in results.failed_features]}"
    )
    return results
