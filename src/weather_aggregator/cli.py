"""Command-line interface for the weather aggregator."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import httpx
from pydantic import TypeAdapter

from weather_aggregator.aggregator import (
    UnknownSourceError,
    WeatherAggregator,
    build_default_aggregator,
)
from weather_aggregator.config import get_settings
from weather_aggregator.models.location import Location
from weather_aggregator.models.source import SourceFeature
from weather_aggregator.providers.base import ProviderError

logger = logging.getLogger(__name__)

_locations = TypeAdapter(list[Location])


def _feature(value: str) -> SourceFeature:
    try:
        return SourceFeature(value.lower())
    except ValueError:
        choices = ", ".join(f.value for f in SourceFeature)
        raise argparse.ArgumentTypeError(f"invalid feature '{value}' (choose from {choices})")


def _location(args: argparse.Namespace) -> Location:
    return Location.from_string(
        args.location,
        country_code=getattr(args, "country", None),
        admin2_code=getattr(args, "admin2_code", None),
    )


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="weather-aggregator",
        description="Weather Aggregator - Fetch and normalize weather from national weather services",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {settings.app_version}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def add_location_arguments(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("source", help="Source id (see 'sources')")
        sub.add_argument("location", help="Location as lat,lon coordinates")
        sub.add_argument("--country", help="ISO 3166-1 alpha-2 country code")
        sub.add_argument("--admin2-code", help="Second-level administrative code")

    # Weather command
    weather_parser = subparsers.add_parser(
        "weather", help="Fetch weather from a source acting as main source"
    )
    add_location_arguments(weather_parser)
    weather_parser.add_argument(
        "--ignore",
        nargs="+",
        type=_feature,
        default=[],
        metavar="FEATURE",
        help="Features not to fetch",
    )

    # Secondary command
    secondary_parser = subparsers.add_parser(
        "secondary", help="Fetch some features from a source supplementing another one"
    )
    add_location_arguments(secondary_parser)
    secondary_parser.add_argument(
        "--feature",
        nargs="+",
        type=_feature,
        required=True,
        metavar="FEATURE",
        help="Features to fetch",
    )

    # Geocode command
    geocode_parser = subparsers.add_parser(
        "geocode", help="Resolve administrative metadata of a location"
    )
    add_location_arguments(geocode_parser)

    # Search command
    search_parser = subparsers.add_parser("search", help="Search locations by name")
    search_parser.add_argument("source", help="Source id (see 'sources')")
    search_parser.add_argument("query", help="Place name")

    # Sources command
    subparsers.add_parser("sources", help="List available sources")

    return parser


async def run(args: argparse.Namespace, aggregator: WeatherAggregator) -> str:
    """Run one command and return its JSON output."""
    async with aggregator:
        if args.command == "sources":
            return _sources_json(aggregator)
        if args.command == "search":
            locations = await aggregator.request_location_search(args.source, args.query)
            return _locations.dump_json(locations, indent=2).decode()

        location = _location(args)
        if args.command == "weather":
            result = await aggregator.request_weather(args.source, location, args.ignore)
        elif args.command == "secondary":
            result = await aggregator.request_secondary_weather(
                args.source, location, args.feature
            )
        else:
            locations = await aggregator.request_reverse_geocoding(args.source, location)
            return _locations.dump_json(locations, indent=2).decode()
        return result.model_dump_json(indent=2, exclude_none=True)


def _sources_json(aggregator: WeatherAggregator) -> str:
    rows = []
    for source_id in aggregator.source_ids:
        provider = aggregator.get(source_id)
        capabilities = provider.capabilities
        rows.append({
            "id": provider.id,
            "name": provider.name,
            "configured": provider.is_configured,
            "main": sorted(f.value for f in capabilities.main),
            "secondary": sorted(f.value for f in capabilities.secondary),
        })
    return TypeAdapter(list[dict]).dump_json(rows, indent=2).decode()


def main(argv: list[str] | None = None, aggregator: WeatherAggregator | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    try:
        output = asyncio.run(run(args, aggregator or build_default_aggregator()))
    except (ProviderError, UnknownSourceError, ValueError, httpx.HTTPError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
