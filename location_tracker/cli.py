"""
Command line client for Location Tracker.

Usage:
  - Locate this machine by IP (through the API):   location-tracker ip
  - Locate a given IP:                              location-tracker ip 8.8.8.8
  - Resolve from known coordinates:                 location-tracker gps --lat 37.77 --lon -122.41
  - Skip the API and query providers in-process:    location-tracker --direct ip

Missing city/region/country are printed as "Unknown".
"""

import argparse
import json
import sys
from dataclasses import replace
from typing import List, Optional

from location_tracker.core.logging_config import configure_logging
from location_tracker.core.settings import ResolverConfig, settings
from location_tracker.models.location import LocationResult, ResolveRequest
from location_tracker.services.geolocation import (
    LocationError,
    LocationResolver,
    build_client_resolver,
    build_server_resolver,
)
from location_tracker.services.geolocation.device_gps import ReportedPositionSource


def _resolver(args: argparse.Namespace) -> LocationResolver:
    config = ResolverConfig.from_settings(settings)
    if args.api:
        config = replace(config, api_base_url=args.api.rstrip("/"))
    if args.direct:
        return build_server_resolver(config)
    return build_client_resolver(config)


def render(result: LocationResult) -> str:
    payload = {
        "source": result.record.source.value,
        "service": result.record.service_used,
        "status": result.status.value,
        "note": result.note,
        "data": result.record.display_fields(),
    }
    return json.dumps(payload, indent=2)


def cmd_ip(args: argparse.Namespace) -> LocationResult:
    return _resolver(args).resolve_ip_first(args.address)


def cmd_gps(args: argparse.Namespace) -> LocationResult:
    if (args.lat is None) != (args.lon is None):
        raise SystemExit("--lat and --lon must be given together")
    source = ReportedPositionSource.from_request(
        ResolveRequest(latitude=args.lat, longitude=args.lon, accuracy=args.accuracy, ip=args.ip)
    )
    return _resolver(args).resolve_gps_first(ip=args.ip, position_source=source)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="location-tracker", description=__doc__.splitlines()[1])
    parser.add_argument("--direct", action="store_true", help="Query providers in-process instead of the API")
    parser.add_argument("--api", help=f"API base URL (default: {settings.API_BASE_URL})")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    sub = parser.add_subparsers(dest="command", required=True)

    ip_parser = sub.add_parser("ip", help="Resolve location by IP address")
    ip_parser.add_argument("address", nargs="?", help="IP to look up (default: this machine)")
    ip_parser.set_defaults(func=cmd_ip)

    gps_parser = sub.add_parser("gps", help="Resolve location from coordinates, falling back to IP")
    gps_parser.add_argument("--lat", type=float)
    gps_parser.add_argument("--lon", type=float)
    gps_parser.add_argument("--accuracy", type=float, help="Accuracy in meters")
    gps_parser.add_argument("--ip", help="IP to use if the position is unusable")
    gps_parser.set_defaults(func=cmd_gps)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    try:
        result = args.func(args)
    except LocationError as e:
        print(f"Location unavailable: {e.message}", file=sys.stderr)
        return 1
    print(render(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
