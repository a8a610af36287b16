#!/usr/bin/env python3
"""
CLI tool for fleet application reports.

Reads inventory exported from the upstream API (device payloads or
flattened application rows) and prints application summaries, version
distributions, missing-device lists or the filtered records.
"""

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from tabulate import tabulate

# Add the project root to the Python path
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from common.config import config
from common.logging import setup_logging, get_logger
from reconciliation.distribution import summarize
from reconciliation.facets import FacetSelection
from reconciliation.report import ApplicationReport, ApplicationReportBuilder

logger = get_logger(__name__)

COMMANDS = ('summary', 'versions', 'missing', 'records', 'options')


def load_items(path: str, key: str) -> List[Dict[str, Any]]:
    """
    Load a JSON list from a file.

    Accepts a bare list or an object wrapping the list under ``key``
    (the upstream API returns ``{"devices": [...], "total": N}``).

    Args:
        path: JSON file path
        key: Wrapper key to look for

    Returns:
        List of dicts

    Raises:
        ValueError: If the file does not contain a list
    """
    with open(path, 'r', encoding='utf-8') as handle:
        data = json.load(handle)

    if isinstance(data, dict) and isinstance(data.get(key), list):
        data = data[key]
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list or an object with a '{key}' list")
    return data


def selection_from_args(args: argparse.Namespace) -> FacetSelection:
    """Build a facet selection from parsed arguments."""
    return FacetSelection.create(
        usages=args.usage,
        catalogs=args.catalog,
        locations=args.location,
        rooms=args.room,
        fleets=args.fleet,
        platforms=args.platform,
        applications=args.application,
        search=args.search,
        version_pins=args.pin,
    )


def format_summary(report: ApplicationReport, top: Optional[int] = None) -> str:
    rows = summarize(report.distribution, top=top)
    if not rows:
        return "No applications found."
    table = [
        [row['application'], row['installs'], row['devices'], row['versions'], row['top_version']]
        for row in rows
    ]
    headers = ['application', 'installs', 'devices', 'versions', 'top_version']
    return tabulate(table, headers=headers, tablefmt='grid')


def format_versions(report: ApplicationReport) -> str:
    if not report.distribution:
        return "No applications found."
    table = []
    for name in sorted(report.distribution):
        versions = report.distribution[name]
        for version in sorted(versions, key=lambda v: (-versions[v].count, v)):
            bucket = versions[version]
            table.append([name, version, bucket.count, ', '.join(d.name or d.serial for d in bucket.devices)])
    return tabulate(table, headers=['application', 'version', 'count', 'devices'], tablefmt='grid')


def format_missing(report: ApplicationReport) -> str:
    if not report.missing:
        return "No missing devices."
    table = [
        [entry.serial, entry.display_name, entry.facets.catalog, entry.facets.location, entry.last_seen or '']
        for entry in report.missing
    ]
    return tabulate(table, headers=['serial', 'name', 'catalog', 'location', 'last_seen'], tablefmt='grid')


def format_records(report: ApplicationReport) -> str:
    if not report.records:
        return "No records found."
    table = [
        [r.device_serial, r.device_name, r.canonical_name, r.raw_name, r.version, r.vendor]
        for r in report.records
    ]
    headers = ['serial', 'device', 'application', 'raw_name', 'version', 'vendor']
    return tabulate(table, headers=headers, tablefmt='grid')


def format_options(report: ApplicationReport) -> str:
    table = [[facet, len(values), ', '.join(values[:10])] for facet, values in report.filter_options.items()]
    return tabulate(table, headers=['facet', 'values', 'first values'], tablefmt='grid')


def render(report: ApplicationReport, command: str, top: Optional[int] = None) -> str:
    """Render one view of a report as a table."""
    if command == 'summary':
        return format_summary(report, top)
    if command == 'versions':
        return format_versions(report)
    if command == 'missing':
        return format_missing(report)
    if command == 'records':
        return format_records(report)
    if command == 'options':
        return format_options(report)
    raise ValueError(f"Unknown command: {command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Fleet application inventory reports',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s summary --devices devices.json
  %(prog)s versions --devices devices.json --application "Google Chrome"
  %(prog)s missing --devices devices.json --application "Google Chrome" --catalog staff
  %(prog)s records --devices apps.json --roster roster.json --pin "Google Chrome:119.0.1"
        """
    )
    parser.add_argument('command', nargs='?', default='summary', choices=COMMANDS, help='Report view')
    parser.add_argument('--devices', required=True, help='JSON file with device payloads or application rows')
    parser.add_argument('--roster', help='JSON file with the device roster (defaults to --devices)')

    parser.add_argument('--usage', action='append', default=[], help='Usage facet (repeatable)')
    parser.add_argument('--catalog', action='append', default=[], help='Catalog facet (repeatable)')
    parser.add_argument('--location', action='append', default=[], help='Location facet (repeatable)')
    parser.add_argument('--room', action='append', default=[], help='Room facet (repeatable)')
    parser.add_argument('--fleet', action='append', default=[], help='Fleet facet (repeatable)')
    parser.add_argument('--platform', action='append', default=[], help='Platform facet (repeatable)')
    parser.add_argument('--application', action='append', default=[], help='Canonical application name (repeatable)')
    parser.add_argument('--pin', action='append', default=[], help='Version pin, "Name:version" or "version"')
    parser.add_argument('--search', default='', help='Free-text search over name, device and vendor')

    parser.add_argument('--top', type=int, help='Limit summary rows')
    parser.add_argument('--json', action='store_true', help='Print the full report as JSON')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    setup_logging()

    try:
        config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    try:
        devices = load_items(args.devices, 'devices')
        roster = load_items(args.roster, 'devices') if args.roster else None

        builder = ApplicationReportBuilder()
        report = builder.build(devices, selection_from_args(args), roster=roster)

        if args.json:
            print(json.dumps(report.to_dict(), indent=2, default=str))
        else:
            print(render(report, args.command, args.top))
        return 0

    except (OSError, ValueError) as e:
        logger.error(f"Report failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
