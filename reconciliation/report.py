"""
Application report generation for one request.

Runs the reconciliation pipeline end to end: decode agent payloads, map
them to application records, drop noise, resolve canonical names, compose
facet filters, then build the version distribution and the missing-device
roster.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from common.config import Config, config as default_config
from common.logging import get_logger
from reconciliation.cache import ReportCache, dataset_fingerprint
from reconciliation.canonical import CanonicalNameResolver
from reconciliation.decoder import collect_markers, decode_deep
from reconciliation.distribution import build_distribution, distribution_to_dict, summarize
from reconciliation.facets import FacetSelection, apply_pins, base_view, filter_counts, filter_options
from reconciliation.mapping import build_records, build_roster, is_device_payload
from reconciliation.models import ApplicationRecord, DeviceRosterEntry, VersionDistribution
from reconciliation.noise import NoiseFilter
from reconciliation.roster import missing_devices, possessing_serials

logger = get_logger(__name__)


@dataclass
class ApplicationReport:
    """Everything the presentation layer needs for one report."""

    selection: FacetSelection
    records: List[ApplicationRecord]
    distribution: VersionDistribution
    missing: List[DeviceRosterEntry]
    filter_options: Dict[str, List[str]]
    filter_counts: Dict[str, int]
    stats: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selection": self.selection.to_dict(),
            "records": [record.to_dict() for record in self.records],
            "distribution": distribution_to_dict(self.distribution),
            "summary": summarize(self.distribution),
            "missing": [entry.to_dict() for entry in self.missing],
            "filter_options": self.filter_options,
            "filter_counts": self.filter_counts,
            "stats": self.stats,
        }


class ApplicationReportBuilder:
    """Build application reports from raw inventory payloads"""

    def __init__(
        self,
        settings: Optional[Config] = None,
        cache: Optional[ReportCache] = None,
        resolver: Optional[CanonicalNameResolver] = None,
        noise_filter: Optional[NoiseFilter] = None,
    ):
        self.settings = settings or default_config
        self.cache = cache
        self.resolver = resolver or CanonicalNameResolver()
        self.noise_filter = noise_filter or NoiseFilter()

    def build(
        self,
        devices: Sequence[Dict[str, Any]],
        selection: FacetSelection,
        roster: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> ApplicationReport:
        """
        Build a report from raw device payloads or flat application rows

        Args:
            devices: Device payloads (with modules) or flattened application rows
            selection: Facet selection for this request
            roster: Roster rows; defaults to the devices themselves. Flat
                rows without facets take them from their roster entry.

        Returns:
            ApplicationReport
        """
        assert isinstance(devices, (list, tuple)), "devices must be a list of payload dicts"

        cache_key = None
        if self.cache is not None:
            fingerprint = dataset_fingerprint(devices, roster)
            cache_key = ReportCache.make_key(selection.to_dict(), fingerprint)
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Serving application report from cache", key=cache_key)
                return cached

        settings = self.settings.reconciliation
        passthrough = settings.decode_passthrough_keys
        decoded = [decode_deep(device, passthrough) for device in devices]
        degraded = sum(1 for _ in collect_markers(decoded))

        if roster is None:
            roster_entries = build_roster((item for item in decoded if is_device_payload(item)), settings)
        else:
            roster_entries = build_roster(decode_deep(list(roster), passthrough), settings)
        roster_index = {entry.serial: entry for entry in roster_entries}
        records = build_records(decoded, self.resolver.canonicalize, settings, roster_index)

        report = self.build_from_records(records, roster_entries, selection, decode_degraded=degraded)

        if self.cache is not None:
            self.cache.put(cache_key, report)
        return report

    def classify(self, records: Iterable[ApplicationRecord]) -> Dict[str, Any]:
        """
        Drop noise, empty canonical names and duplicate observations

        Duplicates are records for the same device, canonical name and version.
        """
        unknown = self.settings.reconciliation.unknown_version_label
        kept: List[ApplicationRecord] = []
        seen = set()
        stats = {"records_in": 0, "noise_excluded": 0, "canonical_empty": 0, "duplicates_removed": 0}

        for record in records:
            stats["records_in"] += 1
            if self.noise_filter.is_noise(record.raw_name):
                stats["noise_excluded"] += 1
                continue
            if not record.canonical_name:
                stats["canonical_empty"] += 1
                continue
            identity = (record.device_serial, record.canonical_name, record.version or unknown)
            if identity in seen:
                stats["duplicates_removed"] += 1
                continue
            seen.add(identity)
            kept.append(record)

        return {"records": kept, "stats": stats}

    def build_from_records(
        self,
        records: Iterable[ApplicationRecord],
        roster: Iterable[DeviceRosterEntry],
        selection: FacetSelection,
        decode_degraded: int = 0,
    ) -> ApplicationReport:
        """Build a report from already-mapped records and roster entries"""
        settings = self.settings.reconciliation
        roster = list(roster)

        classified = self.classify(records)
        clean = classified["records"]
        stats = classified["stats"]

        base = base_view(clean, selection)
        display = apply_pins(base, selection, settings.unknown_version_label)
        distribution = build_distribution(base, settings.unknown_version_label)

        possessing = possessing_serials(clean, selection)
        missing = missing_devices(roster, possessing, selection, settings.missing_sort_key)

        stats.update({
            "decode_degraded": decode_degraded,
            "base_view": len(base),
            "display_view": len(display),
            "applications": len(distribution),
            "roster": len(roster),
            "possessing_devices": len(possessing),
            "missing_devices": len(missing),
        })
        logger.info("Application report built", selection=selection.to_dict(), **stats)

        return ApplicationReport(
            selection=selection,
            records=display,
            distribution=distribution,
            missing=missing,
            filter_options=filter_options(clean, roster),
            filter_counts=filter_counts(clean),
            stats=stats,
        )
