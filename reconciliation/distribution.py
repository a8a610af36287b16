"""
Version distribution per canonical application.

Groups the base view by canonical name, then by raw version string. A
device reporting the same application at two versions (a scan taken
mid-upgrade) is counted in both buckets, so bucket totals are a device
subscription count; ``device_population`` gives the distinct device count
alongside.
"""

from typing import Any, Dict, Iterable, List, Optional

from reconciliation.facets import UNKNOWN_VERSION
from reconciliation.models import ApplicationRecord, DeviceRef, VersionBucket, VersionDistribution


def _device_ref(record: ApplicationRecord) -> DeviceRef:
    return DeviceRef(
        serial=record.device_serial,
        name=record.device_name,
        location=record.facets.location,
        catalog=record.facets.catalog,
        last_seen=record.last_seen or record.collected_at,
    )


def build_distribution(
    base_view: Iterable[ApplicationRecord],
    unknown_label: str = UNKNOWN_VERSION,
) -> VersionDistribution:
    """
    Build the version distribution for a base view.

    Args:
        base_view: Facet-filtered records (without version pins)
        unknown_label: Label used for records with no version

    Returns:
        dict: canonical name -> version -> VersionBucket
    """
    distribution: VersionDistribution = {}
    seen = set()

    for record in base_view:
        name = record.canonical_name
        if not name:
            continue

        version = record.version or unknown_label
        key = (name, version, record.device_serial)
        if key in seen:
            continue
        seen.add(key)

        bucket = distribution.setdefault(name, {}).setdefault(version, VersionBucket())
        bucket.count += 1
        bucket.devices.append(_device_ref(record))

    return distribution


def device_population(distribution: VersionDistribution, name: str) -> int:
    """Distinct devices reporting name at any version."""
    serials = set()
    for bucket in distribution.get(name, {}).values():
        serials.update(device.serial for device in bucket.devices)
    return len(serials)


def summarize(distribution: VersionDistribution, top: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Summarize a distribution into one row per application.

    Rows are ordered by installation count (descending), then name.
    """
    rows = []
    for name, versions in distribution.items():
        installs = sum(bucket.count for bucket in versions.values())
        top_version = max(versions.items(), key=lambda item: (item[1].count, item[0]))[0]
        rows.append({
            "application": name,
            "installs": installs,
            "devices": device_population(distribution, name),
            "versions": len(versions),
            "top_version": top_version,
        })
    rows.sort(key=lambda row: (-row["installs"], row["application"]))
    return rows[:top] if top else rows


def distribution_to_dict(distribution: VersionDistribution) -> Dict[str, Dict[str, Any]]:
    """Convert a distribution to plain nested dicts for JSON output."""
    return {
        name: {version: bucket.to_dict() for version, bucket in sorted(versions.items())}
        for name, versions in sorted(distribution.items())
    }
