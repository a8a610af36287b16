"""
Data models for the inventory reconciliation pipeline.

These are the canonical, per-request representations of installed
applications and devices. Every model is frozen: records are built once
from an API response and discarded when the report has been produced.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class UnparsedArrayMarker:
    """
    Placeholder for a typed array value the decoder does not reconstruct.

    The original text is kept so reports can flag the degradation instead
    of silently dropping the value.
    """

    raw: str

    def to_dict(self) -> Dict[str, Any]:
        return {"unparsed_array": True, "raw": self.raw}


@dataclass(frozen=True)
class DeviceFacets:
    """Inventory facet tags shared by a device and its applications."""

    usage: str = ""
    catalog: str = ""
    location: str = ""
    room: str = ""
    fleet: str = ""
    platform: str = ""

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class ApplicationRecord:
    """
    One observed installation of software on one device.

    ``canonical_name`` is derived by the resolver; an empty string means
    the record is excluded from reporting. ``version`` stays raw.
    """

    device_serial: str
    device_name: str
    raw_name: str
    canonical_name: str = ""
    version: str = ""
    vendor: str = ""
    facets: DeviceFacets = field(default_factory=DeviceFacets)
    collected_at: Optional[str] = None

    # Drill-down metadata carried through from the agent payload
    device_id: str = ""
    last_seen: Optional[str] = None
    category: str = ""
    architecture: str = ""
    install_date: Optional[str] = None
    size: Optional[Any] = None
    path: Optional[str] = None
    raw: Optional[Dict[str, Any]] = field(default=None, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_serial": self.device_serial,
            "device_name": self.device_name,
            "device_id": self.device_id,
            "raw_name": self.raw_name,
            "canonical_name": self.canonical_name,
            "version": self.version,
            "vendor": self.vendor,
            "category": self.category,
            "architecture": self.architecture,
            "install_date": self.install_date,
            "size": self.size,
            "path": self.path,
            "collected_at": self.collected_at,
            "last_seen": self.last_seen,
            "facets": self.facets.to_dict(),
        }


@dataclass(frozen=True)
class DeviceRosterEntry:
    """A device's identity and facets, independent of installed software."""

    serial: str
    display_name: str = ""
    facets: DeviceFacets = field(default_factory=DeviceFacets)
    last_seen: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "serial": self.serial,
            "display_name": self.display_name,
            "last_seen": self.last_seen,
            "facets": self.facets.to_dict(),
        }


@dataclass(frozen=True)
class DeviceRef:
    """Device metadata kept per version bucket for drill-down tables."""

    serial: str
    name: str = ""
    location: str = ""
    catalog: str = ""
    last_seen: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class VersionBucket:
    """Devices reporting one canonical application at one raw version."""

    count: int = 0
    devices: List[DeviceRef] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "devices": [device.to_dict() for device in self.devices],
        }


# Type aliases for clarity
CanonicalName = str
RawVersion = str
VersionDistribution = Dict[CanonicalName, Dict[RawVersion, VersionBucket]]
