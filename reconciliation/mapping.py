"""Device payload normalization and mapping to application records."""

from typing import Any, Callable, Dict, Iterable, List, Optional

from common.config import ReconciliationConfig, config
from reconciliation.canonical import canonicalize
from reconciliation.decoder import decode
from reconciliation.models import ApplicationRecord, DeviceFacets, DeviceRosterEntry

INSTALLED_APPLICATION_KEYS = (
    "installedApplications",
    "InstalledApplications",
    "installed_applications",
)

FACET_KEYS = ("usage", "catalog", "location", "room", "fleet", "platform", "osPlatform", "os_platform")


def _first(raw: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first non-empty value among keys."""
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return default


def _as_dict(value: Any) -> Dict[str, Any]:
    """Decode an encoded record string and fall back to an empty dict."""
    value = decode(value)
    return value if isinstance(value, dict) else {}


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def is_test_device(serial: Optional[str], settings: Optional[ReconciliationConfig] = None) -> bool:
    """
    Detect devices that must never appear in fleet reports.

    Args:
        serial: Device serial number (can be None)
        settings: Reconciliation settings; defaults to the global config

    Returns:
        bool: True for missing serials, test prefixes and sentinel serials
    """
    if not serial:
        return True
    settings = settings or config.reconciliation
    if serial in settings.excluded_serials:
        return True
    return any(serial.startswith(prefix) for prefix in settings.test_serial_prefixes)


def build_facets(source: Dict[str, Any]) -> DeviceFacets:
    """
    Build facet tags from an inventory module or a flat row.

    Room falls back to location, the way the inventory module reports it.
    """
    location = _text(source.get("location"))
    return DeviceFacets(
        usage=_text(source.get("usage")),
        catalog=_text(source.get("catalog")),
        location=location,
        room=_text(source.get("room")) or location,
        fleet=_text(source.get("fleet")),
        platform=_text(_first(source, "platform", "osPlatform", "os_platform")),
    )


def _device_modules(device: Dict[str, Any]) -> Dict[str, Any]:
    return _as_dict(device.get("modules"))


def has_own_facets(row: Dict[str, Any]) -> bool:
    """Tell whether a row carries any facet field of its own."""
    if isinstance(row.get("facets"), dict):
        return True
    if _as_dict(_device_modules(row).get("inventory")):
        return True
    return any(_text(row.get(key)) for key in FACET_KEYS)


def _facet_source(row: Dict[str, Any]) -> Dict[str, Any]:
    """Pick the dict carrying facet fields for a device or flat row."""
    facets = row.get("facets")
    if isinstance(facets, dict):
        return facets
    inventory = _as_dict(_device_modules(row).get("inventory"))
    if inventory:
        merged = dict(inventory)
        if not merged.get("platform") and row.get("platform"):
            merged["platform"] = row["platform"]
        return merged
    return row


def device_serial(device: Dict[str, Any]) -> str:
    return _text(_first(device, "serialNumber", "serial_number", "serial", "deviceSerial"))


def device_display_name(device: Dict[str, Any]) -> str:
    """Resolve a device's display name from inventory, then identity fields."""
    inventory = _as_dict(_device_modules(device).get("inventory"))
    name = _first(inventory, "deviceName", "computerName") or _first(
        device, "displayName", "display_name", "deviceName", "device_name", "name"
    )
    return _text(name) or device_serial(device) or "Unknown Device"


def extract_installed_applications(applications_module: Any) -> List[Dict[str, Any]]:
    """Return the list of installed application dicts from an applications module."""
    module = _as_dict(applications_module)
    for key in INSTALLED_APPLICATION_KEYS:
        apps = module.get(key)
        if isinstance(apps, list):
            return [app for app in apps if isinstance(app, dict)]
    return []


def _record_from_app(
    app: Dict[str, Any],
    *,
    serial: str,
    device_name: str,
    device_id: str,
    facets: DeviceFacets,
    collected_at: Optional[str],
    last_seen: Optional[str],
    resolve: Callable[[str], str],
) -> ApplicationRecord:
    raw_name = _text(_first(app, "name", "displayName", "rawName", "raw_name"))
    return ApplicationRecord(
        device_serial=serial,
        device_name=device_name,
        raw_name=raw_name,
        canonical_name=resolve(raw_name),
        version=_text(_first(app, "version", "bundle_version", "bundleVersion")),
        vendor=_text(_first(app, "publisher", "signed_by", "vendor")),
        facets=facets,
        collected_at=collected_at,
        device_id=device_id,
        last_seen=last_seen,
        category=_text(_first(app, "category", default="Other")),
        architecture=_text(_first(app, "architecture", default="Unknown")),
        install_date=_first(app, "installDate", "install_date", "last_modified"),
        size=_first(app, "size", "estimatedSize"),
        path=_first(app, "path", "install_location"),
        raw=app,
    )


def build_application_records(
    device: Dict[str, Any],
    resolve: Callable[[str], str] = canonicalize,
) -> List[ApplicationRecord]:
    """
    Flatten one device payload into application records.

    Args:
        device: Decoded device payload with ``modules.applications``
        resolve: Canonical name resolver

    Returns:
        list: One ApplicationRecord per installed application
    """
    serial = device_serial(device)
    modules = _device_modules(device)
    applications = _as_dict(modules.get("applications"))
    last_seen = _first(device, "lastSeen", "last_seen")
    collected_at = _first(applications, "collectedAt", "collected_at") or _first(
        device, "collectedAt", "collected_at", default=last_seen
    )

    common_fields = dict(
        serial=serial,
        device_name=device_display_name(device),
        device_id=_text(_first(device, "deviceId", "device_id", "id")),
        facets=build_facets(_facet_source(device)),
        collected_at=collected_at,
        last_seen=last_seen,
        resolve=resolve,
    )
    return [
        _record_from_app(app, **common_fields)
        for app in extract_installed_applications(applications)
    ]


def application_record_from_row(
    row: Dict[str, Any],
    resolve: Callable[[str], str] = canonicalize,
    roster_entry: Optional[DeviceRosterEntry] = None,
) -> ApplicationRecord:
    """
    Build a record from an already-flattened application row.

    A row without facet fields of its own inherits the facets of its roster
    entry, and the roster display name when the row names no device.
    """
    serial = device_serial(row)
    last_seen = _first(row, "lastSeen", "last_seen")
    if roster_entry is not None and not has_own_facets(row):
        facets = roster_entry.facets
    else:
        facets = build_facets(_facet_source(row))
    device_name = _text(_first(row, "deviceName", "device_name"))
    if not device_name and roster_entry is not None:
        device_name = roster_entry.display_name
    return _record_from_app(
        row,
        serial=serial,
        device_name=device_name or serial,
        device_id=_text(_first(row, "deviceId", "device_id")),
        facets=facets,
        collected_at=_first(row, "collectedAt", "collected_at", default=last_seen),
        last_seen=last_seen,
        resolve=resolve,
    )


def is_device_payload(item: Dict[str, Any]) -> bool:
    """Tell a device payload (with modules) from a flat application row."""
    return isinstance(item, dict) and "modules" in item


def build_records(
    items: Iterable[Dict[str, Any]],
    resolve: Callable[[str], str] = canonicalize,
    settings: Optional[ReconciliationConfig] = None,
    roster_index: Optional[Dict[str, DeviceRosterEntry]] = None,
) -> List[ApplicationRecord]:
    """
    Map device payloads and/or flat application rows to records.

    Test devices are skipped. Flat rows look up their device in
    ``roster_index`` (serial -> roster entry) for facets they lack.
    """
    roster_index = roster_index or {}
    records: List[ApplicationRecord] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        serial = device_serial(item)
        if is_test_device(serial, settings):
            continue
        if is_device_payload(item):
            records.extend(build_application_records(item, resolve))
        else:
            records.append(application_record_from_row(item, resolve, roster_index.get(serial)))
    return records


def build_roster_entry(device: Dict[str, Any]) -> DeviceRosterEntry:
    """Map a device payload or flat roster row to a roster entry."""
    return DeviceRosterEntry(
        serial=device_serial(device),
        display_name=device_display_name(device),
        facets=build_facets(_facet_source(device)),
        last_seen=_first(device, "lastSeen", "last_seen"),
    )


def build_roster(
    devices: Iterable[Dict[str, Any]],
    settings: Optional[ReconciliationConfig] = None,
) -> List[DeviceRosterEntry]:
    """Map devices to roster entries, skipping test devices and duplicate serials."""
    roster: List[DeviceRosterEntry] = []
    seen = set()
    for device in devices:
        if not isinstance(device, dict):
            continue
        serial = device_serial(device)
        if is_test_device(serial, settings) or serial in seen:
            continue
        seen.add(serial)
        roster.append(build_roster_entry(device))
    return roster
