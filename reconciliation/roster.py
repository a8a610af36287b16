"""
Roster set-difference: which devices lack an application.

The "missing" report and the "has" report are both cut from the same
facet-filtered slice of the roster, so together they partition it.
"""

from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Set

from reconciliation.facets import FacetSelection, base_view, facets_match
from reconciliation.models import ApplicationRecord, DeviceRosterEntry

SORT_KEYS: Dict[str, Callable[[DeviceRosterEntry], Any]] = {
    "display_name": lambda entry: entry.display_name.casefold(),
    "serial": lambda entry: entry.serial,
    "location": lambda entry: entry.facets.location.casefold(),
    "catalog": lambda entry: entry.facets.catalog.casefold(),
    "last_seen": lambda entry: entry.last_seen or "",
}


def possessing_serials(records: Iterable[ApplicationRecord], selection: FacetSelection) -> Set[str]:
    """
    Serials of devices that have the selected application at all.

    Version pins are ignored: any version counts as possessing. When no
    application is selected, the applications named by the pins are used.
    """
    unpinned = selection.without_pins()
    if not unpinned.applications:
        pinned_names = {pin.name for pin in selection.pins() if pin.name}
        if pinned_names:
            unpinned = replace(unpinned, applications=frozenset(pinned_names))
    return {record.device_serial for record in base_view(records, unpinned)}


def _facet_slice(roster: Iterable[DeviceRosterEntry], selection: FacetSelection) -> List[DeviceRosterEntry]:
    assert not isinstance(roster, (str, bytes, dict)), "roster must be a collection of DeviceRosterEntry"
    return [entry for entry in roster if facets_match(entry.facets, selection)]


def _sorted(entries: List[DeviceRosterEntry], sort_key: str) -> List[DeviceRosterEntry]:
    if sort_key not in SORT_KEYS:
        raise ValueError(f"Unsupported sort key: {sort_key}")
    key = SORT_KEYS[sort_key]
    return sorted(entries, key=lambda entry: (key(entry), entry.serial))


def missing_devices(
    roster: Iterable[DeviceRosterEntry],
    possessing: Iterable[str],
    selection: FacetSelection,
    sort_key: str = "display_name",
) -> List[DeviceRosterEntry]:
    """
    Devices in the facet-filtered roster that do not possess the application.

    Args:
        roster: Every known device
        possessing: Serials of devices that have the application
        selection: Facet selection; only device-level dimensions apply
        sort_key: Ordering key, ties broken by serial

    Returns:
        list: Missing roster entries in deterministic order
    """
    possessing = set(possessing)
    missing = [entry for entry in _facet_slice(roster, selection) if entry.serial not in possessing]
    return _sorted(missing, sort_key)


def possessing_devices(
    roster: Iterable[DeviceRosterEntry],
    possessing: Iterable[str],
    selection: FacetSelection,
    sort_key: str = "display_name",
) -> List[DeviceRosterEntry]:
    """Complement of missing_devices within the same facet-filtered roster."""
    possessing = set(possessing)
    present = [entry for entry in _facet_slice(roster, selection) if entry.serial in possessing]
    return _sorted(present, sort_key)
