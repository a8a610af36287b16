"""
Facet filter composition.

A report is filtered twice: the *base view* applies every facet except
version pins and feeds the version widgets, so selecting a version never
shrinks the widgets themselves; the *display view* further constrains the
base view by the pins.

Dimensions compose with AND; values within one dimension compose with OR.
An empty set for any dimension means "no constraint".
"""

from collections import Counter
from collections.abc import Iterable as IterableABC
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from common.util import casefold_or_empty
from reconciliation.models import ApplicationRecord, DeviceFacets

UNKNOWN_VERSION = "Unknown"

# Accepted spellings per dimension in query strings and JSON bodies
_SELECTION_KEYS = {
    "usages": ("usages", "usage"),
    "catalogs": ("catalogs", "catalog"),
    "locations": ("locations", "location"),
    "rooms": ("rooms", "room"),
    "fleets": ("fleets", "fleet"),
    "platforms": ("platforms", "platform"),
    "applications": ("applications", "application", "applicationNames"),
    "version_pins": ("version_pins", "versionPins", "versions", "version", "pins"),
}


def _freeze(values: Optional[Iterable[str]]) -> FrozenSet[str]:
    if not values:
        return frozenset()
    if isinstance(values, str):
        values = [values]
    return frozenset(str(value).strip() for value in values if str(value).strip())


def _getlist(mapping: Mapping[str, Any], key: str) -> List[Any]:
    """Read every value for key from a plain mapping or a multi-dict."""
    getlist = getattr(mapping, "getlist", None)
    if callable(getlist):
        return list(getlist(key))
    value = mapping.get(key)
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


@dataclass(frozen=True)
class VersionPin:
    """A ``canonicalName:version`` pin, or a bare version."""

    version: str
    name: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "VersionPin":
        name, sep, version = text.partition(":")
        if not sep:
            return cls(version=text)
        return cls(version=version, name=name)

    def matches(self, record: ApplicationRecord, unknown_label: str = UNKNOWN_VERSION) -> bool:
        """Versionless records match the pin named by ``unknown_label``."""
        version = record.version or unknown_label
        if self.name is None:
            return version == self.version
        return record.canonical_name == self.name and version == self.version


@dataclass(frozen=True)
class FacetSelection:
    """User selection across every facet dimension."""

    usages: FrozenSet[str] = frozenset()
    catalogs: FrozenSet[str] = frozenset()
    locations: FrozenSet[str] = frozenset()
    rooms: FrozenSet[str] = frozenset()
    fleets: FrozenSet[str] = frozenset()
    platforms: FrozenSet[str] = frozenset()
    applications: FrozenSet[str] = frozenset()
    search: str = ""
    version_pins: Tuple[str, ...] = ()

    @classmethod
    def create(
        cls,
        usages: Optional[Iterable[str]] = None,
        catalogs: Optional[Iterable[str]] = None,
        locations: Optional[Iterable[str]] = None,
        rooms: Optional[Iterable[str]] = None,
        fleets: Optional[Iterable[str]] = None,
        platforms: Optional[Iterable[str]] = None,
        applications: Optional[Iterable[str]] = None,
        search: Optional[str] = None,
        version_pins: Optional[Iterable[str]] = None,
    ) -> "FacetSelection":
        """Build a selection from loose iterables."""
        return cls(
            usages=_freeze(usages),
            catalogs=_freeze(catalogs),
            locations=_freeze(locations),
            rooms=_freeze(rooms),
            fleets=_freeze(fleets),
            platforms=_freeze(platforms),
            applications=_freeze(applications),
            search=(search or "").strip(),
            version_pins=tuple(sorted(_freeze(version_pins))),
        )

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "FacetSelection":
        """
        Build a selection from a query-string multi-dict or a JSON body.

        Singular and plural key spellings are accepted; values may be
        scalars or lists.
        """
        kwargs: Dict[str, List[Any]] = {}
        for field_name, keys in _SELECTION_KEYS.items():
            values: List[Any] = []
            for key in keys:
                values.extend(_getlist(mapping, key))
            kwargs[field_name] = values
        search_values = _getlist(mapping, "search") or _getlist(mapping, "q")
        search = str(search_values[0]) if search_values else ""
        return cls.create(search=search, **kwargs)

    def without_pins(self) -> "FacetSelection":
        """Return the same selection with version pins cleared."""
        return FacetSelection(
            usages=self.usages,
            catalogs=self.catalogs,
            locations=self.locations,
            rooms=self.rooms,
            fleets=self.fleets,
            platforms=self.platforms,
            applications=self.applications,
            search=self.search,
        )

    def pins(self) -> List[VersionPin]:
        return [VersionPin.parse(pin) for pin in self.version_pins]

    def is_empty(self) -> bool:
        return not (
            self.usages or self.catalogs or self.locations or self.rooms
            or self.fleets or self.platforms or self.applications
            or self.search or self.version_pins
        )

    def to_dict(self) -> Dict[str, Any]:
        """Stable, JSON-friendly form used for cache keys and logs."""
        return {
            "usages": sorted(self.usages),
            "catalogs": sorted(self.catalogs),
            "locations": sorted(self.locations),
            "rooms": sorted(self.rooms),
            "fleets": sorted(self.fleets),
            "platforms": sorted(self.platforms),
            "applications": sorted(self.applications),
            "search": self.search,
            "version_pins": list(self.version_pins),
        }


def _in_folded(selected: FrozenSet[str], value: str) -> bool:
    folded = {casefold_or_empty(item) for item in selected}
    return casefold_or_empty(value) in folded


def _room_matches(selected: FrozenSet[str], facets: DeviceFacets) -> bool:
    location = casefold_or_empty(facets.location)
    room = casefold_or_empty(facets.room)
    for item in selected:
        needle = casefold_or_empty(item)
        if (location and needle in location) or (room and needle in room):
            return True
    return False


def facets_match(facets: DeviceFacets, selection: FacetSelection) -> bool:
    """
    Check device facets against the device-level dimensions of a selection.

    Usage, catalog and platform compare case-insensitively; location and
    room selections match as case-insensitive substrings of either field;
    fleet compares exactly.
    """
    if selection.usages and not _in_folded(selection.usages, facets.usage):
        return False
    if selection.catalogs and not _in_folded(selection.catalogs, facets.catalog):
        return False
    if selection.locations and not _room_matches(selection.locations, facets):
        return False
    if selection.rooms and not _room_matches(selection.rooms, facets):
        return False
    if selection.fleets and facets.fleet not in selection.fleets:
        return False
    if selection.platforms and not _in_folded(selection.platforms, facets.platform):
        return False
    return True


def matches_search(record: ApplicationRecord, query: str) -> bool:
    """Case-insensitive search over raw name, device name and vendor."""
    needle = query.strip().casefold()
    if not needle:
        return True
    return any(
        needle in casefold_or_empty(value)
        for value in (record.raw_name, record.device_name, record.vendor)
    )


def _check_inputs(records: Any, selection: Any) -> None:
    assert isinstance(records, IterableABC) and not isinstance(records, (str, bytes, dict)), \
        "records must be a collection of ApplicationRecord"
    if not isinstance(selection, FacetSelection):
        raise TypeError(f"selection must be a FacetSelection, got {type(selection).__name__}")


def apply_facets(records: Iterable[ApplicationRecord], selection: FacetSelection) -> List[ApplicationRecord]:
    """
    Filter records by every dimension except version pins.

    Args:
        records: Application records
        selection: Facet selection

    Returns:
        list: Matching records, input order preserved
    """
    _check_inputs(records, selection)
    return [
        record for record in records
        if facets_match(record.facets, selection)
        and (not selection.applications or record.canonical_name in selection.applications)
        and matches_search(record, selection.search)
    ]


def base_view(records: Iterable[ApplicationRecord], selection: FacetSelection) -> List[ApplicationRecord]:
    """Records filtered by all facets, ignoring version pins."""
    return apply_facets(records, selection)


def apply_pins(
    records: Iterable[ApplicationRecord],
    selection: FacetSelection,
    unknown_label: str = UNKNOWN_VERSION,
) -> List[ApplicationRecord]:
    """Keep records matching any version pin; no pins keeps everything."""
    pins = selection.pins()
    if not pins:
        return list(records)
    return [record for record in records if any(pin.matches(record, unknown_label) for pin in pins)]


def display_view(
    records: Iterable[ApplicationRecord],
    selection: FacetSelection,
    unknown_label: str = UNKNOWN_VERSION,
) -> List[ApplicationRecord]:
    """Base view further constrained by version pins."""
    return apply_pins(base_view(records, selection), selection, unknown_label)


def _unique_sorted(values: Iterable[str]) -> List[str]:
    return sorted({value for value in values if value})


def filter_options(
    records: Iterable[ApplicationRecord],
    roster: Iterable[Any] = (),
) -> Dict[str, List[str]]:
    """
    Collect the values available for each facet widget.

    Facet values come from both records and roster entries so devices with
    no reportable software still show up as options.
    """
    records = list(records)
    facet_sets = [record.facets for record in records] + [entry.facets for entry in roster]
    return {
        "applications": _unique_sorted(record.canonical_name for record in records),
        "usages": _unique_sorted(facets.usage for facets in facet_sets),
        "catalogs": _unique_sorted(facets.catalog for facets in facet_sets),
        "locations": _unique_sorted(facets.location for facets in facet_sets),
        "rooms": _unique_sorted(
            [facets.location for facets in facet_sets] + [facets.room for facets in facet_sets]
        ),
        "fleets": _unique_sorted(facets.fleet for facets in facet_sets),
        "platforms": _unique_sorted(facets.platform for facets in facet_sets),
        "vendors": _unique_sorted(record.vendor for record in records),
    }


def filter_counts(records: Iterable[ApplicationRecord]) -> Dict[str, int]:
    """Record counts per usage and catalog value, plus the total."""
    records = list(records)
    counts: Counter = Counter()
    for record in records:
        usage = casefold_or_empty(record.facets.usage)
        catalog = casefold_or_empty(record.facets.catalog)
        if usage:
            counts[f"usage:{usage}"] += 1
        if catalog:
            counts[f"catalog:{catalog}"] += 1
    result = {"all": len(records)}
    result.update(sorted(counts.items()))
    return result
