"""
Inventory reconciliation pipeline for fleet-inventory-reconciler
"""

from .canonical import canonicalize
from .decoder import decode, decode_deep
from .distribution import build_distribution
from .facets import FacetSelection, apply_facets, base_view, display_view
from .models import ApplicationRecord, DeviceFacets, DeviceRosterEntry, UnparsedArrayMarker
from .noise import is_noise
from .report import ApplicationReport, ApplicationReportBuilder
from .roster import missing_devices, possessing_devices, possessing_serials

__all__ = [
    'canonicalize',
    'decode',
    'decode_deep',
    'build_distribution',
    'FacetSelection',
    'apply_facets',
    'base_view',
    'display_view',
    'ApplicationRecord',
    'DeviceFacets',
    'DeviceRosterEntry',
    'UnparsedArrayMarker',
    'is_noise',
    'ApplicationReport',
    'ApplicationReportBuilder',
    'missing_devices',
    'possessing_devices',
    'possessing_serials',
]
