"""
Noise classification for raw application names.

The deny-list is evaluated against the raw name, independently of
canonicalization: a record can resolve to a perfectly good canonical name
and still be excluded here (OS patches, drivers, runtime sub-components).
"""

import re
from typing import Iterable, List, Optional

from reconciliation.canonical import SENTINEL_NAMES, TEMPLATE_MARKERS

NOISE_PATTERNS = [
    # Microsoft development components
    r"^Microsoft\.NET\.Workload\.",
    r"^Microsoft\.NET\.Sdk\.",
    r"^Windows Software Development Kit",
    r"^Microsoft Visual Studio Installer$",

    # Windows patches
    r"Update for Windows",
    r"Security Update for Microsoft",
    r"^KB\d+",

    # Drivers and chipset components
    r"Driver$",
    r"^Intel.*Driver",
    r"^NVIDIA.*Driver",
    r"^AMD.*Driver",
    r"^AMD_Chipset_Drivers",

    # OEM installers and controllers
    r"^64 Bit HP CIO Components Installer",
    r"^1394 OHCI Compliant Host Controller",

    # Vendor helper processes
    r"^AVG.*Helper$",
    r"^AVG.*Browser$",
    r"^AVerMedia.*HD Series",
    r"^AVerMedia RECentral$",

    # Runtime sub-components reported next to the main package
    r"Microsoft Visual C\+\+ \d{4} x\d{2} (Additional|Minimum) Runtime",
    r"Microsoft \.NET (Runtime|AppHost Pack|Targeting Pack|Host FX Resolver) - [\d.]+ \(x\d+",
    r"Microsoft ASP\.NET Core [\d.]+ (Shared Framework|Targeting Pack) \(x\d+",

    # Placeholders
    r"^\$\{\{.*\}\}$",
    r"^Unknown$",
    r"^N/A$",
    r"^\s*$",
]


class NoiseFilter:
    """Deny-list of raw application name patterns."""

    def __init__(self, patterns: Optional[Iterable[str]] = None):
        source = NOISE_PATTERNS if patterns is None else list(patterns)
        self.patterns: List[re.Pattern] = [re.compile(p, re.IGNORECASE) for p in source]

    def is_noise(self, raw_name) -> bool:
        """
        Return True when raw_name matches the deny-list.

        Args:
            raw_name: Name as reported by the agent

        Returns:
            bool: True if the record must be excluded
        """
        if not isinstance(raw_name, str):
            return False
        trimmed = raw_name.strip()
        return any(pattern.search(trimmed) for pattern in self.patterns)

    def should_include(self, raw_name) -> bool:
        """Return True when raw_name is a reportable application name."""
        if not isinstance(raw_name, str):
            return False
        trimmed = raw_name.strip()
        if not trimmed:
            return False
        if any(marker in trimmed for marker in TEMPLATE_MARKERS):
            return False
        if trimmed in SENTINEL_NAMES:
            return False
        return not self.is_noise(trimmed)


_default_filter = NoiseFilter()


def is_noise(raw_name) -> bool:
    """Check raw_name against the default deny-list."""
    return _default_filter.is_noise(raw_name)


def should_include(raw_name) -> bool:
    """Check raw_name is reportable with the default deny-list."""
    return _default_filter.should_include(raw_name)
