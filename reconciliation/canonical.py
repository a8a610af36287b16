"""
Canonical application name resolution.

Maps the free-text ``DisplayName`` strings reported by endpoint agents
("7-Zip 23.01 (x64)", "Microsoft Visual C++ 2015 x64 Additional Runtime",
...) to one stable identity per product so versions from different devices
can be compared.

Resolution is an ordered chain of rules grouped into stages. Each rule is a
``(predicate, transform)`` pair; a rule marked ``final`` stops the chain
and its output is the canonical name. Order matters: later stages operate
on the output of earlier ones and some family patterns are substrings of
others.
"""

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from common.logging import get_logger

logger = get_logger(__name__)

MIN_CANONICAL_LENGTH = 2
MAX_PASSES = 8

SENTINEL_NAMES = frozenset({"Unknown", "N/A"})
TEMPLATE_MARKERS = ("${{", "}}")


@dataclass(frozen=True)
class Rule:
    """One step of the canonicalization chain."""

    name: str
    predicate: Callable[[str], bool]
    transform: Callable[[str], str]
    final: bool = False

    def apply(self, value: str) -> Tuple[str, bool]:
        if not self.predicate(value):
            return value, False
        return self.transform(value), self.final


def _matches(pattern: str, flags: int = re.IGNORECASE) -> Callable[[str], bool]:
    compiled = re.compile(pattern, flags)
    return lambda value: compiled.search(value) is not None


def _always(value: str) -> bool:
    return True


def family(name: str, pattern: str, label: str, flags: int = re.IGNORECASE) -> Rule:
    """Consolidate every name matching pattern to a fixed label."""
    return Rule(name, _matches(pattern, flags), lambda value: label, final=True)


def strip(name: str, pattern: str, flags: int = re.IGNORECASE) -> Rule:
    """Remove the first match of pattern."""
    compiled = re.compile(pattern, flags)
    return Rule(name, _always, lambda value: compiled.sub("", value, count=1))


# Stage 1: trivial rejection

def _is_trivial(value: str) -> bool:
    if not value:
        return True
    if any(marker in value for marker in TEMPLATE_MARKERS):
        return True
    return value in SENTINEL_NAMES


TRIVIAL_RULES = [
    Rule("trivial", _is_trivial, lambda value: "", final=True),
]


# Stage 2: product families

VCREDIST_LABEL = "Microsoft Visual C++ Redistributable"
DOTNET_WORKLOAD_LABEL = "Microsoft .NET Workload"
DOTNET_SDK_LABEL = "Microsoft .NET SDK"
ASPNET_CORE_LABEL = "Microsoft ASP.NET Core"
DOTNET_RUNTIME_LABEL = "Microsoft .NET Runtime"
DOTNET_LABEL = "Microsoft .NET"

FAMILY_LABELS = frozenset({
    VCREDIST_LABEL,
    DOTNET_WORKLOAD_LABEL,
    DOTNET_SDK_LABEL,
    ASPNET_CORE_LABEL,
    DOTNET_RUNTIME_LABEL,
    DOTNET_LABEL,
    "Microsoft Visual Studio Tools",
    "Microsoft 365",
    "Kinect for Windows Speech Recognition Language Pack",
    "Microsoft Language Pack",
    "Kits Configuration Installer",
    "Kofax VRS",
    "7-Zip",
    "Google Chrome",
    "Mozilla Firefox",
    "AMD Chipset Software",
    "AMD Drivers",
    "3DEXPERIENCE for SOLIDWORKS",
    "SOLIDWORKS",
    "HP Software",
})


def _is_dotnet(value: str) -> bool:
    return value.startswith("Microsoft.NET") or "Microsoft ASP.NET Core" in value


def _dotnet_label(value: str) -> str:
    # Workload before SDK: workload package ids contain "Sdk" too
    if "Workload" in value:
        return DOTNET_WORKLOAD_LABEL
    if "Sdk" in value or "SDK" in value:
        return DOTNET_SDK_LABEL
    if "ASP.NET Core" in value:
        return ASPNET_CORE_LABEL
    if any(part in value for part in ("Runtime", "AppHost", "Targeting Pack", "Host FX Resolver")):
        return DOTNET_RUNTIME_LABEL
    return DOTNET_LABEL


_ADOBE_RE = re.compile(r"^Adobe ([A-Za-z\s]+)")


def _adobe_product(value: str) -> Optional[str]:
    match = _ADOBE_RE.match(value)
    if not match:
        return None
    words = match.group(1).split()
    if not words or words[0] == "AIR":
        return None
    return words[0]


def _is_amd_component(value: str) -> bool:
    return value.startswith("AMD ") and ("Driver" in value or "Chipset" in value)


def _amd_label(value: str) -> str:
    return "AMD Chipset Software" if "Chipset" in value else "AMD Drivers"


def _solidworks_label(value: str) -> str:
    return "3DEXPERIENCE for SOLIDWORKS" if "3DEXPERIENCE" in value else "SOLIDWORKS"


FAMILY_RULES = [
    Rule("family-label", lambda value: value in FAMILY_LABELS, lambda value: value, final=True),
    family("vcredist", r"Microsoft Visual C\+\+ \d{4}", VCREDIST_LABEL),
    Rule("dotnet", _is_dotnet, _dotnet_label, final=True),
    family("vs-tools", r"Microsoft Visual Studio Tools", "Microsoft Visual Studio Tools", flags=0),
    family("microsoft-365", r"Microsoft (365|Office 365)", "Microsoft 365"),
    family(
        "kinect-language-pack",
        r"Kinect for Windows Speech Recognition Language Pack",
        "Kinect for Windows Speech Recognition Language Pack",
    ),
    family("microsoft-language-pack", r"Microsoft.*Language Pack", "Microsoft Language Pack"),
    family("kits-config", r"Kits Configuration Installer", "Kits Configuration Installer"),
    family("kofax-vrs", r"Kofax VRS", "Kofax VRS"),
    Rule(
        "adobe",
        lambda value: _adobe_product(value) is not None,
        lambda value: f"Adobe {_adobe_product(value)}",
        final=True,
    ),
    family("7-zip", r"^7-Zip", "7-Zip"),
    family("chrome", r"^(Google\s+)?Chrome\b(?!\s+Remote Desktop)", "Google Chrome"),
    family("firefox", r"^(Mozilla\s+)?Firefox\b", "Mozilla Firefox"),
    Rule("amd", _is_amd_component, _amd_label, final=True),
    Rule("solidworks", lambda value: "SOLIDWORKS" in value, _solidworks_label, final=True),
    family("hp", r"(^|\s)HP\s", "HP Software", flags=0),
]


# Stage 3: version tokens

VERSION_RULES = [
    strip("trailing-version", r"\s+v?\d+(\.\d+)*$"),
    strip("trailing-year", r"\s+\d{4}(\.\d+)*$"),
    strip("dash-version", r"\s+-\s+\d+(\.\d+)*$"),
    strip("paren-version", r"\s+\(\d+(\.\d+)*\)$"),
    strip("build-number", r"\s+build\s+\d+"),
    strip("direct-version", r"\s+\d+(\.\d+)*$"),
    strip("anaconda-version", r"\s+\d{4}\.\d{2}-\d+"),
    strip("embedded-version", r"\s+\d{1,2}\.\d+\.\d+(\.\d+)*"),
    strip("embedded-year", r"\s+\d{4}\b"),
    strip("embedded-v-version", r"\s+v\d+(\.\d+)*"),
]


# Stage 4: architecture and platform tokens

ARCHITECTURE_RULES = [
    strip("arch-suffix", r"\s+(x64|x86|64-bit|32-bit|amd64|i386)$"),
    strip("arch-paren", r"\s+\((x64|x86|64-bit|32-bit|amd64|i386)\)$"),
    strip("python-bitness", r"\s+\(Python\s+[\d.]+\s+(64-bit|32-bit)\)$"),
    strip("git-hash", r"\s+\(git\s+[a-f0-9]+\)$"),
    strip("bit-paren", r"\s+\([^)]*bit[^)]*\)"),
    strip("version-paren", r"\s+\([^)]*\d+\.\d+[^)]*\)"),
]


# Stage 5: edition, runtime and localisation suffixes

SUFFIX_RULES = [
    strip(
        "runtime-suffix",
        r"\s+(Additional Runtime|Minimum Runtime|Redistributable|Shared Framework"
        r"|Targeting Pack|AppHost Pack|Host FX Resolver|Hosting Support)$",
    ),
    strip("dash-tag", r"\s+-\s+(en-us|x64|x86|\d+(\.\d+)*)$"),
    strip(
        "app-type-suffix",
        r"\s+(Desktop|App|Application|Software|Program|Tool|Suite|Client|Server)$",
    ),
    strip(
        "edition-suffix",
        r"\s+(Pro|Professional|Standard|Basic|Free|Premium|Enterprise|Business"
        r"|Personal|Home|Student|Education)$",
    ),
    strip("release-suffix", r"\s+(Trial|Beta|Alpha|RC|Release|Final|Portable|Standalone)$"),
    strip("language-tag", r"\s+-\s+en-us$"),
    strip("for-windows", r"\s+for\s+Windows$"),
    strip("for-microsoft-windows", r"\s+for\s+Microsoft\s+Windows$"),
    strip("windows-edition", r"\s+Windows\s+Edition$"),
]


# Stage 6: update and patch markers

UPDATE_RULES = [
    strip("update-marker", r"\s+Update\s+\d+"),
    strip("service-pack", r"\s+SP\s*\d+"),
    strip("patch-marker", r"\s+Patch\s+\d+"),
]


# Stage 7: cosmetic cleanup

_WHITESPACE_RE = re.compile(r"\s+")
_TRAILING_DASH_RE = re.compile(r"\s*-\s*$")
_LEADING_DASH_RE = re.compile(r"^\s*-\s*")


def _cleanup(value: str) -> str:
    value = _WHITESPACE_RE.sub(" ", value)
    value = _TRAILING_DASH_RE.sub("", value)
    value = _LEADING_DASH_RE.sub("", value)
    return value.strip()


CLEANUP_RULES = [
    Rule("cleanup", _always, _cleanup),
]


# Stage 8: validity

VALIDITY_RULES = [
    Rule("too-short", lambda value: len(value) < MIN_CANONICAL_LENGTH, lambda value: "", final=True),
]


DEFAULT_RULES: Sequence[Rule] = tuple(
    TRIVIAL_RULES
    + FAMILY_RULES
    + VERSION_RULES
    + ARCHITECTURE_RULES
    + SUFFIX_RULES
    + UPDATE_RULES
    + CLEANUP_RULES
    + VALIDITY_RULES
)


class CanonicalNameResolver:
    """
    Runs the rule chain over raw application names.

    The chain is re-applied until its output stops changing, so resolving
    an already-canonical name returns it unchanged.
    """

    def __init__(self, rules: Optional[Sequence[Rule]] = None):
        self.rules: List[Rule] = list(rules if rules is not None else DEFAULT_RULES)

    def _single_pass(self, value: str) -> str:
        for rule in self.rules:
            value, stop = rule.apply(value)
            if stop:
                break
        return value

    def canonicalize(self, raw_name) -> str:
        """
        Resolve a raw application name.

        Args:
            raw_name: Name as reported by the agent

        Returns:
            str: Canonical name, or "" when the record should be excluded
        """
        if not isinstance(raw_name, str):
            return ""

        value = raw_name.strip()
        try:
            for _ in range(MAX_PASSES):
                resolved = self._single_pass(value)
                if resolved == value:
                    break
                value = resolved
        except Exception as e:
            logger.warning("Canonicalization rule failed", raw_name=raw_name, error=str(e))
            return ""
        return value


_default_resolver = CanonicalNameResolver()


def canonicalize(raw_name) -> str:
    """Resolve raw_name with the default rule chain."""
    return _default_resolver.canonicalize(raw_name)
