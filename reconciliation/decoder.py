"""
Decoder for the agent's legacy ``@{key=value; key2=value2}`` serialization.

Some inventory modules reach us as single strings produced by the endpoint
agent's object formatter instead of JSON. ``decode`` turns one such string
into a dict of typed values; ``decode_deep`` walks an already-parsed JSON
payload and decodes every string leaf that looks like a record.

Decoding is total: malformed input comes back unchanged and nothing here
raises for bad data.
"""

import re
from typing import Any, Iterable, Iterator, List, Optional

from common.logging import get_logger
from reconciliation.models import UnparsedArrayMarker

logger = get_logger(__name__)

RECORD_PREFIX = "@{"
RECORD_SUFFIX = "}"

DEFAULT_PASSTHROUGH_KEYS = ("events", "items", "sessions")

_INT_RE = re.compile(r"^\d+$")
_FLOAT_RE = re.compile(r"^\d+\.\d+$")

# System.Object[], System.String[], ... and @( ) array literals
_ARRAY_RE = re.compile(r"^(?:System\.[\w.`]+\[\]|@\()")


def is_encoded_record(value: Any) -> bool:
    """Return True when value is a candidate ``@{...}`` record string."""
    return (
        isinstance(value, str)
        and value.startswith(RECORD_PREFIX)
        and value.endswith(RECORD_SUFFIX)
    )


def _opens_value(current: List[str]) -> bool:
    """A nested record only starts right after a key's ``=``."""
    return "".join(current).rstrip().endswith("=")


def _split_pairs(content: str) -> List[str]:
    """Split record content on ``;`` while keeping nested records intact."""
    pairs = []
    current = []
    depth = 0
    index = 0
    while index < len(content):
        char = content[index]
        if content.startswith(RECORD_PREFIX, index) and _opens_value(current):
            depth += 1
            current.append(RECORD_PREFIX)
            index += len(RECORD_PREFIX)
            continue
        if char == RECORD_SUFFIX and depth > 0:
            depth -= 1
        elif char == ";" and depth == 0:
            pairs.append("".join(current))
            current = []
            index += 1
            continue
        current.append(char)
        index += 1
    pairs.append("".join(current))
    return pairs


def _coerce(value: str) -> Any:
    """Convert one raw value string to its typed form."""
    if value == "":
        return ""
    if value == "True":
        return True
    if value == "False":
        return False
    if _INT_RE.match(value):
        return int(value)
    if _FLOAT_RE.match(value):
        return float(value)
    if is_encoded_record(value):
        return decode(value)
    if _ARRAY_RE.match(value):
        return UnparsedArrayMarker(raw=value)
    return value


def decode(value: Any) -> Any:
    """
    Decode a single encoded record string.

    Args:
        value: Raw field value (string, number, boolean or encoded record)

    Returns:
        dict for encoded records, otherwise the input unchanged
    """
    if not is_encoded_record(value):
        return value

    try:
        content = value[len(RECORD_PREFIX):-len(RECORD_SUFFIX)].strip()
        if not content:
            return {}

        result = {}
        for pair in _split_pairs(content):
            key, sep, raw_value = pair.partition("=")
            key = key.strip()
            # Pairs without "=" or without a key are skipped
            if not sep or not key:
                continue
            result[key] = _coerce(raw_value.strip())
        return result

    except Exception as e:
        logger.warning(
            "Failed to decode encoded record",
            error=str(e),
            preview=value[:100],
        )
        return value


def decode_deep(value: Any, passthrough_keys: Optional[Iterable[str]] = None) -> Any:
    """
    Recursively decode encoded records inside a parsed payload.

    Lists and tuples are walked element-wise and dicts field by field. Fields
    named in ``passthrough_keys`` whose value is already a list are returned
    as-is.
    """
    if passthrough_keys is None:
        passthrough_keys = DEFAULT_PASSTHROUGH_KEYS
    passthrough = frozenset(passthrough_keys)
    return _decode_deep(value, passthrough)


def _decode_deep(value: Any, passthrough: frozenset) -> Any:
    if isinstance(value, str):
        return decode(value)
    if isinstance(value, (list, tuple)):
        return [_decode_deep(item, passthrough) for item in value]
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            if key in passthrough and isinstance(item, list):
                result[key] = item
            else:
                result[key] = _decode_deep(item, passthrough)
        return result
    return value


def collect_markers(value: Any) -> Iterator[UnparsedArrayMarker]:
    """Yield every UnparsedArrayMarker found in a decoded structure."""
    if isinstance(value, UnparsedArrayMarker):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from collect_markers(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from collect_markers(item)
