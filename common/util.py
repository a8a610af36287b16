"""Utility functions for fleet-inventory-reconciler."""

import hashlib
import json
from typing import Any


def sha256_json(obj: Any) -> str:
    """
    Generate a deterministic SHA256 hash of a JSON-serializable object.

    Values json cannot encode natively (dataclasses already converted by the
    caller, datetimes, markers) are rendered with ``str``.

    Args:
        obj: Any JSON-serializable object

    Returns:
        str: Hexadecimal SHA256 hash string
    """
    # Use separators and sort_keys for deterministic JSON
    json_str = json.dumps(obj, separators=(',', ':'), sort_keys=True, default=str)
    return hashlib.sha256(json_str.encode('utf-8')).hexdigest()


def casefold_or_empty(value: Any) -> str:
    """
    Lower-case a facet value for comparison, treating None as empty.

    Args:
        value: Facet value (can be None or non-string)

    Returns:
        str: Case-folded string
    """
    if value is None:
        return ''
    return str(value).strip().casefold()
