"""
Configuration management for fleet-inventory-reconciler
"""
import os
from typing import Tuple
from dataclasses import dataclass, field


def _env_list(name: str, default: str) -> Tuple[str, ...]:
    """Read a comma separated environment variable into a tuple"""
    raw = os.getenv(name, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass
class ReconciliationConfig:
    """Inventory reconciliation pipeline configuration"""
    missing_sort_key: str = "display_name"
    report_cache_ttl_seconds: int = 30
    report_cache_max_entries: int = 128
    unknown_version_label: str = "Unknown"

    # Devices that never belong in fleet reports
    test_serial_prefixes: Tuple[str, ...] = ("TEST-",)
    excluded_serials: Tuple[str, ...] = ("localhost",)

    # Fields already delivered as native lists by the agent
    decode_passthrough_keys: Tuple[str, ...] = field(
        default_factory=lambda: ("events", "items", "sessions")
    )


@dataclass
class AppConfig:
    """Application configuration"""
    debug: bool = False
    log_level: str = "INFO"


SORT_KEYS = ("display_name", "serial", "location", "catalog", "last_seen")


class Config:
    """Main configuration class"""

    def __init__(self):
        self.reconciliation = ReconciliationConfig(
            missing_sort_key=os.getenv("MISSING_SORT_KEY", "display_name"),
            report_cache_ttl_seconds=int(os.getenv("REPORT_CACHE_TTL_SECONDS", "30")),
            report_cache_max_entries=int(os.getenv("REPORT_CACHE_MAX_ENTRIES", "128")),
            unknown_version_label=os.getenv("UNKNOWN_VERSION_LABEL", "Unknown"),
            test_serial_prefixes=_env_list("TEST_SERIAL_PREFIXES", "TEST-"),
            excluded_serials=_env_list("EXCLUDED_SERIALS", "localhost"),
            decode_passthrough_keys=_env_list("DECODE_PASSTHROUGH_KEYS", "events,items,sessions"),
        )

        self.app = AppConfig(
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """Validate configuration values"""
        if self.reconciliation.missing_sort_key not in SORT_KEYS:
            raise ValueError(
                f"MISSING_SORT_KEY must be one of {', '.join(SORT_KEYS)}"
            )

        if self.reconciliation.report_cache_ttl_seconds < 0:
            raise ValueError("REPORT_CACHE_TTL_SECONDS must not be negative")

        if self.reconciliation.report_cache_max_entries < 1:
            raise ValueError("REPORT_CACHE_MAX_ENTRIES must be at least 1")

        if not self.reconciliation.unknown_version_label:
            raise ValueError("UNKNOWN_VERSION_LABEL is required")

        if self.app.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unsupported LOG_LEVEL: {self.app.log_level}")


# Global config instance
config = Config()
