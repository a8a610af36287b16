"""
Common utilities for fleet-inventory-reconciler
"""

from .config import config
from .logging import setup_logging, get_logger

__all__ = [
    'config',
    'setup_logging',
    'get_logger',
]
