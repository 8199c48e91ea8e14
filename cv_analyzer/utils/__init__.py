"""Utility modules."""

from .logger import configure_logging
from .parser import extract_json

__all__ = ["configure_logging", "extract_json"]
