"""
Data source package.

Fetches entity listings and per-entity payloads:
- Nasdaq public API - the only source
"""

from divscan.data.base import DataSource
from divscan.data.nasdaq_client import NasdaqClient

__all__ = [
    "DataSource",
    "NasdaqClient",
]
