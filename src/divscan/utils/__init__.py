"""
Utility helpers shared across divscan.
"""

from divscan.utils.files import write_bytes_atomic

__all__ = ["write_bytes_atomic"]
