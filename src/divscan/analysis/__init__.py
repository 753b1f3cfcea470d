"""
Analysis package: statistics over collected records.
"""

from divscan.analysis.aggregation import summarize

__all__ = ["summarize"]
