"""
Reports package: writes the finished collection report.
"""

from divscan.reports.writer import ReportWriter

__all__ = ["ReportWriter"]
