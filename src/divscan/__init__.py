"""
divscan: resilient bulk collection of US dividend stock data.
"""

__version__ = "0.1.0"
