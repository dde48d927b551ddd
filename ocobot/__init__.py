"""
ocobot: conditional spot entry with automatic stop-loss / take-profit exits.
"""

__version__ = "0.1.0"
