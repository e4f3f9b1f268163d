"""
sweep-sync: offline-first synchronization engine for the report-tracking client.
"""

__version__ = "0.1.0"
