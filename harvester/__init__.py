"""
Harvester

Resumable, rate-limited bulk extraction jobs against throttled external sources.
"""

__version__ = "1.0.0"
