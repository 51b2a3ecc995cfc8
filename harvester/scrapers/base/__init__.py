"""
Harvester - Base Scraper Module

Provides the scraper interface and the records it produces.
"""

from harvester.scrapers.base.abstract_scraper import (
    AttachmentResult,
    BaseScraper,
    DetailRecord,
    WorkItem,
)

__all__ = [
    "AttachmentResult",
    "BaseScraper",
    "DetailRecord",
    "WorkItem",
]
