"""
Harvester - Scraper Factory

Provides a unified interface for creating registered scrapers by name.
"""

from typing import Any, Type

from harvester.scrapers.base import AttachmentResult, BaseScraper, DetailRecord, WorkItem
from harvester.scrapers.http import HttpScraper
from harvester.shared.exceptions import ScraperError


class ScraperFactory:
    """
    Factory for creating scrapers.

    Usage:
        scraper = ScraperFactory.get("http")
        async with scraper:
            items = await scraper.list_work_items("job-42")
    """

    _scrapers: dict[str, Type[BaseScraper]] = {
        HttpScraper.name: HttpScraper,
    }

    @classmethod
    def get(cls, name: str, **kwargs: Any) -> BaseScraper:
        """
        Get a scraper instance by name.

        Raises:
            ScraperError: If no scraper is registered under that name
        """
        scraper_class = cls._scrapers.get(name.lower())
        if scraper_class is None:
            raise ScraperError(f"No scraper available for: {name}")
        return scraper_class(**kwargs)

    @classmethod
    def get_available(cls) -> list[str]:
        return list(cls._scrapers.keys())

    @classmethod
    def register(cls, name: str, scraper_class: Type[BaseScraper]) -> None:
        """Register a scraper implementation (must inherit from BaseScraper)."""
        cls._scrapers[name.lower()] = scraper_class


__all__ = [
    "ScraperFactory",
    "AttachmentResult",
    "BaseScraper",
    "DetailRecord",
    "WorkItem",
    "HttpScraper",
]
