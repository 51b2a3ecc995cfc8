from harvester.scrapers.http.client import HttpScraper

__all__ = ["HttpScraper"]
