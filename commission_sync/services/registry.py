"""Crawler selection by exchange code"""
from typing import Callable, Dict

from commission_sync.exceptions import UnsupportedExchangeError
from commission_sync.services.bybit import BybitCrawler
from commission_sync.services.crawler import CrawlAdapter

CRAWLERS: Dict[str, Callable[[], CrawlAdapter]] = {
    BybitCrawler.code: BybitCrawler,
}

def register_crawler(code: str, factory: Callable[[], CrawlAdapter]) -> None:
    CRAWLERS[code.upper()] = factory

def build_crawler(code: str) -> CrawlAdapter:
    """Instantiate the crawler registered for an exchange code"""
    factory = CRAWLERS.get((code or '').upper())
    if factory is None:
        supported = ', '.join(sorted(CRAWLERS))
        raise UnsupportedExchangeError(f"Exchange {code} is not supported yet. Supported: {supported}")
    return factory()
