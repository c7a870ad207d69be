"""Crawler contract shared by all exchange integrations"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Union

from commission_sync.config import settings, CrawlSettings
from commission_sync.models.commission import RawActivityRecord
from commission_sync.models.crawl import AuthenticationFailure, CrawlResult, PageResult

logger = logging.getLogger(__name__)

class CrawlAdapter(ABC):
    """
    Pages through one exchange's affiliate API for a single date.

    Subclasses implement fetch_page() and transform(). fetch_page()
    reports a rejected credential by returning AuthenticationFailure,
    never by raising.
    """

    code: str = ''

    def __init__(self, crawl_settings: CrawlSettings = None):
        self.crawl_settings = crawl_settings or settings.crawl_settings

    @property
    def page_size(self) -> int:
        return self.crawl_settings.page_size

    @property
    def max_pages(self) -> int:
        return self.crawl_settings.max_pages

    @abstractmethod
    def fetch_page(self, auth_token: str, target_date: str, page: int,
                   page_size: int) -> Union[PageResult, AuthenticationFailure]:
        """Fetch one page of raw records"""

    @abstractmethod
    def transform(self, raw: Dict[str, Any]) -> RawActivityRecord:
        """Map a platform record to a RawActivityRecord"""

    def record_id(self, raw: Dict[str, Any]) -> str:
        """Best-effort identifier of a raw record for error reports"""
        return 'unknown'

    def fetch_all(self, auth_token: str, target_date: str) -> Union[CrawlResult, AuthenticationFailure]:
        """Fetch every page for a date, stopping at the last page, the reported total or the page cap"""
        all_records: List[Dict[str, Any]] = []
        total_count = 0
        page = 1

        while True:
            result = self.fetch_page(auth_token, target_date, page, self.page_size)
            if isinstance(result, AuthenticationFailure):
                logger.warning(f"{self.code} rejected crawler token on page {page} for {target_date}")
                return result

            all_records.extend(result.records)
            total_count = result.total_count

            if len(result.records) < self.page_size or len(all_records) >= total_count:
                return CrawlResult(
                    records=all_records,
                    total_count=total_count,
                    pages_fetched=page
                )

            if page >= self.max_pages:
                logger.warning(
                    f"Reached maximum page limit ({self.max_pages}) for {self.code} on {target_date}; "
                    f"returning {len(all_records)} of {total_count} records"
                )
                return CrawlResult(
                    records=all_records,
                    total_count=total_count,
                    pages_fetched=page,
                    truncated=True
                )

            page += 1
