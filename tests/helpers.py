"""Test doubles and seed constants"""
from datetime import date
from typing import Any, Dict, List

from commission_sync.config import CrawlSettings
from commission_sync.models.commission import RawActivityRecord
from commission_sync.models.crawl import AuthenticationFailure, PageResult
from commission_sync.services.crawler import CrawlAdapter

TODAY = date(2025, 11, 29)
YESTERDAY = date(2025, 11, 28)
TOMORROW = date(2025, 11, 30)

EXCHANGE_ID = 1
BRONZE_USER = 10   # tier rate 0.10
NO_TIER_USER = 11  # linked, no tier
PENDING_USER = 12  # link not verified

class ScriptedCrawler(CrawlAdapter):
    """Crawler serving pre-built pages, recording every page request"""

    code = 'BYBIT'

    def __init__(self, pages: List[Any], total_count: int = None, page_size: int = 100, max_pages: int = 100):
        super().__init__(CrawlSettings(page_size=page_size, max_pages=max_pages, timeout_seconds=30))
        self.pages = pages
        self.total_count = total_count if total_count is not None else sum(
            len(p) for p in pages if not isinstance(p, AuthenticationFailure)
        )
        self.requested: List[int] = []

    def fetch_page(self, auth_token, target_date, page, page_size):
        self.requested.append(page)
        if page > len(self.pages):
            return PageResult(records=[], total_count=self.total_count, page=page)
        content = self.pages[page - 1]
        if isinstance(content, AuthenticationFailure):
            return content
        return PageResult(records=content, total_count=self.total_count, page=page)

    def record_id(self, raw: Dict[str, Any]) -> str:
        return str(raw.get('uid', 'unknown'))

    def transform(self, raw: Dict[str, Any]) -> RawActivityRecord:
        return RawActivityRecord(
            external_account_id=str(raw['uid']),
            commission=float(raw.get('commission', 0)),
            pending_commission=float(raw.get('pending', 0)),
            trading_volume=float(raw.get('volume', 0)),
            deposit_volume=float(raw.get('deposits', 0)),
            raw_data=raw
        )

def raw_record(uid, commission=0.0, pending=0.0, volume=0.0, deposits=0.0) -> Dict[str, Any]:
    return {'uid': uid, 'commission': commission, 'pending': pending, 'volume': volume, 'deposits': deposits}

