"""Crawl outcomes and crawler credential state"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from commission_sync.models.db import TOKEN_STATUS_ACTIVE, TOKEN_STATUS_FAILED

@dataclass
class PageResult:
    """One page of raw platform records"""
    records: List[Dict[str, Any]]
    total_count: int
    page: int

@dataclass
class CrawlResult:
    """All records gathered for one exchange and date"""
    records: List[Dict[str, Any]]
    total_count: int
    pages_fetched: int
    truncated: bool = False  # Page cap reached before the feed was exhausted

@dataclass
class AuthenticationFailure:
    """The platform rejected the crawler credential"""
    message: str = "Crawler token is invalid or expired"
    page: int = 1

@dataclass
class CrawlerCredential:
    """
    Crawler token and its health.

    The processor flips the status after each crawl; callers persist it.
    """
    token: str
    exchange_id: Optional[int] = None
    id: Optional[int] = None
    status: str = TOKEN_STATUS_ACTIVE
    last_used_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == TOKEN_STATUS_ACTIVE

    def mark_failed(self) -> None:
        self._set_status(TOKEN_STATUS_FAILED)

    def mark_active(self) -> None:
        self._set_status(TOKEN_STATUS_ACTIVE)

    def _set_status(self, status: str) -> None:
        self.status = status
        self.last_used_at = datetime.utcnow()
