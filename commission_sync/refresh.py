"""Crawl refresh entry points used by schedulers and admin tooling"""
import logging
from datetime import date
from typing import Any, Dict, Optional, Union

from sqlalchemy.orm import Session

from commission_sync.exceptions import ExchangeNotFoundError
from commission_sync.models.batch import BatchResult
from commission_sync.models.db import Exchange
from commission_sync.processor import CommissionProcessor, parse_date, utc_today
from commission_sync.services.credentials import CredentialStore
from commission_sync.services.links import AccountLinkRegistry
from commission_sync.services.storage import SnapshotStore

logger = logging.getLogger(__name__)

def refresh_exchange(session: Session, exchange_id: int,
                     target_date: Optional[Union[str, date]] = None,
                     processor: Optional[CommissionProcessor] = None) -> BatchResult:
    """
    Crawl one exchange for one date with its active crawler token.

    The token's status is saved after the crawl: failed when the
    platform rejected it, active otherwise. A transient crawl error
    leaves the token untouched and propagates.
    """
    target_date = parse_date(target_date) if target_date else utc_today()
    credentials = CredentialStore(session)
    credential = credentials.load_active(exchange_id)
    processor = processor or CommissionProcessor(session)

    result = processor.process_snapshot(exchange_id, target_date, credential)
    credentials.save(credential)

    if result.authentication_failed:
        logger.error(f"Crawler token for exchange {exchange_id} is invalid or expired. Please update it.")
    else:
        logger.info(
            f"Successfully crawled {result.processed} records for exchange {exchange_id} on {target_date} "
            f"({result.unlinked} unlinked accounts saved)"
        )
    return result

def crawler_status(session: Session, exchange_id: int) -> Dict[str, Any]:
    """Token health, latest crawled day and verified link count for an exchange"""
    exchange = session.get(Exchange, exchange_id)
    if not exchange:
        raise ExchangeNotFoundError(f"Exchange {exchange_id} not found")

    token = CredentialStore(session).get(exchange_id)
    latest = SnapshotStore(session).latest(exchange_id)

    return {
        'exchange': {'id': exchange.id, 'code': exchange.code, 'name': exchange.name},
        'token': {
            'id': token.id,
            'status': token.status,
            'last_used_at': token.last_used_at.isoformat() if token.last_used_at else None,
            'expired_at': token.expired_at.isoformat() if token.expired_at else None
        } if token else None,
        'latest_crawl': {
            'date': latest.date.isoformat(),
            'is_finalized': latest.is_finalized
        } if latest else None,
        'total_verified_links': AccountLinkRegistry(session).count_verified(exchange_id)
    }
