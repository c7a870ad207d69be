"""Crawler token persistence"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from commission_sync.exceptions import NoActiveCredentialError
from commission_sync.models.crawl import CrawlerCredential
from commission_sync.models.db import CrawlerToken, TOKEN_STATUS_ACTIVE

logger = logging.getLogger(__name__)

class CredentialStore:
    """Loads crawler tokens and records their health after each crawl"""

    def __init__(self, session: Session):
        if not session:
            raise ValueError("Database session is required")
        self.session = session

    def load_active(self, exchange_id: int, now: Optional[datetime] = None) -> CrawlerCredential:
        """
        Get the active, unexpired token for an exchange.

        Raises:
            NoActiveCredentialError: If no usable token exists
        """
        now = now or datetime.utcnow()
        token = self.session.query(CrawlerToken).filter(
            CrawlerToken.exchange_id == exchange_id,
            CrawlerToken.status == TOKEN_STATUS_ACTIVE,
            or_(CrawlerToken.expired_at.is_(None), CrawlerToken.expired_at > now)
        ).order_by(CrawlerToken.id.desc()).first()

        if not token:
            raise NoActiveCredentialError(f"No active crawler token found for exchange {exchange_id}")

        return CrawlerCredential(
            token=token.token,
            exchange_id=token.exchange_id,
            id=token.id,
            status=token.status,
            last_used_at=token.last_used_at
        )

    def save(self, credential: CrawlerCredential) -> None:
        """Persist the status and last use time of a credential"""
        if credential.id is None:
            raise ValueError("Credential has no stored token id")
        try:
            token = self.session.get(CrawlerToken, credential.id)
            if token is None:
                raise NoActiveCredentialError(f"Crawler token {credential.id} no longer exists")
            token.status = credential.status
            token.last_used_at = credential.last_used_at
            self.session.commit()
            logger.info(f"Crawler token {credential.id} marked {credential.status}")
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error updating crawler token {credential.id}: {e}")
            raise

    def get(self, exchange_id: int) -> Optional[CrawlerToken]:
        """Most recent token for an exchange regardless of status"""
        return self.session.query(CrawlerToken).filter_by(
            exchange_id=exchange_id
        ).order_by(CrawlerToken.id.desc()).first()
