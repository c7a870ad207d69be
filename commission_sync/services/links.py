"""Lookup of verified links between exchange accounts and users"""
import logging
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from commission_sync.models.commission import AccountLink
from commission_sync.models.db import UserExchangeLink, Profile, LINK_STATUS_VERIFIED

logger = logging.getLogger(__name__)

class AccountLinkRegistry:
    """Read-only view over user_exchange_links"""

    def __init__(self, session: Session):
        if not session:
            raise ValueError("Database session is required")
        self.session = session

    def find_verified_link(self, exchange_id: int, external_account_id: str) -> Optional[AccountLink]:
        """Return the verified link for an external account, with the user's current tier"""
        try:
            row = self.session.query(UserExchangeLink, Profile.current_tier_id).join(
                Profile, Profile.id == UserExchangeLink.user_id
            ).filter(
                UserExchangeLink.exchange_id == exchange_id,
                UserExchangeLink.exchange_uid == str(external_account_id),
                UserExchangeLink.status == LINK_STATUS_VERIFIED
            ).first()
        except SQLAlchemyError as e:
            logger.error(f"Database error looking up link for {external_account_id}: {e}")
            raise

        if not row:
            return None

        link, tier_id = row
        return AccountLink(
            id=link.id,
            user_id=link.user_id,
            exchange_id=link.exchange_id,
            external_account_id=link.exchange_uid,
            status=link.status,
            tier_id=tier_id
        )

    def current_tier(self, user_id: int) -> Optional[int]:
        profile = self.session.get(Profile, user_id)
        return profile.current_tier_id if profile else None

    def count_verified(self, exchange_id: int) -> int:
        return self.session.query(UserExchangeLink).filter_by(
            exchange_id=exchange_id,
            status=LINK_STATUS_VERIFIED
        ).count()
