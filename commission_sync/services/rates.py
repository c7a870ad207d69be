"""Commission rate lookup for exchanges and tiers"""
import logging
from typing import Dict, Optional, Tuple

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from commission_sync.calculation import validate_rate
from commission_sync.config import settings
from commission_sync.models.db import Exchange, ExchangeTier

logger = logging.getLogger(__name__)

class RateResolver:
    """
    Resolves commission deduction rates from preloaded configuration.

    Lookups are pure once the resolver is built; use load() to read
    the rate tables from the database.
    """

    def __init__(self, exchange_rates: Dict[int, Optional[float]],
                 tier_rates: Dict[Tuple[int, int], float],
                 fallback_rate: float = None):
        self.exchange_rates = exchange_rates
        self.tier_rates = tier_rates
        self.fallback_rate = settings.DEFAULT_EXCHANGE_RATE if fallback_rate is None else fallback_rate

    @classmethod
    def load(cls, session: Session, fallback_rate: float = None) -> 'RateResolver':
        """Read exchange defaults and tier rates from the database"""
        try:
            exchange_rates = {
                exchange.id: exchange.default_commission_rate
                for exchange in session.query(Exchange).all()
            }
            tier_rates = {
                (row.exchange_id, row.tier_id): row.commission_rate
                for row in session.query(ExchangeTier).all()
            }
        except SQLAlchemyError as e:
            logger.error(f"Database error loading commission rates: {e}")
            raise

        logger.info(f"Loaded rates for {len(exchange_rates)} exchanges and {len(tier_rates)} tiers")
        return cls(exchange_rates, tier_rates, fallback_rate)

    def exchange_rate(self, exchange_id: int) -> float:
        """Exchange default rate, falling back when unset"""
        rate = self.exchange_rates.get(exchange_id)
        if rate is None:
            return self.fallback_rate
        return validate_rate(rate, f"exchange {exchange_id} rate")

    def tier_rate(self, exchange_id: int, tier_id: int) -> Optional[float]:
        """Configured tier rate, or None when the tier has none on this exchange"""
        rate = self.tier_rates.get((exchange_id, tier_id))
        if rate is None:
            return None
        return validate_rate(rate, f"tier {tier_id} rate on exchange {exchange_id}")

    def resolve_rate(self, exchange_id: int, tier_id: Optional[int]) -> float:
        """Rate deducted for a tier on an exchange; 0 for no tier or no configured rate"""
        if tier_id is None:
            return 0.0
        rate = self.tier_rate(exchange_id, tier_id)
        return 0.0 if rate is None else rate
