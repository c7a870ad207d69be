"""Domain models for commission records"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

@dataclass
class RawActivityRecord:
    """One external account's activity for one day, as returned by a crawler"""
    external_account_id: str
    commission: float = 0.0
    pending_commission: float = 0.0
    trading_volume: float = 0.0
    deposit_volume: float = 0.0
    maker_volume: float = 0.0
    taker_volume: float = 0.0
    raw_data: Dict[str, Any] = field(default_factory=dict)  # Original platform payload

    @property
    def raw_total(self) -> float:
        return self.commission + self.pending_commission

    @property
    def is_empty(self) -> bool:
        """No commission and no trading or deposit activity"""
        return self.raw_total == 0 and self.trading_volume == 0 and self.deposit_volume == 0

@dataclass
class AccountLink:
    """Verified link between an external account and an internal user"""
    id: int
    user_id: int
    exchange_id: int
    external_account_id: str
    status: str
    tier_id: Optional[int] = None  # User's tier at lookup time

@dataclass
class CommissionAmounts:
    """Result of the chained deduction"""
    raw_total: float
    after_exchange: float
    user_total: float
    exchange_rate: float
    tier_rate: float
