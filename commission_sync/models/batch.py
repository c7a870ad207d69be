"""Response models returned to callers of the processor"""
import datetime as dt
from typing import List, Optional
from pydantic import BaseModel

class RecordOutcome(BaseModel):
    """Compact summary of one processed record"""
    external_account_id: str
    user_id: Optional[int] = None
    linked: bool = False
    finalized: bool = False
    raw_total: float = 0.0
    commissions: float = 0.0
    commissions_pending: float = 0.0
    trading_amount: float = 0.0

class RecordError(BaseModel):
    """A record that failed and was left out of the batch"""
    external_account_id: str
    message: str

class BatchResult(BaseModel):
    """
    Summary of one processing run for an exchange and date.

    errors and sample are capped; error_count holds the full number
    of failed records. unlinked counts written rows with no verified
    user link, so it is a subset of processed.
    """
    exchange_id: int
    date: dt.date
    total_records: int = 0
    processed: int = 0
    skipped: int = 0
    duplicates: int = 0
    unlinked: int = 0
    error_count: int = 0
    errors: List[RecordError] = []
    sample: List[RecordOutcome] = []
    truncated: bool = False
    authentication_failed: bool = False

class SnapshotRow(BaseModel):
    """Read-only view of a daily commission row"""
    exchange_uid: str
    exchange_id: int
    date: dt.date
    user_id: Optional[int] = None
    link_id: Optional[int] = None
    raw_commissions: float
    raw_commissions_pending: float
    commissions: float
    commissions_pending: float
    trading_amount: float
    deposits: float
    is_finalized: bool

    model_config = {'from_attributes': True}

class SnapshotPage(BaseModel):
    """Page of daily commission rows"""
    data: List[SnapshotRow]
    total: int
    page: int
    limit: int

class CommissionTotals(BaseModel):
    """A user's finalized and pending commission totals"""
    total: float
    finalized: float
    pending: float
