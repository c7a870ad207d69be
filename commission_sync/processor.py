"""Daily commission reconciliation and snapshot finalization"""
import logging
from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Union

from sqlalchemy.orm import Session

from commission_sync.calculation import compute_commission
from commission_sync.config import settings
from commission_sync.exceptions import (
    DuplicateSnapshotError, ExchangeInactiveError, ExchangeNotFoundError, FutureDateError
)
from commission_sync.models.batch import BatchResult, RecordError, RecordOutcome
from commission_sync.models.commission import CommissionAmounts, RawActivityRecord
from commission_sync.models.crawl import AuthenticationFailure, CrawlerCredential
from commission_sync.models.db import Exchange, Transaction
from commission_sync.services.crawler import CrawlAdapter
from commission_sync.services.links import AccountLinkRegistry
from commission_sync.services.rates import RateResolver
from commission_sync.services.registry import build_crawler
from commission_sync.services.storage import LedgerSink, SnapshotStore

logger = logging.getLogger(__name__)

def utc_today() -> date:
    return datetime.now(timezone.utc).date()

def parse_date(value: Union[str, date]) -> date:
    """Accept a date or a YYYY-MM-DD string"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid date {value!r}. Use YYYY-MM-DD")

class BatchAccumulator:
    """Collects counters and capped sample/error lists for one run"""

    def __init__(self, result: BatchResult, sample_limit: int, error_limit: int):
        self.result = result
        self.sample_limit = sample_limit
        self.error_limit = error_limit

    def add_outcome(self, outcome: RecordOutcome) -> None:
        self.result.processed += 1
        if len(self.result.sample) < self.sample_limit:
            self.result.sample.append(outcome)

    def add_error(self, external_account_id: str, error: Exception) -> None:
        self.result.error_count += 1
        if len(self.result.errors) < self.error_limit:
            self.result.errors.append(RecordError(
                external_account_id=str(external_account_id),
                message=str(error) or error.__class__.__name__
            ))

class CommissionProcessor:
    """
    Crawls an exchange for one date and reconciles every record into
    daily_commissions, emitting ledger transactions for finalized days.

    Runs for the same exchange and date must not overlap. Unique
    constraints on the snapshot and transaction keys turn a lost race
    into a counted duplicate.
    """

    def __init__(self, session: Session,
                 crawler_factory: Callable[[str], CrawlAdapter] = build_crawler,
                 rates: Optional[RateResolver] = None,
                 today: Callable[[], date] = utc_today,
                 sample_limit: int = None,
                 error_limit: int = None):
        if not session:
            raise ValueError("Database session is required")
        self.session = session
        self.crawler_factory = crawler_factory
        self.rates = rates
        self.today = today
        self.sample_limit = settings.SAMPLE_LIMIT if sample_limit is None else sample_limit
        self.error_limit = settings.ERROR_LIMIT if error_limit is None else error_limit
        self.links = AccountLinkRegistry(session)
        self.snapshots = SnapshotStore(session)
        self.ledger = LedgerSink(session)

    def _get_exchange(self, exchange_id: int) -> Exchange:
        exchange = self.session.get(Exchange, exchange_id)
        if not exchange:
            raise ExchangeNotFoundError(f"Exchange {exchange_id} not found")
        if not exchange.is_active:
            raise ExchangeInactiveError(f"Exchange {exchange.code} is not active")
        return exchange

    def _check_date(self, target_date: date) -> date:
        today = self.today()
        if target_date > today:
            raise FutureDateError(f"Cannot reconcile {target_date}: it is after {today}")
        return target_date

    def _new_result(self, exchange_id: int, target_date: date) -> BatchAccumulator:
        return BatchAccumulator(
            BatchResult(exchange_id=exchange_id, date=target_date),
            self.sample_limit,
            self.error_limit
        )

    def process_snapshot(self, exchange_id: int, target_date: Union[str, date],
                         credential: CrawlerCredential) -> BatchResult:
        """
        Crawl and reconcile one exchange for one date.

        An authentication failure marks the credential failed and returns
        an empty result flagged authentication_failed. Transient crawl
        errors propagate. Per-record failures are collected in the result.
        """
        target_date = self._check_date(parse_date(target_date))
        exchange = self._get_exchange(exchange_id)
        crawler = self.crawler_factory(exchange.code)
        batch = self._new_result(exchange.id, target_date)

        logger.info(f"Crawling {exchange.code} commissions for {target_date}")
        crawl = crawler.fetch_all(credential.token, target_date.isoformat())

        if isinstance(crawl, AuthenticationFailure):
            credential.mark_failed()
            logger.error(f"Crawler token rejected by {exchange.code}: {crawl.message}")
            batch.result.authentication_failed = True
            return batch.result

        batch.result.total_records = len(crawl.records)
        batch.result.truncated = crawl.truncated

        records: List[RawActivityRecord] = []
        for raw in crawl.records:
            try:
                records.append(crawler.transform(raw))
            except Exception as e:
                logger.warning(f"Could not parse {exchange.code} record {crawler.record_id(raw)}: {e}")
                batch.add_error(crawler.record_id(raw), e)

        self._process_records(exchange, target_date, records, batch)
        credential.mark_active()
        return batch.result

    def process_records(self, exchange_id: int, target_date: Union[str, date],
                        records: List[RawActivityRecord]) -> BatchResult:
        """Reconcile already transformed records without crawling"""
        target_date = self._check_date(parse_date(target_date))
        exchange = self._get_exchange(exchange_id)
        batch = self._new_result(exchange.id, target_date)
        batch.result.total_records = len(records)
        self._process_records(exchange, target_date, records, batch)
        return batch.result

    def _process_records(self, exchange: Exchange, target_date: date,
                         records: List[RawActivityRecord], batch: BatchAccumulator) -> None:
        rates = self.rates or RateResolver.load(self.session)
        is_today = target_date == self.today()

        for record in records:
            try:
                self._process_record(exchange, target_date, is_today, record, rates, batch)
            except Exception as e:
                self.session.rollback()
                logger.warning(f"Failed to process {exchange.code} record {record.external_account_id}: {e}")
                batch.add_error(record.external_account_id, e)

        result = batch.result
        logger.info(
            f"{exchange.code} {target_date}: {result.processed} processed, {result.skipped} skipped, "
            f"{result.duplicates} duplicates, {result.unlinked} unlinked, {result.error_count} errors"
        )

    def _process_record(self, exchange: Exchange, target_date: date, is_today: bool,
                        record: RawActivityRecord, rates: RateResolver, batch: BatchAccumulator) -> None:
        result = batch.result

        # Inactive accounts would otherwise fill the table with empty rows
        if record.is_empty:
            result.skipped += 1
            return

        link = self.links.find_verified_link(exchange.id, record.external_account_id)

        exchange_rate = rates.exchange_rate(exchange.id)
        tier_rate = rates.resolve_rate(exchange.id, link.tier_id) if link else 0.0
        amounts = compute_commission(record.commission, record.pending_commission, exchange_rate, tier_rate)

        values = {
            'user_id': link.user_id if link else None,
            'link_id': link.id if link else None,
            'exchange_id': exchange.id,
            'exchange_uid': record.external_account_id,
            'date': target_date,
            'trading_amount': record.trading_volume,
            'deposits': record.deposit_volume,
            'taker_amount': record.taker_volume,
            'maker_amount': record.maker_volume,
            'raw_data': record.raw_data,
        }

        if is_today:
            values.update(
                raw_commissions=0.0,
                commissions=0.0,
                raw_commissions_pending=amounts.raw_total,
                commissions_pending=amounts.user_total,
                is_finalized=False
            )
            try:
                self.snapshots.upsert_pending(values)
            except DuplicateSnapshotError as e:
                logger.info(str(e))
                result.duplicates += 1
                return
        else:
            if self.snapshots.exists(record.external_account_id, exchange.id, target_date):
                result.duplicates += 1
                return

            values.update(
                raw_commissions=amounts.raw_total,
                commissions=amounts.user_total,
                raw_commissions_pending=0.0,
                commissions_pending=0.0,
                is_finalized=True
            )
            # Ledger first: if the snapshot insert fails, a re-run inserts it and
            # finds the transaction already present
            if link and amounts.user_total > 0:
                self._record_transaction(link.user_id, link.id, exchange.id, target_date, record, amounts)

            try:
                self.snapshots.insert_finalized(values)
            except DuplicateSnapshotError as e:
                logger.info(str(e))
                result.duplicates += 1
                return

        if link is None:
            result.unlinked += 1
        batch.add_outcome(RecordOutcome(
            external_account_id=record.external_account_id,
            user_id=link.user_id if link else None,
            linked=link is not None,
            finalized=not is_today,
            raw_total=amounts.raw_total,
            commissions=0.0 if is_today else amounts.user_total,
            commissions_pending=amounts.user_total if is_today else 0.0,
            trading_amount=record.trading_volume
        ))

    def _record_transaction(self, user_id: int, link_id: int, exchange_id: int, target_date: date,
                            record: RawActivityRecord, amounts: CommissionAmounts) -> None:
        if self.ledger.exists(user_id, exchange_id, target_date):
            return
        self.ledger.append(Transaction(
            user_id=user_id,
            link_id=link_id,
            exchange_id=exchange_id,
            raw_volume=record.trading_volume,
            commission_amount=amounts.user_total,
            rate_applied=amounts.tier_rate,
            transaction_date=target_date,
            raw_data=record.raw_data
        ))
