"""Tests for commission_sync/processor.py"""
import pytest

from commission_sync.exceptions import (
    ExchangeInactiveError, ExchangeNotFoundError, FutureDateError, TransientCrawlError
)
from commission_sync.models.commission import RawActivityRecord
from commission_sync.models.crawl import AuthenticationFailure
from commission_sync.models.db import DailyCommission, Transaction
from helpers import (
    ScriptedCrawler, raw_record, TODAY, TOMORROW, YESTERDAY, EXCHANGE_ID, BRONZE_USER, NO_TIER_USER
)

def snapshots(session):
    return session.query(DailyCommission).order_by(DailyCommission.id).all()

def transactions(session):
    return session.query(Transaction).all()

class TestCommissionValues:

    def test_finalized_example(self, make_processor, seeded, credential):
        processor = make_processor([[raw_record('1001', commission=100.0, volume=5000.0)]])

        result = processor.process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert result.processed == 1
        rows = snapshots(seeded)
        assert len(rows) == 1
        row = rows[0]
        assert row.user_id == BRONZE_USER
        assert row.link_id == 100
        assert row.raw_commissions == 100.0
        assert row.commissions == pytest.approx(72.0)
        assert row.raw_commissions_pending == 0.0
        assert row.commissions_pending == 0.0
        assert row.is_finalized is True
        assert row.trading_amount == 5000.0

    def test_pending_example(self, make_processor, seeded, credential):
        processor = make_processor([[raw_record('1001', commission=60.0, pending=40.0)]])

        processor.process_snapshot(EXCHANGE_ID, TODAY, credential)

        row = snapshots(seeded)[0]
        assert row.is_finalized is False
        assert row.raw_commissions_pending == 100.0
        assert row.commissions_pending == pytest.approx(72.0)
        assert row.raw_commissions == 0.0
        assert row.commissions == 0.0

    def test_linked_user_without_tier(self, make_processor, seeded, credential):
        processor = make_processor([[raw_record('1002', commission=100.0)]])

        processor.process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert snapshots(seeded)[0].commissions == pytest.approx(80.0)
        tx = transactions(seeded)[0]
        assert tx.user_id == NO_TIER_USER
        assert tx.rate_applied == 0.0

    def test_unset_exchange_rate_uses_fallback(self, make_processor, seeded):
        processor = make_processor()
        record = RawActivityRecord(external_account_id='abc', commission=100.0)

        result = processor.process_records(2, YESTERDAY, [record])

        assert result.processed == 1
        assert snapshots(seeded)[0].commissions == pytest.approx(80.0)

    def test_string_date_accepted(self, make_processor, seeded, credential):
        processor = make_processor([[raw_record('1001', commission=10.0)]])

        result = processor.process_snapshot(EXCHANGE_ID, YESTERDAY.isoformat(), credential)

        assert result.date == YESTERDAY
        assert result.processed == 1

    def test_invalid_date_rejected(self, make_processor, credential):
        with pytest.raises(ValueError):
            make_processor().process_snapshot(EXCHANGE_ID, '28/11/2025', credential)

class TestZeroValueSkip:

    def test_inactive_account_not_written(self, make_processor, seeded, credential):
        processor = make_processor([[raw_record('1001'), raw_record('9999')]])

        result = processor.process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert result.skipped == 2
        assert result.processed == 0
        assert result.unlinked == 0
        assert snapshots(seeded) == []

    def test_volume_only_record_is_kept(self, make_processor, seeded, credential):
        processor = make_processor([[raw_record('1001', volume=250.0), raw_record('1002', deposits=10.0)]])

        result = processor.process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert result.processed == 2
        assert result.skipped == 0
        assert len(snapshots(seeded)) == 2
        # Nothing to credit
        assert transactions(seeded) == []

class TestSameDayIdempotence:

    def test_rerun_overwrites(self, make_processor, seeded, credential):
        pages = [[raw_record('1001', pending=50.0, volume=100.0), raw_record('9999', pending=20.0)]]

        first = make_processor(pages).process_snapshot(EXCHANGE_ID, TODAY, credential)
        before = [(r.exchange_uid, r.commissions_pending, r.raw_commissions_pending, r.trading_amount)
                  for r in snapshots(seeded)]
        second = make_processor(pages).process_snapshot(EXCHANGE_ID, TODAY, credential)
        after = [(r.exchange_uid, r.commissions_pending, r.raw_commissions_pending, r.trading_amount)
                 for r in snapshots(seeded)]

        assert first.processed == second.processed == 2
        assert second.duplicates == 0
        assert len(after) == 2
        assert before == after

    def test_rerun_updates_changed_values(self, make_processor, seeded, credential):
        make_processor([[raw_record('1001', pending=50.0)]]).process_snapshot(EXCHANGE_ID, TODAY, credential)
        make_processor([[raw_record('1001', pending=80.0)]]).process_snapshot(EXCHANGE_ID, TODAY, credential)

        rows = snapshots(seeded)
        assert len(rows) == 1
        assert rows[0].raw_commissions_pending == 80.0

    def test_pending_day_creates_no_transactions(self, make_processor, seeded, credential):
        make_processor([[raw_record('1001', commission=100.0)]]).process_snapshot(EXCHANGE_ID, TODAY, credential)

        assert transactions(seeded) == []

class TestPastDateWriteOnce:

    def test_second_run_reports_duplicates(self, make_processor, seeded, credential):
        pages = [[raw_record('1001', commission=100.0), raw_record('9999', commission=5.0)]]

        first = make_processor(pages).process_snapshot(EXCHANGE_ID, YESTERDAY, credential)
        second = make_processor(pages).process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert first.processed == 2
        assert second.processed == 0
        assert second.duplicates == 2
        assert len(snapshots(seeded)) == 2

    def test_existing_row_is_not_modified(self, make_processor, seeded, credential):
        make_processor([[raw_record('1001', commission=100.0)]]).process_snapshot(EXCHANGE_ID, YESTERDAY, credential)
        make_processor([[raw_record('1001', commission=999.0)]]).process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert snapshots(seeded)[0].raw_commissions == 100.0

    def test_insert_conflict_counted_as_duplicate(self, make_processor, seeded, credential):
        processor = make_processor([[raw_record('9999', commission=5.0)]])
        processor.process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        # Simulate a concurrent run that wrote the row after our existence check
        processor = make_processor([[raw_record('9999', commission=5.0)]])
        processor.snapshots.exists = lambda *args: False
        result = processor.process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert result.duplicates == 1
        assert result.processed == 0
        assert result.errors == []
        assert len(snapshots(seeded)) == 1

class TestFutureDate:

    def test_future_date_rejected_before_crawling(self, make_processor, seeded, credential):
        crawler = ScriptedCrawler([[raw_record('1001', commission=100.0)]])
        processor = make_processor(crawler=crawler, today=YESTERDAY)

        with pytest.raises(FutureDateError):
            processor.process_snapshot(EXCHANGE_ID, TODAY, credential)

        assert crawler.requested == []
        assert snapshots(seeded) == []
        assert transactions(seeded) == []
        assert credential.last_used_at is None

    def test_future_date_is_a_value_error(self, make_processor):
        record = RawActivityRecord(external_account_id='1001', commission=1.0)

        with pytest.raises(ValueError):
            make_processor(today=TODAY).process_records(EXCHANGE_ID, TOMORROW, [record])

    def test_finalized_row_not_reopened_as_pending(self, make_processor, seeded, credential):
        pages = [[raw_record('1001', commission=100.0)]]
        make_processor(pages, today=TOMORROW).process_snapshot(EXCHANGE_ID, TODAY, credential)

        result = make_processor(pages, today=TODAY).process_snapshot(EXCHANGE_ID, TODAY, credential)

        assert result.duplicates == 1
        assert result.processed == 0
        assert result.errors == []
        row = snapshots(seeded)[0]
        assert row.is_finalized is True
        assert row.commissions == pytest.approx(72.0)
        assert row.commissions_pending == 0.0
        assert len(transactions(seeded)) == 1

class TestLedger:

    def test_exactly_one_transaction(self, make_processor, seeded, credential):
        pages = [[raw_record('1001', commission=100.0, volume=5000.0)]]

        make_processor(pages).process_snapshot(EXCHANGE_ID, YESTERDAY, credential)
        make_processor(pages).process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        txs = transactions(seeded)
        assert len(txs) == 1
        tx = txs[0]
        assert tx.user_id == BRONZE_USER
        assert tx.link_id == 100
        assert tx.exchange_id == EXCHANGE_ID
        assert tx.transaction_date == YESTERDAY
        assert tx.commission_amount == pytest.approx(72.0)
        assert tx.rate_applied == pytest.approx(0.10)
        assert tx.raw_volume == 5000.0

    def test_existing_transaction_not_duplicated_when_snapshot_missing(self, make_processor, seeded, credential):
        pages = [[raw_record('1001', commission=100.0)]]
        make_processor(pages).process_snapshot(EXCHANGE_ID, YESTERDAY, credential)
        seeded.query(DailyCommission).delete()
        seeded.commit()

        result = make_processor(pages).process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert result.processed == 1
        assert len(snapshots(seeded)) == 1
        assert len(transactions(seeded)) == 1

    def test_unlinked_record_has_no_transaction(self, make_processor, seeded, credential):
        make_processor([[raw_record('9999', commission=100.0)]]).process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert transactions(seeded) == []

class TestUnlinked:

    def test_unlinked_record_preserved(self, make_processor, seeded, credential):
        processor = make_processor([[raw_record('9999', commission=10.0), raw_record('1003', commission=5.0)]])

        result = processor.process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert result.unlinked == 2
        assert result.processed == 2
        assert result.skipped == 0
        rows = snapshots(seeded)
        assert len(rows) == 2
        assert all(row.user_id is None and row.link_id is None for row in rows)
        # Exchange cut only
        assert rows[0].commissions == pytest.approx(8.0)

    def test_duplicate_is_not_counted_as_unlinked(self, make_processor, credential):
        pages = [[raw_record('9999', commission=10.0)]]
        make_processor(pages).process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        result = make_processor(pages).process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert result.duplicates == 1
        assert result.unlinked == 0

    def test_failed_write_is_not_counted_as_unlinked(self, make_processor, seeded, credential):
        processor = make_processor([[raw_record('9999', commission=10.0)]], today=YESTERDAY)

        def failing_upsert(values):
            raise RuntimeError("database unavailable")

        processor.snapshots.upsert_pending = failing_upsert

        result = processor.process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert result.error_count == 1
        assert result.unlinked == 0
        assert snapshots(seeded) == []

    def test_sample_marks_linked_flag(self, make_processor, credential):
        processor = make_processor([[raw_record('1001', commission=10.0), raw_record('9999', commission=10.0)]])

        result = processor.process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        by_uid = {outcome.external_account_id: outcome for outcome in result.sample}
        assert by_uid['1001'].linked is True
        assert by_uid['1001'].user_id == BRONZE_USER
        assert by_uid['1001'].commissions == pytest.approx(7.2)
        assert by_uid['9999'].linked is False
        assert by_uid['9999'].user_id is None

class TestAuthenticationFailure:

    def test_rejected_token_aborts_run(self, make_processor, seeded, credential):
        processor = make_processor([AuthenticationFailure(message="expired")])

        result = processor.process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert result.authentication_failed is True
        assert result.processed == 0
        assert result.total_records == 0
        assert snapshots(seeded) == []
        assert transactions(seeded) == []
        assert credential.status == 'failed'
        assert credential.last_used_at is not None

    def test_rejection_after_first_page_writes_nothing(self, make_processor, seeded, credential):
        first = [raw_record(str(i), commission=1.0) for i in range(100)]
        crawler = ScriptedCrawler([first, AuthenticationFailure()], total_count=300)
        processor = make_processor(crawler=crawler)

        result = processor.process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert result.authentication_failed is True
        assert snapshots(seeded) == []

    def test_successful_crawl_marks_credential_active(self, make_processor, credential):
        credential.status = 'failed'
        make_processor([[raw_record('1001', commission=1.0)]]).process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert credential.status == 'active'

    def test_transient_error_propagates(self, seeded, make_processor, credential):
        class FailingCrawler(ScriptedCrawler):
            def fetch_page(self, *args):
                raise TransientCrawlError("timed out")

        processor = make_processor(crawler=FailingCrawler([]))

        with pytest.raises(TransientCrawlError):
            processor.process_snapshot(EXCHANGE_ID, YESTERDAY, credential)
        assert credential.status == 'active'
        assert credential.last_used_at is None
        assert snapshots(seeded) == []

class TestPartialFailure:

    def test_one_bad_record_does_not_abort_batch(self, make_processor, seeded, credential):
        records = [raw_record(str(2000 + i), commission=10.0) for i in range(1, 11)]
        processor = make_processor([records])
        insert = processor.snapshots.insert_finalized

        def failing_insert(values):
            if values['exchange_uid'] == '2005':
                raise RuntimeError("disk full")
            return insert(values)

        processor.snapshots.insert_finalized = failing_insert

        result = processor.process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert result.total_records == 10
        assert result.processed == 9
        assert result.error_count == 1
        assert len(result.errors) == 1
        assert result.errors[0].external_account_id == '2005'
        assert result.errors[0].message == 'disk full'
        assert '2005' not in {row.exchange_uid for row in snapshots(seeded)}
        assert len(snapshots(seeded)) == 9

    def test_unparseable_record_reported(self, make_processor, credential):
        processor = make_processor([[{'commission': 5.0}, raw_record('9999', commission=1.0)]])

        result = processor.process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert result.processed == 1
        assert result.errors[0].external_account_id == 'unknown'

    def test_error_and_sample_lists_are_capped(self, make_processor, credential):
        good = [raw_record(str(3000 + i), commission=1.0) for i in range(8)]
        bad = [raw_record(str(4000 + i), commission=1.0) for i in range(15)]
        processor = make_processor([good + bad])
        insert = processor.snapshots.insert_finalized

        def failing_insert(values):
            if values['exchange_uid'].startswith('4'):
                raise RuntimeError("constraint check failed")
            return insert(values)

        processor.snapshots.insert_finalized = failing_insert

        result = processor.process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert result.processed == 8
        assert len(result.sample) == 5
        assert result.error_count == 15
        assert len(result.errors) == 10

    def test_custom_limits(self, make_processor, credential):
        records = [raw_record(str(5000 + i), commission=1.0) for i in range(4)]
        processor = make_processor([records], sample_limit=2)

        result = processor.process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert result.processed == 4
        assert len(result.sample) == 2

class TestBatchMetadata:

    def test_truncated_crawl_flagged(self, make_processor, credential):
        pages = [[raw_record(str(i + p * 100), commission=1.0) for i in range(100)] for p in range(3)]
        crawler = ScriptedCrawler(pages, total_count=1000, max_pages=2)

        result = make_processor(crawler=crawler).process_snapshot(EXCHANGE_ID, YESTERDAY, credential)

        assert result.truncated is True
        assert result.total_records == 200
        assert result.processed == 200

    def test_unknown_exchange(self, make_processor, credential):
        with pytest.raises(ExchangeNotFoundError):
            make_processor().process_snapshot(42, YESTERDAY, credential)

    def test_inactive_exchange(self, make_processor, credential):
        with pytest.raises(ExchangeInactiveError):
            make_processor().process_snapshot(3, YESTERDAY, credential)

    def test_result_serializes(self, make_processor, credential):
        result = make_processor([[raw_record('1001', commission=1.0)]]).process_snapshot(
            EXCHANGE_ID, YESTERDAY, credential
        )

        dumped = result.model_dump(mode='json')
        assert dumped['date'] == YESTERDAY.isoformat()
        assert dumped['processed'] == 1
        assert dumped['sample'][0]['external_account_id'] == '1001'
