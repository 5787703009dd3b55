"""Tests for webhook confirmation polling."""

import asyncio
import logging
from datetime import datetime
from decimal import Decimal

import pytest
from prometheus_client import REGISTRY
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.models import CreditPurchase, WalletTransaction
from carbon_market.services.role_service import RoleService
from carbon_market.services.webhook_service import (
    SqlTransactionLookup,
    TransactionFailedError,
    TransactionKind,
    TransactionRecord,
    check_webhook_transaction_status,
    wait_for_webhook_transaction,
)

SESSION_REF = "cs_test_4f2a9b7c1d"
CREATED = datetime(2026, 3, 14, 10, 30, 0)


def _record(status: str) -> TransactionRecord:
    return TransactionRecord(id="tx-1", status=status, amount=Decimal("500.00"), created_at=CREATED)


class ScriptedLookup:
    """
    Wallet lookups follow `wallet_script`, one entry per call (a record,
    None, or an exception to raise). Purchase lookups return `purchase`.
    """

    def __init__(self, wallet_script=(), purchase=None):
        self.wallet_script = list(wallet_script)
        self.purchase = purchase
        self.wallet_calls = 0
        self.purchase_calls = 0

    async def find_wallet_topup(self, reference):
        assert reference == SESSION_REF
        self.wallet_calls += 1
        step = self.wallet_script[self.wallet_calls - 1] if self.wallet_script else None
        if isinstance(step, Exception):
            raise step
        return step

    async def find_credit_purchase(self, reference):
        self.purchase_calls += 1
        return self.purchase


class SleepRecorder:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FlakySession:
    """Wraps a session; the first `failures` executes raise OperationalError."""

    def __init__(self, session: AsyncSession, failures: int = 1):
        self.session = session
        self.failures = failures
        self.rollbacks = 0

    async def execute(self, stmt):
        if self.failures:
            self.failures -= 1
            raise OperationalError("SELECT", {}, Exception("server closed the connection"))
        return await self.session.execute(stmt)

    async def commit(self):
        await self.session.commit()

    async def rollback(self):
        self.rollbacks += 1
        await self.session.rollback()


# ── Single lookup ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestCheckStatus:
    async def test_wallet_topup_short_circuits(self):
        lookup = ScriptedLookup([_record("completed")], purchase=_record("completed"))
        status = await check_webhook_transaction_status(lookup, SESSION_REF)

        assert status.kind is TransactionKind.WALLET_TOPUP
        assert status.status == "completed"
        assert status.transaction_id == "tx-1"
        assert status.amount == Decimal("500.00")
        assert status.processed_at == CREATED
        assert lookup.purchase_calls == 0

    async def test_falls_through_to_marketplace_purchase(self):
        lookup = ScriptedLookup([None], purchase=_record("pending"))
        status = await check_webhook_transaction_status(lookup, SESSION_REF)

        assert status.kind is TransactionKind.MARKETPLACE_PURCHASE
        assert status.status == "pending"

    async def test_not_found_returns_none(self):
        lookup = ScriptedLookup([None])
        assert await check_webhook_transaction_status(lookup, SESSION_REF) is None

    async def test_lookup_fault_is_logged_and_downgraded(self, caplog):
        lookup = ScriptedLookup([ConnectionError("connection reset")])
        before = REGISTRY.get_sample_value("webhook_lookup_errors_total") or 0.0

        with caplog.at_level(logging.ERROR, logger="carbon_market.services.webhook_service"):
            assert await check_webhook_transaction_status(lookup, SESSION_REF) is None

        assert "Error checking webhook transaction status" in caplog.text
        assert REGISTRY.get_sample_value("webhook_lookup_errors_total") == before + 1

    async def test_to_dict(self):
        lookup = ScriptedLookup([_record("completed")])
        status = await check_webhook_transaction_status(lookup, SESSION_REF)
        assert status.to_dict() == {
            "kind": "wallet_topup",
            "status": "completed",
            "transaction_id": "tx-1",
            "amount": Decimal("500.00"),
            "processed_at": "2026-03-14T10:30:00",
        }


# ── Polling ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestWaitForWebhook:
    async def test_completed_on_last_attempt(self):
        lookup = ScriptedLookup([_record("pending")] * 9 + [_record("completed")])
        sleep = SleepRecorder()

        status = await wait_for_webhook_transaction(lookup, SESSION_REF, sleep=sleep)

        assert status.status == "completed"
        assert lookup.wallet_calls == 10
        assert sleep.calls == [1.0] * 9

    async def test_pending_throughout_returns_none(self):
        lookup = ScriptedLookup([_record("pending")] * 10)
        sleep = SleepRecorder()
        before = REGISTRY.get_sample_value("webhook_polls_total", {"outcome": "exhausted"}) or 0.0

        status = await wait_for_webhook_transaction(lookup, SESSION_REF, sleep=sleep)

        assert status is None
        assert lookup.wallet_calls == 10
        assert len(sleep.calls) == 9
        assert REGISTRY.get_sample_value("webhook_polls_total", {"outcome": "exhausted"}) == before + 1

    async def test_failed_stops_immediately(self):
        lookup = ScriptedLookup([_record("pending"), _record("pending"), _record("failed")])
        sleep = SleepRecorder()

        with pytest.raises(TransactionFailedError) as exc_info:
            await wait_for_webhook_transaction(lookup, SESSION_REF, sleep=sleep)

        assert str(exc_info.value) == "Transaction failed"
        assert exc_info.value.session_reference == SESSION_REF
        assert exc_info.value.transaction.status == "failed"
        assert lookup.wallet_calls == 3
        assert len(sleep.calls) == 2

    async def test_fault_then_completed(self):
        lookup = ScriptedLookup([OSError("timeout"), _record("completed")])
        sleep = SleepRecorder()

        status = await wait_for_webhook_transaction(lookup, SESSION_REF, sleep=sleep)

        assert status.status == "completed"
        assert lookup.wallet_calls == 2
        assert len(sleep.calls) == 1

    async def test_completed_first_time_never_sleeps(self):
        lookup = ScriptedLookup([_record("completed")])
        sleep = SleepRecorder()

        status = await wait_for_webhook_transaction(lookup, SESSION_REF, sleep=sleep)

        assert status.kind is TransactionKind.WALLET_TOPUP
        assert sleep.calls == []

    async def test_missing_and_cancelled_records_keep_polling(self):
        lookup = ScriptedLookup([None, _record("cancelled"), None])
        sleep = SleepRecorder()

        status = await wait_for_webhook_transaction(lookup, SESSION_REF, max_attempts=3, sleep=sleep)

        assert status is None
        assert lookup.wallet_calls == 3

    async def test_purchase_confirmation(self):
        lookup = ScriptedLookup(purchase=_record("completed"))
        status = await wait_for_webhook_transaction(lookup, SESSION_REF, sleep=SleepRecorder())
        assert status.kind is TransactionKind.MARKETPLACE_PURCHASE

    async def test_interval_is_converted_to_seconds(self):
        lookup = ScriptedLookup([None, None, None])
        sleep = SleepRecorder()

        await wait_for_webhook_transaction(lookup, SESSION_REF, max_attempts=3, interval_ms=250, sleep=sleep)

        assert sleep.calls == [0.25, 0.25]

    async def test_single_attempt_never_sleeps(self):
        lookup = ScriptedLookup([None])
        sleep = SleepRecorder()

        assert await wait_for_webhook_transaction(lookup, SESSION_REF, max_attempts=1, sleep=sleep) is None
        assert sleep.calls == []

    async def test_default_sleep_with_zero_interval(self):
        lookup = ScriptedLookup([None, _record("completed")])
        status = await wait_for_webhook_transaction(lookup, SESSION_REF, max_attempts=2, interval_ms=0)
        assert status.status == "completed"

    async def test_cancelled_during_sleep_propagates(self):
        lookup = ScriptedLookup([None] * 10)
        sleeping = asyncio.Event()

        async def slow_sleep(seconds: float) -> None:
            sleeping.set()
            await asyncio.sleep(3600)

        task = asyncio.create_task(wait_for_webhook_transaction(lookup, SESSION_REF, sleep=slow_sleep))
        await sleeping.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert lookup.wallet_calls == 1

    @pytest.mark.parametrize("max_attempts,interval_ms", [(0, 1000), (-1, 1000), (3, -5)])
    async def test_invalid_bounds(self, max_attempts, interval_ms):
        with pytest.raises(ValueError):
            await wait_for_webhook_transaction(
                ScriptedLookup(), SESSION_REF, max_attempts=max_attempts, interval_ms=interval_ms,
            )


# ── Database lookup ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestSqlTransactionLookup:
    async def test_wallet_topup_row(self, db_session: AsyncSession, seed_profiles):
        db_session.add(WalletTransaction(
            id="wt-1",
            user_id=seed_profiles["user"].id,
            type="deposit",
            amount=Decimal("1500.00"),
            status="completed",
            payment_method="gcash",
            external_reference=SESSION_REF,
            created_at=CREATED,
        ))
        await db_session.flush()

        status = await check_webhook_transaction_status(SqlTransactionLookup(db_session), SESSION_REF)

        assert status.kind is TransactionKind.WALLET_TOPUP
        assert status.transaction_id == "wt-1"
        assert status.amount == Decimal("1500.00")
        assert status.processed_at == CREATED

    async def test_credit_purchase_row(self, db_session: AsyncSession, seed_profiles):
        db_session.add(CreditPurchase(
            id="cp-1",
            listing_id="listing-1",
            buyer_id=seed_profiles["user"].id,
            seller_id=seed_profiles["admin"].id,
            credits_amount=Decimal("10.00"),
            price_per_credit=Decimal("25.00"),
            total_amount=Decimal("250.00"),
            status="failed",
            payment_reference=SESSION_REF,
            created_at=CREATED,
        ))
        await db_session.flush()

        lookup = SqlTransactionLookup(db_session)
        status = await check_webhook_transaction_status(lookup, SESSION_REF)

        assert status.kind is TransactionKind.MARKETPLACE_PURCHASE
        assert status.amount == Decimal("250.00")
        with pytest.raises(TransactionFailedError):
            await wait_for_webhook_transaction(lookup, SESSION_REF, sleep=SleepRecorder())

    async def test_most_recent_row_wins(self, db_session: AsyncSession, seed_profiles):
        for tx_id, status, day in [("wt-old", "failed", 1), ("wt-new", "completed", 2)]:
            db_session.add(WalletTransaction(
                id=tx_id,
                user_id=seed_profiles["user"].id,
                type="deposit",
                amount=Decimal("100.00"),
                status=status,
                external_reference=SESSION_REF,
                created_at=datetime(2026, 3, day),
            ))
        await db_session.flush()

        record = await SqlTransactionLookup(db_session).find_wallet_topup(SESSION_REF)
        assert record.id == "wt-new"

    async def test_no_rows(self, db_session: AsyncSession):
        assert await check_webhook_transaction_status(SqlTransactionLookup(db_session), SESSION_REF) is None

    async def test_connection_released_between_attempts(self, db_session: AsyncSession, seed_profiles):
        await RoleService(db_session).get_user_role(seed_profiles["user"].id)
        assert db_session.in_transaction()

        held: list[bool] = []

        async def recording_sleep(seconds: float) -> None:
            held.append(db_session.in_transaction())

        status = await wait_for_webhook_transaction(
            SqlTransactionLookup(db_session), "cs_x", max_attempts=4, sleep=recording_sleep,
        )

        assert status is None
        assert held == [False, False, False]

    async def test_database_error_is_rolled_back_and_retried(self, db_session: AsyncSession, seed_profiles):
        db_session.add(WalletTransaction(
            id="wt-retry",
            user_id=seed_profiles["user"].id,
            type="deposit",
            amount=Decimal("300.00"),
            status="completed",
            external_reference=SESSION_REF,
            created_at=CREATED,
        ))
        await db_session.commit()
        flaky = FlakySession(db_session, failures=1)
        sleep = SleepRecorder()

        status = await wait_for_webhook_transaction(SqlTransactionLookup(flaky), SESSION_REF, sleep=sleep)

        assert status.transaction_id == "wt-retry"
        assert flaky.rollbacks == 1
        assert len(sleep.calls) == 1

    async def test_owner_only_sees_own_rows(self, db_session: AsyncSession, seed_profiles):
        db_session.add(WalletTransaction(
            id="wt-admin",
            user_id=seed_profiles["admin"].id,
            type="deposit",
            amount=Decimal("900.00"),
            status="completed",
            external_reference="cs_admin_topup",
            created_at=CREATED,
        ))
        db_session.add(CreditPurchase(
            id="cp-admin",
            listing_id="listing-2",
            buyer_id=seed_profiles["admin"].id,
            seller_id=seed_profiles["verifier"].id,
            credits_amount=Decimal("2.00"),
            price_per_credit=Decimal("40.00"),
            total_amount=Decimal("80.00"),
            status="completed",
            payment_reference="cs_admin_purchase",
            created_at=CREATED,
        ))
        await db_session.flush()

        others = SqlTransactionLookup(db_session, owner_id=seed_profiles["user"].id)
        assert await others.find_wallet_topup("cs_admin_topup") is None
        assert await others.find_credit_purchase("cs_admin_purchase") is None

        owner = SqlTransactionLookup(db_session, owner_id=seed_profiles["admin"].id)
        assert (await owner.find_wallet_topup("cs_admin_topup")).id == "wt-admin"
        assert (await owner.find_credit_purchase("cs_admin_purchase")).id == "cp-admin"
