"""
Webhook confirmation: wait for the payment gateway's webhook to land.

After a checkout session is created the gateway notifies our edge function,
which writes (or updates) a row keyed by the checkout session id:

- wallet_transactions.external_reference   → wallet top-ups
- credit_purchases.payment_reference       → marketplace purchases

The client can't see that delivery directly, so it polls here for a bounded
time. A `None` result means "nothing confirmed yet" and the caller completes
the payment through the client-side path instead; only a `failed` record is
reported as an error.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.middleware.metrics import (
    webhook_lookup_errors_total,
    webhook_poll_attempts,
    webhook_polls_total,
)
from carbon_market.models import CreditPurchase, WalletTransaction

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_INTERVAL_MS = 1000

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


class TransactionKind(str, Enum):
    WALLET_TOPUP = "wallet_topup"
    MARKETPLACE_PURCHASE = "marketplace_purchase"


@dataclass(frozen=True)
class TransactionRecord:
    """One row as seen by the poller, whichever table it came from."""
    id: str
    status: str
    amount: Decimal
    created_at: datetime | None


@dataclass(frozen=True)
class WebhookTransactionStatus:
    kind: TransactionKind
    status: str
    transaction_id: str
    amount: Decimal
    processed_at: datetime | None

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == STATUS_FAILED

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "status": self.status,
            "transaction_id": self.transaction_id,
            "amount": self.amount,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }


class TransactionFailedError(Exception):
    """The gateway reported the payment as failed; there is nothing to wait for."""

    def __init__(self, session_reference: str, transaction: WebhookTransactionStatus | None = None):
        super().__init__("Transaction failed")
        self.session_reference = session_reference
        self.transaction = transaction


class TransactionLookup(Protocol):
    async def find_wallet_topup(self, reference: str) -> TransactionRecord | None: ...

    async def find_credit_purchase(self, reference: str) -> TransactionRecord | None: ...


class SqlTransactionLookup:
    """
    TransactionLookup backed by the marketplace database.

    Each lookup ends its transaction, so a poll sleeping between attempts
    does not hold a pooled connection. With `owner_id` set, only rows paid
    for by that user are visible.
    """

    def __init__(self, session: AsyncSession, owner_id: str | None = None):
        self.session = session
        self.owner_id = owner_id

    async def _first(self, stmt) -> TransactionRecord | None:
        try:
            row = (await self.session.execute(stmt)).first()
        except SQLAlchemyError:
            # an aborted transaction would fail every later attempt too
            await self.session.rollback()
            raise
        await self.session.commit()
        return TransactionRecord(*row) if row else None

    async def find_wallet_topup(self, reference: str) -> TransactionRecord | None:
        stmt = (
            select(
                WalletTransaction.id,
                WalletTransaction.status,
                WalletTransaction.amount,
                WalletTransaction.created_at,
            )
            .where(WalletTransaction.external_reference == reference)
            .order_by(WalletTransaction.created_at.desc())
            .limit(1)
        )
        if self.owner_id is not None:
            stmt = stmt.where(WalletTransaction.user_id == self.owner_id)
        return await self._first(stmt)

    async def find_credit_purchase(self, reference: str) -> TransactionRecord | None:
        stmt = (
            select(
                CreditPurchase.id,
                CreditPurchase.status,
                CreditPurchase.total_amount,
                CreditPurchase.created_at,
            )
            .where(CreditPurchase.payment_reference == reference)
            .order_by(CreditPurchase.created_at.desc())
            .limit(1)
        )
        if self.owner_id is not None:
            stmt = stmt.where(CreditPurchase.buyer_id == self.owner_id)
        return await self._first(stmt)


def _summarize(kind: TransactionKind, record: TransactionRecord) -> WebhookTransactionStatus:
    return WebhookTransactionStatus(
        kind=kind,
        status=record.status,
        transaction_id=record.id,
        amount=record.amount,
        processed_at=record.created_at,
    )


async def check_webhook_transaction_status(
    lookup: TransactionLookup,
    session_reference: str,
) -> WebhookTransactionStatus | None:
    """
    Look the session reference up once, wallet top-ups first.

    Returns None when neither table has a row. Lookup failures are logged and
    also reported as None, so a flaky read never aborts a poll in progress.
    """
    try:
        wallet_tx = await lookup.find_wallet_topup(session_reference)
        if wallet_tx is not None:
            return _summarize(TransactionKind.WALLET_TOPUP, wallet_tx)

        purchase = await lookup.find_credit_purchase(session_reference)
        if purchase is not None:
            return _summarize(TransactionKind.MARKETPLACE_PURCHASE, purchase)
    except Exception:
        webhook_lookup_errors_total.inc()
        logger.exception(
            "Error checking webhook transaction status for %s",
            session_reference,
            extra={"session_reference": session_reference},
        )

    return None


async def wait_for_webhook_transaction(
    lookup: TransactionLookup,
    session_reference: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    interval_ms: int = DEFAULT_INTERVAL_MS,
    *,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> WebhookTransactionStatus | None:
    """
    Poll until the webhook has processed the transaction.

    Makes at most `max_attempts` lookups, sleeping `interval_ms` between
    consecutive ones (never after the last). Returns the summary as soon as
    the record is `completed`, raises TransactionFailedError as soon as it is
    `failed`, and returns None if neither happened within the bound.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    if interval_ms < 0:
        raise ValueError("interval_ms must not be negative")

    for attempt in range(1, max_attempts + 1):
        status = await check_webhook_transaction_status(lookup, session_reference)

        if status is not None and status.is_completed:
            webhook_polls_total.labels(outcome="completed").inc()
            webhook_poll_attempts.observe(attempt)
            logger.info(
                "Transaction %s processed by webhook (attempt %d/%d)",
                session_reference, attempt, max_attempts,
                extra={"session_reference": session_reference, "attempt": attempt, "outcome": "completed"},
            )
            return status

        if status is not None and status.is_failed:
            webhook_polls_total.labels(outcome="failed").inc()
            webhook_poll_attempts.observe(attempt)
            logger.warning(
                "Transaction %s reported failed by webhook (attempt %d/%d)",
                session_reference, attempt, max_attempts,
                extra={"session_reference": session_reference, "attempt": attempt, "outcome": "failed"},
            )
            raise TransactionFailedError(session_reference, status)

        if attempt < max_attempts:
            await sleep(interval_ms / 1000)

    webhook_polls_total.labels(outcome="exhausted").inc()
    webhook_poll_attempts.observe(max_attempts)
    logger.warning(
        "Webhook did not process %s within %d attempts, falling back to client-side completion",
        session_reference, max_attempts,
        extra={"session_reference": session_reference, "attempt": max_attempts, "outcome": "exhausted"},
    )
    return None
