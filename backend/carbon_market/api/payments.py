"""
Payments API: confirmation of gateway checkouts.

The UI calls `/confirm` when the shopper returns from the gateway. If the
webhook already recorded the payment we say so; if nothing arrives in time
the response tells the UI to complete the payment on its own path.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.api.deps import get_db, require_any
from carbon_market.auth.context import RequestContext
from carbon_market.auth.permissions import Permission
from carbon_market.config import settings
from carbon_market.services.webhook_service import (
    SqlTransactionLookup,
    TransactionFailedError,
    check_webhook_transaction_status,
    wait_for_webhook_transaction,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])

_PAYMENT_PERMS = (Permission.MANAGE_WALLET, Permission.PURCHASE_CREDITS)


def _lookup_for(ctx: RequestContext, db: AsyncSession) -> SqlTransactionLookup:
    """Callers without `view_all_transactions` only see their own payments."""
    if ctx.has_permission(Permission.VIEW_ALL_TRANSACTIONS):
        return SqlTransactionLookup(db)
    return SqlTransactionLookup(db, owner_id=ctx.user_id)


@router.get("/{session_reference}/status")
async def payment_status(session_reference: str,
                         ctx: RequestContext = Depends(require_any(*_PAYMENT_PERMS)),
                         db: AsyncSession = Depends(get_db)):
    """Single lookup, no waiting."""
    status = await check_webhook_transaction_status(_lookup_for(ctx, db), session_reference)
    return {
        "session_reference": session_reference,
        "transaction": status.to_dict() if status else None,
    }


@router.post("/{session_reference}/confirm")
async def confirm_payment(session_reference: str,
                          ctx: RequestContext = Depends(require_any(*_PAYMENT_PERMS)),
                          db: AsyncSession = Depends(get_db)):
    """Wait (bounded) for the webhook to confirm the checkout session."""
    try:
        status = await wait_for_webhook_transaction(
            _lookup_for(ctx, db),
            session_reference,
            max_attempts=settings.webhook_poll_max_attempts,
            interval_ms=settings.webhook_poll_interval_ms,
        )
    except TransactionFailedError:
        logger.info("Payment %s failed for %s", session_reference, ctx.actor)
        raise HTTPException(status_code=402, detail="Transaction failed")

    if status is None:
        return {"confirmed": False, "fallback": True, "transaction": None}
    return {"confirmed": True, "fallback": False, "transaction": status.to_dict()}
