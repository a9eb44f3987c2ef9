"""
Credit API Routes
=================

Routes:
  GET  /api/v1/credits/balance   -- Balance and recent transactions (tradie)
  POST /api/v1/credits/purchase  -- Top up the balance (tradie)
"""

import logging

from fastapi import APIRouter, Query, status

from tradiehub.api.deps import DBSession, TradieUser
from tradiehub.api.schemas.common import ApiResponse
from tradiehub.api.schemas.marketplace import (
    CreditBalanceOut,
    CreditPurchaseRequest,
    CreditTransactionOut,
)
from tradiehub.services import creditLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/credits", tags=["Credits"])


@router.get(
    "/balance",
    response_model=ApiResponse[CreditBalanceOut],
    summary="Current credit balance",
)
async def balance(
    db: DBSession,
    user: TradieUser,
    limit: int = Query(20, ge=1, le=100),
):
    current = await creditLedger.get_balance(db, user.id)
    transactions = await creditLedger.list_transactions(db, user.id, limit)
    return ApiResponse(
        data=CreditBalanceOut(
            balance=current,
            transactions=[CreditTransactionOut.model_validate(t) for t in transactions],
        )
    )


@router.post(
    "/purchase",
    response_model=ApiResponse[CreditTransactionOut],
    status_code=status.HTTP_201_CREATED,
    summary="Purchase credits",
)
async def purchase(db: DBSession, user: TradieUser, body: CreditPurchaseRequest):
    transaction = await creditLedger.purchase(
        db, user.id, body.amount, description="Credit purchase"
    )
    return ApiResponse(
        message=f"{body.amount} credits added",
        data=CreditTransactionOut.model_validate(transaction),
    )
