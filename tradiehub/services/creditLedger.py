"""
Credit ledger for marketplace applications.

Balances live on ``CreditAccount``; every change is a single conditional
UPDATE so concurrent spends can never take a balance below zero, and each
change appends a ``CreditTransaction`` with the resulting balance.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tradiehub.core.errors import InsufficientCreditsError, ValidationError
from tradiehub.models.base import utcnow
from tradiehub.models.credit import CreditAccount, CreditTransaction, CreditTransactionType

logger = logging.getLogger(__name__)


async def get_account(db: AsyncSession, tradie_id: uuid.UUID) -> Optional[CreditAccount]:
    result = await db.execute(select(CreditAccount).where(CreditAccount.tradie_id == tradie_id))
    return result.scalar_one_or_none()


async def get_balance(db: AsyncSession, tradie_id: uuid.UUID) -> int:
    result = await db.execute(
        select(CreditAccount.balance).where(CreditAccount.tradie_id == tradie_id)
    )
    return result.scalar_one_or_none() or 0


async def open_account(db: AsyncSession, tradie_id: uuid.UUID) -> CreditAccount:
    """Return the tradie's account, creating an empty one if needed."""
    account = await get_account(db, tradie_id)
    if account is None:
        account = CreditAccount(tradie_id=tradie_id, balance=0)
        db.add(account)
        await db.flush()
    return account


async def _record(
    db: AsyncSession,
    tradie_id: uuid.UUID,
    amount: int,
    transaction_type: CreditTransactionType,
    balance_after: int,
    reference_id: Optional[uuid.UUID],
    description: Optional[str],
) -> CreditTransaction:
    transaction = CreditTransaction(
        tradie_id=tradie_id,
        amount=amount,
        transaction_type=transaction_type,
        reference_id=reference_id,
        description=description,
        balance_after=balance_after,
    )
    db.add(transaction)
    await db.flush()
    return transaction


async def _credit(
    db: AsyncSession,
    tradie_id: uuid.UUID,
    amount: int,
    transaction_type: CreditTransactionType,
    reference_id: Optional[uuid.UUID],
    description: Optional[str],
) -> CreditTransaction:
    if amount <= 0:
        raise ValidationError.for_field("amount", "Credit amount must be positive.")
    await open_account(db, tradie_id)

    result = await db.execute(
        update(CreditAccount)
        .where(CreditAccount.tradie_id == tradie_id)
        .values(balance=CreditAccount.balance + amount, updated_at=utcnow())
        .returning(CreditAccount.balance)
        .execution_options(synchronize_session=False)
    )
    balance_after = result.scalar_one()
    return await _record(
        db, tradie_id, amount, transaction_type, balance_after, reference_id, description
    )


async def deduct(
    db: AsyncSession,
    tradie_id: uuid.UUID,
    amount: int,
    *,
    reference_id: Optional[uuid.UUID] = None,
    description: Optional[str] = None,
) -> CreditTransaction:
    """Spend ``amount`` credits.

    Raises:
        InsufficientCreditsError: If the balance (read at the moment of the
            update) is lower than ``amount``. Nothing is deducted.
    """
    if amount <= 0:
        raise ValidationError.for_field("amount", "Deduction must be positive.")

    result = await db.execute(
        update(CreditAccount)
        .where(CreditAccount.tradie_id == tradie_id, CreditAccount.balance >= amount)
        .values(balance=CreditAccount.balance - amount, updated_at=utcnow())
        .returning(CreditAccount.balance)
        .execution_options(synchronize_session=False)
    )
    balance_after = result.scalar_one_or_none()
    if balance_after is None:
        available = await get_balance(db, tradie_id)
        logger.info(
            "Credit deduction refused for tradie %s: required=%d available=%d",
            tradie_id,
            amount,
            available,
        )
        raise InsufficientCreditsError(required=amount, available=available)

    logger.info(
        "Deducted %d credits from tradie %s (balance now %d)", amount, tradie_id, balance_after
    )
    return await _record(
        db,
        tradie_id,
        -amount,
        CreditTransactionType.JOB_APPLICATION,
        balance_after,
        reference_id,
        description,
    )


async def refund(
    db: AsyncSession,
    tradie_id: uuid.UUID,
    amount: int,
    *,
    reference_id: Optional[uuid.UUID] = None,
    description: Optional[str] = None,
) -> CreditTransaction:
    transaction = await _credit(
        db, tradie_id, amount, CreditTransactionType.APPLICATION_REFUND, reference_id, description
    )
    logger.info("Refunded %d credits to tradie %s", amount, tradie_id)
    return transaction


async def purchase(
    db: AsyncSession,
    tradie_id: uuid.UUID,
    amount: int,
    *,
    reference_id: Optional[uuid.UUID] = None,
    description: Optional[str] = None,
) -> CreditTransaction:
    """Top up a tradie's balance."""
    transaction = await _credit(
        db, tradie_id, amount, CreditTransactionType.PURCHASE, reference_id, description
    )
    logger.info("Tradie %s purchased %d credits", tradie_id, amount)
    return transaction


async def list_transactions(
    db: AsyncSession,
    tradie_id: uuid.UUID,
    limit: int = 50,
) -> list[CreditTransaction]:
    result = await db.execute(
        select(CreditTransaction)
        .where(CreditTransaction.tradie_id == tradie_id)
        .order_by(CreditTransaction.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
