"""
Unit tests for the credit ledger.

The conditional UPDATE is mocked: a ``None`` from RETURNING means the
balance guard did not match.
"""

import uuid

import pytest

from tradiehub.core.errors import InsufficientCreditsError, ValidationError
from tradiehub.models.credit import CreditAccount, CreditTransaction, CreditTransactionType
from tradiehub.services import creditLedger


def _added(mock_db, kind):
    return [call.args[0] for call in mock_db.add.call_args_list if isinstance(call.args[0], kind)]


class TestDeduct:

    async def test_deducts_and_records_negative_transaction(self, mock_db, make_result):
        tradie_id = uuid.uuid4()
        reference = uuid.uuid4()
        mock_db.execute.return_value = make_result(scalar=15)

        transaction = await creditLedger.deduct(
            mock_db, tradie_id, 5, reference_id=reference, description="Application"
        )

        assert transaction.amount == -5
        assert transaction.balance_after == 15
        assert transaction.transaction_type == CreditTransactionType.JOB_APPLICATION
        assert transaction.reference_id == reference
        assert _added(mock_db, CreditTransaction) == [transaction]

    async def test_insufficient_balance_raises_with_amounts(self, mock_db, make_result):
        mock_db.execute.side_effect = [make_result(scalar=None), make_result(scalar=3)]

        with pytest.raises(InsufficientCreditsError) as exc_info:
            await creditLedger.deduct(mock_db, uuid.uuid4(), 5)

        assert exc_info.value.required == 5
        assert exc_info.value.available == 3
        assert exc_info.value.status_code == 402
        mock_db.add.assert_not_called()

    async def test_missing_account_reports_zero_available(self, mock_db, make_result):
        mock_db.execute.side_effect = [make_result(scalar=None), make_result(scalar=None)]
        with pytest.raises(InsufficientCreditsError) as exc_info:
            await creditLedger.deduct(mock_db, uuid.uuid4(), 2)
        assert exc_info.value.available == 0

    @pytest.mark.parametrize("amount", [0, -3])
    async def test_non_positive_amount_rejected(self, mock_db, amount):
        with pytest.raises(ValidationError):
            await creditLedger.deduct(mock_db, uuid.uuid4(), amount)
        mock_db.execute.assert_not_called()


class TestCredit:

    async def test_refund_opens_account_and_records(self, mock_db, make_result):
        tradie_id = uuid.uuid4()
        mock_db.execute.side_effect = [make_result(scalar=None), make_result(scalar=5)]

        transaction = await creditLedger.refund(mock_db, tradie_id, 5)

        accounts = _added(mock_db, CreditAccount)
        assert len(accounts) == 1
        assert accounts[0].tradie_id == tradie_id
        assert transaction.amount == 5
        assert transaction.balance_after == 5
        assert transaction.transaction_type == CreditTransactionType.APPLICATION_REFUND

    async def test_purchase_uses_existing_account(self, mock_db, make_result):
        tradie_id = uuid.uuid4()
        account = CreditAccount(tradie_id=tradie_id, balance=10)
        mock_db.execute.side_effect = [make_result(scalar=account), make_result(scalar=30)]

        transaction = await creditLedger.purchase(mock_db, tradie_id, 20)

        assert _added(mock_db, CreditAccount) == []
        assert transaction.transaction_type == CreditTransactionType.PURCHASE
        assert transaction.balance_after == 30

    async def test_purchase_rejects_zero(self, mock_db):
        with pytest.raises(ValidationError):
            await creditLedger.purchase(mock_db, uuid.uuid4(), 0)


async def test_get_balance_defaults_to_zero(mock_db, make_result):
    mock_db.execute.return_value = make_result(scalar=None)
    assert await creditLedger.get_balance(mock_db, uuid.uuid4()) == 0
