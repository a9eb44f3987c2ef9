"""
Unit tests for the quote state machine.

Tests the transition table, actor guards and terminal states.
"""

import pytest

from tradiehub.models.quote import QuoteStatus
from tradiehub.services import quoteStateManager
from tradiehub.services.stateMachine import ActorType


# ---------------------------------------------------------------------------
# Quote transitions
# ---------------------------------------------------------------------------


class TestQuoteTransitions:

    def test_draft_to_sent_by_tradie(self):
        result = quoteStateManager.validate_transition(
            QuoteStatus.DRAFT, QuoteStatus.SENT, ActorType.TRADIE
        )
        assert result.allowed is True

    def test_sent_to_viewed_by_client(self):
        result = quoteStateManager.validate_transition(
            QuoteStatus.SENT, QuoteStatus.VIEWED, ActorType.CLIENT
        )
        assert result.allowed is True

    @pytest.mark.parametrize("current", [QuoteStatus.SENT, QuoteStatus.VIEWED])
    def test_client_can_accept_or_reject(self, current):
        for target in (QuoteStatus.ACCEPTED, QuoteStatus.REJECTED):
            result = quoteStateManager.validate_transition(current, target, ActorType.CLIENT)
            assert result.allowed is True

    def test_draft_cannot_be_accepted(self):
        result = quoteStateManager.validate_transition(
            QuoteStatus.DRAFT, QuoteStatus.ACCEPTED, ActorType.CLIENT
        )
        assert result.allowed is False
        assert "draft" in result.reason

    def test_tradie_cannot_accept(self):
        result = quoteStateManager.validate_transition(
            QuoteStatus.SENT, QuoteStatus.ACCEPTED, ActorType.TRADIE
        )
        assert result.allowed is False
        assert result.reason == "Only the client can accept a quote."

    def test_client_cannot_cancel(self):
        result = quoteStateManager.validate_transition(
            QuoteStatus.VIEWED, QuoteStatus.CANCELLED, ActorType.CLIENT
        )
        assert result.allowed is False

    def test_only_system_expires(self):
        assert quoteStateManager.validate_transition(
            QuoteStatus.SENT, QuoteStatus.EXPIRED, ActorType.SYSTEM
        ).allowed
        assert not quoteStateManager.validate_transition(
            QuoteStatus.SENT, QuoteStatus.EXPIRED, ActorType.TRADIE
        ).allowed

    def test_viewed_cannot_go_back_to_sent(self):
        result = quoteStateManager.validate_transition(
            QuoteStatus.VIEWED, QuoteStatus.SENT, ActorType.TRADIE
        )
        assert result.allowed is False

    @pytest.mark.parametrize(
        "terminal",
        [QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED, QuoteStatus.CANCELLED],
    )
    def test_terminal_states_have_no_exits(self, terminal):
        assert quoteStateManager.is_terminal(terminal)
        for target in QuoteStatus:
            assert not quoteStateManager.validate_transition(terminal, target, ActorType.ADMIN).allowed

    def test_editable_statuses(self):
        assert quoteStateManager.is_editable(QuoteStatus.DRAFT)
        assert quoteStateManager.is_editable(QuoteStatus.VIEWED)
        assert not quoteStateManager.is_editable(QuoteStatus.ACCEPTED)

    def test_valid_transitions_for_client(self):
        targets = quoteStateManager.get_valid_transitions(QuoteStatus.SENT, ActorType.CLIENT)
        assert targets == [QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.VIEWED]
