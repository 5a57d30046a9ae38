"""Tests for the harvest and commission state machines.

These tests verify that:
    1. All valid transitions are allowed.
    2. All invalid transitions are blocked.
    3. The convenience function validate_transition works.
    4. Terminal states allow no further events.
"""

from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from grochain.domain.state_machine import (
    CommissionStateMachine,
    HarvestStateMachine,
    validate_transition,
)


class TestHarvestApprovalGate:
    def test_approve(self) -> None:
        sm = HarvestStateMachine("pending")
        sm.approve()
        assert sm.status == "approved"

    def test_reject(self) -> None:
        sm = HarvestStateMachine("pending")
        sm.reject()
        assert sm.status == "rejected"

    def test_default_is_pending(self) -> None:
        assert HarvestStateMachine().status == "pending"

    def test_pending_allowed_events(self) -> None:
        assert sorted(HarvestStateMachine("pending").get_allowed_events()) == ["approve", "reject"]

    @pytest.mark.parametrize("status", ["approved", "rejected"])
    def test_decided_harvest_is_final(self, status: str) -> None:
        sm = HarvestStateMachine(status)
        assert sm.get_allowed_events() == []
        with pytest.raises(TransitionNotAllowed):
            sm.approve()
        with pytest.raises(TransitionNotAllowed):
            sm.reject()


class TestCommissionLifecycle:
    def test_happy_path(self) -> None:
        sm = CommissionStateMachine("pending")
        sm.approve()
        assert sm.status == "approved"
        sm.process_payment()
        assert sm.status == "paid"

    def test_cannot_pay_before_approval(self) -> None:
        sm = CommissionStateMachine("pending")
        with pytest.raises(TransitionNotAllowed):
            sm.process_payment()

    @pytest.mark.parametrize("status", ["pending", "approved"])
    def test_cancel(self, status: str) -> None:
        sm = CommissionStateMachine(status)
        sm.cancel()
        assert sm.status == "cancelled"

    def test_paid_is_final(self) -> None:
        assert CommissionStateMachine("paid").get_allowed_events() == []

    def test_cancelled_is_final(self) -> None:
        assert CommissionStateMachine("cancelled").get_allowed_events() == []


class TestCommissionDisputes:
    @pytest.mark.parametrize("status", ["pending", "approved"])
    def test_raise_dispute(self, status: str) -> None:
        sm = CommissionStateMachine(status)
        sm.raise_dispute()
        assert sm.status == "disputed"

    def test_resolve_returns_to_pending(self) -> None:
        sm = CommissionStateMachine("disputed")
        sm.resolve_dispute()
        assert sm.status == "pending"

    def test_close_cancels(self) -> None:
        sm = CommissionStateMachine("disputed")
        sm.close_dispute()
        assert sm.status == "cancelled"

    def test_cannot_dispute_paid(self) -> None:
        sm = CommissionStateMachine("paid")
        with pytest.raises(TransitionNotAllowed):
            sm.raise_dispute()

    def test_disputed_cannot_be_approved(self) -> None:
        sm = CommissionStateMachine("disputed")
        with pytest.raises(TransitionNotAllowed):
            sm.approve()


class TestValidateTransitionFunction:
    def test_valid_transition(self) -> None:
        assert validate_transition(HarvestStateMachine, "pending", "approve") == "approved"
        assert validate_transition(CommissionStateMachine, "approved", "process_payment") == "paid"

    def test_illegal_transition(self) -> None:
        with pytest.raises(TransitionNotAllowed):
            validate_transition(HarvestStateMachine, "rejected", "approve")

    def test_invalid_event_name(self) -> None:
        with pytest.raises(ValueError, match="Unknown event"):
            validate_transition(CommissionStateMachine, "pending", "nonexistent_event")

    def test_invalid_status(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            HarvestStateMachine("revision_requested")
