"""State machine guards for harvests and commissions.

Uses python-statemachine to enforce legal state transitions at the domain level.
No matter what the API or a background job does, an illegal transition
(e.g., approving an already rejected harvest) raises TransitionNotAllowed.

Machines are instantiated per record at the record's stored status and are
fired before the ORM status column is updated.

Harvest transition table:
    pending    -> approved     (approve)
    pending    -> rejected     (reject)

Commission transition table:
    pending    -> approved     (approve)
    approved   -> paid         (process_payment)
    pending    -> cancelled    (cancel)
    approved   -> cancelled    (cancel)
    pending    -> disputed     (raise_dispute)
    approved   -> disputed     (raise_dispute)
    disputed   -> pending      (resolve_dispute)
    disputed   -> cancelled    (close_dispute)
"""

from __future__ import annotations

from statemachine import State, StateMachine


class _StatusGuard:
    """Helpers shared by the record-status machines below."""

    def __init__(self, current_status: str) -> None:
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(f"Unknown status '{current_status}'. Valid states: {valid}")
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value (matches the enum stored on the record)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return the event names that can fire from the current state."""
        return [event.name for event in self.allowed_events]


class HarvestStateMachine(_StatusGuard, StateMachine):
    """Approval gate for a harvest batch.

    Usage:
        sm = HarvestStateMachine("pending")
        sm.approve()
        sm.status   # "approved"
    """

    pending = State("Pending", value="pending", initial=True)
    approved = State("Approved", value="approved", final=True)
    rejected = State("Rejected", value="rejected", final=True)

    approve = pending.to(approved)
    reject = pending.to(rejected)

    def __init__(self, current_status: str = "pending") -> None:
        super().__init__(current_status)


class CommissionStateMachine(_StatusGuard, StateMachine):
    """Approval and payout lifecycle of a partner commission."""

    pending = State("Pending", value="pending", initial=True)
    approved = State("Approved", value="approved")
    disputed = State("Disputed", value="disputed")
    paid = State("Paid", value="paid", final=True)
    cancelled = State("Cancelled", value="cancelled", final=True)

    # Approval and payout
    approve = pending.to(approved)
    process_payment = approved.to(paid)
    cancel = pending.to(cancelled) | approved.to(cancelled)

    # Disputes
    raise_dispute = pending.to(disputed) | approved.to(disputed)
    resolve_dispute = disputed.to(pending)
    close_dispute = disputed.to(cancelled)

    def __init__(self, current_status: str = "pending") -> None:
        super().__init__(current_status)


def validate_transition(
    machine_class: type[HarvestStateMachine] | type[CommissionStateMachine],
    current_status: str,
    event_name: str,
) -> str:
    """Validate a state transition and return the new status.

    Creates a throwaway machine at ``current_status``, fires ``event_name``
    and returns the resulting status string.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is unknown.
    """
    sm = machine_class(current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status
