"""Commission arithmetic and tier resolution.

Pure functions only: given a transaction amount, the tier table and the
partner's cumulative history, produce the commission breakdown. Persistence
and I/O live in services/commission_service.py.

Tier resolution rules:
    - A tier matches on transaction COUNT: min_transactions <= count and
      (max_transactions is None or count <= max_transactions).
    - Among matching active tiers the one with the highest min_transactions wins.
    - The tier's bonus_rate is added only when the partner's cumulative VOLUME
      lies within [min_amount, max_amount] (max_amount None = unbounded).
    - No matching tier -> the configured default rate, no bonus.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class TierRule:
    """Read-only view of a commission tier used by the resolver."""

    name: str
    min_transactions: int
    commission_rate: Decimal
    min_amount: Decimal = Decimal("0")
    max_transactions: int | None = None
    max_amount: Decimal | None = None
    bonus_rate: Decimal = Decimal("0")
    is_active: bool = True

    def matches_count(self, transaction_count: int) -> bool:
        if transaction_count < self.min_transactions:
            return False
        return self.max_transactions is None or transaction_count <= self.max_transactions

    def bonus_applies(self, cumulative_amount: Decimal) -> bool:
        if cumulative_amount < self.min_amount:
            return False
        return self.max_amount is None or cumulative_amount <= self.max_amount


@dataclass(frozen=True)
class CommissionBreakdown:
    """Result of a commission calculation."""

    transaction_amount: Decimal
    commission_rate: Decimal
    bonus_rate: Decimal
    commission_amount: Decimal
    tier_name: str | None = None

    @property
    def effective_rate(self) -> Decimal:
        return self.commission_rate + self.bonus_rate

    def to_dict(self) -> dict:
        return {
            "transaction_amount": str(self.transaction_amount),
            "commission_rate": str(self.commission_rate),
            "bonus_rate": str(self.bonus_rate),
            "effective_rate": str(self.effective_rate),
            "commission_amount": str(self.commission_amount),
            "tier_name": self.tier_name,
        }


def compute_commission_amount(amount: Decimal, rate: Decimal) -> Decimal:
    """Return ``amount * rate / 100`` rounded half-up to currency precision.

    Raises:
        ValueError: If ``amount`` is negative or ``rate`` is outside [0, 100].
    """
    if amount < 0:
        raise ValueError(f"Transaction amount must not be negative, got {amount}")
    if rate < 0 or rate > HUNDRED:
        raise ValueError(f"Commission rate must be within [0, 100], got {rate}")
    return (amount * rate / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def resolve_tier(
    tiers: list[TierRule],
    transaction_count: int,
) -> TierRule | None:
    """Pick the active tier for a partner with ``transaction_count`` prior commissions."""
    candidates = [t for t in tiers if t.is_active and t.matches_count(transaction_count)]
    if not candidates:
        return None
    return max(candidates, key=lambda t: (t.min_transactions, t.min_amount))


def calculate_commission(
    transaction_amount: Decimal,
    tiers: list[TierRule],
    transaction_count: int,
    cumulative_amount: Decimal,
    default_rate: Decimal,
) -> CommissionBreakdown:
    """Compute the commission owed on one transaction.

    The effective rate is capped at 100 so a tier with a large bonus can never
    pay out more than the transaction itself.
    """
    tier = resolve_tier(tiers, transaction_count)
    if tier is None:
        rate, bonus, tier_name = default_rate, Decimal("0"), None
    else:
        rate = tier.commission_rate
        bonus = tier.bonus_rate if tier.bonus_applies(cumulative_amount) else Decimal("0")
        bonus = min(bonus, HUNDRED - rate)
        tier_name = tier.name

    return CommissionBreakdown(
        transaction_amount=transaction_amount,
        commission_rate=rate,
        bonus_rate=bonus,
        commission_amount=compute_commission_amount(transaction_amount, rate + bonus),
        tier_name=tier_name,
    )
