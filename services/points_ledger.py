"""Helpers around the append-only point ledger.

The ``user_points`` row is a cache; these functions rebuild it from the
transaction log and check the two agree.
"""
from typing import Iterable, Tuple

from core.errors import InsufficientPointsError, ValidationError

EARNED = "earned"
SPENT = "spent"

REASON_VOTE = "vote"
REASON_IDEA_APPROVED = "idea_approved"
REASON_SUGGESTION = "suggestion"
REASON_STORE_REDEMPTION = "store_redemption"


def validate_posting(amount: int, type_: str) -> None:
    if type_ not in (EARNED, SPENT):
        raise ValidationError(f"Unknown transaction type '{type_}'")
    if amount is None or amount <= 0:
        raise ValidationError("Point amount must be positive")


def apply_posting(balance, amount: int, type_: str) -> None:
    """Mutate a balance (schema or ORM row) in place for one posting.

    Spends re-check the balance here, so the caller's read and this write
    happen inside the same critical section.
    """
    validate_posting(amount, type_)
    if type_ == SPENT:
        if balance.total_points < amount:
            raise InsufficientPointsError(required=amount, available=balance.total_points)
        balance.total_points -= amount
        balance.points_spent += amount
    else:
        balance.total_points += amount
        balance.points_earned += amount


def replay_transactions(transactions: Iterable) -> Tuple[int, int, int]:
    """Return ``(total, earned, spent)`` by summing the ledger."""
    earned = spent = 0
    for tx in transactions:
        if tx.type == EARNED:
            earned += tx.amount
        elif tx.type == SPENT:
            spent += tx.amount
    return earned - spent, earned, spent


def verify_balance(balance, transactions: Iterable) -> bool:
    total, earned, spent = replay_transactions(transactions)
    return (
        balance.total_points == total
        and balance.points_earned == earned
        and balance.points_spent == spent
        and balance.total_points == balance.points_earned - balance.points_spent
        and balance.total_points >= 0
    )
