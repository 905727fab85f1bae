"""Helpers that turn an expense amount into per-member shares."""

from collections.abc import Iterable, Mapping
from decimal import ROUND_DOWN, Decimal

from ..exceptions import InvalidSplitError
from ..models import ExpenseShare
from .engine import SHARE_TOLERANCE, ZERO, to_decimal

CENT = Decimal("0.01")


def equal_shares(
    amount: Decimal | float | int | str, member_ids: Iterable[str]
) -> list[ExpenseShare]:
    """
    Split an amount equally, to the cent.

    The amount is divided and rounded down to cents, then the leftover cents
    are handed out one at a time starting from the first member, so the
    shares always add up to exactly the amount.

    Args:
        amount: Total expense amount
        member_ids: Members sharing the expense, in display order

    Returns:
        One ExpenseShare per distinct member

    Raises:
        InvalidSplitError: If the amount isn't positive, has fractions of a cent,
            or there are no members

    Example:
        >>> [s.amount for s in equal_shares("100", ["a", "b", "c"])]
        [Decimal('33.34'), Decimal('33.33'), Decimal('33.33')]
    """
    total = to_decimal(amount)
    if total <= ZERO:
        raise InvalidSplitError(f"Expense amount must be positive, got {total}")
    if total != total.quantize(CENT):
        raise InvalidSplitError(
            f"Expense amount {total} has fractions of a cent; enter it to the cent"
        )

    # Preserve order, drop duplicates
    members = list(dict.fromkeys(member_ids))
    if not members:
        raise InvalidSplitError("Cannot split an expense between zero members")

    base = (total / len(members)).quantize(CENT, rounding=ROUND_DOWN)
    remainder_cents = int((total - base * len(members)) / CENT)

    shares = []
    for idx, member_id in enumerate(members):
        share = base + CENT if idx < remainder_cents else base
        shares.append(ExpenseShare(member_id=member_id, amount=share))
    return shares


def unequal_shares(
    amount: Decimal | float | int | str,
    shares_by_member: Mapping[str, Decimal | float | int | str],
    tolerance: Decimal = SHARE_TOLERANCE,
) -> list[ExpenseShare]:
    """
    Validate hand-entered shares against the expense amount.

    Members with a zero or negative share are left out, matching the entry
    form which ignores blank fields.

    Raises:
        InvalidSplitError: If no positive shares remain or they don't add up
    """
    total = to_decimal(amount)
    if total <= ZERO:
        raise InvalidSplitError(f"Expense amount must be positive, got {total}")

    shares = [
        ExpenseShare(member_id=member_id, amount=to_decimal(value))
        for member_id, value in shares_by_member.items()
        if to_decimal(value) > ZERO
    ]
    if not shares:
        raise InvalidSplitError("At least one member must have a positive share")

    share_total = sum((s.amount for s in shares), ZERO)
    if abs(share_total - total) >= tolerance:
        raise InvalidSplitError(
            f"Shares add up to {share_total} but the expense amount is {total}"
        )
    return shares
