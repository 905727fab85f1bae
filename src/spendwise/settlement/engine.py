"""Core settlement logic: net balances and the transfers that clear them.

Everything in this module is pure. Callers hand in a fully materialised
snapshot of members, expenses and settlements and get derived values back;
nothing here performs I/O or keeps state between calls, so recomputing on
every read is the expected usage.
"""

import logging
import re
from collections.abc import Iterable, Mapping
from decimal import Decimal

from ..models import (
    CategoryBreakdown,
    CategoryTotal,
    Expense,
    Member,
    Settlement,
    SettlementPlan,
    SuggestedSettlement,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Half a cent: anything closer to zero than this rounds to a settled balance.
SETTLED_EPSILON = Decimal("0.005")

# Hand-entered shares must match their expense to within a cent.
SHARE_TOLERANCE = Decimal("0.01")

CATEGORY_NOTE_PREFIX = "Settlement for "
_CATEGORY_NOTE_RE = re.compile(rf"^{CATEGORY_NOTE_PREFIX}(?P<category>.+)$")


def to_decimal(value: Decimal | float | int | str) -> Decimal:
    """
    Coerce a money value to Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1") rather than its
    binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _member_id(member: Member | str) -> str:
    return member.id if isinstance(member, Member) else str(member)


# ============================================================================
# Balance derivation
# ============================================================================


def compute_balances(
    members: Iterable[Member | str],
    expenses: Iterable[Expense],
    settlements: Iterable[Settlement],
    share_tolerance: Decimal = SHARE_TOLERANCE,
) -> dict[str, Decimal]:
    """
    Derive every member's signed net balance.

    Positive means the group owes the member (creditor), negative means the
    member owes the group (debtor).

    Steps:
    1. Start every known member at zero
    2. Credit each payer the full expense amount, debit each sharer their share
    3. Credit the paying side of each settlement, debit the receiving side

    Credits and debits are applied in matching pairs, so the balances sum to
    zero whenever each expense's shares sum to its amount. Drift beyond
    share_tolerance is logged, not rejected.

    Members referenced by an expense or settlement but missing from members
    are added after the known members rather than dropped.

    Args:
        members: Group members (Member objects or plain ids)
        expenses: Expenses in scope
        settlements: Settlements in scope
        share_tolerance: Allowed |sum(shares) - amount| per expense

    Returns:
        Dict of member id -> net balance, known members first
    """
    balances: dict[str, Decimal] = {}
    for member in members:
        balances.setdefault(_member_id(member), ZERO)

    def adjust(member_id: str, delta: Decimal, source: str) -> None:
        if member_id not in balances:
            logger.warning(
                f"{source} references unknown member {member_id}; "
                f"including it as an implicit member"
            )
            balances[member_id] = ZERO
        balances[member_id] += delta

    for expense in expenses:
        amount = to_decimal(expense.amount)
        adjust(expense.paid_by, amount, f"Expense {expense.id}")

        share_total = ZERO
        for share in expense.shares:
            share_amount = to_decimal(share.amount)
            share_total += share_amount
            adjust(share.member_id, -share_amount, f"Expense {expense.id}")

        drift = amount - share_total
        if abs(drift) > share_tolerance:
            logger.warning(
                f"Expense {expense.id} ({expense.description}) shares sum to "
                f"{share_total} but amount is {amount}; balances will be off by {drift}"
            )

    for settlement in settlements:
        amount = to_decimal(settlement.amount)
        source = f"Settlement {settlement.id}"
        adjust(settlement.from_member_id, amount, source)
        adjust(settlement.to_member_id, -amount, source)

    return balances


def balance_total(balances: Mapping[str, Decimal | float | int | str]) -> Decimal:
    """Sum of all balances. Zero for consistent data."""
    return sum((to_decimal(value) for value in balances.values()), ZERO)


# ============================================================================
# Minimal settlement computation
# ============================================================================


def _largest(pool: dict[str, Decimal]) -> str:
    """Id with the largest outstanding amount; ties go to the smallest id."""
    return min(pool, key=lambda member_id: (-pool[member_id], member_id))


def plan_settlements(
    balances: Mapping[str, Decimal | float | int | str],
    epsilon: Decimal = SETTLED_EPSILON,
) -> SettlementPlan:
    """
    Compute transfers that bring every balance to zero.

    Greedy largest-vs-largest matching: the biggest debtor pays the biggest
    creditor min(credit, debt), and whoever reaches zero drops out. Each round
    clears at least one participant, so N unsettled members need at most N-1
    transfers. This is not the theoretical minimum for every topology.

    If the balances don't sum to zero, one side runs out first. Whatever
    remains on the other side is returned in leftovers (signed, as in the
    input) instead of being dropped.

    Args:
        balances: Member id -> signed balance
        epsilon: Balances within this distance of zero count as settled

    Returns:
        SettlementPlan with ordered transfers and any leftovers
    """
    creditors: dict[str, Decimal] = {}
    debtors: dict[str, Decimal] = {}
    for member_id, raw in balances.items():
        balance = to_decimal(raw)
        if balance > epsilon:
            creditors[member_id] = balance
        elif balance < -epsilon:
            debtors[member_id] = -balance

    transfers: list[SuggestedSettlement] = []
    while creditors and debtors:
        creditor_id = _largest(creditors)
        debtor_id = _largest(debtors)
        amount = min(creditors[creditor_id], debtors[debtor_id])

        transfers.append(
            SuggestedSettlement(
                from_member_id=debtor_id, to_member_id=creditor_id, amount=amount
            )
        )
        logger.debug(f"Matched {debtor_id} -> {creditor_id}: {amount}")

        creditors[creditor_id] -= amount
        debtors[debtor_id] -= amount
        if creditors[creditor_id] <= epsilon:
            del creditors[creditor_id]
        if debtors[debtor_id] <= epsilon:
            del debtors[debtor_id]

    leftovers = dict(creditors)
    leftovers.update({member_id: -debt for member_id, debt in debtors.items()})

    return SettlementPlan(transfers=transfers, leftovers=leftovers)


def compute_suggested_settlements(
    balances: Mapping[str, Decimal | float | int | str],
    epsilon: Decimal = SETTLED_EPSILON,
) -> list[SuggestedSettlement]:
    """
    Ordered transfer list that settles the given balances.

    Same as plan_settlements() but returns only the transfers. Unmatched
    residuals are logged; use plan_settlements() to inspect them.
    """
    plan = plan_settlements(balances, epsilon)
    if plan.leftovers:
        logger.warning(
            f"Balances do not net to zero; unmatched residuals: {plan.leftovers}"
        )
    return plan.transfers


# ============================================================================
# Category scoping
# ============================================================================


def category_settlement_note(category: str) -> str:
    """Note that tags a settlement as paying down one category."""
    return f"{CATEGORY_NOTE_PREFIX}{category}"


def settlement_category(settlement: Settlement) -> str | None:
    """Category a settlement was tagged with, or None for an overall payment."""
    if not settlement.note:
        return None
    match = _CATEGORY_NOTE_RE.match(settlement.note.strip())
    return match.group("category").strip() if match else None


def compute_category_breakdown(
    members: Iterable[Member | str],
    expenses: Iterable[Expense],
    settlements: Iterable[Settlement],
    category: str,
    epsilon: Decimal = SETTLED_EPSILON,
) -> CategoryBreakdown:
    """
    Balances and suggestions for one category only.

    Expenses are filtered to an exact category match. Settlements carry no
    category of their own, so only those tagged with
    category_settlement_note(category) count here; untagged settlements are
    overall adjustments and are left out of every category view.

    Args:
        members: Group members
        expenses: All group expenses
        settlements: All group settlements
        category: Category label, e.g. "Food"
        epsilon: Settled threshold passed to plan_settlements()

    Returns:
        CategoryBreakdown for the category
    """
    members = list(members)
    scoped_expenses = [e for e in expenses if e.category == category]
    scoped_settlements = [
        s for s in settlements if settlement_category(s) == category
    ]

    balances = compute_balances(members, scoped_expenses, scoped_settlements)
    plan = plan_settlements(balances, epsilon)

    logger.debug(
        f"Category {category}: {len(scoped_expenses)} expenses, "
        f"{len(scoped_settlements)} tagged settlements, "
        f"{len(plan.transfers)} suggested transfers"
    )

    return CategoryBreakdown(
        category=category,
        balances=balances,
        suggested_settlements=plan.transfers,
        expenses=scoped_expenses,
        leftovers=plan.leftovers,
        total=sum((to_decimal(e.amount) for e in scoped_expenses), ZERO),
    )


def summarize_categories(expenses: Iterable[Expense]) -> list[CategoryTotal]:
    """Total spend per category, largest first."""
    totals: dict[str, Decimal] = {}
    counts: dict[str, int] = {}
    for expense in expenses:
        totals[expense.category] = totals.get(expense.category, ZERO) + to_decimal(
            expense.amount
        )
        counts[expense.category] = counts.get(expense.category, 0) + 1

    summary = [
        CategoryTotal(category=name, total=total, expense_count=counts[name])
        for name, total in totals.items()
    ]
    summary.sort(key=lambda c: (-c.total, c.category))
    return summary
