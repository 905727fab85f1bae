"""Service layer that composes the Spendwise client and the settlement engine.

Every call fetches a fresh snapshot and recomputes from scratch; nothing is
cached between calls.
"""

import logging
from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ..clients.spendwise import SpendwiseClient
from ..config import Settings
from ..exceptions import (
    InvalidMemberError,
    InvalidSettlementError,
    InvalidSplitError,
    MemberNotFoundError,
    SpendwiseError,
)
from ..models import (
    CategoryBreakdown,
    Expense,
    ExpenseShare,
    GroupReport,
    GroupSnapshot,
    Member,
    Settlement,
    SuggestedSettlement,
)
from .engine import (
    balance_total,
    category_settlement_note,
    compute_balances,
    compute_category_breakdown,
    plan_settlements,
    summarize_categories,
)
from .shares import equal_shares, unequal_shares

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

SPLIT_EQUAL = "equal"
SPLIT_UNEQUAL = "unequal"


def to_cents(amount: Decimal) -> Decimal:
    """Round an amount to cents the way it is shown and recorded."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def find_member(members: list[Member], query: str) -> Member:
    """
    Resolve a member by id or (case-insensitive) display name.

    Raises:
        MemberNotFoundError: If nothing matches, or a name is ambiguous
    """
    for member in members:
        if member.id == query:
            return member

    matches = [m for m in members if m.display_name.lower() == query.lower()]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise MemberNotFoundError(
            query, f"'{query}' matches {len(matches)} members; use the member id"
        )
    raise MemberNotFoundError(query)


def parse_amount(
    value: Decimal | str, error: type[SpendwiseError] = InvalidSettlementError
) -> Decimal:
    """
    Parse user-entered money.

    Raises:
        error: If the value isn't a finite decimal number
    """
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise error(f"Invalid amount: {value}") from e
    if not amount.is_finite():
        raise error(f"Invalid amount: {value}")
    return amount


def build_expense_shares(
    members: list[Member],
    amount: Decimal,
    split: str = SPLIT_EQUAL,
    participants: list[str] | None = None,
    custom_shares: Mapping[str, Decimal | str] | None = None,
) -> list[ExpenseShare]:
    """
    Build the shares of a new expense the way the entry form does.

    An equal split covers the given participants, or every member when none
    are given. An unequal split takes a share per member; blank (zero)
    entries are dropped and the rest must match the amount.

    Participants and share keys may be member ids or display names.

    Raises:
        InvalidSplitError: If the split type is unknown or the shares don't fit
        MemberNotFoundError: If a participant doesn't match a member
    """
    if split == SPLIT_EQUAL:
        if participants:
            member_ids = [find_member(members, p).id for p in participants]
        else:
            member_ids = [m.id for m in members]
        return equal_shares(amount, member_ids)

    if split == SPLIT_UNEQUAL:
        if not custom_shares:
            raise InvalidSplitError("An unequal split needs at least one share")
        by_id = {
            find_member(members, who).id: parse_amount(value, InvalidSplitError)
            for who, value in custom_shares.items()
        }
        return unequal_shares(amount, by_id)

    raise InvalidSplitError(
        f"Unknown split type '{split}'; use {SPLIT_EQUAL} or {SPLIT_UNEQUAL}"
    )


def build_report(snapshot: GroupSnapshot, epsilon: Decimal) -> GroupReport:
    """
    Derive balances, suggested transfers and category totals from a snapshot.

    This is a pure function; a non-zero imbalance is logged, not raised.
    """
    balances = compute_balances(
        snapshot.members, snapshot.expenses, snapshot.settlements
    )
    imbalance = balance_total(balances)
    if abs(imbalance) > epsilon:
        logger.warning(
            f"Group {snapshot.group_id} balances sum to {imbalance}, not zero; "
            f"check expense shares for data-integrity problems"
        )

    plan = plan_settlements(balances, epsilon)

    return GroupReport(
        snapshot=snapshot,
        balances=balances,
        plan=plan,
        category_totals=summarize_categories(snapshot.expenses),
        imbalance=imbalance,
    )


class GroupSettlementService:
    """Service for computing and recording group settlements."""

    def __init__(self, settings: Settings):
        """Initialize the settlement service."""
        self.settings = settings

    def _client(self) -> SpendwiseClient:
        return SpendwiseClient(
            base_url=self.settings.spendwise_api_url,
            access_token=self.settings.spendwise_access_token,
            timeout=self.settings.request_timeout,
        )

    def list_groups(self) -> list[dict]:
        """List the groups visible to the configured user."""
        with self._client() as client:
            return client.list_groups()

    def fetch_snapshot(self, group_id: str) -> GroupSnapshot:
        """Fetch a consistent snapshot of the group from the API."""
        with self._client() as client:
            snapshot = client.get_snapshot(group_id)

        logger.info(
            f"Fetched group {group_id}: {len(snapshot.members)} members, "
            f"{len(snapshot.expenses)} expenses, "
            f"{len(snapshot.settlements)} settlements"
        )
        return snapshot

    def get_report(self, group_id: str) -> GroupReport:
        """Fetch the group and compute its overall balances and suggestions."""
        snapshot = self.fetch_snapshot(group_id)
        return build_report(snapshot, self.settings.settled_epsilon)

    def get_category_breakdown(
        self, group_id: str, category: str
    ) -> tuple[GroupSnapshot, CategoryBreakdown]:
        """
        Fetch the group and compute balances for one category.

        Returns:
            Tuple of (snapshot, breakdown) so callers can resolve member names
        """
        snapshot = self.fetch_snapshot(group_id)
        breakdown = compute_category_breakdown(
            snapshot.members,
            snapshot.expenses,
            snapshot.settlements,
            category,
            epsilon=self.settings.settled_epsilon,
        )
        return snapshot, breakdown

    def record_settlement(
        self,
        group_id: str,
        from_member_id: str,
        to_member_id: str,
        amount: Decimal,
        note: str | None = None,
    ) -> Settlement:
        """
        Record a payment between two members.

        Raises:
            InvalidSettlementError: If the members are the same or the amount
                isn't positive
        """
        if from_member_id == to_member_id:
            raise InvalidSettlementError("A member cannot settle with themselves")

        amount = to_cents(Decimal(str(amount)))
        if amount <= 0:
            raise InvalidSettlementError(
                f"Settlement amount must be positive, got {amount}"
            )

        with self._client() as client:
            settlement = client.record_settlement(
                group_id, from_member_id, to_member_id, amount, note
            )

        logger.info(
            f"Recorded settlement {settlement.id}: "
            f"{from_member_id} -> {to_member_id} {amount}"
        )
        return settlement

    def record_suggestions(
        self,
        group_id: str,
        suggestions: list[SuggestedSettlement],
        category: str | None = None,
    ) -> list[Settlement]:
        """
        Record every suggested transfer as a settlement.

        When category is given, each settlement is tagged with the category
        note so it only counts against that category's balances.

        Returns:
            The recorded settlements, in suggestion order
        """
        note = category_settlement_note(category) if category else None

        recorded = []
        for suggestion in suggestions:
            recorded.append(
                self.record_settlement(
                    group_id,
                    suggestion.from_member_id,
                    suggestion.to_member_id,
                    suggestion.amount,
                    note,
                )
            )

        logger.info(f"Recorded {len(recorded)} settlements for group {group_id}")
        return recorded

    def add_expense(
        self,
        group_id: str,
        description: str,
        amount: Decimal,
        paid_by: str,
        shares: list[ExpenseShare],
        category: str = "Other",
    ) -> Expense:
        """
        Add an expense with already-built shares.

        Raises:
            InvalidSplitError: If the description is blank or there are no shares
        """
        description = description.strip()
        if not description:
            raise InvalidSplitError("Expense description is required")
        if not shares:
            raise InvalidSplitError("Expense needs at least one share")

        with self._client() as client:
            expense = client.add_expense(
                group_id, description, amount, category, paid_by, shares
            )

        logger.info(
            f"Added expense {expense.id} ({description}, {category}): "
            f"{amount} paid by {paid_by}, {len(shares)} shares"
        )
        return expense

    def add_member(self, group_id: str, display_name: str) -> Member:
        """Add a member to the group."""
        display_name = display_name.strip()
        if not display_name:
            raise InvalidMemberError("Member name is required")

        with self._client() as client:
            member = client.add_member(group_id, display_name)

        logger.info(f"Added member {member.display_name} ({member.id}) to {group_id}")
        return member

    def remove_member(self, member_id: str) -> None:
        """
        Remove a member.

        The server refuses members that still have expenses or settlements;
        that surfaces as SpendwiseAPIError.
        """
        with self._client() as client:
            client.delete_member(member_id)

        logger.info(f"Removed member {member_id}")
