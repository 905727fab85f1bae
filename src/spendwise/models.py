"""Pydantic domain models for Spendwise."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

# ============================================================================
# Group data store models
# ============================================================================


class Member(BaseModel):
    """A participant in a shared-expense group."""

    id: str
    display_name: str


class ExpenseShare(BaseModel):
    """The portion of a single expense one member owes."""

    member_id: str
    amount: Decimal


class Expense(BaseModel):
    """A group expense fronted by one member and shared by several."""

    id: str
    description: str
    amount: Decimal
    category: str = "Other"
    paid_by: str
    shares: list[ExpenseShare] = Field(default_factory=list)
    date: datetime | None = None

    @property
    def share_total(self) -> Decimal:
        """Sum of all shares (should equal amount)."""
        return sum((share.amount for share in self.shares), Decimal("0"))


class Settlement(BaseModel):
    """A recorded real-world payment from one member to another.

    Settlements are append-only: there is no update operation.
    """

    id: str
    group_id: str | None = None
    from_member_id: str
    to_member_id: str
    amount: Decimal
    note: str | None = None
    settled_at: datetime | None = None


# ============================================================================
# Derived models
# ============================================================================


class SuggestedSettlement(BaseModel):
    """A computed, not-yet-recorded transfer."""

    from_member_id: str
    to_member_id: str
    amount: Decimal


class SettlementPlan(BaseModel):
    """Transfers that zero out a balance map, plus anything left unmatched.

    leftovers is only non-empty when the input balances didn't sum to zero.
    """

    transfers: list[SuggestedSettlement] = Field(default_factory=list)
    leftovers: dict[str, Decimal] = Field(default_factory=dict)

    @property
    def is_settled(self) -> bool:
        return not self.leftovers


class CategoryTotal(BaseModel):
    """Total spend of one category in a group."""

    category: str
    total: Decimal
    expense_count: int


class CategoryBreakdown(BaseModel):
    """Balances and suggestions restricted to one expense category."""

    category: str
    balances: dict[str, Decimal]
    suggested_settlements: list[SuggestedSettlement]
    expenses: list[Expense]
    leftovers: dict[str, Decimal] = Field(default_factory=dict)
    total: Decimal = Decimal("0")


class GroupSnapshot(BaseModel):
    """A single consistent read of a group's members, expenses and settlements."""

    group_id: str
    name: str | None = None
    members: list[Member] = Field(default_factory=list)
    expenses: list[Expense] = Field(default_factory=list)
    settlements: list[Settlement] = Field(default_factory=list)

    def member_names(self) -> dict[str, str]:
        """Map member id to display name."""
        return {member.id: member.display_name for member in self.members}


class GroupReport(BaseModel):
    """Everything the group page shows, derived from one snapshot."""

    snapshot: GroupSnapshot
    balances: dict[str, Decimal]
    plan: SettlementPlan
    category_totals: list[CategoryTotal]
    imbalance: Decimal = Decimal("0")

    def display_name(self, member_id: str) -> str:
        """Display name for a member id, falling back to the id itself."""
        return self.snapshot.member_names().get(member_id, member_id)
