"""MCP server for Spendwise — exposes group balances and settlements as tools."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from mcp.server.fastmcp import FastMCP

from .config import Settings, load_settings
from .exceptions import ConfigurationError, InvalidSplitError, SpendwiseError
from .models import SuggestedSettlement
from .settlement.engine import category_settlement_note
from .settlement.service import (
    SPLIT_EQUAL,
    GroupSettlementService,
    build_expense_shares,
    find_member,
    parse_amount,
    to_cents,
)

logger = logging.getLogger(__name__)

mcp_app = FastMCP("spendwise")

# ---------------------------------------------------------------------------
# Session state — one MCP server process = one conversation
# ---------------------------------------------------------------------------

WORKFLOW_INSTRUCTIONS = """\
You are helping a group settle shared expenses in Spendwise. Follow this workflow:

1. DISCOVER: If no group is configured, call list_groups and ask which group.

2. BALANCES: Call group_balances to show who is owed and who owes, along with
   the suggested transfers that settle everyone up.

3. CATEGORY: If the user asks about one kind of spending (e.g. Food), call
   category_breakdown with that category.

4. SETTLE: Before recording anything, show the transfer(s) and ask:
   "Should I record these settlements?"
   If yes, call record_settlement for a single payment, or settle_up to
   record every suggested transfer. Pass the category when settling within
   one category so the payment only counts against it.

5. EXPENSES & MEMBERS: To log spending, call add_expense (equal split by
   default; for an unequal split pass shares that add up to the amount).
   Use add_member / remove_member to change who is in the group. A member
   with expenses or settlements can't be removed.

Positive balances are owed money; negative balances owe money.\
"""


@dataclass
class SessionState:
    """Holds state between MCP tool calls within a single conversation."""

    settings: Settings | None = None
    service: GroupSettlementService | None = None


_state = SessionState()


def _ensure_service() -> GroupSettlementService:
    """Lazily initialize the GroupSettlementService (loads .env config)."""
    if _state.service is None:
        _state.settings = load_settings()
        _state.service = GroupSettlementService(_state.settings)
    return _state.service


def _group_id(group_id: str | None) -> str:
    resolved = group_id or (_state.settings and _state.settings.spendwise_group_id)
    if not resolved:
        raise ConfigurationError(
            "No group_id given and SPENDWISE_GROUP_ID is not set. "
            "Call list_groups to find one."
        )
    return resolved


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _format_amount(amount: Decimal) -> str:
    """Format an amount as an accounting-style string."""
    symbol = _state.settings.currency_symbol if _state.settings else ""
    rounded = to_cents(amount)
    if rounded < 0:
        return f"({symbol}{abs(rounded):,.2f})"
    return f"{symbol}{rounded:,.2f}"


def _format_suggestions(
    suggestions: list[SuggestedSettlement],
    names: dict[str, str],
    leftovers: dict[str, Decimal] | None = None,
) -> list[str]:
    if not suggestions:
        if leftovers:
            return ["No transfers can be matched."]
        return ["Everyone is settled up."]
    lines = ["Suggested settlements:"]
    for i, s in enumerate(suggestions):
        lines.append(
            f"  [{i}] {names.get(s.from_member_id, s.from_member_id)} pays "
            f"{names.get(s.to_member_id, s.to_member_id)} {_format_amount(s.amount)}"
        )
    return lines


def _format_leftovers(
    leftovers: dict[str, Decimal], names: dict[str, str]
) -> list[str]:
    """Warning lines for balances the suggested transfers can't clear."""
    if not leftovers:
        return []
    return [
        "",
        "WARNING: balances do not net to zero; unmatched: "
        + ", ".join(
            f"{names.get(m, m)} {_format_amount(v)}" for m, v in leftovers.items()
        ),
    ]


# ---------------------------------------------------------------------------
# MCP Tools
# ---------------------------------------------------------------------------


@mcp_app.tool()
def list_groups() -> str:
    """List the Spendwise groups the user belongs to."""
    try:
        service = _ensure_service()
        groups = service.list_groups()

        if not groups:
            return "No groups found."

        lines = ["Groups:"]
        for group in groups:
            group_id = group.get("id", group.get("_id"))
            lines.append(f"  - {group.get('name', 'Unnamed')} (id: {group_id})")
        return "\n".join(lines)
    except SpendwiseError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to list groups: {e}"


@mcp_app.tool()
def group_balances(group_id: str | None = None) -> str:
    """Show each member's net balance and the transfers that settle the group.

    Args:
        group_id: Spendwise group ID (defaults to SPENDWISE_GROUP_ID).
    """
    try:
        service = _ensure_service()
        report = service.get_report(_group_id(group_id))
        names = report.snapshot.member_names()

        lines = [f"Balances for {report.snapshot.name or report.snapshot.group_id}:"]
        for member_id, balance in report.balances.items():
            lines.append(f"  {names.get(member_id, member_id)}: {_format_amount(balance)}")
        lines.append("")
        lines.extend(
            _format_suggestions(report.plan.transfers, names, report.plan.leftovers)
        )
        lines.extend(_format_leftovers(report.plan.leftovers, names))
        return "\n".join(lines)
    except SpendwiseError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to compute balances: {e}"


@mcp_app.tool()
def category_breakdown(category: str, group_id: str | None = None) -> str:
    """Show balances and suggested transfers for one expense category.

    Args:
        category: Category label, e.g. "Food" or "Travel".
        group_id: Spendwise group ID (defaults to SPENDWISE_GROUP_ID).
    """
    try:
        service = _ensure_service()
        snapshot, breakdown = service.get_category_breakdown(
            _group_id(group_id), category
        )
        names = snapshot.member_names()

        if not breakdown.expenses:
            return f"No {category} expenses in this group."

        lines = [
            f"{category}: {len(breakdown.expenses)} expenses, "
            f"total {_format_amount(breakdown.total)}",
            "",
            "Balances:",
        ]
        for member_id, balance in breakdown.balances.items():
            lines.append(f"  {names.get(member_id, member_id)}: {_format_amount(balance)}")
        lines.append("")
        lines.extend(
            _format_suggestions(
                breakdown.suggested_settlements, names, breakdown.leftovers
            )
        )
        lines.extend(_format_leftovers(breakdown.leftovers, names))
        return "\n".join(lines)
    except SpendwiseError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to compute category breakdown: {e}"


@mcp_app.tool()
def record_settlement(
    from_member: str,
    to_member: str,
    amount: str,
    note: str | None = None,
    category: str | None = None,
    group_id: str | None = None,
) -> str:
    """Record a payment from one member to another.

    Args:
        from_member: Paying member (id or display name).
        to_member: Receiving member (id or display name).
        amount: Amount paid, e.g. "250.00".
        note: Optional note.
        category: Settle within this category (tags the note).
        group_id: Spendwise group ID (defaults to SPENDWISE_GROUP_ID).
    """
    try:
        service = _ensure_service()
        gid = _group_id(group_id)
        snapshot = service.fetch_snapshot(gid)

        payer = find_member(snapshot.members, from_member)
        payee = find_member(snapshot.members, to_member)
        if note is None and category:
            note = category_settlement_note(category)

        settlement = service.record_settlement(
            gid, payer.id, payee.id, parse_amount(amount), note
        )
        return (
            f"Settlement recorded (id: {settlement.id}): "
            f"{payer.display_name} paid {payee.display_name} "
            f"{_format_amount(settlement.amount)}"
        )
    except SpendwiseError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to record settlement: {e}"


@mcp_app.tool()
def settle_up(category: str | None = None, group_id: str | None = None) -> str:
    """Record every suggested transfer so all balances reach zero.

    Args:
        category: Only settle this category's balances.
        group_id: Spendwise group ID (defaults to SPENDWISE_GROUP_ID).
    """
    try:
        service = _ensure_service()
        gid = _group_id(group_id)

        if category:
            snapshot, breakdown = service.get_category_breakdown(gid, category)
            suggestions, leftovers = breakdown.suggested_settlements, breakdown.leftovers
        else:
            report = service.get_report(gid)
            snapshot = report.snapshot
            suggestions, leftovers = report.plan.transfers, report.plan.leftovers
        names = snapshot.member_names()

        if not suggestions:
            if not leftovers:
                return "Everyone is already settled up."
            lines = ["Nothing recorded: no transfers can be matched."]
            lines.extend(_format_leftovers(leftovers, names))
            return "\n".join(lines)

        recorded = service.record_suggestions(gid, suggestions, category)

        lines = [f"Recorded {len(recorded)} settlements:"]
        for s in recorded:
            lines.append(
                f"  - {names.get(s.from_member_id, s.from_member_id)} paid "
                f"{names.get(s.to_member_id, s.to_member_id)} {_format_amount(s.amount)}"
            )
        lines.extend(_format_leftovers(leftovers, names))
        return "\n".join(lines)
    except SpendwiseError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to settle up: {e}"


@mcp_app.tool()
def add_expense(
    description: str,
    amount: str,
    paid_by: str,
    category: str = "Other",
    split: str = SPLIT_EQUAL,
    members: list[str] | None = None,
    shares: dict[str, str] | None = None,
    group_id: str | None = None,
) -> str:
    """Add a shared expense to the group.

    Args:
        description: What the expense was for.
        amount: Total amount, e.g. "900.00".
        paid_by: Member who paid (id or display name).
        category: Expense category, e.g. "Food".
        split: "equal" or "unequal".
        members: Equal split only: who shares it (defaults to everyone).
        shares: Unequal split only: member -> amount; must add up to amount.
        group_id: Spendwise group ID (defaults to SPENDWISE_GROUP_ID).
    """
    try:
        service = _ensure_service()
        gid = _group_id(group_id)
        expense_amount = parse_amount(amount, InvalidSplitError)
        snapshot = service.fetch_snapshot(gid)

        payer = find_member(snapshot.members, paid_by)
        expense_shares = build_expense_shares(
            snapshot.members,
            expense_amount,
            split,
            participants=members,
            custom_shares=shares,
        )
        expense = service.add_expense(
            gid, description, expense_amount, payer.id, expense_shares, category
        )

        names = snapshot.member_names()
        lines = [
            f"Expense added (id: {expense.id}): {description} ({category}), "
            f"{_format_amount(expense_amount)} paid by {payer.display_name}",
        ]
        for share in expense_shares:
            lines.append(
                f"  {names.get(share.member_id, share.member_id)}: "
                f"{_format_amount(share.amount)}"
            )
        return "\n".join(lines)
    except SpendwiseError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to add expense: {e}"


@mcp_app.tool()
def add_member(display_name: str, group_id: str | None = None) -> str:
    """Add a member to the group.

    Args:
        display_name: Name shown for the new member.
        group_id: Spendwise group ID (defaults to SPENDWISE_GROUP_ID).
    """
    try:
        service = _ensure_service()
        member = service.add_member(_group_id(group_id), display_name)
        return f"Added {member.display_name} (id: {member.id})"
    except SpendwiseError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to add member: {e}"


@mcp_app.tool()
def remove_member(member: str, group_id: str | None = None) -> str:
    """Remove a member who has no expenses or settlements.

    Args:
        member: Member to remove (id or display name).
        group_id: Spendwise group ID (defaults to SPENDWISE_GROUP_ID).
    """
    try:
        service = _ensure_service()
        snapshot = service.fetch_snapshot(_group_id(group_id))
        target = find_member(snapshot.members, member)
        service.remove_member(target.id)
        return f"Removed {target.display_name}"
    except SpendwiseError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to remove member: {e}"


# ---------------------------------------------------------------------------
# MCP Prompt
# ---------------------------------------------------------------------------


@mcp_app.prompt()
def settle_workflow() -> str:
    """Orchestration instructions for settling a group."""
    return WORKFLOW_INSTRUCTIONS


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_server():
    """Start the MCP server (stdio transport)."""
    mcp_app.run(transport="stdio")
