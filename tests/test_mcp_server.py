"""Tests for the MCP tool functions."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from spendwise import mcp_server
from spendwise.config import Settings
from spendwise.exceptions import SpendwiseAPIError
from spendwise.models import (
    CategoryBreakdown,
    Expense,
    ExpenseShare,
    GroupSnapshot,
    Member,
    Settlement,
)
from spendwise.settlement.engine import compute_category_breakdown
from spendwise.settlement.service import build_report


@pytest.fixture
def snapshot():
    return GroupSnapshot(
        group_id="g1",
        name="Goa Trip",
        members=[
            Member(id="A", display_name="Asha"),
            Member(id="B", display_name="Ben"),
        ],
        expenses=[
            Expense(
                id="e1",
                description="Cab",
                amount=Decimal("40"),
                category="Travel",
                paid_by="A",
                shares=[
                    ExpenseShare(member_id="A", amount=Decimal("20")),
                    ExpenseShare(member_id="B", amount=Decimal("20")),
                ],
            )
        ],
    )


@pytest.fixture
def service(monkeypatch, snapshot):
    """Install a mocked service in the session state."""
    service = MagicMock()
    service.get_report.return_value = build_report(snapshot, Decimal("0.005"))
    service.fetch_snapshot.return_value = snapshot
    service.get_category_breakdown.side_effect = lambda group_id, category: (
        snapshot,
        compute_category_breakdown(
            snapshot.members, snapshot.expenses, snapshot.settlements, category
        ),
    )
    settings = Settings(spendwise_group_id="g1", currency_symbol="$")
    monkeypatch.setattr(
        mcp_server, "_state", mcp_server.SessionState(settings=settings, service=service)
    )
    return service


def test_group_balances(service):
    result = mcp_server.group_balances()

    assert "Balances for Goa Trip:" in result
    assert "Asha: $20.00" in result
    assert "Ben: ($20.00)" in result
    assert "[0] Ben pays Asha $20.00" in result
    service.get_report.assert_called_once_with("g1")


def test_category_breakdown(service):
    result = mcp_server.category_breakdown("Travel", group_id="g2")

    assert result.startswith("Travel: 1 expenses, total $40.00")
    service.get_category_breakdown.assert_called_once_with("g2", "Travel")


def test_category_breakdown_empty(service):
    assert mcp_server.category_breakdown("Food") == "No Food expenses in this group."


def test_record_settlement_resolves_names(service):
    service.record_settlement.return_value = Settlement(
        id="s1",
        from_member_id="B",
        to_member_id="A",
        amount=Decimal("20.00"),
        note="Settlement for Travel",
    )

    result = mcp_server.record_settlement("ben", "Asha", "20", category="Travel")

    service.record_settlement.assert_called_once_with(
        "g1", "B", "A", Decimal("20"), "Settlement for Travel"
    )
    assert result == "Settlement recorded (id: s1): Ben paid Asha $20.00"


def test_record_settlement_unknown_member(service):
    result = mcp_server.record_settlement("Dev", "Asha", "20")

    assert result.startswith("Error: No group member matches 'Dev'")
    service.record_settlement.assert_not_called()


def test_settle_up_records_suggestions(service):
    service.record_suggestions.side_effect = lambda group_id, suggestions, category: [
        Settlement(
            id="s9",
            from_member_id=s.from_member_id,
            to_member_id=s.to_member_id,
            amount=s.amount,
        )
        for s in suggestions
    ]

    result = mcp_server.settle_up()

    assert result == "Recorded 1 settlements:\n  - Ben paid Asha $20.00"


def test_api_errors_returned_as_text(service):
    service.get_report.side_effect = SpendwiseAPIError("Group not found", status_code=404)

    assert mcp_server.group_balances() == "Error: Group not found"


def test_missing_group_id(monkeypatch):
    monkeypatch.setattr(
        mcp_server,
        "_state",
        mcp_server.SessionState(
            settings=Settings(spendwise_group_id=None), service=MagicMock()
        ),
    )

    assert mcp_server.group_balances().startswith("Error: No group_id given")


@pytest.fixture
def unbalanced_snapshot(snapshot):
    """Ben's share is missing, so Asha's credit has no matching debt."""
    broken = snapshot.model_copy(deep=True)
    broken.expenses[0].shares.pop()
    return broken


def test_group_balances_reports_leftovers(service, unbalanced_snapshot):
    service.get_report.return_value = build_report(unbalanced_snapshot, Decimal("0.005"))

    result = mcp_server.group_balances()

    assert "No transfers can be matched." in result
    assert "WARNING: balances do not net to zero; unmatched: Asha $20.00" in result
    assert "Everyone is settled up" not in result


def test_category_breakdown_reports_leftovers(service, snapshot):
    service.get_category_breakdown.side_effect = None
    service.get_category_breakdown.return_value = (
        snapshot,
        CategoryBreakdown(
            category="Travel",
            balances={"A": Decimal("50"), "B": Decimal("0")},
            suggested_settlements=[],
            expenses=snapshot.expenses,
            leftovers={"A": Decimal("50")},
            total=Decimal("40"),
        ),
    )

    result = mcp_server.category_breakdown("Travel")

    assert "unmatched: Asha $50.00" in result
    assert "Everyone is settled up" not in result


def test_settle_up_reports_leftovers_without_recording(service, unbalanced_snapshot):
    service.get_report.return_value = build_report(unbalanced_snapshot, Decimal("0.005"))

    result = mcp_server.settle_up()

    assert result.startswith("Nothing recorded")
    assert "unmatched: Asha $20.00" in result
    service.record_suggestions.assert_not_called()


def test_record_settlement_invalid_amount(service):
    result = mcp_server.record_settlement("Ben", "Asha", "abc")

    assert result == "Error: Invalid amount: abc"
    service.record_settlement.assert_not_called()


class TestExpenseAndMemberTools:
    """Tests for add_expense, add_member and remove_member."""

    def test_add_expense_equal_split_among_everyone(self, service):
        service.add_expense.return_value = MagicMock(id="e9")

        result = mcp_server.add_expense("Dinner", "90.01", "asha", category="Food")

        group_id, description, amount, paid_by, shares, category = (
            service.add_expense.call_args.args
        )
        assert (group_id, description, amount, paid_by, category) == (
            "g1",
            "Dinner",
            Decimal("90.01"),
            "A",
            "Food",
        )
        assert [(s.member_id, s.amount) for s in shares] == [
            ("A", Decimal("45.01")),
            ("B", Decimal("45.00")),
        ]
        assert result.startswith("Expense added (id: e9): Dinner (Food), $90.01")

    def test_add_expense_unequal_split(self, service):
        mcp_server.add_expense(
            "Tickets", "40", "Ben", split="unequal", shares={"Asha": "30", "B": "10"}
        )

        shares = service.add_expense.call_args.args[4]
        assert [(s.member_id, s.amount) for s in shares] == [
            ("A", Decimal("30")),
            ("B", Decimal("10")),
        ]

    def test_add_expense_shares_must_match(self, service):
        result = mcp_server.add_expense(
            "Tickets", "40", "Ben", split="unequal", shares={"Asha": "30"}
        )

        assert result.startswith("Error: Shares add up to 30")
        service.add_expense.assert_not_called()

    def test_add_expense_invalid_amount(self, service):
        assert mcp_server.add_expense("Tickets", "lots", "Ben") == (
            "Error: Invalid amount: lots"
        )

    def test_add_member(self, service):
        service.add_member.return_value = Member(id="C", display_name="Chen")

        assert mcp_server.add_member("Chen") == "Added Chen (id: C)"
        service.add_member.assert_called_once_with("g1", "Chen")

    def test_remove_member_by_name(self, service):
        assert mcp_server.remove_member("ben") == "Removed Ben"
        service.remove_member.assert_called_once_with("B")

    def test_remove_member_refused_by_server(self, service):
        service.remove_member.side_effect = SpendwiseAPIError(
            "Cannot delete member with existing expenses", status_code=400
        )

        result = mcp_server.remove_member("Ben")

        assert result == "Error: Cannot delete member with existing expenses"
