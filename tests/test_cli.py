"""Tests for the group CLI commands."""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from spendwise.config import Settings
from spendwise.models import Expense, ExpenseShare, GroupSnapshot, Member, Settlement
from spendwise.settlement.cli import app, format_money
from spendwise.settlement.engine import compute_category_breakdown
from spendwise.settlement.service import build_report

runner = CliRunner()


@pytest.fixture
def settings():
    return Settings(
        spendwise_api_url="http://spendwise.test/api",
        spendwise_group_id="g1",
        currency_symbol="$",
    )


@pytest.fixture
def snapshot():
    return GroupSnapshot(
        group_id="g1",
        name="Flatmates",
        members=[
            Member(id="A", display_name="Asha"),
            Member(id="B", display_name="Ben"),
            Member(id="C", display_name="Chen"),
        ],
        expenses=[
            Expense(
                id="e1",
                description="Groceries",
                amount=Decimal("90"),
                category="Food",
                paid_by="A",
                shares=[
                    ExpenseShare(member_id="A", amount=Decimal("30")),
                    ExpenseShare(member_id="B", amount=Decimal("30")),
                    ExpenseShare(member_id="C", amount=Decimal("30")),
                ],
            )
        ],
    )


@pytest.fixture
def mock_service(settings, snapshot):
    """Patch settings loading and the service used by the CLI."""
    with (
        patch("spendwise.settlement.cli.load_settings", return_value=settings),
        patch("spendwise.settlement.cli.GroupSettlementService") as service_class,
    ):
        service = service_class.return_value
        service.fetch_snapshot.return_value = snapshot
        service.get_report.return_value = build_report(snapshot, Decimal("0.005"))
        service.get_category_breakdown.side_effect = lambda group_id, category: (
            snapshot,
            compute_category_breakdown(
                snapshot.members, snapshot.expenses, snapshot.settlements, category
            ),
        )
        yield service


class TestFormatMoney:
    """Tests for accounting-style money formatting."""

    def test_positive(self):
        assert format_money(Decimal("1234.5"), "$", use_color=False) == " $1,234.50 "

    def test_negative_uses_parentheses(self):
        assert format_money(Decimal("-85.015"), "$", use_color=False) == "($85.02)"

    def test_rounds_to_zero_before_picking_sign(self):
        """A balance that rounds to zero is shown as zero, not negative."""
        assert format_money(Decimal("-0.001"), "$", use_color=False) == " $0.00 "


class TestBalancesCommand:
    def test_shows_balances_and_suggestions(self, mock_service):
        result = runner.invoke(app, ["balances"])

        assert result.exit_code == 0
        assert "Asha" in result.output
        assert "Gets back" in result.output
        assert "Suggested Settlements" in result.output
        mock_service.get_report.assert_called_once_with("g1")

    def test_explicit_group_overrides_default(self, mock_service):
        result = runner.invoke(app, ["balances", "--group", "g9"])

        assert result.exit_code == 0
        mock_service.get_report.assert_called_once_with("g9")

    def test_missing_group_fails(self, mock_service, settings):
        settings.spendwise_group_id = None

        result = runner.invoke(app, ["balances"])

        assert result.exit_code == 1
        assert "No group given" in result.output


class TestCategoryCommands:
    def test_category_breakdown(self, mock_service):
        result = runner.invoke(app, ["category", "Food"])

        assert result.exit_code == 0
        assert "Balances in Food" in result.output
        assert "Groceries" in result.output

    def test_category_without_expenses(self, mock_service):
        result = runner.invoke(app, ["category", "Stay"])

        assert result.exit_code == 0
        assert "No Stay expenses" in result.output

    def test_categories_totals(self, mock_service):
        result = runner.invoke(app, ["categories"])

        assert result.exit_code == 0
        assert "Spending by Category" in result.output
        assert "Food" in result.output


class TestSettleCommands:
    def test_settle_uses_suggested_amount(self, mock_service):
        mock_service.record_settlement.return_value = Settlement(
            id="s1", from_member_id="B", to_member_id="A", amount=Decimal("30")
        )

        result = runner.invoke(app, ["settle", "--from", "Ben", "--to", "Asha", "--yes"])

        assert result.exit_code == 0
        assert "Settlement recorded" in result.output
        mock_service.record_settlement.assert_called_once_with(
            "g1", "B", "A", Decimal("30"), None
        )

    def test_settle_in_category_tags_note(self, mock_service):
        result = runner.invoke(
            app,
            ["settle", "--from", "C", "--to", "A", "--category", "Food", "--yes"],
        )

        assert result.exit_code == 0
        mock_service.record_settlement.assert_called_once_with(
            "g1", "C", "A", Decimal("30"), "Settlement for Food"
        )

    def test_settle_without_suggestion_needs_amount(self, mock_service):
        result = runner.invoke(app, ["settle", "--from", "A", "--to", "B", "--yes"])

        assert result.exit_code == 1
        mock_service.record_settlement.assert_not_called()

    def test_settle_invalid_amount(self, mock_service):
        result = runner.invoke(
            app, ["settle", "--from", "A", "--to", "B", "--amount", "abc", "--yes"]
        )

        assert result.exit_code == 1
        assert "Invalid amount: abc" in result.output
        mock_service.record_settlement.assert_not_called()

    def test_settle_explicit_amount(self, mock_service):
        result = runner.invoke(
            app, ["settle", "--from", "A", "--to", "B", "--amount", "12.50", "--yes"]
        )

        assert result.exit_code == 0
        mock_service.record_settlement.assert_called_once_with(
            "g1", "A", "B", Decimal("12.50"), None
        )

    def test_settle_cancelled_at_prompt(self, mock_service):
        result = runner.invoke(app, ["settle", "--from", "B", "--to", "A"], input="n\n")

        assert result.exit_code == 0
        assert "Cancelled" in result.output
        mock_service.record_settlement.assert_not_called()

    def test_settle_up_records_every_suggestion(self, mock_service):
        mock_service.record_suggestions.return_value = []

        result = runner.invoke(app, ["settle-up", "--yes"])

        assert result.exit_code == 0
        group_id, suggestions, category = mock_service.record_suggestions.call_args.args
        assert group_id == "g1"
        assert [(s.from_member_id, s.to_member_id) for s in suggestions] == [
            ("B", "A"),
            ("C", "A"),
        ]
        assert category is None


class TestExpenseAndMemberCommands:
    def test_add_expense_equal_split(self, mock_service):
        mock_service.add_expense.return_value = MagicMock(id="e9")

        result = runner.invoke(
            app,
            [
                "add-expense",
                "-d", "Dinner",
                "-a", "100",
                "--paid-by", "Asha",
                "-c", "Food",
                "--yes",
            ],
        )

        assert result.exit_code == 0
        assert "Expense added" in result.output
        args = mock_service.add_expense.call_args
        group_id, description, amount, paid_by, shares = args.args
        assert (group_id, description, amount, paid_by) == (
            "g1",
            "Dinner",
            Decimal("100"),
            "A",
        )
        assert [s.amount for s in shares] == [
            Decimal("33.34"),
            Decimal("33.33"),
            Decimal("33.33"),
        ]
        assert args.kwargs == {"category": "Food"}

    def test_add_expense_equal_split_among_some(self, mock_service):
        result = runner.invoke(
            app,
            [
                "add-expense",
                "-d", "Cab",
                "-a", "30",
                "-p", "B",
                "-m", "Ben",
                "-m", "Chen",
                "--yes",
            ],
        )

        assert result.exit_code == 0
        shares = mock_service.add_expense.call_args.args[4]
        assert [(s.member_id, s.amount) for s in shares] == [
            ("B", Decimal("15.00")),
            ("C", Decimal("15.00")),
        ]

    def test_add_expense_unequal_split(self, mock_service):
        result = runner.invoke(
            app,
            [
                "add-expense",
                "-d", "Hotel",
                "-a", "100",
                "-p", "Asha",
                "--split", "unequal",
                "-s", "Asha=60",
                "-s", "Ben=40",
                "--yes",
            ],
        )

        assert result.exit_code == 0
        shares = mock_service.add_expense.call_args.args[4]
        assert [(s.member_id, s.amount) for s in shares] == [
            ("A", Decimal("60")),
            ("B", Decimal("40")),
        ]

    def test_add_expense_unequal_shares_must_match(self, mock_service):
        result = runner.invoke(
            app,
            [
                "add-expense",
                "-d", "Hotel",
                "-a", "100",
                "-p", "Asha",
                "--split", "unequal",
                "-s", "Asha=60",
                "--yes",
            ],
        )

        assert result.exit_code == 1
        assert "Shares add up to 60" in result.output
        mock_service.add_expense.assert_not_called()

    def test_add_expense_malformed_share(self, mock_service):
        result = runner.invoke(
            app,
            [
                "add-expense",
                "-d", "Hotel",
                "-a", "100",
                "-p", "Asha",
                "--split", "unequal",
                "-s", "Asha60",
                "--yes",
            ],
        )

        assert result.exit_code == 1
        mock_service.add_expense.assert_not_called()

    def test_add_member(self, mock_service):
        mock_service.add_member.return_value = Member(id="D", display_name="Dev")

        result = runner.invoke(app, ["add-member", "Dev"])

        assert result.exit_code == 0
        assert "Added Dev" in result.output
        mock_service.add_member.assert_called_once_with("g1", "Dev")

    def test_remove_member(self, mock_service):
        result = runner.invoke(app, ["remove-member", "chen", "--yes"])

        assert result.exit_code == 0
        assert "Removed Chen" in result.output
        mock_service.remove_member.assert_called_once_with("C")

    def test_remove_member_cancelled(self, mock_service):
        result = runner.invoke(app, ["remove-member", "Chen"], input="n\n")

        assert result.exit_code == 0
        mock_service.remove_member.assert_not_called()
