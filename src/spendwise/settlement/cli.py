"""CLI commands for group balances and settlements."""

import logging
import sys
from decimal import Decimal

import typer
from rich.console import Console
from rich.table import Table

from ..config import Settings, load_settings
from ..exceptions import ConfigurationError, InvalidSplitError, SpendwiseError
from ..models import GroupSnapshot, SuggestedSettlement
from .engine import category_settlement_note
from .service import (
    SPLIT_EQUAL,
    GroupSettlementService,
    build_expense_shares,
    find_member,
    parse_amount,
    to_cents,
)
from .ui import select_member_interactive, select_suggestion_interactive

app = typer.Typer(
    name="group",
    help="Show group balances and record settlements",
)

console = Console()

GROUP_OPTION_HELP = "Group ID (defaults to SPENDWISE_GROUP_ID)"


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Downgrade httpx logging to DEBUG (network requests are too noisy at INFO)
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _resolve_group_id(settings: Settings, group_id: str | None) -> str:
    resolved = group_id or settings.spendwise_group_id
    if not resolved:
        raise ConfigurationError(
            "No group given. Pass --group or set SPENDWISE_GROUP_ID."
        )
    return resolved


def _fail(e: Exception, verbose: bool):
    """Print an error and exit non-zero (re-raise in verbose mode)."""
    console.print(f"\n[bold red]Error:[/bold red] {e}")
    if verbose:
        raise e
    sys.exit(1)


def format_money(amount: Decimal, symbol: str = "", use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: (₹85.02)
    Positive amounts have spaces:      ₹85.02
    The spaces ensure decimal points align in tables.
    """
    rounded = to_cents(amount)
    abs_amount = abs(rounded)
    if rounded < 0:
        if use_color:
            formatted = f"({symbol}[red]{abs_amount:,.2f}[/red])"
        else:
            formatted = f"({symbol}{abs_amount:,.2f})"
    else:
        if use_color:
            formatted = f" [green]{symbol}{abs_amount:,.2f}[/green] "
        else:
            formatted = f" {symbol}{abs_amount:,.2f} "
    return formatted


def display_balances(
    title: str,
    balances: dict[str, Decimal],
    names: dict[str, str],
    symbol: str,
    epsilon: Decimal,
):
    """Display member balances in a table."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Member", style="cyan")
    table.add_column("Balance", justify="right", width=14)
    table.add_column("Status")

    for member_id, balance in balances.items():
        if balance > epsilon:
            status = "[green]Gets back[/green]"
        elif balance < -epsilon:
            status = "[red]Owes[/red]"
        else:
            status = "[dim]Settled up[/dim]"
        table.add_row(
            names.get(member_id, member_id), format_money(balance, symbol), status
        )

    console.print(table)


def display_suggestions(
    suggestions: list[SuggestedSettlement],
    names: dict[str, str],
    symbol: str,
    leftovers: dict[str, Decimal] | None = None,
):
    """Display suggested transfers, and any residual the plan couldn't match."""
    if not suggestions:
        console.print("[green]✓ Everyone is settled up[/green]")
    else:
        table = Table(
            title="Suggested Settlements", show_header=True, header_style="bold magenta"
        )
        table.add_column("#", style="dim", width=4)
        table.add_column("From", style="red")
        table.add_column("To", style="green")
        table.add_column("Amount", justify="right", width=14)

        for idx, suggestion in enumerate(suggestions, start=1):
            table.add_row(
                str(idx),
                names.get(suggestion.from_member_id, suggestion.from_member_id),
                names.get(suggestion.to_member_id, suggestion.to_member_id),
                format_money(suggestion.amount, symbol, use_color=False),
            )
        console.print(table)

    if leftovers:
        console.print(
            "[bold yellow]⚠️  Balances do not net to zero. Unmatched:[/bold yellow]"
        )
        for member_id, residual in leftovers.items():
            console.print(
                f"  {names.get(member_id, member_id)}: {format_money(residual, symbol)}"
            )


def _load_plan(
    service: GroupSettlementService, group_id: str, category: str | None
) -> tuple[GroupSnapshot, list[SuggestedSettlement], dict[str, Decimal]]:
    """Fetch the group and return (snapshot, suggestions, leftovers)."""
    if category:
        snapshot, breakdown = service.get_category_breakdown(group_id, category)
        return snapshot, breakdown.suggested_settlements, breakdown.leftovers

    report = service.get_report(group_id)
    return report.snapshot, report.plan.transfers, report.plan.leftovers


@app.command()
def balances(
    group: str | None = typer.Option(None, "--group", "-g", help=GROUP_OPTION_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Show every member's balance and the transfers that settle the group.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        group_id = _resolve_group_id(settings, group)
        service = GroupSettlementService(settings)

        console.print(f"\n[bold blue]Fetching group {group_id}...[/bold blue]")
        report = service.get_report(group_id)
        names = report.snapshot.member_names()
        symbol = settings.currency_symbol

        console.print(
            f"\n[bold]{report.snapshot.name or 'Group'}[/bold] "
            f"({len(report.snapshot.members)} members, "
            f"{len(report.snapshot.expenses)} expenses)\n"
        )
        display_balances(
            "Overall Balances", report.balances, names, symbol, settings.settled_epsilon
        )
        console.print()
        display_suggestions(report.plan.transfers, names, symbol, report.plan.leftovers)

        if abs(report.imbalance) > settings.settled_epsilon:
            console.print(
                f"\n[yellow]⚠️  Balances sum to {report.imbalance}, not zero. "
                f"Some expense shares don't add up to their amount.[/yellow]"
            )

    except Exception as e:
        _fail(e, verbose)


@app.command()
def categories(
    group: str | None = typer.Option(None, "--group", "-g", help=GROUP_OPTION_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Show total spending per category.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        group_id = _resolve_group_id(settings, group)
        report = GroupSettlementService(settings).get_report(group_id)

        if not report.category_totals:
            console.print("[yellow]No expenses in this group yet.[/yellow]")
            return

        table = Table(
            title="Spending by Category", show_header=True, header_style="bold magenta"
        )
        table.add_column("Category", style="cyan")
        table.add_column("Expenses", justify="right")
        table.add_column("Total", justify="right", width=14)
        for total in report.category_totals:
            table.add_row(
                total.category,
                str(total.expense_count),
                format_money(total.total, settings.currency_symbol, use_color=False),
            )
        console.print(table)

    except Exception as e:
        _fail(e, verbose)


@app.command()
def category(
    name: str = typer.Argument(..., help="Category label, e.g. Food"),
    group: str | None = typer.Option(None, "--group", "-g", help=GROUP_OPTION_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Show who owes whom for one category only.

    Only settlements recorded for this category (note "Settlement for NAME")
    count against it.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        group_id = _resolve_group_id(settings, group)
        service = GroupSettlementService(settings)

        snapshot, breakdown = service.get_category_breakdown(group_id, name)
        names = snapshot.member_names()
        symbol = settings.currency_symbol

        if not breakdown.expenses:
            console.print(f"[yellow]No {name} expenses in this group.[/yellow]")
            return

        console.print(
            f"\n[bold]{name}[/bold]: {len(breakdown.expenses)} expenses, "
            f"total {format_money(breakdown.total, symbol, use_color=False).strip()}\n"
        )
        display_balances(
            f"Balances in {name}",
            breakdown.balances,
            names,
            symbol,
            settings.settled_epsilon,
        )
        console.print()
        display_suggestions(
            breakdown.suggested_settlements, names, symbol, breakdown.leftovers
        )

        table = Table(title="Expenses", show_header=True, header_style="bold magenta")
        table.add_column("Description", style="cyan", width=40)
        table.add_column("Paid by")
        table.add_column("Date", style="dim")
        table.add_column("Amount", justify="right", width=14)
        for expense in breakdown.expenses:
            desc = expense.description
            table.add_row(
                desc[:40] + "..." if len(desc) > 40 else desc,
                names.get(expense.paid_by, expense.paid_by),
                str(expense.date.date()) if expense.date else "—",
                format_money(expense.amount, symbol, use_color=False),
            )
        console.print()
        console.print(table)

    except Exception as e:
        _fail(e, verbose)


@app.command()
def settle(
    group: str | None = typer.Option(None, "--group", "-g", help=GROUP_OPTION_HELP),
    from_member: str | None = typer.Option(
        None, "--from", help="Paying member (id or name)"
    ),
    to_member: str | None = typer.Option(
        None, "--to", help="Receiving member (id or name)"
    ),
    amount: str | None = typer.Option(
        None, "--amount", "-a", help="Amount paid (defaults to the suggested amount)"
    ),
    note: str | None = typer.Option(None, "--note", "-n", help="Optional note"),
    category_name: str | None = typer.Option(
        None, "--category", "-c", help="Settle within one category"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Record one payment between two members.

    With neither --from nor --to, pick one of the suggested settlements.
    Missing members are picked interactively.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        group_id = _resolve_group_id(settings, group)
        service = GroupSettlementService(settings)
        symbol = settings.currency_symbol

        snapshot, suggestions, _ = _load_plan(service, group_id, category_name)
        names = snapshot.member_names()

        if from_member is None and to_member is None:
            selected_idx = select_suggestion_interactive(suggestions, names, symbol)
            if selected_idx is None:
                console.print("[yellow]No settlement selected.[/yellow]")
                return
            chosen = suggestions[selected_idx]
            payer_id, payee_id = chosen.from_member_id, chosen.to_member_id
        else:
            if from_member is not None:
                payer = find_member(snapshot.members, from_member)
            else:
                payer = select_member_interactive(snapshot.members, "Paid by")
            if payer is None:
                console.print("[yellow]No payer selected.[/yellow]")
                return

            if to_member is not None:
                payee = find_member(snapshot.members, to_member)
            else:
                payee = select_member_interactive(
                    snapshot.members, "Paid to", exclude=payer.id
                )
            if payee is None:
                console.print("[yellow]No recipient selected.[/yellow]")
                return
            payer_id, payee_id = payer.id, payee.id

        if amount is not None:
            settle_amount = parse_amount(amount)
        else:
            matching = [
                s
                for s in suggestions
                if s.from_member_id == payer_id and s.to_member_id == payee_id
            ]
            if not matching:
                raise SpendwiseError(
                    f"No suggested settlement from {names.get(payer_id, payer_id)} "
                    f"to {names.get(payee_id, payee_id)}; pass --amount"
                )
            settle_amount = matching[0].amount

        if note is None and category_name:
            note = category_settlement_note(category_name)

        console.print(
            f"\n[bold]{names.get(payer_id, payer_id)} → {names.get(payee_id, payee_id)}: "
            f"{format_money(settle_amount, symbol, use_color=False).strip()}[/bold]"
            + (f"  [dim]{note}[/dim]" if note else "")
        )

        if not yes:
            confirm = input("Record this settlement? [y/N] ").strip().lower()
            if confirm not in ("y", "yes"):
                console.print("[yellow]Cancelled.[/yellow]")
                return

        settlement = service.record_settlement(
            group_id, payer_id, payee_id, settle_amount, note
        )
        console.print(
            f"\n[bold green]✓ Settlement recorded[/bold green] [dim]({settlement.id})[/dim]\n"
        )

    except Exception as e:
        _fail(e, verbose)


@app.command("settle-up")
def settle_up(
    group: str | None = typer.Option(None, "--group", "-g", help=GROUP_OPTION_HELP),
    category_name: str | None = typer.Option(
        None, "--category", "-c", help="Settle within one category"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Record every suggested settlement, clearing all balances.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        group_id = _resolve_group_id(settings, group)
        service = GroupSettlementService(settings)

        snapshot, suggestions, leftovers = _load_plan(
            service, group_id, category_name
        )
        names = snapshot.member_names()

        display_suggestions(suggestions, names, settings.currency_symbol, leftovers)
        if not suggestions:
            return

        if not yes:
            console.print(
                f"\n[bold yellow]⚠️  Ready to record {len(suggestions)} settlements[/bold yellow]"
            )
            confirm = input("Continue? [y/N] ").strip().lower()
            if confirm not in ("y", "yes"):
                console.print("[yellow]Cancelled.[/yellow]")
                return

        recorded = service.record_suggestions(group_id, suggestions, category_name)
        console.print(
            f"\n[bold green]✓ Recorded {len(recorded)} settlements[/bold green]\n"
        )

    except Exception as e:
        _fail(e, verbose)


def _parse_share_options(entries: list[str]) -> dict[str, Decimal]:
    """Parse repeated MEMBER=AMOUNT options into a share map."""
    shares: dict[str, Decimal] = {}
    for entry in entries:
        who, sep, value = entry.rpartition("=")
        if not sep or not who.strip():
            raise InvalidSplitError(f"Share '{entry}' must look like MEMBER=AMOUNT")
        shares[who.strip()] = parse_amount(value, InvalidSplitError)
    return shares


@app.command("add-expense")
def add_expense(
    description: str = typer.Option(
        ..., "--description", "-d", help="What the expense was for"
    ),
    amount: str = typer.Option(..., "--amount", "-a", help="Total amount"),
    paid_by: str | None = typer.Option(
        None, "--paid-by", "-p", help="Member who paid (id or name)"
    ),
    category_name: str = typer.Option(
        "Other", "--category", "-c", help="Expense category"
    ),
    split: str = typer.Option(SPLIT_EQUAL, "--split", help="equal or unequal"),
    members: list[str] | None = typer.Option(
        None,
        "--member",
        "-m",
        help="Equal split: member sharing the expense (repeatable, default everyone)",
    ),
    shares: list[str] | None = typer.Option(
        None, "--share", "-s", help="Unequal split: MEMBER=AMOUNT (repeatable)"
    ),
    group: str | None = typer.Option(None, "--group", "-g", help=GROUP_OPTION_HELP),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Add a shared expense.

    Equal splits divide the amount to the cent among --member (or everyone).
    Unequal splits take one --share per member and must add up to the amount.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        group_id = _resolve_group_id(settings, group)
        service = GroupSettlementService(settings)
        symbol = settings.currency_symbol

        expense_amount = parse_amount(amount, InvalidSplitError)
        snapshot = service.fetch_snapshot(group_id)
        names = snapshot.member_names()

        if paid_by is not None:
            payer = find_member(snapshot.members, paid_by)
        else:
            payer = select_member_interactive(snapshot.members, "Paid by")
        if payer is None:
            console.print("[yellow]No payer selected.[/yellow]")
            return

        expense_shares = build_expense_shares(
            snapshot.members,
            expense_amount,
            split,
            participants=members or None,
            custom_shares=_parse_share_options(shares or []),
        )

        console.print(
            f"\n[bold]{description}[/bold] ({category_name}): "
            f"{format_money(expense_amount, symbol, use_color=False).strip()} "
            f"paid by {payer.display_name}\n"
        )
        table = Table(title="Shares", show_header=True, header_style="bold magenta")
        table.add_column("Member", style="cyan")
        table.add_column("Share", justify="right", width=14)
        for share in expense_shares:
            table.add_row(
                names.get(share.member_id, share.member_id),
                format_money(share.amount, symbol, use_color=False),
            )
        console.print(table)

        if not yes:
            confirm = input("Add this expense? [y/N] ").strip().lower()
            if confirm not in ("y", "yes"):
                console.print("[yellow]Cancelled.[/yellow]")
                return

        expense = service.add_expense(
            group_id,
            description,
            expense_amount,
            payer.id,
            expense_shares,
            category=category_name,
        )
        console.print(
            f"\n[bold green]✓ Expense added[/bold green] [dim]({expense.id})[/dim]\n"
        )

    except Exception as e:
        _fail(e, verbose)


@app.command("add-member")
def add_member(
    name: str = typer.Argument(..., help="Display name of the new member"),
    group: str | None = typer.Option(None, "--group", "-g", help=GROUP_OPTION_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Add a member to the group.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        group_id = _resolve_group_id(settings, group)
        member = GroupSettlementService(settings).add_member(group_id, name)
        console.print(
            f"\n[bold green]✓ Added {member.display_name}[/bold green] "
            f"[dim]({member.id})[/dim]\n"
        )

    except Exception as e:
        _fail(e, verbose)


@app.command("remove-member")
def remove_member(
    member: str = typer.Argument(..., help="Member to remove (id or name)"),
    group: str | None = typer.Option(None, "--group", "-g", help=GROUP_OPTION_HELP),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Remove a member from the group.

    The server refuses members that still have expenses or settlements.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        group_id = _resolve_group_id(settings, group)
        service = GroupSettlementService(settings)

        snapshot = service.fetch_snapshot(group_id)
        target = find_member(snapshot.members, member)

        if not yes:
            confirm = input(f"Remove {target.display_name}? [y/N] ").strip().lower()
            if confirm not in ("y", "yes"):
                console.print("[yellow]Cancelled.[/yellow]")
                return

        service.remove_member(target.id)
        console.print(f"\n[bold green]✓ Removed {target.display_name}[/bold green]\n")

    except Exception as e:
        _fail(e, verbose)
