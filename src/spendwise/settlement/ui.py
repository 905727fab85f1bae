"""Interactive UI components for picking members and settlements."""

import logging
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from ..models import Member, SuggestedSettlement
from .service import to_cents

logger = logging.getLogger(__name__)


class MemberCompleter(Completer):
    """Fuzzy search completer for group members."""

    def __init__(self, members: list[Member]):
        """Initialize the completer with the selectable members."""
        self.members = members

        # Display names can repeat within a group, so label with the id too
        self.label_to_id = {}
        for member in members:
            self.label_to_id[self.label(member)] = member.id

    @staticmethod
    def label(member: Member) -> str:
        return f"{member.display_name} ({member.id})"

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions."""
        query = document.text.lower()

        for label in self.label_to_id:
            if not query or self._fuzzy_match(query, label.lower()):
                yield Completion(
                    text=label,
                    start_position=-len(document.text),
                    display=label,
                )

    def _fuzzy_match(self, query: str, text: str) -> bool:
        """
        Fuzzy match: all characters in query must appear in order in text.

        Example:
            query="pya" matches "Priya (m-2)"
        """
        query_idx = 0
        for char in text:
            if query_idx < len(query) and char == query[query_idx]:
                query_idx += 1
        return query_idx == len(query)


def select_member_interactive(
    members: list[Member],
    role: str,
    exclude: str | None = None,
) -> Member | None:
    """
    Interactive member selection with fuzzy search.

    Args:
        members: Members of the group
        role: What the member is being picked for, e.g. "Paid by"
        exclude: Optional member id that can't be picked (the other party)

    Returns:
        Selected member, or None to cancel
    """
    candidates = [m for m in members if m.id != exclude]
    if not candidates:
        print("\n⚠️  No members to choose from")
        return None

    completer = MemberCompleter(candidates)
    session: PromptSession[str] = PromptSession(completer=completer)
    by_id = {m.id: m for m in candidates}

    print("   Type to search, press Enter to confirm, Ctrl+C to cancel\n")

    try:
        while True:
            result = session.prompt(f"{role}: ", complete_while_typing=True)

            if not result:
                return None

            member_id = completer.label_to_id.get(result)
            if member_id is None:
                # Accept a bare display name when it is unambiguous
                named = [
                    m for m in candidates if m.display_name.lower() == result.lower()
                ]
                if len(named) == 1:
                    member_id = named[0].id

            if member_id is not None:
                logger.info(f"User selected member: {by_id[member_id].display_name}")
                return by_id[member_id]

            print("❌ Unknown member. Pick from the list or press Tab to complete.")

    except KeyboardInterrupt:
        print("\n⏭️  Cancelled")
        return None
    except EOFError:
        return None


def select_suggestion_interactive(
    suggestions: list[SuggestedSettlement],
    names: dict[str, str],
    currency_symbol: str = "",
) -> int | None:
    """
    Pick one suggested transfer to record.

    Args:
        suggestions: Suggested transfers, in plan order
        names: Member id -> display name
        currency_symbol: Prefix for amounts

    Returns:
        Index of the selected suggestion (0-based), or None to cancel
    """
    if not suggestions:
        print("\n✅ Everyone is settled up")
        return None

    print("\n💸 Suggested settlements:\n")
    for idx, suggestion in enumerate(suggestions):
        payer = names.get(suggestion.from_member_id, suggestion.from_member_id)
        payee = names.get(suggestion.to_member_id, suggestion.to_member_id)
        amount = to_cents(suggestion.amount)
        print(
            f"  [{idx + 1}] {payer} → {payee}: {currency_symbol}{amount:,.2f}"
        )
    print()

    try:
        max_selection = len(suggestions)
        response = (
            input(f"Select settlement [1-{max_selection}, or q to quit]: ")
            .strip()
            .lower()
        )

        if response in ("q", "quit", ""):
            return None

        selection = int(response) - 1

        if 0 <= selection < len(suggestions):
            return selection
        else:
            print("❌ Invalid selection")
            return None

    except (ValueError, KeyboardInterrupt, EOFError):
        print("\n⏭️  Cancelled")
        return None
