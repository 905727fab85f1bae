"""Tests for the interactive pickers."""

from decimal import Decimal

from prompt_toolkit.document import Document

from spendwise.models import Member, SuggestedSettlement
from spendwise.settlement.ui import MemberCompleter, select_suggestion_interactive


def completions(completer, text):
    return [c.text for c in completer.get_completions(Document(text), None)]


def test_labels_include_id_for_duplicate_names():
    completer = MemberCompleter(
        [
            Member(id="m-1", display_name="Sam"),
            Member(id="m-2", display_name="Sam"),
        ]
    )

    assert completer.label_to_id == {"Sam (m-1)": "m-1", "Sam (m-2)": "m-2"}


def test_fuzzy_match_in_order():
    completer = MemberCompleter(
        [
            Member(id="m-1", display_name="Asha"),
            Member(id="m-2", display_name="Priya"),
        ]
    )

    assert completions(completer, "pya") == ["Priya (m-2)"]
    assert completions(completer, "ayp") == []
    assert len(completions(completer, "")) == 2


def test_suggestion_amounts_shown_as_recorded(monkeypatch, capsys):
    """Half a cent rounds up on screen, the same as when it is recorded."""
    monkeypatch.setattr("builtins.input", lambda prompt: "q")
    suggestions = [
        SuggestedSettlement(from_member_id="B", to_member_id="A", amount=Decimal("10.005"))
    ]

    selected = select_suggestion_interactive(suggestions, {"A": "Asha", "B": "Ben"}, "$")

    assert selected is None
    assert "Ben → Asha: $10.01" in capsys.readouterr().out
