"""Spendwise - Group expense balances and settlement suggestions."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .models import (
    CategoryBreakdown,
    Expense,
    ExpenseShare,
    Member,
    Settlement,
    SettlementPlan,
    SuggestedSettlement,
)
from .settlement.engine import (
    compute_balances,
    compute_category_breakdown,
    compute_suggested_settlements,
    plan_settlements,
)
from .settlement.service import GroupSettlementService

__all__ = [
    "Settings",
    "load_settings",
    "CategoryBreakdown",
    "Expense",
    "ExpenseShare",
    "Member",
    "Settlement",
    "SettlementPlan",
    "SuggestedSettlement",
    "compute_balances",
    "compute_category_breakdown",
    "compute_suggested_settlements",
    "plan_settlements",
    "GroupSettlementService",
]
