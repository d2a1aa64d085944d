"""
Expense tools exposed to the model.

Expenses live in a single JSON file (``<DATA_DIR>/expenses.json``).  Each tool reads the whole
list, changes it, and writes it back.  Status strings start with ``SUCCESS:``, ``ERROR:`` or
``RESULT:`` so the model can tell outcomes apart; read-style tools return the matching expenses.
"""

import json
import logging
import math
import time
import uuid
from datetime import (
    datetime,
    timedelta,
)
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
    TypeAdapter,
    ValidationError,
)

from expensebot.config import settings
from expensebot.tools import (
    ToolFault,
    register_tool,
)

logger = logging.getLogger(__name__)


class StorageUnavailableError(ToolFault):
    """The expense file cannot be read or written."""


class Expense(BaseModel):
    """One stored expense."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    amount: float
    category: str
    note: str = ""
    timestamp: int = Field(default_factory=lambda: int(time.time() * 1000))  # epoch millis


_EXPENSE_LIST = TypeAdapter(List[Expense])


def _check_amount(amount: float) -> None:
    if not math.isfinite(amount) or amount <= 0:
        raise ValueError("Expense amount must be greater than zero.")


# ---------------------------------------------------------------------------
# Storage helpers
# ---------------------------------------------------------------------------
def _expenses_path() -> Path:
    return Path(settings.DATA_DIR) / "expenses.json"


def _read_expenses() -> List[Expense]:
    path = _expenses_path()
    if not path.exists():
        return []
    try:
        raw = json.loads(path.read_text(encoding="utf-8") or "[]")
        return _EXPENSE_LIST.validate_python(raw)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        logger.error("Failed to read expenses from %s: %s", path, exc)
        raise StorageUnavailableError(f"Cannot read expenses: {exc}") from exc


def _write_expenses(expenses: List[Expense]) -> None:
    path = _expenses_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps([e.model_dump() for e in expenses], ensure_ascii=False), encoding="utf-8"
        )
    except OSError as exc:
        logger.error("Failed to save expenses to %s: %s", path, exc)
        raise StorageUnavailableError(f"Cannot save expenses: {exc}") from exc


def _period_start(period: str, now: datetime) -> Optional[datetime]:
    """Start of *period* in local time; ``None`` means no lower bound."""
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "today":
        return today
    if period == "this week":
        # Weeks start on Sunday.
        return today - timedelta(days=(today.weekday() + 1) % 7)
    if period == "this month":
        return today.replace(day=1)
    return None


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------
@register_tool("addExpense")
def add_expense(amount: float, category: str, note: Optional[str] = None) -> str:
    """Log a new expense."""
    _check_amount(amount)
    expenses = _read_expenses()
    expenses.append(Expense(amount=amount, category=category, note=note or ""))
    _write_expenses(expenses)
    return f"SUCCESS: Expense of ₹{amount:g} for {category} has been added."


@register_tool("getSpendingHistory")
def get_spending_history(period: str, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Return the expenses recorded during *period*."""
    start = _period_start(period, now or datetime.now())
    expenses = _read_expenses()
    if start is not None:
        cutoff = int(start.timestamp() * 1000)
        expenses = [e for e in expenses if e.timestamp >= cutoff]
    return [e.model_dump() for e in expenses]


@register_tool("listExpenses")
def list_expenses(query: str) -> List[Dict[str, Any]] | str:
    """Find expenses whose note or category contains *query* (case-insensitive)."""
    needle = query.lower()
    found = [
        e.model_dump()
        for e in _read_expenses()
        if needle in e.note.lower() or needle in e.category.lower()
    ]
    if not found:
        return "RESULT: No expenses found matching that description."
    return found


@register_tool("updateExpense")
def update_expense(id: str, updates: Dict[str, Any]) -> str:  # pylint: disable=redefined-builtin
    """Merge *updates* into the expense with the given id."""
    changes = {key: value for key, value in updates.items() if value is not None}
    if "amount" in changes:
        _check_amount(changes["amount"])
    expenses = _read_expenses()
    for index, expense in enumerate(expenses):
        if expense.id == id:
            expenses[index] = expense.model_copy(update=changes)
            _write_expenses(expenses)
            return f"SUCCESS: Expense {id} has been updated."
    return f"ERROR: Could not find an expense with ID {id}."


@register_tool("deleteExpenseById")
def delete_expense_by_id(id: str) -> str:  # pylint: disable=redefined-builtin
    """Delete the expense with the given id."""
    expenses = _read_expenses()
    remaining = [e for e in expenses if e.id != id]
    if len(remaining) == len(expenses):
        return f"ERROR: Could not find an expense with ID {id}."
    _write_expenses(remaining)
    return f"SUCCESS: Expense {id} has been deleted."


@register_tool("deleteLastExpense")
def delete_last_expense() -> str:
    """Delete the most recently added expense."""
    expenses = sorted(_read_expenses(), key=lambda e: e.timestamp)
    if not expenses:
        return "ERROR: No expenses to delete."
    deleted = expenses.pop()
    _write_expenses(expenses)
    return f"SUCCESS: Deleted expense of ₹{deleted.amount:g} for {deleted.category}."
