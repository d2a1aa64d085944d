"""
Tests for the expense tools behind the catalogue.

Run with:
$ pytest -q
"""

from datetime import datetime

import pytest

from expensebot.agent.tool_executor import execute_tool
from expensebot.tools import (
    ToolFault,
    expenses,
)
from expensebot.tools.contract import validate_tool_call
from expensebot.tools.expenses import (
    Expense,
    StorageUnavailableError,
    add_expense,
    delete_expense_by_id,
    delete_last_expense,
    get_spending_history,
    list_expenses,
    update_expense,
)


def _ms(*args: int) -> int:
    return int(datetime(*args).timestamp() * 1000)


def test_add_and_list() -> None:
    assert add_expense(amount=20, category="Food", note="chai") == (
        "SUCCESS: Expense of ₹20 for Food has been added."
    )
    add_expense(amount=150.5, category="Travel")

    found = list_expenses(query="CHAI")
    assert len(found) == 1
    assert found[0]["note"] == "chai"
    assert [e["category"] for e in list_expenses(query="travel")] == ["Travel"]
    assert list_expenses(query="rent") == "RESULT: No expenses found matching that description."


@pytest.mark.parametrize("amount", [0, -5.0, float("nan"), float("inf")])
def test_non_positive_amount_is_rejected(amount: float) -> None:
    with pytest.raises(ValueError):
        add_expense(amount=amount, category="Food")
    assert get_spending_history(period="all") == []


def test_update_merges_fields() -> None:
    add_expense(amount=20, category="Food", note="chai")
    expense_id = list_expenses(query="chai")[0]["id"]

    assert update_expense(id=expense_id, updates={"amount": 25.0}) == (
        f"SUCCESS: Expense {expense_id} has been updated."
    )
    updated = list_expenses(query="chai")[0]
    assert (updated["amount"], updated["category"], updated["note"]) == (25.0, "Food", "chai")
    assert update_expense(id="missing", updates={"note": "x"}).startswith("ERROR:")


def test_delete_by_id() -> None:
    add_expense(amount=20, category="Food", note="chai")
    add_expense(amount=40, category="Food", note="samosa")
    chai_id = list_expenses(query="chai")[0]["id"]

    assert delete_expense_by_id(id=chai_id) == f"SUCCESS: Expense {chai_id} has been deleted."
    assert [e["note"] for e in get_spending_history(period="all")] == ["samosa"]
    missing = f"ERROR: Could not find an expense with ID {chai_id}."
    assert delete_expense_by_id(id=chai_id) == missing


def test_delete_last_uses_timestamps() -> None:
    expenses._write_expenses(  # pylint: disable=protected-access
        [
            Expense(amount=5, category="Late", timestamp=2_000),
            Expense(amount=7, category="Early", timestamp=1_000),
        ]
    )
    assert delete_last_expense() == "SUCCESS: Deleted expense of ₹5 for Late."
    assert delete_last_expense() == "SUCCESS: Deleted expense of ₹7 for Early."
    assert delete_last_expense() == "ERROR: No expenses to delete."


def test_spending_history_periods() -> None:
    now = datetime(2024, 5, 15, 12, 0)  # a Wednesday
    expenses._write_expenses(  # pylint: disable=protected-access
        [
            Expense(amount=1, category="today", timestamp=_ms(2024, 5, 15, 9)),
            Expense(amount=2, category="sunday", timestamp=_ms(2024, 5, 12, 8)),
            Expense(amount=3, category="month", timestamp=_ms(2024, 5, 3)),
            Expense(amount=4, category="older", timestamp=_ms(2024, 4, 20)),
        ]
    )

    def categories(period: str) -> list:
        return [e["category"] for e in get_spending_history(period=period, now=now)]

    assert categories("today") == ["today"]
    assert categories("this week") == ["today", "sunday"]
    assert categories("this month") == ["today", "sunday", "month"]
    assert categories("all") == ["today", "sunday", "month", "older"]


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        '{"oops": 1}',
        '[{"amount": "lots", "category": "Food"}]',
        "[1, 2]",
    ],
)
def test_corrupt_storage_is_a_fault(data_dir, content: str) -> None:
    """Unparseable files and files of the wrong shape both make storage unavailable."""
    (data_dir / "expenses.json").write_text(content, encoding="utf-8")
    with pytest.raises(StorageUnavailableError):
        list_expenses(query="x")


@pytest.mark.parametrize("amount", [0.0, -50.0, float("nan"), float("-inf")])
def test_update_rejects_invalid_amounts(amount: float) -> None:
    add_expense(amount=20, category="Food", note="chai")
    expense_id = list_expenses(query="chai")[0]["id"]

    with pytest.raises(ValueError):
        update_expense(id=expense_id, updates={"amount": amount})
    assert list_expenses(query="chai")[0]["amount"] == 20.0


@pytest.mark.asyncio
async def test_wrong_shaped_storage_faults_through_the_executor(data_dir) -> None:
    (data_dir / "expenses.json").write_text('{"oops": 1}', encoding="utf-8")
    call = validate_tool_call({"tool_name": "listExpenses", "parameters": {"query": "x"}})
    with pytest.raises(ToolFault):
        await execute_tool(call)
