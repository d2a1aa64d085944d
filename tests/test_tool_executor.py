"""
Basic sanity tests for the tool executor.

Run with:
$ pytest -q
"""

import logging

import pytest

from expensebot.agent.tool_executor import (
    ToolExecutionError,
    UnregisteredToolError,
    execute_tool,
)
from expensebot.tools import (
    TOOL_REGISTRY,
    ToolFault,
    missing_implementations,
    register_tool,
)
from expensebot.tools.contract import validate_tool_call


def _call(tool_name: str, **parameters):
    return validate_tool_call({"tool_name": tool_name, "parameters": parameters})


@pytest.mark.asyncio
async def test_execute_tool_success() -> None:
    """Executor passes the validated parameters as keyword arguments."""
    seen = {}

    def add(amount, category, note="<unset>"):
        seen.update(amount=amount, category=category, note=note)
        return "SUCCESS"

    call = _call("addExpense", amount=20, category="Food")
    result = await execute_tool(call, {"addExpense": add})
    assert result == "SUCCESS"
    # Absent optional parameters are not passed at all
    assert seen == {"amount": 20, "category": "Food", "note": "<unset>"}


@pytest.mark.asyncio
async def test_execute_tool_awaits_coroutines() -> None:
    async def history(period):
        return [{"period": period}]

    call = _call("getSpendingHistory", period="today")
    assert await execute_tool(call, {"getSpendingHistory": history}) == [{"period": "today"}]


@pytest.mark.asyncio
async def test_execute_tool_missing() -> None:
    """Executor should raise *UnregisteredToolError* for a tool without implementation."""
    with pytest.raises(UnregisteredToolError) as info:
        await execute_tool(_call("deleteLastExpense"), {})
    assert "deleteLastExpense" in str(info.value)


@pytest.mark.asyncio
async def test_execute_tool_wraps_errors() -> None:
    """Executor should raise *ToolExecutionError* when the tool fails."""

    def broken(query):
        raise KeyError(query)

    with pytest.raises(ToolExecutionError) as info:
        await execute_tool(_call("listExpenses", query="tea"), {"listExpenses": broken})
    assert "listExpenses" in str(info.value)


@pytest.mark.asyncio
async def test_execute_tool_bad_args() -> None:
    """Executor should raise *ToolExecutionError* for wrong arguments."""

    def no_args():
        return "done"

    with pytest.raises(ToolExecutionError) as info:
        await execute_tool(_call("deleteExpenseById", id="x"), {"deleteExpenseById": no_args})
    assert "Invalid arguments" in str(info.value)


@pytest.mark.asyncio
async def test_execute_tool_propagates_faults() -> None:
    def unavailable():
        raise ToolFault("disk gone")

    with pytest.raises(ToolFault):
        await execute_tool(_call("deleteLastExpense"), {"deleteLastExpense": unavailable})


def test_default_registry_binds_every_action_tool() -> None:
    assert missing_implementations() == []
    assert "answerUser" not in TOOL_REGISTRY
    assert missing_implementations({}) == [
        "addExpense",
        "getSpendingHistory",
        "listExpenses",
        "updateExpense",
        "deleteExpenseById",
        "deleteLastExpense",
    ]


def test_register_tool_rejects_duplicates_and_unknown_names() -> None:
    with pytest.raises(ValueError):
        register_tool("addExpense")
    with pytest.raises(ValueError):
        register_tool("sendMoney")


def _telemetry(caplog) -> list:
    return [r for r in caplog.records if hasattr(r, "duration_ms")]


@pytest.mark.asyncio
async def test_every_dispatch_is_timed_and_logged(caplog) -> None:
    caplog.set_level(logging.INFO, logger="expensebot.agent.tool_executor")
    call = _call("listExpenses", query="tea")

    await execute_tool(call, {"listExpenses": lambda query: [{"id": "e1"}]})

    (record,) = _telemetry(caplog)
    assert record.tool == "listExpenses"
    assert record.success is True
    assert record.duration_ms >= 0
    assert record.tool_params == {"query": "tea"}
    assert record.tool_result == [{"id": "e1"}]
    assert record.tool_error is None


@pytest.mark.asyncio
async def test_failed_dispatch_is_logged_with_its_error(caplog) -> None:
    caplog.set_level(logging.INFO, logger="expensebot.agent.tool_executor")

    def broken(query):
        raise ValueError("index corrupted")

    with pytest.raises(ToolExecutionError):
        await execute_tool(_call("listExpenses", query="tea"), {"listExpenses": broken})

    (record,) = _telemetry(caplog)
    assert record.success is False
    assert record.tool_error == "index corrupted"
    assert record.tool_result is None
