"""
Tests for rendering the catalogue and the conversation into a prompt.

Run with:
$ pytest -q
"""

import json
from datetime import datetime

from expensebot.agent.prompt_builder import build_prompt
from expensebot.core.schema import (
    TOOL_CALL_MODELS,
    Turn,
)
from expensebot.tools import get_tool_schemas
from expensebot.tools.contract import validate_tool_call


def _history() -> list:
    decision = validate_tool_call(
        {"tool_name": "listExpenses", "parameters": {"query": "chai"}}
    )
    return [
        Turn.user(0, "what did I spend on chai?"),
        Turn.decision(1, decision),
        Turn.observation(2, "listExpenses", [{"id": "e1", "amount": 20.0, "note": "chai"}]),
        Turn.final(3, "You spent ₹20 on chai."),
    ]


def test_empty_history_still_produces_a_prompt() -> None:
    prompt = build_prompt([], get_tool_schemas())
    assert "(no messages yet)" in prompt
    assert prompt.rstrip().endswith("Your Response:")


def test_catalogue_lists_every_tool_and_its_parameters() -> None:
    prompt = build_prompt([], get_tool_schemas())
    for name in TOOL_CALL_MODELS:
        assert f"  {name}: " in prompt
    assert '"amount": number, "category": string, "note": string?' in prompt
    assert '"period": "today" | "this week" | "this month" | "all"' in prompt
    assert '"updates": {amount?: number, category?: string, note?: string}' in prompt
    assert "deleteLastExpense: Deletes the most recently added expense. Parameters: {  }" in prompt


def test_turns_are_rendered_in_order_with_role_tags() -> None:
    prompt = build_prompt(_history(), get_tool_schemas())
    markers = [
        'User: "what did I spend on chai?"',
        'Your Response:\n{\n  "tool_name": "listExpenses"',
        "TOOL_RESULT[listExpenses]: ",
        'Assistant: "You spent ₹20 on chai."',
    ]
    positions = [prompt.index(marker) for marker in markers]
    assert positions == sorted(positions)


def test_content_survives_rendering_losslessly() -> None:
    """Quotes, newlines and non-ASCII text come through intact."""
    text = 'paid "₹1,200" for\nbooks & {stationery}'
    prompt = build_prompt([Turn.user(0, text)], get_tool_schemas())
    rendered = prompt.split("User: ", 1)[1].split("\n", 1)[0]
    assert json.loads(rendered) == text


def test_observation_payload_is_rendered_as_json() -> None:
    payload = [{"id": "e1", "amount": 20.0, "note": "chai"}]
    prompt = build_prompt([Turn.observation(0, "getSpendingHistory", payload)], get_tool_schemas())
    rendered = prompt.split("TOOL_RESULT[getSpendingHistory]: ", 1)[1].split("\n", 1)[0]
    assert json.loads(rendered) == payload


def test_rendering_is_deterministic() -> None:
    assert build_prompt(_history(), get_tool_schemas()) == build_prompt(
        _history(), get_tool_schemas()
    )


def test_values_without_a_json_form_are_rendered_as_text() -> None:
    payload = {"paid_at": datetime(2024, 5, 15, 9, 30)}
    prompt = build_prompt([Turn.observation(0, "addExpense", payload)], get_tool_schemas())
    rendered = prompt.split("TOOL_RESULT[addExpense]: ", 1)[1].split("\n", 1)[0]
    assert json.loads(rendered) == {"paid_at": "2024-05-15 09:30:00"}
