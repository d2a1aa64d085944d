"""
Renders the tool catalogue and the conversation history into a single prompt.

The model is treated as stateless: every call re-sends the full catalogue and every turn, in order.
Each turn is tagged with its role so the model can tell user text, its own earlier decisions and
tool results apart.
"""

import json
from typing import (
    Any,
    Mapping,
    Sequence,
)

from expensebot.core.schema import (
    Turn,
    TurnRole,
)
from expensebot.tools import ToolSchema

SYSTEM_PROMPT = """\
You are a helpful and efficient AI assistant for a student expense tracking app. Your task is to \
understand the user's request and translate it into a specific JSON command that the app can \
execute. The currency is Indian Rupees (INR) and the symbol is ₹.
"""

RESPONSE_FORMAT = """\
Your response MUST be a single, valid JSON object and nothing else, shaped like:
{"tool_name": "<name>", "parameters": { ... }}
"""

DESTRUCTIVE_ACTION_POLICY = """\
Before deleting or updating a specific expense, first find it with listExpenses (or \
getSpendingHistory) so you know its id. If the user's request is ambiguous about which expense \
they mean, use clarify instead of guessing. Never delete anything the user has not clearly asked \
to delete.
"""


def _as_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def render_catalogue(tool_schemas: Mapping[str, ToolSchema]) -> str:
    """Numbered list of every tool with its parameter shape."""
    lines = []
    for number, (name, schema) in enumerate(tool_schemas.items(), start=1):
        params = ", ".join(
            f"{_as_json(param)}: {info['type']}{'' if info['required'] else '?'}"
            for param, info in schema["parameters"].items()
        )
        lines.append(f"{number}.  {name}: {schema['description']} Parameters: {{ {params} }}")
    return "\n".join(lines)


def render_turn(turn: Turn) -> str:
    """Role-tagged text of a single turn."""
    if turn.role is TurnRole.USER:
        return f"User: {_as_json(turn.content)}"
    if turn.role is TurnRole.MODEL_DECISION:
        decision = turn.tool_call.model_dump(  # type: ignore[union-attr]
            mode="json", exclude_unset=True
        )
        return f"Your Response:\n{json.dumps(decision, ensure_ascii=False, indent=2)}"
    if turn.role is TurnRole.OBSERVATION:
        return f"TOOL_RESULT[{turn.tool_name}]: {_as_json(turn.content)}"
    return f"Assistant: {_as_json(turn.content)}"


def build_prompt(history: Sequence[Turn], tool_schemas: Mapping[str, ToolSchema]) -> str:
    """
    Render *history* and the catalogue described by *tool_schemas* into model input.

    The output is deterministic for equal inputs.  An empty history still yields a complete
    prompt (used for the priming turn).
    """
    formatted_history = "\n\n".join(render_turn(turn) for turn in history)
    if not formatted_history:
        formatted_history = "(no messages yet)"

    return f"""{SYSTEM_PROMPT}
You have access to the following tools:
{render_catalogue(tool_schemas)}

{RESPONSE_FORMAT}
{DESTRUCTIVE_ACTION_POLICY}
---
Here is the conversation history. Analyze it to decide your next step. The user's most recent \
request is at the end.

{formatted_history}
---

Now, based on the last user message and the entire history, decide on the next JSON command to \
execute.

Your Response:
"""
