"""Plan-act-observe loop for one user submission."""

from __future__ import annotations

import inspect
import json
import logging
from typing import (
    Any,
    Awaitable,
    Callable,
    List,
    Mapping,
    Sequence,
    Tuple,
)

from pydantic import (
    BaseModel,
    ConfigDict,
)

from expensebot.agent.orchestrator import RequestOrchestrator
from expensebot.agent.tool_executor import (
    ToolExecutionError,
    UnregisteredToolError,
    execute_tool,
)
from expensebot.config import settings
from expensebot.core.schema import (
    BaseToolCall,
    LoopOutcome,
    Turn,
    TurnRole,
)
from expensebot.tools import (
    TOOL_REGISTRY,
    ToolFault,
)

logger = logging.getLogger(__name__)

TOOL_UNAVAILABLE_REPLY = "I encountered an error while processing your request. Please try again."
FAULT_REPLY = "Something went wrong. Please try again."
EXHAUSTED_REPLY = (
    "I need more information to complete this request. "
    "Could you please provide additional details?"
)
LISTING_REQUIRED_ERROR = (
    "ERROR: No expenses have been listed yet. Use listExpenses or getSpendingHistory to find "
    "the expense and its id first."
)
WELCOME_FALLBACK = "Welcome! How can I help with your expenses?"

LISTING_TOOLS = frozenset({"listExpenses", "getSpendingHistory"})
"""Tools whose non-empty result counts as having shown the user's expenses."""

TurnCallback = Callable[[Turn, Tuple[Turn, ...]], Awaitable[None] | None]


class LoopState(BaseModel):
    """Transient state of one submission, owned by a single :class:`AgentLoop` run."""

    history: List[Turn]
    step: int = 0
    outcome: LoopOutcome = LoopOutcome.PENDING


class LoopResult(BaseModel):
    """What a finished run hands back to its caller."""

    model_config = ConfigDict(frozen=True)

    outcome: LoopOutcome
    history: Tuple[Turn, ...]
    new_turns: Tuple[Turn, ...]
    reply: str


def has_listing(history: Sequence[Turn]) -> bool:
    """True if *history* holds a non-empty result of a listing tool."""
    return any(
        turn.role is TurnRole.OBSERVATION
        and turn.tool_name in LISTING_TOOLS
        and isinstance(turn.content, list)
        and len(turn.content) > 0
        for turn in history
    )


class AgentLoop:
    """
    Drives the orchestrator and the tools until the model answers, asks for clarification, names
    a tool without an implementation, a tool faults, or ``max_steps`` tool calls have been made.
    """

    def __init__(
        self,
        orchestrator: RequestOrchestrator,
        registry: Mapping[str, Callable[..., Any]] | None = None,
        max_steps: int | None = None,
        enforce_listing: bool | None = None,
    ):
        self.orchestrator = orchestrator
        self.registry = registry if registry is not None else TOOL_REGISTRY
        self.max_steps = max_steps if max_steps is not None else settings.MAX_STEPS
        self.enforce_listing = (
            enforce_listing
            if enforce_listing is not None
            else settings.ENFORCE_LISTING_BEFORE_DELETE
        )

    async def run(
        self,
        history: Sequence[Turn],
        user_text: str,
        on_turn: TurnCallback | None = None,
    ) -> LoopResult:
        """
        Process one user submission.

        *history* is not modified: the loop works on a copy and returns the merged history in
        the result, together with the turns it added.  *on_turn* (plain function or coroutine)
        is called after every append with the new turn and the history so far.
        """
        state = LoopState(history=list(history))
        start = len(state.history)

        async def append(role: TurnRole, **fields: Any) -> Turn:
            turn = Turn(role=role, position=len(state.history), **fields)
            state.history.append(turn)
            if on_turn is not None:
                pending = on_turn(turn, tuple(state.history))
                if inspect.isawaitable(pending):
                    await pending
            return turn

        async def finish(outcome: LoopOutcome, reply: str) -> LoopResult:
            await append(TurnRole.FINAL, content=reply)
            state.outcome = outcome
            logger.info("Loop finished: %s after %d step(s)", outcome.value, state.step)
            return LoopResult(
                outcome=outcome,
                history=tuple(state.history),
                new_turns=tuple(state.history[start:]),
                reply=reply,
            )

        await append(TurnRole.USER, content=user_text)

        while True:
            call = await self.orchestrator.next_tool_call(state.history)
            await append(TurnRole.MODEL_DECISION, tool_call=call)

            text = call.user_text()
            if call.terminal and text is not None:
                return await finish(LoopOutcome.ANSWERED, text)

            try:
                result = await self._act(call, state.history)
            except UnregisteredToolError:
                logger.error("Model chose '%s' but it has no implementation", call.tool_name)
                return await finish(LoopOutcome.TOOL_UNAVAILABLE, TOOL_UNAVAILABLE_REPLY)
            except ToolFault as exc:
                logger.error("Tool '%s' faulted: %s", call.tool_name, exc)
                return await finish(LoopOutcome.FAULTED, FAULT_REPLY)

            await append(TurnRole.OBSERVATION, tool_name=call.tool_name, content=result)
            state.step += 1
            if state.step >= self.max_steps:
                return await finish(LoopOutcome.EXHAUSTED, EXHAUSTED_REPLY)

    async def _act(self, call: BaseToolCall, history: Sequence[Turn]) -> Any:
        """Run *call* and return its observation.  Tool errors become ERROR observations."""
        if call.tool_name not in self.registry:
            raise UnregisteredToolError(f"Tool '{call.tool_name}' is not registered.")

        if self.enforce_listing and call.requires_listing and not has_listing(history):
            logger.info("Refusing '%s' before any expense listing", call.tool_name)
            return LISTING_REQUIRED_ERROR

        try:
            return await execute_tool(call, self.registry)
        except ToolExecutionError as exc:
            return f"ERROR: {exc}"


async def welcome_message(orchestrator: RequestOrchestrator, todays_expenses: Any) -> str:
    """
    Greeting for a fresh conversation: a single model decision over a priming turn holding
    today's expenses.  Non-terminal decisions fall back to a fixed greeting.
    """
    priming = Turn.user(
        0,
        "The user has just opened the app. Here is their expense data for today: "
        f"{json.dumps(todays_expenses, ensure_ascii=False)}. Please provide a friendly greeting "
        "and a brief, natural-language summary of their spending. If there are no expenses, "
        "just give a simple welcome.",
    )
    call = await orchestrator.next_tool_call([priming])
    text = call.user_text()
    if call.terminal and text:
        return text
    return WELCOME_FALLBACK

