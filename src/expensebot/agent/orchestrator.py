"""
Bounded retry around a single model decision.

One call to :meth:`RequestOrchestrator.request` runs up to ``max_attempts`` attempts of

    build prompt -> backend.complete -> extract JSON span -> decode -> validate

and waits ``backoff_base * 2 ** (attempt - 1)`` seconds after every failed attempt except the last.
Transport errors, unparseable output and schema violations are all treated the same way.  When
every attempt fails, a ``clarify`` call asking the user to rephrase is returned instead: callers
always get a valid tool call and never see a raw error.
"""

import asyncio
import logging
from typing import (
    Awaitable,
    Callable,
    List,
    Mapping,
    Sequence,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

from expensebot.agent.llm_backends import BaseBackend
from expensebot.agent.prompt_builder import build_prompt
from expensebot.config import settings
from expensebot.core.schema import (
    BaseToolCall,
    ToolCall,
    Turn,
    clarify,
)
from expensebot.tools import (
    ToolSchema,
    get_tool_schemas,
)
from expensebot.tools.contract import (
    decode_candidate,
    validate_tool_call,
)
from expensebot.tools.tool_call_parser import extract_json_span

logger = logging.getLogger(__name__)

FALLBACK_QUESTION = "Sorry, I had trouble processing that request. Could you please rephrase?"


class OrchestratorResult(BaseModel):
    """Outcome of one orchestrated model decision."""

    model_config = ConfigDict(frozen=True)

    tool_call: ToolCall
    attempts: int
    fell_back: bool = False
    errors: List[str] = Field(default_factory=list, description="One entry per failed attempt")


class RequestOrchestrator:
    """Turns the conversation so far into exactly one valid tool call."""

    def __init__(
        self,
        backend: BaseBackend,
        max_attempts: int | None = None,
        backoff_base: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        tool_schemas: Mapping[str, ToolSchema] | None = None,
    ):
        self.backend = backend
        self.max_attempts = max_attempts if max_attempts is not None else settings.MAX_ATTEMPTS
        self.backoff_base = backoff_base if backoff_base is not None else settings.BACKOFF_BASE
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._sleep = sleep
        self._tool_schemas = tool_schemas if tool_schemas is not None else get_tool_schemas()

    def backoff(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        return self.backoff_base * 2 ** (attempt - 1)

    async def _attempt(self, history: Sequence[Turn]) -> BaseToolCall:
        prompt = build_prompt(history, self._tool_schemas)
        logger.debug("Prompt for model:\n%s", prompt)
        raw = await self.backend.complete(prompt)
        span = extract_json_span(raw)
        return validate_tool_call(decode_candidate(span))

    async def request(self, history: Sequence[Turn]) -> OrchestratorResult:
        """Ask the model for its next decision given *history*.  Never raises."""
        errors: List[str] = []
        for attempt in range(1, self.max_attempts + 1):
            try:
                call = await self._attempt(history)
            except Exception as exc:  # pylint: disable=broad-except
                errors.append(f"{type(exc).__name__}: {exc}")
                logger.warning(
                    "Model attempt %d/%d failed: %s", attempt, self.max_attempts, errors[-1]
                )
                if attempt < self.max_attempts:
                    await self._sleep(self.backoff(attempt))
                continue

            logger.info("Model chose '%s' (attempt %d)", call.tool_name, attempt)
            return OrchestratorResult(tool_call=call, attempts=attempt, errors=errors)

        logger.error("Model failed %d times, asking the user to rephrase", self.max_attempts)
        return OrchestratorResult(
            tool_call=clarify(FALLBACK_QUESTION),
            attempts=self.max_attempts,
            fell_back=True,
            errors=errors,
        )

    async def next_tool_call(self, history: Sequence[Turn]) -> BaseToolCall:
        """Shortcut for ``(await request(history)).tool_call``."""
        return (await self.request(history)).tool_call
