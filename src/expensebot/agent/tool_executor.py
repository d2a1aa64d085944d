"""Dispatches validated tool calls to the implementations registered in ``expensebot.tools``."""

import inspect
import logging
import time
from typing import (
    Any,
    Callable,
    Mapping,
)

from expensebot.core.schema import BaseToolCall
from expensebot.tools import (
    TOOL_REGISTRY,
    ToolFault,
)

logger = logging.getLogger(__name__)


class ToolExecutionError(RuntimeError):
    """Raised when a tool implementation fails; the failure is reported back to the model."""


class UnregisteredToolError(LookupError):
    """Raised when a catalogue tool has no bound implementation (a configuration mismatch)."""


async def execute_tool(
    call: BaseToolCall, registry: Mapping[str, Callable[..., Any]] | None = None
) -> Any:
    """
    Look up the implementation of *call* in *registry* and invoke it with the call's parameters.

    Parameters
    ----------
    call:
        A validated tool call.
    registry:
        Implementations keyed by tool name.  Defaults to the global registry.

    Returns
    -------
    Any
        Whatever the tool function returns (awaited if it is a coroutine).

    Raises
    ------
    UnregisteredToolError
        If no implementation is bound to the tool name.
    ToolFault
        Re-raised unchanged when the implementation hits an unexpected fault.
    ToolExecutionError
        If the invocation raises any other exception.
    """
    if registry is None:
        registry = TOOL_REGISTRY

    name = call.tool_name
    tool_fn = registry.get(name)
    if tool_fn is None:
        raise UnregisteredToolError(f"Tool '{name}' is not registered.")

    args = call.parameters.model_dump(exclude_unset=True)
    start = time.perf_counter()
    result: Any = None
    succeeded = False
    error: Exception | None = None
    try:
        logger.debug("Executing tool '%s' with args=%s", name, args)
        result = tool_fn(**args)
        if inspect.isawaitable(result):
            result = await result
        succeeded = True
        return result
    except ToolFault as exc:
        error = exc
        logger.exception("Fault in tool '%s'", name)
        raise
    except TypeError as exc:
        error = exc
        # Argument mismatch — give the caller a clean exception.
        logger.exception("Argument error while executing tool '%s'", name)
        raise ToolExecutionError(f"Invalid arguments for tool '{name}': {exc}") from exc
    except Exception as exc:  # noqa: BLE001
        error = exc
        logger.warning("Tool '%s' raised an error: %s", name, exc)
        raise ToolExecutionError(f"Tool '{name}' raised an error: {exc}") from exc
    finally:
        _log_telemetry(name, args, start, succeeded, result, error)


def _log_telemetry(
    name: str, args: dict, start: float, success: bool, result: Any, error: Exception | None
) -> None:
    """One INFO record per dispatch; the fields ride on the record as ``extra`` attributes."""
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "Tool '%s' finished in %.1f ms (success=%s)",
        name,
        duration_ms,
        success,
        extra={
            "tool": name,
            "duration_ms": duration_ms,
            "success": success,
            "tool_result": result if success else None,
            "tool_error": None if error is None else str(error),
            "tool_params": args,
        },
    )
