"""
Validation of model output against the tool catalogue.

A candidate is accepted only if it is a mapping ``{"tool_name": ..., "parameters": {...}}`` that
matches exactly one tool call variant.  Failures enumerate every mismatched field, and an unknown
``tool_name`` is reported separately from a known tool with malformed parameters.
"""

import json
import logging
from typing import (
    Any,
    List,
    Mapping,
    NamedTuple,
)

from pydantic import ValidationError

from expensebot.core.schema import (
    TOOL_CALL_MODELS,
    BaseToolCall,
)
from expensebot.tools.tool_call_parser import ToolCallParseError

logger = logging.getLogger(__name__)


class FieldError(NamedTuple):
    """One mismatched field: dotted location and a human-readable reason."""

    location: str
    message: str

    def __str__(self) -> str:
        return f"{self.location}: {self.message}"


class ToolCallValidationError(ValueError):
    """Raised when a candidate does not match any tool call shape."""

    def __init__(self, message: str, errors: List[FieldError] | None = None):
        self.errors: List[FieldError] = list(errors or [])
        if self.errors:
            message = f"{message}: " + "; ".join(str(e) for e in self.errors)
        super().__init__(message)


class UnknownToolError(ToolCallValidationError):
    """The candidate names a tool that is not in the catalogue."""

    def __init__(self, tool_name: Any):
        self.tool_name = tool_name
        super().__init__(
            f"Unknown tool_name {tool_name!r}",
            [FieldError("tool_name", f"must be one of {', '.join(TOOL_CALL_MODELS)}")],
        )


class InvalidParametersError(ToolCallValidationError):
    """The candidate names a known tool but its parameters are malformed."""

    def __init__(self, tool_name: str, errors: List[FieldError]):
        self.tool_name = tool_name
        super().__init__(f"Invalid parameters for tool '{tool_name}'", errors)


def _field_errors(exc: ValidationError) -> List[FieldError]:
    return [
        FieldError(".".join(str(part) for part in err["loc"]) or "parameters", err["msg"])
        for err in exc.errors()
    ]


def decode_candidate(span: str) -> Any:
    """Decode the JSON text cut out by the response parser."""
    try:
        return json.loads(span)
    except json.JSONDecodeError as exc:
        raise ToolCallParseError(f"Model output is not valid JSON: {exc}") from exc


def validate_tool_call(candidate: Any) -> BaseToolCall:
    """
    Check *candidate* against the tool catalogue.

    Returns
    -------
    BaseToolCall
        The matching tool call variant.  Optional parameters absent from *candidate* stay unset.

    Raises
    ------
    UnknownToolError
        If ``tool_name`` is not in the catalogue.
    InvalidParametersError
        If ``tool_name`` is known but one or more parameters are missing, mistyped or unexpected.
    ToolCallValidationError
        If *candidate* is not a mapping with a ``tool_name``.
    """
    if not isinstance(candidate, Mapping):
        raise ToolCallValidationError(f"Expected a JSON object, got {type(candidate).__name__}")
    if "tool_name" not in candidate:
        raise ToolCallValidationError(
            "Malformed tool call", [FieldError("tool_name", "Field required")]
        )

    tool_name = candidate["tool_name"]
    call_model = TOOL_CALL_MODELS.get(tool_name) if isinstance(tool_name, str) else None
    if call_model is None:
        raise UnknownToolError(tool_name)

    if "parameters" not in candidate:
        raise InvalidParametersError(tool_name, [FieldError("parameters", "Field required")])

    try:
        return call_model.model_validate(dict(candidate))
    except ValidationError as exc:
        errors = _field_errors(exc)
        logger.debug("Rejected '%s' call: %s", tool_name, errors)
        raise InvalidParametersError(tool_name, errors) from exc
