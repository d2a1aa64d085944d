"""
Tool registry for expensebot.

The *catalogue* of tools the model may call is fixed by the tool call variants in
:mod:`expensebot.core.schema`.  This module binds implementations to catalogue names: a decorator
registers a function under a name, and the registry is consulted by name whenever the agent
dispatches a call.  Terminal tools (``answerUser``, ``clarify``) never need an implementation.
"""

import json
import logging
from typing import (
    Annotated,
    Any,
    Callable,
    Dict,
    List,
    Literal,
    Mapping,
    Optional,
    Type,
    TypedDict,
    Union,
    get_args,
    get_origin,
)

from pydantic import (
    BaseModel,
    ConfigDict,
)

from expensebot.core.schema import (
    TOOL_CALL_MODELS,
    ToolParameters,
)

logger = logging.getLogger(__name__)

TOOL_REGISTRY: Dict[str, Callable[..., Any]] = {}
"""Global registry of bound tool implementations."""


class ToolFault(RuntimeError):
    """
    Raised by a tool implementation for an unexpected, non-recoverable fault (e.g. storage is
    unavailable).  Unlike ordinary tool errors it is not reported back to the model.
    """


def register_tool(name: str) -> Callable:
    """
    Register a tool implementation under the given catalogue name.

    The function is registered as a decorator, so it can be used like this:
        @register_tool("addExpense")
        def add_expense(amount, category, note=None):
            ...

    The implementation receives the validated parameters as keyword arguments and returns either
    a short status string or a JSON-serialisable payload.

    Parameters
    ----------
    name: str
        The catalogue name of the tool.
    Returns
    -------
    Callable
        A decorator that registers the function with the given name.
    Raises
    ------
    ValueError
        If the name is not in the catalogue or is already registered.
    """
    if name not in TOOL_CALL_MODELS:
        raise ValueError(f"Tool '{name}' is not declared in the tool catalogue.")
    if name in TOOL_REGISTRY:
        raise ValueError(f"Tool '{name}' is already registered.")
    logger.debug("Registering tool '%s'", name)

    def wrapper(fn: Callable) -> Callable:
        TOOL_REGISTRY[name] = fn
        return fn

    return wrapper


class ParameterInfo(TypedDict):
    """
    Information about a tool parameter.
    """

    type: str
    required: bool


class ToolSchema(TypedDict):
    """
    Schema for a tool, as shown to the model.
    """

    description: str
    parameters: Mapping[str, ParameterInfo]
    terminal: bool


class ToolSpec(BaseModel):
    """A catalogue tool joined with its bound implementation."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    description: str
    parameters: Type[ToolParameters]
    terminal: bool
    requires_listing: bool
    implementation: Optional[Callable[..., Any]] = None


_JSON_TYPES: Dict[Any, str] = {str: "string", float: "number", int: "number", bool: "boolean"}


def _type_name(annotation: Any) -> str:
    """Render a parameter annotation as the JSON type the model should produce."""
    origin = get_origin(annotation)
    if origin is Annotated:
        return _type_name(get_args(annotation)[0])
    if origin is Literal:
        return " | ".join(json.dumps(value) for value in get_args(annotation))
    if origin is Union:
        return " | ".join(
            _type_name(arg) for arg in get_args(annotation) if arg is not type(None)
        )
    if isinstance(annotation, type) and issubclass(annotation, ToolParameters):
        inner = ", ".join(
            f"{name}{'' if field.is_required() else '?'}: {_type_name(field.annotation)}"
            for name, field in annotation.model_fields.items()
        )
        return "{" + inner + "}"
    return _JSON_TYPES.get(annotation, getattr(annotation, "__name__", str(annotation)))


def get_tool_schemas() -> Mapping[str, ToolSchema]:
    """Describe the parameters of every catalogue tool, in catalogue order."""
    tool_schemas: Dict[str, ToolSchema] = {}
    for name, call_model in TOOL_CALL_MODELS.items():
        params_model = call_model.model_fields["parameters"].annotation
        params = {}
        for param_name, field in params_model.model_fields.items():
            params[param_name] = ParameterInfo(
                type=_type_name(field.annotation), required=field.is_required()
            )
        tool_schemas[name] = {
            "description": call_model.description,
            "parameters": params,
            "terminal": call_model.terminal,
        }
    return tool_schemas


def get_tool_specs(
    registry: Mapping[str, Callable[..., Any]] | None = None,
) -> Dict[str, ToolSpec]:
    """Join the catalogue with *registry* (default: the global registry)."""
    if registry is None:
        registry = TOOL_REGISTRY
    return {
        name: ToolSpec(
            name=name,
            description=call_model.description,
            parameters=call_model.model_fields["parameters"].annotation,
            terminal=call_model.terminal,
            requires_listing=call_model.requires_listing,
            implementation=registry.get(name),
        )
        for name, call_model in TOOL_CALL_MODELS.items()
    }


def missing_implementations(registry: Mapping[str, Callable[..., Any]] | None = None) -> List[str]:
    """Names of non-terminal catalogue tools that have no bound implementation."""
    return [
        tool.name
        for tool in get_tool_specs(registry).values()
        if not tool.terminal and tool.implementation is None
    ]


# Register the expense tools
from expensebot.tools import expenses  # noqa: E402,F401  pylint: disable=wrong-import-position
