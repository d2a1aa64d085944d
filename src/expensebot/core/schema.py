"""
Schema definitions for model <-> agent <-> tool messages.

These data models serve as the contract between the language model, the agent loop, and the
individual tools.  The set of tool calls is closed: :data:`ToolCall` is a discriminated union keyed
by ``tool_name`` with exactly one variant per catalogue tool, each variant carrying its own
parameter model.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.
"""

from enum import Enum
from typing import (
    Annotated,
    Any,
    ClassVar,
    Dict,
    Literal,
    Optional,
    Type,
    Union,
    get_args,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictStr,
    model_validator,
)

NonEmptyStr = Annotated[StrictStr, Field(min_length=1)]
SpendingPeriod = Literal["today", "this week", "this month", "all"]


# ---------------------------------------------------------------------------
# Tool parameters
# ---------------------------------------------------------------------------
class ToolParameters(BaseModel):
    """Base class for tool parameter records.  Unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class AddExpenseParams(ToolParameters):
    amount: StrictFloat = Field(..., allow_inf_nan=False, description="Amount spent in rupees")
    category: NonEmptyStr = Field(..., description="Spending category, e.g. Food")
    note: Optional[StrictStr] = Field(None, description="Free-text note")


class GetSpendingHistoryParams(ToolParameters):
    period: SpendingPeriod


class ListExpensesParams(ToolParameters):
    query: StrictStr = Field(..., description="Text matched against note and category")


class ExpenseUpdates(ToolParameters):
    amount: Optional[StrictFloat] = Field(None, allow_inf_nan=False)
    category: Optional[NonEmptyStr] = None
    note: Optional[StrictStr] = None


class UpdateExpenseParams(ToolParameters):
    id: NonEmptyStr
    updates: ExpenseUpdates


class DeleteExpenseByIdParams(ToolParameters):
    id: NonEmptyStr


class DeleteLastExpenseParams(ToolParameters):
    pass  # pylint: disable=unnecessary-pass


class AnswerUserParams(ToolParameters):
    answer: NonEmptyStr


class ClarifyParams(ToolParameters):
    question: NonEmptyStr


# ---------------------------------------------------------------------------
# Tool call variants
# ---------------------------------------------------------------------------
class BaseToolCall(BaseModel):
    """A call that the model wants the agent to execute."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    description: ClassVar[str] = ""
    terminal: ClassVar[bool] = False
    requires_listing: ClassVar[bool] = False

    tool_name: str
    parameters: ToolParameters

    def user_text(self) -> str | None:
        """User-facing text carried by a terminal call, ``None`` for everything else."""
        return None


class AddExpenseCall(BaseToolCall):
    description: ClassVar[str] = "Logs a new expense."

    tool_name: Literal["addExpense"]
    parameters: AddExpenseParams


class GetSpendingHistoryCall(BaseToolCall):
    description: ClassVar[str] = (
        "Fetches transactions for a period. This is a preliminary step for summarization."
    )

    tool_name: Literal["getSpendingHistory"]
    parameters: GetSpendingHistoryParams


class ListExpensesCall(BaseToolCall):
    description: ClassVar[str] = (
        "Finds expenses whose note or category contains the query. Returns their ids."
    )

    tool_name: Literal["listExpenses"]
    parameters: ListExpensesParams


class UpdateExpenseCall(BaseToolCall):
    description: ClassVar[str] = "Changes fields of one expense, addressed by its id."
    requires_listing: ClassVar[bool] = True

    tool_name: Literal["updateExpense"]
    parameters: UpdateExpenseParams


class DeleteExpenseByIdCall(BaseToolCall):
    description: ClassVar[str] = "Deletes one expense, addressed by its id."
    requires_listing: ClassVar[bool] = True

    tool_name: Literal["deleteExpenseById"]
    parameters: DeleteExpenseByIdParams


class DeleteLastExpenseCall(BaseToolCall):
    description: ClassVar[str] = "Deletes the most recently added expense."

    tool_name: Literal["deleteLastExpense"]
    parameters: DeleteLastExpenseParams = Field(default_factory=DeleteLastExpenseParams)


class AnswerUserCall(BaseToolCall):
    description: ClassVar[str] = (
        "Provides the final, natural language answer to the user after all tools have been "
        "used. This ends the process."
    )
    terminal: ClassVar[bool] = True

    tool_name: Literal["answerUser"]
    parameters: AnswerUserParams

    def user_text(self) -> str:
        return self.parameters.answer


class ClarifyCall(BaseToolCall):
    description: ClassVar[str] = (
        "Used when you don't understand or need more information. This ends the process."
    )
    terminal: ClassVar[bool] = True

    tool_name: Literal["clarify"]
    parameters: ClarifyParams

    def user_text(self) -> str:
        return self.parameters.question


ToolCall = Annotated[
    Union[
        AddExpenseCall,
        GetSpendingHistoryCall,
        ListExpensesCall,
        UpdateExpenseCall,
        DeleteExpenseByIdCall,
        DeleteLastExpenseCall,
        AnswerUserCall,
        ClarifyCall,
    ],
    Field(discriminator="tool_name"),
]
"""Discriminated union over every tool call the model may produce."""


def _tool_name_of(model: Type[BaseToolCall]) -> str:
    return get_args(model.model_fields["tool_name"].annotation)[0]


TOOL_CALL_MODELS: Dict[str, Type[BaseToolCall]] = {
    _tool_name_of(model): model for model in get_args(get_args(ToolCall)[0])
}
"""Catalogue of tool call variants keyed by ``tool_name``, in declaration order."""


def clarify(question: str) -> ClarifyCall:
    """Shortcut used for fallbacks: a terminal call asking the user *question*."""
    return ClarifyCall(tool_name="clarify", parameters=ClarifyParams(question=question))


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------
class TurnRole(str, Enum):
    """Who produced a turn."""

    USER = "user"
    MODEL_DECISION = "model_decision"
    OBSERVATION = "observation"
    FINAL = "final"


class Turn(BaseModel):
    """A single immutable entry in the conversation history."""

    model_config = ConfigDict(frozen=True)

    role: TurnRole
    position: int = Field(..., ge=0, description="Insertion order within the conversation")
    content: Any = Field(None, description="Text for user/final turns, tool result otherwise")
    tool_call: Optional[ToolCall] = Field(None, description="Decision of a model_decision turn")
    tool_name: Optional[str] = Field(None, description="Tool that produced an observation")

    @model_validator(mode="after")
    def _check_payload(self) -> "Turn":
        if self.role in (TurnRole.USER, TurnRole.FINAL) and not isinstance(self.content, str):
            raise ValueError(f"{self.role.value} turns carry text content")
        if self.role is TurnRole.MODEL_DECISION and self.tool_call is None:
            raise ValueError("model_decision turns carry a tool_call")
        if self.role is TurnRole.OBSERVATION and not self.tool_name:
            raise ValueError("observation turns name the tool that produced them")
        return self

    @classmethod
    def user(cls, position: int, text: str) -> "Turn":
        return cls(role=TurnRole.USER, position=position, content=text)

    @classmethod
    def decision(cls, position: int, call: BaseToolCall) -> "Turn":
        return cls(role=TurnRole.MODEL_DECISION, position=position, tool_call=call)

    @classmethod
    def observation(cls, position: int, tool_name: str, result: Any) -> "Turn":
        return cls(
            role=TurnRole.OBSERVATION, position=position, tool_name=tool_name, content=result
        )

    @classmethod
    def final(cls, position: int, text: str) -> "Turn":
        return cls(role=TurnRole.FINAL, position=position, content=text)


class LoopOutcome(str, Enum):
    """Terminal state of one agent loop run (``pending`` while it is still running)."""

    PENDING = "pending"
    ANSWERED = "answered"
    TOOL_UNAVAILABLE = "tool_unavailable"
    EXHAUSTED = "exhausted"
    FAULTED = "faulted"
