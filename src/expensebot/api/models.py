"""
Pydantic models for expensebot API requests and responses.
This module defines the request and response schemas used by the expensebot API.
"""

from typing import (
    Annotated,
    Any,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
    StringConstraints,
)

from expensebot.core.schema import (
    LoopOutcome,
    Turn,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class SessionResponse(BaseModel):
    """Response with session information."""

    session_id: str
    welcome: str


class HistoryResponse(BaseModel):
    """Full stored history of a session."""

    session_id: str
    turns: List[Turn]


class MessageRequest(BaseModel):
    """Incoming user message."""

    message: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)] = Field(
        ..., description="User message for the expense assistant"
    )
    session_id: Optional[str] = Field(
        None, description="Existing session ID; omit it to start a new session"
    )


class Observation(BaseModel):
    """One tool result produced while answering a message."""

    tool_name: str
    result: Any


class MessageResponse(BaseModel):
    """API response returned to the caller."""

    reply: str
    outcome: LoopOutcome
    session_id: str
    observations: List[Observation] = Field(default_factory=list)
