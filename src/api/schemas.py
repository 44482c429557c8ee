"""Pydantic schemas for the FastAPI endpoints.

Field names on the wire are camelCase (``agentType``, ``sessionId``) to
match the web frontend; Python code uses the snake_case attributes.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ChatMessage(BaseModel):
    """One entry of the conversation history sent by the client."""

    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1, max_length=8000)


class ChatRequest(BaseModel):
    """A chat turn: the full history, ending with the new user message."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(..., min_length=1, max_length=200)
    agent_type: str | None = Field(
        None,
        alias="agentType",
        max_length=50,
        description="sales, support, navigator or assistant; anything else routes by intent",
    )
    session_id: str | None = Field(
        None,
        alias="sessionId",
        max_length=100,
        description="Conversation to continue; omitted or unknown ids start a new one",
    )

    @model_validator(mode="after")
    def last_message_from_user(self) -> ChatRequest:
        if self.messages[-1].role != "user":
            raise ValueError("The last message must come from the user")
        return self


class ChatResponse(BaseModel):
    """Response from the agent."""

    model_config = ConfigDict(populate_by_name=True)

    response: str = Field(..., description="The agent's answer")
    session_id: str | None = Field(
        None,
        alias="sessionId",
        description="Persisted conversation id, null for anonymous users",
    )


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "agentic-services"


class AgentInfo(BaseModel):
    key: str
    name: str
    description: str
    icon: str
    route: str
    tools: list[str]
