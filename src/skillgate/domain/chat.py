from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

Role = Literal["system", "user", "assistant", "tool", "function"]


class ChatMessage(BaseModel):
    role: Role = "user"
    content: str = ""
    name: str | None = None
    tool_call_id: str | None = None


class CompletionInput(BaseModel):
    model: str
    messages: list[ChatMessage]
    temperature: float | None = None
    max_tokens: int | None = None
    tools: list[Any] | None = None


class CompletionResult(BaseModel):
    text: str = ""
    usage: dict[str, Any] | None = None
    raw: Any = None


class ModelChoice(BaseModel):
    """Model preset picked for one request; never persisted."""

    provider: str = "local"
    model: str
    temperature: float
    max_tokens: int


class AskMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str


class AskResponse(BaseModel):
    ok: bool = True
    provider: str
    model: str
    message: AskMessage
    usage: dict[str, Any] | None = Field(default=None)
