from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, field_validator


class ChatRequest(BaseModel):
    message: str = Field(..., description="User message for this turn.")
    conversationId: str | None = Field(
        default=None,
        max_length=64,
        description="Conversation identifier; a new one is issued when omitted.",
    )

    @field_validator("message")
    @classmethod
    def validate_message(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Campo 'message' é obrigatório.")
        return cleaned

    @field_validator("conversationId")
    @classmethod
    def _strip_conversation_id(cls, value: str | None) -> str | None:
        return (value.strip() or None) if value else None


class ChatResponse(BaseModel):
    reply: str = Field(..., description="Assistant reply for this turn.")
    interactionId: str | None = Field(
        default=None, description="Logged interaction id, null when logging failed."
    )
    photoLinks: List[str] = Field(default_factory=list, description="Photos of the focused item.")
    conversationId: str = Field(..., description="Conversation identifier to send on the next turn.")


class FeedbackRequest(BaseModel):
    interactionId: str = Field(..., description="Interaction being rated.")
    feedback: str = Field(..., description="Free-text or thumbs feedback.")

    @field_validator("interactionId", "feedback")
    @classmethod
    def _require_text(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Field cannot be empty.")
        return cleaned


class FeedbackResponse(BaseModel):
    success: bool = True
