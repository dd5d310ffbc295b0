from __future__ import annotations

import uuid
from contextvars import ContextVar, Token
from typing import Optional

_request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_conversation_id_ctx_var: ContextVar[Optional[str]] = ContextVar("conversation_id", default=None)


def set_request_id(request_id: Optional[str] = None) -> Token:
    value = request_id or str(uuid.uuid4())
    return _request_id_ctx_var.set(value)


def get_request_id() -> Optional[str]:
    return _request_id_ctx_var.get()


def reset_request_id(token: Token) -> None:
    _request_id_ctx_var.reset(token)


def bind_conversation_id(conversation_id: Optional[str]) -> Token:
    """Attach the active conversation id to log records emitted during the turn."""
    return _conversation_id_ctx_var.set(conversation_id)


def get_conversation_id() -> Optional[str]:
    return _conversation_id_ctx_var.get()


def reset_conversation_id(token: Token) -> None:
    _conversation_id_ctx_var.reset(token)
