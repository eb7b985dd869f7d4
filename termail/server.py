"""HTTP registration surface for the termail mailbox."""

from __future__ import annotations

import re
from typing import Literal

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .constants import TERMINAL_NAME_RE
from .mailbox import Mailbox

_TERMINAL_NAME = re.compile(TERMINAL_NAME_RE)
INVALID_NAME_ERROR = (
    "Invalid terminal name. Use only letters, numbers, hyphens, and underscores."
)


# --- request bodies ---

class SendMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sender: str = Field(alias="from", min_length=1)
    to: str = Field(min_length=1)
    message: str


class SetStateRequest(BaseModel):
    state: Literal["idle", "busy"]


def valid_terminal_name(terminal: str) -> bool:
    """Return true when a terminal id is acceptable at the HTTP boundary."""
    return bool(_TERMINAL_NAME.match(terminal))


def _invalid_name(*terminals: str) -> JSONResponse | None:
    """Return a 400 response if any terminal id is malformed."""
    for terminal in terminals:
        if not valid_terminal_name(terminal):
            return JSONResponse(status_code=400, content={"error": INVALID_NAME_ERROR})
    return None


def _storage_failure(action: str, exc: OSError) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": f"Failed to {action}", "details": str(exc)},
    )


def _mailbox(request: Request) -> Mailbox:
    return request.app.state.mailbox


def create_app(mailbox: Mailbox) -> FastAPI:
    """Build the HTTP app around one mailbox instance.

    Args:
        mailbox: Mailbox shared by every request.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(title="termail")
    app.state.mailbox = mailbox

    # --- registration endpoints ---

    @app.post("/register-terminal/{terminal}")
    def register_terminal(terminal: str, request: Request):
        rejected = _invalid_name(terminal)
        if rejected is not None:
            return rejected
        try:
            _mailbox(request).register(terminal)
        except OSError as exc:
            return _storage_failure("register terminal", exc)
        return {
            "success": True,
            "message": f"Terminal '{terminal}' registered successfully",
            "terminal": terminal,
            "state": "idle",
        }

    @app.post("/unregister-terminal/{terminal}")
    def unregister_terminal(terminal: str, request: Request):
        rejected = _invalid_name(terminal)
        if rejected is not None:
            return rejected
        _mailbox(request).unregister(terminal)
        return {
            "success": True,
            "message": f"Terminal '{terminal}' unregistered successfully",
            "terminal": terminal,
        }

    # --- message endpoints ---

    @app.post("/messages")
    def send_message(body: SendMessageRequest, request: Request):
        rejected = _invalid_name(body.sender, body.to)
        if rejected is not None:
            return rejected
        try:
            message = _mailbox(request).send(body.sender, body.to, body.message)
        except OSError as exc:
            return _storage_failure("send message", exc)
        return {
            "success": True,
            "message": f"Message sent from {body.sender} to {body.to}",
            "messageId": message.id,
            "timestamp": message.timestamp,
        }

    @app.get("/terminals/{terminal}/unread")
    def get_unread_messages(terminal: str, request: Request):
        rejected = _invalid_name(terminal)
        if rejected is not None:
            return rejected
        messages = _mailbox(request).list_unread(terminal)
        return {
            "success": True,
            "terminal": terminal,
            "count": len(messages),
            "messages": [message.to_payload() for message in messages],
        }

    @app.get("/terminals/{terminal}/oldest")
    def get_oldest_unread_message(terminal: str, request: Request):
        rejected = _invalid_name(terminal)
        if rejected is not None:
            return rejected
        message = _mailbox(request).oldest_unread(terminal)
        return {
            "success": True,
            "terminal": terminal,
            "hasMessage": message is not None,
            "message": message.to_payload() if message is not None else None,
        }

    @app.post("/terminals/{terminal}/read/{message_id}")
    def mark_message_read(terminal: str, message_id: str, request: Request):
        rejected = _invalid_name(terminal)
        if rejected is not None:
            return rejected
        try:
            moved = _mailbox(request).acknowledge(terminal, message_id)
        except OSError as exc:
            return _storage_failure("mark message read", exc)
        if moved:
            text = f"Message {message_id} marked as read for {terminal}"
        else:
            text = f"Message {message_id} not found in unread messages for {terminal}"
        return {"success": moved, "message": text}

    # --- state endpoints ---

    @app.put("/terminals/{terminal}/state")
    def set_terminal_state(terminal: str, body: SetStateRequest, request: Request):
        rejected = _invalid_name(terminal)
        if rejected is not None:
            return rejected
        try:
            _mailbox(request).set_state(terminal, body.state)
        except OSError as exc:
            return _storage_failure("set terminal state", exc)
        return {
            "success": True,
            "message": f"Terminal {terminal} state set to {body.state}",
            "terminal": terminal,
            "state": body.state,
        }

    @app.get("/terminals/{terminal}/status")
    def get_terminal_status(terminal: str, request: Request):
        rejected = _invalid_name(terminal)
        if rejected is not None:
            return rejected
        status = _mailbox(request).status(terminal)
        return {"success": True, **status.to_payload()}

    @app.get("/terminals")
    def list_terminals(request: Request):
        terminals = _mailbox(request).list_registered()
        return {"success": True, "count": len(terminals), "terminals": terminals}

    @app.get("/statuses")
    def list_terminal_statuses(request: Request):
        statuses = _mailbox(request).all_statuses()
        return {
            "success": True,
            "count": len(statuses),
            "statuses": [status.to_payload() for status in statuses],
        }

    return app
