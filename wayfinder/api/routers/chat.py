from __future__ import annotations

import asyncio
import time
import uuid
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from wayfinder.core.schemas import HistoryMessage, TurnResult, UserContext


class ChatMessage(BaseModel):
    role: str = Field(pattern="^(user|assistant)$")
    content: str
    ts: float = Field(default_factory=lambda: time.time())
    result: Optional[TurnResult] = None


class ChatSession(BaseModel):
    id: str
    user_id: Optional[str] = None
    messages: List[ChatMessage] = Field(default_factory=list)


class MessageRequest(BaseModel):
    content: str
    context: UserContext
    image: Optional[str] = Field(None, description="Base64-encoded JPEG")


class ReplayRequest(BaseModel):
    context: UserContext
    session_id: Optional[str] = None


router = APIRouter(prefix="/chat", tags=["chat"])

_SESSIONS: Dict[str, ChatSession] = {}
# One turn at a time per session; a cancel flag lets a client abandon it
_LOCKS: Dict[str, asyncio.Lock] = {}
_CANCELLED: Dict[str, bool] = {}


def _get_session(session_id: str) -> ChatSession:
    session = _SESSIONS.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="session not found")
    return session


def _history(session: ChatSession) -> List[HistoryMessage]:
    return [HistoryMessage(role=m.role, content=m.content) for m in session.messages]


def _record(session: ChatSession, content: str, result: TurnResult) -> None:
    session.messages.append(ChatMessage(role="user", content=content))
    session.messages.append(ChatMessage(role="assistant", content=result.content, result=result))


@router.post("/sessions")
def create_session(user_id: Optional[str] = None) -> Dict[str, str]:
    sid = f"sess_{uuid.uuid4().hex[:12]}"
    _SESSIONS[sid] = ChatSession(id=sid, user_id=user_id)
    _LOCKS[sid] = asyncio.Lock()
    return {"sessionId": sid}


@router.get("/sessions/{session_id}")
def get_session(session_id: str) -> Dict[str, object]:
    return {"session": _get_session(session_id)}


@router.delete("/sessions/{session_id}")
def delete_session(session_id: str) -> Dict[str, str]:
    _get_session(session_id)
    _SESSIONS.pop(session_id, None)
    _LOCKS.pop(session_id, None)
    _CANCELLED.pop(session_id, None)
    return {"message": "Session deleted successfully"}


@router.post("/sessions/{session_id}/messages")
async def post_message(
    session_id: str, req: MessageRequest, request: Request
) -> Dict[str, object]:
    session = _get_session(session_id)
    companion = request.app.state.companion
    lock = _LOCKS.setdefault(session_id, asyncio.Lock())

    async with lock:
        _CANCELLED[session_id] = False
        result = await companion.handle_turn(
            req.content,
            req.context,
            history=_history(session),
            image=req.image,
            is_cancelled=lambda: _CANCELLED.get(session_id, False),
        )
        # Offline messages live in the queue until replayed
        if result.status != "offline":
            _record(session, req.content, result)

    return {"result": result}


@router.post("/sessions/{session_id}/cancel")
def cancel_turn(session_id: str) -> Dict[str, bool]:
    """Abandon the in-flight turn; the verifier stops before its next retry."""
    _get_session(session_id)
    _CANCELLED[session_id] = True
    return {"cancelled": True}


@router.post("/queue/replay")
async def replay_queue(req: ReplayRequest, request: Request) -> Dict[str, object]:
    """Send messages that were queued while offline, in arrival order."""
    companion = request.app.state.companion
    offline_gate = request.app.state.offline_gate
    if not offline_gate.is_online():
        raise HTTPException(status_code=409, detail="still offline")

    if req.session_id is None:
        return {"results": await companion.replay_queued(req.context)}

    session = _get_session(req.session_id)
    lock = _LOCKS.setdefault(req.session_id, asyncio.Lock())
    async with lock:
        queued = offline_gate.queued_messages()
        results = await companion.replay_queued(req.context, history=_history(session))
        for item, result in zip(queued, results):
            if result.status != "offline":
                _record(session, item.content, result)
    return {"results": results}
