"""
AI chat endpoints.

Conversations ("chat sessions") are owned by the calling user. The /ai route
streams the assistant reply via Server-Sent Events: one `data: <token>` frame
per chunk of new text, then `data: [END]`; an upstream failure ends the
stream with an `event: error` frame instead.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from bizlink.core.api.deps import get_bridge, get_dashboard, get_store
from bizlink.core.memory.store import (
    ConversationNotFound,
    ConversationRecord,
    ConversationStore,
    MessageRecord,
)
from bizlink.core.security.identity import get_current_user
from bizlink.core.services.dashboard_service import DashboardService
from bizlink.core.streaming.bridge import StreamingBridge
from bizlink.core.streaming.sse import SSE_HEADERS, sse_frames

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


class BusinessContext(BaseModel):
    capital_available: Optional[float] = None
    location: Optional[str] = None
    interests: List[str] = Field(default_factory=list)
    experience: Optional[str] = None


class ChatSessionCreateRequest(BaseModel):
    session_name: Optional[str] = None
    business_context: Optional[BusinessContext] = None


class ChatMessageRequest(BaseModel):
    content: str = Field(min_length=1)


class AIPromptRequest(BaseModel):
    prompt: str = Field(min_length=1)
    # Store the prompt as a user turn before streaming; off when the client
    # already posted it through /message.
    persist_prompt: bool = True


class ChatMessageResponse(BaseModel):
    seq: int
    role: str
    content: str
    timestamp: Optional[str] = None


class ChatSessionResponse(BaseModel):
    id: int
    owner_id: str
    session_name: str
    business_context: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    messages: Optional[List[ChatMessageResponse]] = None


def _message_response(m: MessageRecord) -> ChatMessageResponse:
    return ChatMessageResponse(
        seq=m.seq,
        role=m.role,
        content=m.content,
        timestamp=m.created_at.isoformat() if m.created_at else None,
    )


def _session_response(
    c: ConversationRecord,
    messages: Optional[List[MessageRecord]] = None,
) -> ChatSessionResponse:
    return ChatSessionResponse(
        id=c.id,
        owner_id=c.owner_id,
        session_name=c.session_name,
        business_context=c.business_context,
        created_at=c.created_at.isoformat() if c.created_at else None,
        updated_at=c.updated_at.isoformat() if c.updated_at else None,
        messages=[_message_response(m) for m in messages] if messages is not None else None,
    )


async def _owned_conversation(store: ConversationStore, session_id: int, user: dict) -> ConversationRecord:
    conversation = await run_in_threadpool(store.get_conversation, session_id)
    if conversation is None or conversation.owner_id != user["user_id"]:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return conversation


@router.get("/sessions", response_model=List[ChatSessionResponse])
async def list_sessions(
    store: ConversationStore = Depends(get_store),
    user: dict = Depends(get_current_user),
) -> List[ChatSessionResponse]:
    """Caller's chat sessions, most recently updated first."""
    conversations = await run_in_threadpool(store.list_conversations, user["user_id"])
    return [_session_response(c) for c in conversations]


@router.get("/sessions/{session_id}", response_model=ChatSessionResponse)
async def get_session(
    session_id: int,
    store: ConversationStore = Depends(get_store),
    user: dict = Depends(get_current_user),
) -> ChatSessionResponse:
    conversation = await _owned_conversation(store, session_id, user)
    messages = await run_in_threadpool(store.list_messages, session_id)
    return _session_response(conversation, messages)


@router.post("/sessions", response_model=ChatSessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: ChatSessionCreateRequest,
    background_tasks: BackgroundTasks,
    store: ConversationStore = Depends(get_store),
    dashboard: DashboardService = Depends(get_dashboard),
    user: dict = Depends(get_current_user),
) -> ChatSessionResponse:
    context = request.business_context.model_dump(exclude_none=True) if request.business_context else None
    conversation = await run_in_threadpool(
        store.create_conversation, user["user_id"], request.session_name, context
    )
    background_tasks.add_task(dashboard.notify_changed)
    return _session_response(conversation, [])


@router.post("/sessions/{session_id}/message", response_model=ChatMessageResponse)
async def send_message(
    session_id: int,
    request: ChatMessageRequest,
    background_tasks: BackgroundTasks,
    store: ConversationStore = Depends(get_store),
    dashboard: DashboardService = Depends(get_dashboard),
    user: dict = Depends(get_current_user),
) -> ChatMessageResponse:
    """Append a user turn without asking for a reply."""
    await _owned_conversation(store, session_id, user)
    try:
        message = await run_in_threadpool(store.append_message, session_id, "user", request.content)
    except ConversationNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    background_tasks.add_task(dashboard.notify_changed)
    return _message_response(message)


@router.post("/sessions/{session_id}/ai")
async def stream_ai_reply(
    session_id: int,
    request: AIPromptRequest,
    store: ConversationStore = Depends(get_store),
    bridge: StreamingBridge = Depends(get_bridge),
    user: dict = Depends(get_current_user),
):
    """
    Stream the assistant reply to `prompt`, given the conversation so far.

    The assistant message is stored once, after the stream completes; a failed
    or abandoned stream stores nothing.
    """
    await _owned_conversation(store, session_id, user)
    history = await run_in_threadpool(store.list_messages, session_id)
    prompt_turns = [m.as_turn() for m in history]
    prompt_turns.append({"role": "user", "content": request.prompt})
    if request.persist_prompt:
        await run_in_threadpool(store.append_message, session_id, "user", request.prompt)
    logger.info(
        "AI stream request: session_id=%s user_id=%s turns=%d",
        session_id,
        user["user_id"],
        len(prompt_turns),
    )
    return StreamingResponse(
        sse_frames(bridge.stream_reply(session_id, prompt_turns)),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
