"""
Conversation store: append/read access to AI chat conversations.

The streaming bridge and the chat API only talk to `ConversationStore`.
`SqlConversationStore` is the production implementation; `InMemoryConversationStore`
is used for tests and local runs without a database. Both are synchronous and
thread-safe; async callers go through the threadpool.
"""
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from bizlink.core.memory.db import db_session
from bizlink.core.memory.models import ChatMessage, ChatSession, MESSAGE_ROLES
from bizlink.core.memory.repository import ChatMessageRepository, ChatSessionRepository


class ConversationNotFound(LookupError):
    """Raised when a conversation id does not exist."""


@dataclass(frozen=True)
class MessageRecord:
    """Immutable view of a persisted chat message."""
    conversation_id: int
    seq: int
    role: str
    content: str
    created_at: Optional[datetime] = None

    def as_turn(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ConversationRecord:
    id: int
    owner_id: str
    session_name: str
    business_context: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def _conversation_record(row: ChatSession) -> ConversationRecord:
    return ConversationRecord(
        id=row.id,
        owner_id=row.owner_id,
        session_name=row.session_name,
        business_context=dict(row.business_context or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _message_record(row: ChatMessage) -> MessageRecord:
    return MessageRecord(
        conversation_id=row.chat_session_id,
        seq=row.seq,
        role=row.role,
        content=row.content,
        created_at=row.created_at,
    )


class ConversationStore(ABC):
    """Abstract interface for conversation storage."""

    @abstractmethod
    def create_conversation(
        self,
        owner_id: str,
        session_name: Optional[str] = None,
        business_context: Optional[Dict[str, Any]] = None,
    ) -> ConversationRecord:
        """Create an empty conversation."""
        pass

    @abstractmethod
    def get_conversation(self, conversation_id: int) -> Optional[ConversationRecord]:
        pass

    @abstractmethod
    def list_conversations(self, owner_id: str) -> List[ConversationRecord]:
        """Owner's conversations, most recently updated first."""
        pass

    @abstractmethod
    def append_message(self, conversation_id: int, role: str, content: str) -> MessageRecord:
        """
        Append one message to a conversation.

        Raises ConversationNotFound for an unknown conversation and ValueError
        for a role outside user/assistant.
        """
        pass

    @abstractmethod
    def list_messages(self, conversation_id: int) -> List[MessageRecord]:
        """All messages of a conversation in append order."""
        pass


class SqlConversationStore(ConversationStore):
    """SQLAlchemy-backed conversation store."""

    def __init__(self, session_factory: Optional[sessionmaker] = None) -> None:
        self._session_factory = session_factory

    def create_conversation(
        self,
        owner_id: str,
        session_name: Optional[str] = None,
        business_context: Optional[Dict[str, Any]] = None,
    ) -> ConversationRecord:
        with db_session(self._session_factory) as db:
            row = ChatSessionRepository.create(db, owner_id, session_name, business_context)
            return _conversation_record(row)

    def get_conversation(self, conversation_id: int) -> Optional[ConversationRecord]:
        with db_session(self._session_factory) as db:
            row = ChatSessionRepository.get_by_id(db, conversation_id)
            return _conversation_record(row) if row else None

    def list_conversations(self, owner_id: str) -> List[ConversationRecord]:
        with db_session(self._session_factory) as db:
            return [_conversation_record(r) for r in ChatSessionRepository.list_for_owner(db, owner_id)]

    def append_message(self, conversation_id: int, role: str, content: str) -> MessageRecord:
        with db_session(self._session_factory) as db:
            if ChatSessionRepository.get_by_id(db, conversation_id) is None:
                raise ConversationNotFound(conversation_id)
            row = ChatMessageRepository.append(db, conversation_id, role, content)
            return _message_record(row)

    def list_messages(self, conversation_id: int) -> List[MessageRecord]:
        with db_session(self._session_factory) as db:
            return [_message_record(r) for r in ChatMessageRepository.list_for_session(db, conversation_id)]


class InMemoryConversationStore(ConversationStore):
    """In-memory implementation of ConversationStore for testing and development."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._conversations: Dict[int, ConversationRecord] = {}
        self._messages: Dict[int, List[MessageRecord]] = {}
        self._next_id = 1

    def create_conversation(
        self,
        owner_id: str,
        session_name: Optional[str] = None,
        business_context: Optional[Dict[str, Any]] = None,
    ) -> ConversationRecord:
        with self._lock:
            now = datetime.now(timezone.utc)
            record = ConversationRecord(
                id=self._next_id,
                owner_id=owner_id,
                session_name=session_name or "New Chat Session",
                business_context=dict(business_context or {}),
                created_at=now,
                updated_at=now,
            )
            self._conversations[record.id] = record
            self._messages[record.id] = []
            self._next_id += 1
            return record

    def get_conversation(self, conversation_id: int) -> Optional[ConversationRecord]:
        with self._lock:
            return self._conversations.get(conversation_id)

    def list_conversations(self, owner_id: str) -> List[ConversationRecord]:
        with self._lock:
            owned = [c for c in self._conversations.values() if c.owner_id == owner_id]
        return sorted(owned, key=lambda c: (c.updated_at, c.id), reverse=True)

    def append_message(self, conversation_id: int, role: str, content: str) -> MessageRecord:
        if role not in MESSAGE_ROLES:
            raise ValueError(f"Unknown message role: {role}")
        with self._lock:
            if conversation_id not in self._conversations:
                raise ConversationNotFound(conversation_id)
            messages = self._messages[conversation_id]
            now = datetime.now(timezone.utc)
            record = MessageRecord(
                conversation_id=conversation_id,
                seq=len(messages) + 1,
                role=role,
                content=content,
                created_at=now,
            )
            messages.append(record)
            conversation = self._conversations[conversation_id]
            self._conversations[conversation_id] = replace(conversation, updated_at=now)
            return record

    def list_messages(self, conversation_id: int) -> List[MessageRecord]:
        with self._lock:
            return list(self._messages.get(conversation_id, []))

    def count_messages(self) -> int:
        with self._lock:
            return sum(len(m) for m in self._messages.values())
