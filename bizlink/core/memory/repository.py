"""
Repository layer for database operations.

Provides high-level methods for the users, chat sessions and chat messages tables.
"""
from typing import Optional, List, Dict, Any
import logging
from sqlalchemy.orm import Session
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from bizlink.core.memory.models import (
    User,
    ChatSession,
    ChatMessage,
    USER_ROLES,
    MESSAGE_ROLES,
)


logger = logging.getLogger(__name__)

# Attempts to claim the next seq when two writers race on one conversation.
SEQ_ATTEMPTS = 3


def require_active_session(db: Session) -> None:
    """Raise if session is closed; prevents use-after-close."""
    if not db.is_active:
        raise RuntimeError(
            "Session already closed; do not use request session outside request scope "
            "or from another thread."
        )


class UserRepository:
    """Repository for user operations."""

    @staticmethod
    def create(
        db: Session,
        user_id: str,
        full_name: str,
        role: str,
        location: Optional[str] = None,
    ) -> User:
        """Create a new user. Raises ValueError on an unknown role."""
        require_active_session(db)
        if role not in USER_ROLES:
            raise ValueError(f"Unknown role: {role}")
        user = User(id=user_id, full_name=full_name, role=role, location=location)
        db.add(user)
        try:
            db.commit()
            db.refresh(user)
        except Exception:
            db.rollback()
            raise
        return user

    @staticmethod
    def get_by_id(db: Session, user_id: str) -> Optional[User]:
        """Get user by ID."""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_all(db: Session, role: Optional[str] = None) -> List[User]:
        """Get all users, optionally filtered by role."""
        query = db.query(User)
        if role:
            query = query.filter(User.role == role)
        return query.order_by(User.created_at.asc(), User.id.asc()).all()

    @staticmethod
    def count_by_role(db: Session) -> Dict[str, int]:
        """Return {role: count} including zero counts for known roles."""
        counts = {role: 0 for role in USER_ROLES}
        for role, count in db.query(User.role, func.count(User.id)).group_by(User.role).all():
            counts[role] = count
        return counts


class ChatSessionRepository:
    """Repository for AI chat session (conversation) operations."""

    @staticmethod
    def create(
        db: Session,
        owner_id: str,
        session_name: Optional[str] = None,
        business_context: Optional[Dict[str, Any]] = None,
    ) -> ChatSession:
        """Create a new, empty chat session."""
        require_active_session(db)
        chat_session = ChatSession(
            owner_id=owner_id,
            session_name=session_name or "New Chat Session",
            business_context=business_context or {},
        )
        db.add(chat_session)
        try:
            db.commit()
            db.refresh(chat_session)
        except Exception:
            db.rollback()
            raise
        return chat_session

    @staticmethod
    def get_by_id(db: Session, chat_session_id: int) -> Optional[ChatSession]:
        """Get chat session by ID."""
        return db.query(ChatSession).filter(ChatSession.id == chat_session_id).first()

    @staticmethod
    def list_for_owner(db: Session, owner_id: str) -> List[ChatSession]:
        """Owner's chat sessions, most recently updated first."""
        return (
            db.query(ChatSession)
            .filter(ChatSession.owner_id == owner_id)
            .order_by(ChatSession.updated_at.desc(), ChatSession.id.desc())
            .all()
        )

    @staticmethod
    def count(db: Session) -> int:
        return db.query(func.count(ChatSession.id)).scalar() or 0


class ChatMessageRepository:
    """Repository for chat message operations."""

    @staticmethod
    def append(db: Session, chat_session_id: int, role: str, content: str) -> ChatMessage:
        """
        Append a message at the end of a conversation.

        seq is 1 + the current max for the conversation; the unique
        (chat_session_id, seq) constraint rejects a concurrent writer that
        claimed the same value, in which case the append is retried.
        The insert and the session's updated_at bump share one commit, so a
        failure leaves either both or neither.
        """
        require_active_session(db)
        if role not in MESSAGE_ROLES:
            raise ValueError(f"Unknown message role: {role}")
        for attempt in range(SEQ_ATTEMPTS):
            chat_session = ChatSessionRepository.get_by_id(db, chat_session_id)
            last_seq = (
                db.query(func.max(ChatMessage.seq))
                .filter(ChatMessage.chat_session_id == chat_session_id)
                .scalar()
            ) or 0
            message = ChatMessage(
                chat_session_id=chat_session_id,
                seq=last_seq + 1,
                role=role,
                content=content,
            )
            db.add(message)
            if chat_session is not None:
                chat_session.updated_at = func.now()
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                if attempt == SEQ_ATTEMPTS - 1:
                    raise
                logger.debug("seq %s taken in chat_session_id=%s, retrying", last_seq + 1, chat_session_id)
                continue
            db.refresh(message)
            return message

    @staticmethod
    def list_for_session(db: Session, chat_session_id: int) -> List[ChatMessage]:
        """All messages of a conversation in append order."""
        return (
            db.query(ChatMessage)
            .filter(ChatMessage.chat_session_id == chat_session_id)
            .order_by(ChatMessage.seq.asc())
            .all()
        )

    @staticmethod
    def count(db: Session) -> int:
        return db.query(func.count(ChatMessage.id)).scalar() or 0
