"""
SQLAlchemy models for BizLink database.

Defines the schema for users, AI chat sessions (conversations) and their messages.
"""
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, JSON, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

USER_ROLES = ("entrepreneur", "investor", "realtor", "supplier", "admin")
MESSAGE_ROLES = ("user", "assistant")


class User(Base):
    """A platform member. The id is the identity clients use in realtime events."""
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, index=True)  # entrepreneur, investor, realtor, supplier, admin
    location = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    chat_sessions = relationship("ChatSession", back_populates="owner", cascade="all, delete-orphan")


class ChatSession(Base):
    """An AI chat conversation owned by one user."""
    __tablename__ = "chat_sessions"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    session_name = Column(String(255), nullable=False, default="New Chat Session")
    business_context = Column(JSON, nullable=True)  # capital_available, location, interests, experience
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    owner = relationship("User", back_populates="chat_sessions")
    messages = relationship(
        "ChatMessage",
        back_populates="chat_session",
        cascade="all, delete-orphan",
        order_by="ChatMessage.seq",
    )


class ChatMessage(Base):
    """One append-only turn of a conversation."""
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    chat_session_id = Column(Integer, ForeignKey("chat_sessions.id"), nullable=False, index=True)
    seq = Column(Integer, nullable=False)  # 1-based, monotonic per conversation
    role = Column(String(20), nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    chat_session = relationship("ChatSession", back_populates="messages")

    __table_args__ = (
        UniqueConstraint("chat_session_id", "seq", name="uq_chat_message_seq"),
        Index("idx_chat_session_seq", "chat_session_id", "seq"),
    )
