"""
Wire contract for the realtime channel.

Frames are JSON objects {"event": <name>, "data": <payload>} in both directions.
Payload field names are camelCase on the wire.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Client -> server
JOIN = "join"
SEND_MESSAGE = "send_message"
SEND_NOTIFICATION = "send_notification"
JOIN_DASHBOARD = "join_dashboard"
LEAVE_DASHBOARD = "leave_dashboard"
HEARTBEAT_ACK = "heartbeat_ack"

# Server -> client
JOINED = "joined"
RECEIVE_MESSAGE = "receive_message"
RECEIVE_NOTIFICATION = "receive_notification"
JOINED_DASHBOARD = "joined_dashboard"
DASHBOARD_UPDATE = "dashboard-update"
HEARTBEAT = "heartbeat"


class MalformedEvent(ValueError):
    """Inbound frame that cannot be processed; logged and dropped."""


class InboundFrame(BaseModel):
    event: str = Field(min_length=1)
    data: Any = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class JoinPayload(_CamelModel):
    user_id: str = Field(alias="userId", min_length=1)


class SendMessagePayload(_CamelModel):
    sender_id: str = Field(alias="senderId", min_length=1)
    recipient_id: Optional[str] = Field(default=None, alias="recipientId")
    content: str

    @field_validator("content")
    @classmethod
    def content_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("content must not be empty")
        return v


class NotificationPayload(_CamelModel):
    user_id: str = Field(alias="userId", min_length=1)
    notification: Dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class Delivery:
    """One outbound frame for one session, produced by a handler and applied by the hub."""
    target: Any
    event: str
    data: Any
