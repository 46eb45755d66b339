"""Shared models for the WeCom channel adapter.

Defines parsed targets, reply handles, send results, inbound callback
messages and the per-account lifecycle status used across the parser,
reply registry, outbound sender and gateway.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

CHANNEL_ID = "wecom"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TargetKind(StrEnum):
    USER = "user"
    GROUP = "group"


class Target(BaseModel):
    """Parsed recipient address."""

    model_config = ConfigDict(frozen=True)

    kind: TargetKind
    id: str
    account_id: str | None = None

    def key(self) -> str:
        """Account-less ``kind:id`` form used for reply correlation."""
        return f"{self.kind}:{self.id}"


class ResolvedTarget(BaseModel):
    """Directory lookup result handed back to the host runtime."""

    model_config = ConfigDict(frozen=True)

    channel: str = CHANNEL_ID
    to: str
    account_id: str | None = None


class ReplyHandle(BaseModel):
    """Single-use reply capability captured from an inbound callback."""

    model_config = ConfigDict(frozen=True)

    response_url: str
    created_at: datetime = Field(default_factory=utc_now)


class SendResult(BaseModel):
    channel: str = CHANNEL_ID
    ok: bool
    message_id: str = ""
    error: str | None = None


class ChatType(StrEnum):
    SINGLE = "single"
    GROUP = "group"


class InboundMessage(BaseModel):
    """Normalized message decrypted from a WeCom bot callback."""

    msg_id: str
    account_id: str
    chat_type: ChatType = ChatType.SINGLE
    chat_id: str | None = None
    sender_id: str
    msg_type: str
    text: str = ""
    response_url: str | None = None
    received_at: datetime = Field(default_factory=utc_now)
    raw: dict = Field(default_factory=dict)

    def reply_to(self) -> str:
        """Target string a reply to this message should be addressed to."""
        if self.chat_type == ChatType.GROUP and self.chat_id:
            return f"group:{self.chat_id}"
        return f"user:{self.sender_id}"


class CallbackOutcome(StrEnum):
    ACCEPTED = "accepted"
    BLOCKED = "blocked"
    IGNORED = "ignored"
    BAD_SIGNATURE = "bad_signature"
    UNDECRYPTABLE = "undecryptable"


class LifecyclePhase(StrEnum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


class AccountLifecycleState(BaseModel):
    """Read-only status snapshot for one account."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    phase: LifecyclePhase = LifecyclePhase.STOPPED
    running: bool = False
    configured: bool = False
    webhook_path: str | None = None
    last_start_at: datetime | None = None
    last_stop_at: datetime | None = None
    last_inbound_at: datetime | None = None
    last_error: str | None = None
