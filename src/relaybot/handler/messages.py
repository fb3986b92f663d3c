# canonical inbound events, context entries and outbound replies

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from relaybot.errors import ValidationFailure


class Channel(str, Enum):
    TELEGRAM = "telegram"
    WHATSAPP = "whatsapp"

    @property
    def label(self) -> str:
        return {"telegram": "Telegram", "whatsapp": "WhatsApp"}[self.value]


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class EphemeralStatus(str, Enum):
    """Marks the placeholder/final pair of a two-reply sequence."""

    EPHEMERAL = "ephemeral"  # placeholder, will be replaced
    SUPERSEDE = "supersede"  # replaces the placeholder sent for the same event


# ──────────────────────────────────────────────────────────────────────
# Inbound
# ──────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MediaRef:
    """Opaque media handle, resolved only by the channel that produced it."""

    channel: Channel
    handle: str  # Telegram file_id / WhatsApp media id
    mime_type: str | None = None

    def __post_init__(self):
        if not self.handle:
            raise ValidationFailure("MediaRef.handle must not be empty")


@dataclass(frozen=True)
class Command:
    name: str
    argument: str = ""

    def __post_init__(self):
        if not self.name:
            raise ValidationFailure("Command.name must not be empty")


@dataclass(frozen=True)
class Text:
    body: str


@dataclass(frozen=True)
class Voice:
    media_ref: MediaRef


@dataclass(frozen=True)
class Interactive:
    selection_id: str
    selection_label: str


EventKind = Union[Command, Text, Voice, Interactive]
_EVENT_KINDS = (Command, Text, Voice, Interactive)


@dataclass(frozen=True)
class InboundEvent:
    channel: Channel
    user_id: str
    message_id: str
    kind: EventKind
    chat_id: str = ""  # Conversation address; defaults to user_id
    display_name: str | None = None
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        if not isinstance(self.channel, Channel):
            object.__setattr__(self, "channel", _coerce_channel(self.channel))
        if not self.user_id:
            raise ValidationFailure("InboundEvent.user_id must not be empty")
        if not isinstance(self.kind, _EVENT_KINDS):
            raise ValidationFailure(
                f"InboundEvent.kind must be one of Command, Text, Voice, "
                f"Interactive (got {type(self.kind).__name__})"
            )
        if not self.chat_id:
            object.__setattr__(self, "chat_id", self.user_id)

    @property
    def context_key(self) -> tuple[Channel, str]:
        return (self.channel, self.user_id)


# ──────────────────────────────────────────────────────────────────────
# Context
# ──────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ContextEntry:
    role: Role
    text: str

    def __post_init__(self):
        if not isinstance(self.role, Role):
            try:
                object.__setattr__(self, "role", Role(self.role))
            except ValueError as exc:
                raise ValidationFailure(f"Unknown role: {self.role!r}") from exc

    def to_message(self) -> dict:
        """Render as an OpenAI-style chat message dict."""
        return {"role": self.role.value, "content": self.text}


# ──────────────────────────────────────────────────────────────────────
# Outbound
# ──────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TextMessage:
    body: str
    reply_to_message_id: str | None = None


@dataclass(frozen=True)
class ImageMessage:
    image_ref: str  # File name under the media directory
    caption: str = ""


@dataclass(frozen=True)
class AudioMessage:
    audio_ref: str  # File name under the media directory
    reply_to_message_id: str | None = None


@dataclass(frozen=True)
class MenuOption:
    id: str
    label: str


@dataclass(frozen=True)
class MenuMessage:
    body: str
    options: tuple[MenuOption, ...]

    def __post_init__(self):
        object.__setattr__(self, "options", tuple(self.options))
        if not self.options:
            raise ValidationFailure("MenuMessage needs at least one option")
        ids = [opt.id for opt in self.options]
        if len(set(ids)) != len(ids):
            raise ValidationFailure(f"MenuMessage option ids must be unique: {ids}")


ReplyPayload = Union[TextMessage, ImageMessage, AudioMessage, MenuMessage]
_REPLY_PAYLOADS = (TextMessage, ImageMessage, AudioMessage, MenuMessage)


@dataclass(frozen=True)
class OutboundReply:
    channel: Channel
    user_id: str
    payload: ReplyPayload
    chat_id: str = ""
    ephemeral_status: EphemeralStatus | None = None
    source_message_id: str | None = None  # Inbound message this answers

    def __post_init__(self):
        if not isinstance(self.channel, Channel):
            object.__setattr__(self, "channel", _coerce_channel(self.channel))
        if not isinstance(self.payload, _REPLY_PAYLOADS):
            raise ValidationFailure(
                f"OutboundReply.payload has unsupported type "
                f"{type(self.payload).__name__}"
            )
        if not self.chat_id:
            object.__setattr__(self, "chat_id", self.user_id)

    @classmethod
    def answering(
        cls,
        event: InboundEvent,
        payload: ReplyPayload,
        ephemeral_status: EphemeralStatus | None = None,
    ) -> "OutboundReply":
        """Build a reply addressed back to where ``event`` came from."""
        return cls(
            channel=event.channel,
            user_id=event.user_id,
            chat_id=event.chat_id,
            payload=payload,
            ephemeral_status=ephemeral_status,
            source_message_id=event.message_id,
        )

    @property
    def is_ephemeral(self) -> bool:
        return self.ephemeral_status is EphemeralStatus.EPHEMERAL

    @property
    def supersedes(self) -> bool:
        return self.ephemeral_status is EphemeralStatus.SUPERSEDE


def _coerce_channel(value) -> Channel:
    try:
        return Channel(value)
    except ValueError as exc:
        raise ValidationFailure(f"Unknown channel: {value!r}") from exc
