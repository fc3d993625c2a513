"""Decoded inbound relay messages.

One frozen dataclass per NIP-01 relay-to-client message, plus
[DecodeFailure][nostrdht.models.message.DecodeFailure] for frames that could
not be decoded. [parse_inbound()][nostrdht.nips.nip01.parse_inbound] returns
exactly one of these per frame and never raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from .constants import MessageType
from .event import Event


@dataclass(frozen=True, slots=True)
class EventMessage:
    """``["EVENT", <subscription_id>, <event>]``"""

    TYPE: ClassVar[MessageType] = MessageType.EVENT

    subscription_id: str
    event: Event


@dataclass(frozen=True, slots=True)
class OkMessage:
    """``["OK", <event_id>, <accepted>, <message>]``"""

    TYPE: ClassVar[MessageType] = MessageType.OK

    event_id: str
    accepted: bool
    message: str = ""


@dataclass(frozen=True, slots=True)
class EoseMessage:
    """``["EOSE", <subscription_id>]``"""

    TYPE: ClassVar[MessageType] = MessageType.EOSE

    subscription_id: str


@dataclass(frozen=True, slots=True)
class ClosedMessage:
    """``["CLOSED", <subscription_id>, <message>]``"""

    TYPE: ClassVar[MessageType] = MessageType.CLOSED

    subscription_id: str
    message: str = ""


@dataclass(frozen=True, slots=True)
class NoticeMessage:
    """``["NOTICE", <message>]``"""

    TYPE: ClassVar[MessageType] = MessageType.NOTICE

    message: str


@dataclass(frozen=True, slots=True)
class DecodeFailure:
    """A frame that could not be decoded; callers drop it and continue.

    Attributes:
        raw: The offending frame, truncated for logging.
        reason: Human-readable cause.
    """

    raw: str
    reason: str


InboundMessage = (
    EventMessage | OkMessage | EoseMessage | ClosedMessage | NoticeMessage | DecodeFailure
)
