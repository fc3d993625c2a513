"""NIP-01 wire codec.

Builds the three client-to-relay messages this client sends (``EVENT``,
``REQ``, ``CLOSE``) as JSON-ready lists and decodes the relay-to-client
messages it understands (``EVENT``, ``OK``, ``EOSE``, ``CLOSED``,
``NOTICE``) into the frozen dataclasses of
[nostrdht.models.message][nostrdht.models.message].

Warning:
    [parse_inbound()][nostrdht.nips.nip01.parse_inbound] **never raises**.
    Undecodable frames come back as
    [DecodeFailure][nostrdht.models.message.DecodeFailure] values so that a
    single misbehaving relay can never stop the ingestion loop.

Examples:
    ```python
    message = build_publish_message("hello", "t", "demo", keypair)
    text = serialize(message)       # '["EVENT",{"id":...}]'

    match parse_inbound(frame):
        case EventMessage(subscription_id=sid, event=event):
            ...
        case DecodeFailure(reason=reason):
            ...
    ```

See Also:
    [nostrdht.utils.keys][]: Hashing and signing used by
        [build_publish_message()][nostrdht.nips.nip01.build_publish_message].
    [Dispatcher][nostrdht.core.dispatcher.Dispatcher]: Routes decoded
        messages to subscription handlers.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from nostrdht.exceptions import ProtocolError
from nostrdht.models.constants import (
    DEFAULT_EVENT_KIND,
    DEFAULT_LOOKBACK_SECONDS,
    MessageType,
)
from nostrdht.models.event import Event, UnsignedEvent
from nostrdht.models.message import (
    ClosedMessage,
    DecodeFailure,
    EoseMessage,
    EventMessage,
    InboundMessage,
    NoticeMessage,
    OkMessage,
)
from nostrdht.models.subscription import Filter
from nostrdht.utils.keys import sign_event


if TYPE_CHECKING:
    from nostrdht.utils.keys import Keypair


# Longest slice of an offending frame kept on a DecodeFailure
_MAX_RAW_PREVIEW = 200


# =============================================================================
# Outbound
# =============================================================================


def build_publish_message(  # noqa: PLR0913
    content: str,
    tag: str,
    topic: str,
    keypair: Keypair,
    kind: int = DEFAULT_EVENT_KIND,
    created_at: int | None = None,
) -> list[Any]:
    """Build ``["EVENT", <event>]`` carrying *content* tagged ``[[tag, topic]]``.

    Args:
        content: Event payload.
        tag: Tag name (single letter, e.g. ``"t"``).
        topic: Tag value.
        keypair: Signing identity; its public key becomes ``pubkey``.
        kind: Event kind.
        created_at: Unix seconds; defaults to now.

    Raises:
        SigningError: If hashing or signing fails.
    """
    unsigned = UnsignedEvent(
        pubkey=keypair.public_key,
        created_at=int(time.time()) if created_at is None else created_at,
        kind=kind,
        tags=((tag, topic),),
        content=content,
    )
    event = sign_event(unsigned, keypair)
    return [MessageType.EVENT.value, event.to_dict()]


def build_subscribe_message(  # noqa: PLR0913
    tag: str,
    topic: str,
    subscription_id: str,
    kind: int = DEFAULT_EVENT_KIND,
    lookback_seconds: int = DEFAULT_LOOKBACK_SECONDS,
    now: int | None = None,
) -> list[Any]:
    """Build ``["REQ", <id>, {"kinds": [kind], "since": now - lookback, "#<tag>": [topic]}]``."""
    current = int(time.time()) if now is None else now
    since = max(0, current - lookback_seconds)
    flt = Filter.for_topic(tag, topic, kind=kind, since=since)
    return [MessageType.REQ.value, subscription_id, flt.to_dict()]


def build_close_message(subscription_id: str) -> list[Any]:
    """Build ``["CLOSE", <id>]``."""
    return [MessageType.CLOSE.value, subscription_id]


def serialize(message: list[Any]) -> str:
    """Render *message* as a compact JSON text frame."""
    return json.dumps(message, separators=(",", ":"), ensure_ascii=False)


# =============================================================================
# Inbound
# =============================================================================


def _expect_str(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise ProtocolError(f"{name} must be a string, got {type(value).__name__}")
    return value


def _expect_arity(frame: list[Any], minimum: int, maximum: int | None = None) -> None:
    upper = minimum if maximum is None else maximum
    if not minimum <= len(frame) <= upper:
        raise ProtocolError(f"{frame[0]} frame has {len(frame)} elements")


def _parse_event(frame: list[Any]) -> EventMessage:
    _expect_arity(frame, 3)
    subscription_id = _expect_str(frame[1], "subscription id")
    try:
        event = Event.from_dict(frame[2])
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"invalid event: {e}") from e
    return EventMessage(subscription_id=subscription_id, event=event)


def _parse_ok(frame: list[Any]) -> OkMessage:
    _expect_arity(frame, 3, 4)
    if not isinstance(frame[2], bool):
        raise ProtocolError("OK acceptance flag must be a boolean")
    message = _expect_str(frame[3], "OK message") if len(frame) == 4 else ""
    return OkMessage(
        event_id=_expect_str(frame[1], "event id"),
        accepted=frame[2],
        message=message,
    )


def _parse_eose(frame: list[Any]) -> EoseMessage:
    _expect_arity(frame, 2)
    return EoseMessage(subscription_id=_expect_str(frame[1], "subscription id"))


def _parse_closed(frame: list[Any]) -> ClosedMessage:
    _expect_arity(frame, 2, 3)
    message = _expect_str(frame[2], "CLOSED message") if len(frame) == 3 else ""
    return ClosedMessage(subscription_id=_expect_str(frame[1], "subscription id"), message=message)


def _parse_notice(frame: list[Any]) -> NoticeMessage:
    _expect_arity(frame, 2)
    return NoticeMessage(message=_expect_str(frame[1], "NOTICE message"))


_PARSERS: dict[str, Callable[[list[Any]], InboundMessage]] = {
    MessageType.EVENT: _parse_event,
    MessageType.OK: _parse_ok,
    MessageType.EOSE: _parse_eose,
    MessageType.CLOSED: _parse_closed,
    MessageType.NOTICE: _parse_notice,
}


def parse_inbound(raw: str | bytes) -> InboundMessage:
    """Decode one relay frame.

    Returns:
        The matching message dataclass, or a
        [DecodeFailure][nostrdht.models.message.DecodeFailure] for malformed
        JSON, non-array frames, unknown message types, wrong arity or field
        types, and structurally invalid embedded events.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    preview = raw[:_MAX_RAW_PREVIEW]

    try:
        frame = json.loads(raw)
    except (json.JSONDecodeError, RecursionError) as e:
        return DecodeFailure(raw=preview, reason=f"invalid JSON: {e}")

    if not isinstance(frame, list) or not frame:
        return DecodeFailure(raw=preview, reason="frame is not a non-empty JSON array")

    label = frame[0]
    parser = _PARSERS.get(label) if isinstance(label, str) else None
    if parser is None:
        return DecodeFailure(raw=preview, reason=f"unknown message type: {label!r}")

    try:
        return parser(frame)
    except ProtocolError as e:
        return DecodeFailure(raw=preview, reason=str(e))
