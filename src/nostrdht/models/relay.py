"""
Validated Nostr relay URL.

Parses and normalizes WebSocket relay URLs (``ws://`` or ``wss://``) with
RFC 3986 validation. Normalization makes the URL usable as the pool's key:
two spellings of the same relay (case, trailing slash, default port) map to
the same [Relay][nostrdht.models.relay.Relay].
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar

from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator


@dataclass(frozen=True, slots=True)
class Relay:
    """Immutable, normalized relay address.

    Attributes:
        url: Normalized URL including scheme.
        scheme: ``ws`` or ``wss``.
        host: Hostname or IP address (brackets stripped for IPv6).
        port: Explicit non-default port, or ``None``.
        path: Path component without trailing slash, or ``None``.

    Raises:
        ValueError: If the URL is malformed, uses a non-WebSocket scheme,
            carries a query string or fragment, or contains null bytes.

    Examples:
        ```python
        relay = Relay("WSS://Relay.Example.com:443/")
        relay.url     # 'wss://relay.example.com'
        relay.host    # 'relay.example.com'
        ```
    """

    raw_url: str = field(repr=False, compare=False)

    url: str = field(init=False)
    scheme: str = field(init=False)
    host: str = field(init=False)
    port: int | None = field(init=False)
    path: str | None = field(init=False)

    _DEFAULT_PORTS: ClassVar[dict[str, int]] = {"ws": 80, "wss": 443}

    def __post_init__(self) -> None:
        if not isinstance(self.raw_url, str):
            raise ValueError(f"Relay URL must be a string, got {type(self.raw_url).__name__}")
        if "\x00" in self.raw_url:
            raise ValueError("Relay URL contains null bytes")

        uri = uri_reference(self.raw_url.strip()).normalize()
        validator = (
            Validator()
            .require_presence_of("scheme", "host")
            .allow_schemes("ws", "wss")
            .check_validity_of("scheme", "host", "port", "path")
        )
        try:
            validator.validate(uri)
        except UnpermittedComponentError:
            raise ValueError(f"Invalid scheme in {self.raw_url!r}: must be ws or wss") from None
        except ValidationError as e:
            raise ValueError(f"Invalid relay URL {self.raw_url!r}: {e}") from None

        if uri.query:
            raise ValueError(f"Relay URL must not contain a query string: ?{uri.query}")
        if uri.fragment:
            raise ValueError(f"Relay URL must not contain a fragment: #{uri.fragment}")

        scheme = uri.scheme
        host = uri.host.strip("[]")
        port = int(uri.port) if uri.port else None
        if port == self._DEFAULT_PORTS[scheme]:
            port = None

        path = uri.path or ""
        while "//" in path:
            path = path.replace("//", "/")
        path = path.rstrip("/") or None

        netloc = f"[{host}]" if ":" in host else host
        if port is not None:
            netloc = f"{netloc}:{port}"

        object.__setattr__(self, "url", f"{scheme}://{netloc}{path or ''}")
        object.__setattr__(self, "scheme", scheme)
        object.__setattr__(self, "host", host)
        object.__setattr__(self, "port", port)
        object.__setattr__(self, "path", path)

    def __str__(self) -> str:
        return self.url
