"""nostrdht exception hierarchy.

Typed exceptions for the error categories that can reach a caller. Most
relay-level failures never do: the pool recovers from transport errors and
the codec reports undecodable frames as values, so these classes mark the
few places where an operation really fails. The module lives at the package
root so ``utils`` and ``nips`` can raise these without importing ``core``.

Exception hierarchy:

```text
NostrDhtError (base -- never raised directly)
├── ConfigurationError      -- bad YAML, invalid relay URL, bad key material
├── ConnectivityError       -- relay unreachable, network failures
│   └── RelayTimeoutError   -- connection attempt timed out
├── ProtocolError           -- inbound frame could not be decoded
└── SigningError            -- hashing or signing an event failed
```

See Also:
    [ConnectionPool][nostrdht.core.pool.ConnectionPool]: Catches
        [ConnectivityError][nostrdht.exceptions.ConnectivityError]
        per relay and retries instead of raising.
    [parse_inbound()][nostrdht.nips.nip01.parse_inbound]: Converts
        [ProtocolError][nostrdht.exceptions.ProtocolError] into a
        ``DecodeFailure`` value.
"""

from __future__ import annotations


class NostrDhtError(Exception):
    """Base exception for all nostrdht errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(NostrDhtError):
    """Invalid or missing configuration (YAML, env vars, CLI flags)."""


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class ConnectivityError(NostrDhtError):
    """A relay could not be reached or dropped the connection.

    Raised by transports; the pool treats it as a per-relay event and puts
    the URL back into the retry ring.
    """


class RelayTimeoutError(ConnectivityError):
    """Connection attempt to a relay timed out."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolError(NostrDhtError):
    """An inbound frame violates NIP-01 framing or carries an invalid event."""


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


class SigningError(NostrDhtError):
    """Hashing or signing an event failed.

    Fatal to the single publish attempt that triggered it; not retried
    automatically.
    """
