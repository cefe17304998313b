"""
Relay session lifecycle states.

AWAITING_CREDENTIAL -> CONNECTING_UPSTREAM -> RELAYING -> CLOSED

Any state may jump straight to CLOSED. CLOSED is terminal.
"""
from enum import Enum

class RelayState(Enum):
    """Lifecycle of one client <-> upstream bridge."""
    AWAITING_CREDENTIAL = "AWAITING_CREDENTIAL"  # Initial; credential not yet checked
    CONNECTING_UPSTREAM = "CONNECTING_UPSTREAM"  # Credential passed; upstream handshake in flight
    RELAYING = "RELAYING"                        # Config sent; forwarding both directions
    CLOSED = "CLOSED"                            # Both sockets closed


_ALLOWED: dict[RelayState, frozenset[RelayState]] = {
    RelayState.AWAITING_CREDENTIAL: frozenset({RelayState.CONNECTING_UPSTREAM, RelayState.CLOSED}),
    RelayState.CONNECTING_UPSTREAM: frozenset({RelayState.RELAYING, RelayState.CLOSED}),
    RelayState.RELAYING: frozenset({RelayState.CLOSED}),
    RelayState.CLOSED: frozenset(),
}


def can_transition(current: RelayState, target: RelayState) -> bool:
    return target in _ALLOWED[current]
