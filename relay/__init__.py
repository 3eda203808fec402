"""Relay hub between trusted operators and remote agents.

Subpackages:
- relay.server: WebSocket hub that negotiates roles and routes traffic
- relay.operator: reconnecting operator-side client and console

The hub and the client are imported from their subpackages; this package
only exposes the shared exception types, so ``storage`` can depend on
them without loading the hub.

Security:
- One shared operator secret, compared in constant time
- Agents never see each other or operator traffic
"""

from .errors import HubStartupError, ImageDecodeError, ProtocolError, RelayError

__all__ = [
    "RelayError",
    "ProtocolError",
    "HubStartupError",
    "ImageDecodeError",
]
