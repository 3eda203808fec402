"""First-frame role negotiation for newly accepted connections."""

import asyncio
import hmac
from dataclasses import dataclass
from typing import Any, Optional

from websockets.exceptions import ConnectionClosed

from .protocol import decode_envelope, parse_operator_auth
from .registry import Role
from relay.errors import ProtocolError
from config import RELAY_IDENTIFICATION_TIMEOUT
from utils.logger import logger


@dataclass
class Negotiation:
    """Outcome of classifying a connection."""
    role: Role
    first_frame: Optional[str] = None


class RoleNegotiator:
    """Classifies a connection as operator or agent from its first frame.

    The first frame doubles as an agent's identification and an operator's
    credential submission. Only a correct ``operator_auth`` frame makes an
    operator; everything else, parseable or not, makes an agent.
    """

    def __init__(self, secret: str, timeout: float = RELAY_IDENTIFICATION_TIMEOUT):
        self.secret = secret
        self.timeout = timeout

    def classify(self, frame: str) -> Role:
        submitted = parse_operator_auth(frame)
        if submitted is not None and hmac.compare_digest(submitted.encode(), self.secret.encode()):
            return Role.OPERATOR
        return Role.AGENT

    async def negotiate(self, transport: Any) -> Optional[Negotiation]:
        """Wait for the first frame. Returns None if the peer stayed silent or left."""
        try:
            frame = await asyncio.wait_for(transport.recv(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.info(f"Identification timeout for {getattr(transport, 'remote_address', None)}")
            await transport.close()
            return None
        except ConnectionClosed:
            return None

        if isinstance(frame, bytes):
            frame = frame.decode("utf-8", errors="replace")

        role = self.classify(frame)
        if role is Role.OPERATOR:
            # Credentials are consumed, never replayed
            return Negotiation(role=role)

        try:
            decode_envelope(frame)
        except ProtocolError:
            logger.debug("Discarding unparseable first frame from new agent")
            return Negotiation(role=role)
        return Negotiation(role=role, first_frame=frame)
