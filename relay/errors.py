"""Exception types for the relay hub."""


class RelayError(Exception):
    """Base class for relay hub errors."""


class ProtocolError(RelayError):
    """A frame could not be parsed into an envelope."""


class HubStartupError(RelayError):
    """The listening socket could not be acquired."""

    def __init__(self, host: str, port: int, cause: Exception):
        super().__init__(f"Unable to listen on {host}:{port}: {cause}")
        self.host = host
        self.port = port
        self.cause = cause


class ImageDecodeError(RelayError):
    """An image payload could not be decoded."""
