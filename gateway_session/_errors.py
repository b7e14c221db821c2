from typing import List, Optional, Tuple

from wsproto.events import RejectConnection

__all__ = (
    'GatewayError',
    'GatewayConnectionError',
    'ConnectionRejected',
    'ConnectionClosed',
    'ReadError',
    'WriteError',
    'HandshakeError',
    'SessionReadError',
    'AlreadyClosed',
    'EventDecodeError',
)


class GatewayError(Exception):
    """Base class of every exception raised by gateway_session."""


class GatewayConnectionError(GatewayError):
    """The connection to the gateway could not be established.

    Raised for DNS, TCP and TLS failures as well as a WebSocket upgrade that
    never completed.
    """


class ConnectionRejected(GatewayConnectionError):
    """Exception raised when the connection to Discord was rejected.

    This means that Discord rejected the WebSocket upgrade request. This is a
    fatal exception which cannot be recovered from depending on the status
    code.
    """

    code: int
    headers: List[Tuple[bytes, bytes]]

    def __init__(self, event: RejectConnection) -> None:
        super().__init__(
            f'Discord rejected the WebSocket connection - Error code {event.status_code}'
        )

        self.code = event.status_code
        self.headers = event.headers


class ConnectionClosed(GatewayError):
    """Signalling exception notifying the socket should be closed.

    The `data` attribute contains any potentially last bytes to send before
    closing the TCP socket - or None indicating that nothing should be sent.

    The `code` attribute is the close code and the `reason` attribute optionally
    contains the reason of the closure.
    """

    code: Optional[int]
    reason: Optional[str]

    data: Optional[bytes]

    def __init__(
        self,
        data: Optional[bytes],
        code: Optional[int] = None,
        reason: Optional[str] = None
    ) -> None:
        super().__init__(
            f"{code if code is not None else ''}{' - '+reason if reason else ''}"
        )

        self.code = code
        self.reason = reason

        self.data = data


class ReadError(GatewayError):
    """A frame could not be read from the transport.

    Either the stream was closed, the data was malformed or the server closed
    the WebSocket - in which case `code` and `reason` hold what it sent.
    """

    code: Optional[int]
    reason: Optional[str]

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        reason: Optional[str] = None
    ) -> None:
        super().__init__(message)

        self.code = code
        self.reason = reason


class WriteError(GatewayError):
    """A frame could not be written to the transport."""


class HandshakeError(GatewayError):
    """The HELLO, IDENTIFY, READY handshake failed.

    No session exists after this has been raised, the connection has already
    been closed.
    """


class SessionReadError(GatewayError):
    """Reading the next event of a ready session failed.

    The session cannot be resumed, the caller decides whether to open a new
    one. `code` is the close code sent by the server if it closed the
    connection, see `should_reconnect()`.
    """

    code: Optional[int]

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)

        self.code = code


class AlreadyClosed(GatewayError):
    """The session has been shut down and can no longer be used."""


class EventDecodeError(GatewayError, ValueError):
    """The payload of a known dispatch event did not have the expected shape."""

    event: str

    def __init__(self, event: str, message: str) -> None:
        super().__init__(f'Malformed {event} payload: {message}')

        self.event = event
