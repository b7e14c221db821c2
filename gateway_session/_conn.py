from collections import deque
from typing import Deque, List, Optional, Tuple, Union
from urllib.parse import urlencode, urlsplit

from wsproto import ConnectionType, WSConnection
from wsproto.connection import ConnectionState
from wsproto.events import (
    AcceptConnection, BytesMessage, CloseConnection, Ping, RejectConnection,
    Request, TextMessage
)
from wsproto.utilities import LocalProtocolError, RemoteProtocolError

from ._codec import Envelope, decode_envelope, encode_envelope
from ._errors import ConnectionClosed, ConnectionRejected, ReadError

__all__ = ('GatewayConnection', 'API_VERSION', 'DEFAULT_GATEWAY_URI')


API_VERSION = 10

DEFAULT_GATEWAY_URI = 'wss://gateway.discord.gg'


class GatewayConnection:
    """Sans-I/O WebSocket connection to the Discord gateway.

    This wraps a `wsproto.WSConnection` object and turns bytes received from
    the socket into `Envelope` objects, and envelopes into bytes to write to
    the socket. It performs no I/O and is not thread-safe on its own - the
    `Transport` serializes every call.

    Attributes:
        uri: The URI that was configured to connect to.
        secure: Whether the connection uses TLS (wss).
        host: Host name to open a TCP socket to.
        port: Port to open a TCP socket to.
        path: Path of the WebSocket resource, without query parameters.
        accepted: Whether the server accepted the WebSocket upgrade.
    """

    uri: str
    secure: bool
    host: str
    port: int
    path: str

    accepted: bool

    __slots__ = (
        'uri', 'secure', 'host', 'port', 'path', 'accepted', '_proto',
        '_events', '_text_buffer',
    )

    def __init__(self, uri: str = DEFAULT_GATEWAY_URI) -> None:
        """Initialize a gateway connection.

        Parameters:
            uri:
                URI to open a WebSocket to. Without a scheme 'wss' is assumed,
                the port defaults to 443 for 'wss' and 80 for 'ws'. Any query
                string is replaced by the version and encoding parameters.
        """
        if '://' not in uri:
            uri = 'wss://' + uri

        parts = urlsplit(uri)
        if parts.scheme not in {'ws', 'wss'}:
            raise ValueError(f"Unsupported gateway URI scheme '{parts.scheme}'")

        if not parts.hostname:
            raise ValueError(f'Gateway URI {uri!r} has no host')

        self.uri = uri
        self.secure = parts.scheme == 'wss'
        self.host = parts.hostname
        self.port = parts.port or (443 if self.secure else 80)
        self.path = parts.path or '/'

        self.accepted = False

        self._proto = WSConnection(ConnectionType.CLIENT)

        # Buffer of envelopes received, and errors for messages that failed to decode
        self._events: Deque[Union[Envelope, ReadError]] = deque()
        self._text_buffer = ''

    @property
    def query_params(self) -> str:
        """Query parameters to add to the URL."""
        return urlencode({'v': API_VERSION, 'encoding': 'json'})

    @property
    def destination(self) -> Tuple[str, int]:
        """Generate a destination to connect to in the form of a tuple.

        The tuple has two items representing the host and port to open a TCP
        socket to.
        """
        return self.host, self.port

    @property
    def closing(self) -> bool:
        """Whether the WebSocket is closing or closed.

        No frames can be sent once this is True.
        """
        return self._proto.state in {
            ConnectionState.CLOSED, ConnectionState.LOCAL_CLOSING,
            ConnectionState.REMOTE_CLOSING
        }

    def connect(self) -> bytes:
        """Generate the switching protocols bytes to convert to a WebSocket.

        The next step is to receive data until `accepted` becomes True.
        """
        return self._proto.send(Request(self.host, self.path + '?' + self.query_params))

    def send(self, envelope: Envelope) -> bytes:
        """Generate the bytes of a text frame carrying the envelope.

        Raises:
            wsproto.utilities.LocalProtocolError:
                The WebSocket isn't open (not yet accepted or closing).
        """
        return self._proto.send(TextMessage(encode_envelope(envelope)))

    def close(self, code: int = 1000) -> bytes:
        """Generate the bytes to send a closing frame to the WebSocket.

        Returns an empty byte string if the WebSocket is already closing, in
        which case there is nothing left to send.

        Parameters:
            code:
                The close code. Both 1000 (default) and 1001 end the session on
                Discord's side.
        """
        if self._proto.state != ConnectionState.OPEN:
            return b''

        return self._proto.send(CloseConnection(code))

    def next_event(self) -> Optional[Envelope]:
        """Pop the oldest envelope received, or None if the buffer is empty.

        Raises:
            ReadError:
                The oldest message received could not be decoded. Messages
                after it are still returned by the next calls.
        """
        try:
            item = self._events.popleft()
        except IndexError:
            return None

        if isinstance(item, ReadError):
            raise item
        return item

    def receive(self, data: Optional[bytes]) -> List[bytes]:
        """Receive data from the WebSocket.

        Complete messages are decoded and buffered, see `next_event()`. This
        method may return data to send back, such as the response to a PING
        frame.

        Parameters:
            data: The bytes received from the TCP socket.

        Raises:
            ConnectionRejected: The server refused the WebSocket upgrade.
            ConnectionClosed: The WebSocket was closed.
            ReadError: The gateway violated the WebSocket protocol.

        Returns:
            A list of bytes to respond back with.
        """
        # WSProto uses None instead of an empty byte string.
        if data is not None and len(data) == 0:
            data = None

        try:
            self._proto.receive_data(data)
            return self._process_events()
        except LocalProtocolError as exc:
            raise ReadError(f'Cannot receive data in the current state: {exc}') from exc
        except RemoteProtocolError as exc:
            raise ReadError(f'Gateway violated the WebSocket protocol: {exc}') from exc

    def _process_events(self) -> List[bytes]:
        res = []

        for event in self._proto.events():
            if isinstance(event, AcceptConnection):
                self.accepted = True
                continue

            elif isinstance(event, Ping):
                res.append(self._proto.send(event.response()))
                continue

            elif isinstance(event, RejectConnection):
                raise ConnectionRejected(event)

            elif isinstance(event, CloseConnection):
                if self._proto.state == ConnectionState.CLOSED:
                    # We initiated the closing and have now received a reply,
                    # WSProto yields a CloseConnection to the initiator (us)
                    raise ConnectionClosed(None, event.code, event.reason)
                else:
                    # It should be ConnectionState.REMOTE_CLOSING and we need
                    # to reply to the closure
                    raise ConnectionClosed(
                        self._proto.send(event.response()), event.code, event.reason
                    )

            elif isinstance(event, TextMessage):
                self._text_buffer += event.data

                if not event.message_finished:
                    continue

                text, self._text_buffer = self._text_buffer, ''
                # A malformed message is queued in place so that the messages
                # received after it are not held back.
                try:
                    self._events.append(decode_envelope(text))
                except ReadError as exc:
                    self._events.append(exc)

            elif isinstance(event, BytesMessage):
                if not event.message_finished:
                    continue

                # Only JSON encoding without transport compression is
                # requested, the gateway never sends binary frames then.
                self._events.append(ReadError('Received binary message on a JSON connection'))

        return res
