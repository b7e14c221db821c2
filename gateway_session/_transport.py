import logging
import socket
import ssl
import threading
from typing import Optional

from wsproto.utilities import LocalProtocolError

from ._codec import Envelope
from ._conn import DEFAULT_GATEWAY_URI, GatewayConnection
from ._errors import (
    ConnectionClosed, GatewayConnectionError, ReadError, WriteError
)

__all__ = ('Transport',)


_LOGGER = logging.getLogger(__name__)

RECV_SIZE = 65536

CLOSE_TIMEOUT = 5.0


class Transport:
    """Blocking network layer around a `GatewayConnection`.

    One thread may read with `receive_frame()` while any other threads send
    with `send_frame()`. Every use of the underlying WebSocket state machine
    and every write to the socket happens under a single lock so frames are
    never interleaved, but the blocking read itself happens outside of it.
    """

    __slots__ = ('_sock', '_conn', '_lock', '_closed', '_remote_close')

    def __init__(self, sock: socket.socket, conn: GatewayConnection) -> None:
        """Wrap an already connected socket.

        Parameters:
            sock: Connected (and possibly TLS wrapped) blocking socket.
            conn: Fresh connection for the WebSocket carried by `sock`.
        """
        self._sock = sock
        self._conn = conn

        self._lock = threading.Lock()
        self._closed = False
        self._remote_close: Optional[ConnectionClosed] = None

    @classmethod
    def open(
        cls,
        uri: str = DEFAULT_GATEWAY_URI,
        *,
        timeout: Optional[float] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> 'Transport':
        """Open a TCP socket to the gateway and upgrade it to a WebSocket.

        Parameters:
            uri: URI of the gateway, see `GatewayConnection`.
            timeout:
                Timeout in seconds for establishing the connection. Once the
                WebSocket is open reads block indefinitely.
            ssl_context: Context used for 'wss' URIs, the default is used if
                not given.

        Raises:
            ConnectionRejected: The server refused the WebSocket upgrade.
            GatewayConnectionError: The connection could not be established.
        """
        conn = GatewayConnection(uri)

        _LOGGER.debug('Connecting to %s:%s', *conn.destination)
        try:
            sock = socket.create_connection(conn.destination, timeout=timeout)
        except OSError as exc:
            raise GatewayConnectionError(f'Could not connect to {conn.uri}: {exc}') from exc

        try:
            if conn.secure:
                context = ssl_context or ssl.create_default_context()
                try:
                    sock = context.wrap_socket(sock, server_hostname=conn.host)
                except OSError as exc:
                    raise GatewayConnectionError(f'TLS handshake with {conn.host} failed: {exc}') from exc

            transport = cls(sock, conn)
            transport.handshake()
        except BaseException:
            sock.close()
            raise

        sock.settimeout(None)
        return transport

    @property
    def closed(self) -> bool:
        """Whether `close()` has been called."""
        return self._closed

    @property
    def closing(self) -> bool:
        """Whether nothing can be sent anymore.

        True once `close()` has been called or the WebSocket is closing, for
        example because the server closed it.
        """
        return self._closed or self._conn.closing

    def handshake(self) -> None:
        """Perform the WebSocket upgrade on the wrapped socket.

        Raises:
            ConnectionRejected: The server refused the WebSocket upgrade.
            GatewayConnectionError: The upgrade failed for any other reason.
        """
        try:
            with self._lock:
                self._sock.sendall(self._conn.connect())

            while not self._conn.accepted:
                self._pump()
        except OSError as exc:
            raise GatewayConnectionError(f'WebSocket upgrade failed: {exc}') from exc
        except ReadError as exc:
            raise GatewayConnectionError(f'WebSocket upgrade failed: {exc}') from exc

        _LOGGER.debug('WebSocket connection to %s accepted', self._conn.uri)

    def send_frame(self, envelope: Envelope) -> None:
        """Send one envelope as a single text frame.

        Raises:
            WriteError: The transport is closed or writing failed.
        """
        with self._lock:
            if self._closed:
                raise WriteError('Cannot send on a closed transport')

            try:
                data = self._conn.send(envelope)
            except LocalProtocolError as exc:
                raise WriteError(f'WebSocket is not open: {exc}') from exc

            try:
                self._sock.sendall(data)
            except OSError as exc:
                raise WriteError(f'Writing to the gateway failed: {exc}') from exc

    def receive_frame(self) -> Envelope:
        """Block until the next envelope has been received.

        Only one thread may call this at a time.

        Raises:
            ReadError:
                The stream was closed, the server closed the WebSocket or a
                malformed frame was received.
        """
        while True:
            with self._lock:
                envelope = self._conn.next_event()

            if envelope is not None:
                return envelope

            self._pump()

    def _pump(self) -> None:
        """Read once from the socket and feed the bytes to the connection."""
        if self._closed:
            raise ReadError('Cannot receive on a closed transport')

        # Nothing more will be received once the server closed the WebSocket
        if self._remote_close is not None:
            raise self._closed_by_server(self._remote_close)

        try:
            data = self._sock.recv(RECV_SIZE)
        except OSError as exc:
            if self._closed:
                raise ReadError('Transport was closed while reading') from exc
            raise ReadError(f'Reading from the gateway failed: {exc}') from exc

        if not data:
            if self._closed:
                raise ReadError('Transport was closed while reading')
            raise ReadError('Gateway closed the stream')

        with self._lock:
            try:
                responses = self._conn.receive(data)
            except ConnectionClosed as exc:
                self._remote_close = exc
                if exc.data:
                    self._write_quietly(exc.data)
                _LOGGER.info('Gateway closed the WebSocket (%s)', exc)
                raise self._closed_by_server(exc) from exc

            for response in responses:
                try:
                    self._sock.sendall(response)
                except OSError as exc:
                    raise ReadError(f'Replying to the gateway failed: {exc}') from exc

    @staticmethod
    def _closed_by_server(exc: ConnectionClosed) -> ReadError:
        return ReadError(f'Gateway closed the WebSocket ({exc})', exc.code, exc.reason)

    def _write_quietly(self, data: bytes, timeout: Optional[float] = None) -> None:
        try:
            if timeout is not None:
                self._sock.settimeout(timeout)
            self._sock.sendall(data)
        except OSError as exc:
            _LOGGER.debug('Ignoring failure to send closing frame: %s', exc)

    def close(self, timeout: float = CLOSE_TIMEOUT) -> None:
        """Close the WebSocket and the socket, best-effort.

        A WebSocket closing frame is sent if the connection is still open, but
        no reply is waited for. This never raises and never blocks longer than
        `timeout` (twice at the very worst), and any thread blocked in
        `receive_frame()` is woken up with a `ReadError`.
        """
        if self._closed:
            return

        acquired = self._lock.acquire(timeout=timeout)
        try:
            if self._closed:
                return
            self._closed = True

            if acquired:
                try:
                    data = self._conn.close()
                except LocalProtocolError:
                    data = b''

                if data:
                    self._write_quietly(data, timeout)
            else:
                _LOGGER.warning('Closing transport without closing frame, a send is stuck')
        finally:
            if acquired:
                self._lock.release()

        try:
            # Shutting down (unlike closing) wakes up a thread blocked in recv
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError as exc:
            _LOGGER.debug('Socket shutdown failed: %s', exc)

        self._sock.close()
        _LOGGER.debug('Transport to %s closed', self._conn.uri)
