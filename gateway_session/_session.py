import enum
import logging
import sys
import threading
from typing import Any, Callable, Dict, Optional

from ._codec import Envelope
from ._conn import DEFAULT_GATEWAY_URI
from ._errors import (
    AlreadyClosed, EventDecodeError, HandshakeError, ReadError,
    SessionReadError, WriteError
)
from ._events import Ready, User
from ._heartbeat import HeartbeatDriver
from ._opcode import Opcode
from ._transport import Transport

__all__ = ('SessionState', 'Session', 'connect', 'DEFAULT_PROPERTIES')


_LOGGER = logging.getLogger(__name__)


DEFAULT_PROPERTIES = {
    'os': sys.platform,
    'browser': 'gateway_session',
    'device': 'gateway_session',
}


class SessionState(enum.Enum):
    CONNECTING = 'connecting'
    AWAITING_HELLO = 'awaiting_hello'
    IDENTIFYING = 'identifying'
    AWAITING_READY = 'awaiting_ready'
    READY = 'ready'
    CLOSING = 'closing'
    CLOSED = 'closed'


class Session:
    """A single, ready connection to the Discord gateway.

    Creating a session blocks until the full HELLO, IDENTIFY, READY handshake
    has completed; from then on heartbeats are sent from a background thread
    and events are read with `receive_next()`. Sessions cannot be resumed:
    when reading fails the caller has to create a new one.

    Attributes:
        state: Current state of the session, see `SessionState`.
        intents: The intents that were identified with.
        user: The bot user, as received in READY.
        session_id: The session ID received in READY, if any.
        heartbeat_interval: Milliseconds between heartbeats, from HELLO.
        sequence: Sequence number of the last DISPATCH event received.
        missed_acks:
            Heartbeats sent since the last HEARTBEAT_ACK. This is only counted,
            nothing acts upon it.
    """

    state: SessionState
    intents: int

    user: Optional[User]
    session_id: Optional[str]

    heartbeat_interval: Optional[float]
    sequence: Optional[int]
    missed_acks: int

    __slots__ = (
        'state', 'intents', 'user', 'session_id', 'heartbeat_interval',
        'sequence', 'missed_acks', '_token', '_properties', '_transport',
        '_heartbeat', '_heartbeat_factory', '_state_lock',
    )

    def __init__(
        self,
        token: str,
        intents: int,
        *,
        uri: str = DEFAULT_GATEWAY_URI,
        properties: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        transport_factory: Optional[Callable[[str], Transport]] = None,
        heartbeat_factory: Callable[[Callable[[], None], float], HeartbeatDriver] = HeartbeatDriver,
    ) -> None:
        """Connect to the gateway and perform the handshake.

        Parameters:
            token: The Discord authorization token to IDENTIFY with.
            intents: Intents indicating what events will be received.
            uri: URI of the gateway to connect to.
            properties:
                Connection properties sent with IDENTIFY ('os', 'browser' and
                'device'), `DEFAULT_PROPERTIES` by default.
            timeout: Timeout in seconds for establishing the connection.
            transport_factory:
                Called with `uri` to open the transport. By default
                `Transport.open()` is used.
            heartbeat_factory:
                Called with a function sending one heartbeat and the interval
                in milliseconds, it should return an unstarted driver.

        Raises:
            GatewayConnectionError: The connection could not be established.
            HandshakeError: The gateway did not complete the handshake.
        """
        self.state = SessionState.CONNECTING
        self.intents = int(intents)

        self.user = None
        self.session_id = None

        self.heartbeat_interval = None
        self.sequence = None
        self.missed_acks = 0

        self._token = token
        self._properties = dict(DEFAULT_PROPERTIES if properties is None else properties)

        self._heartbeat: Optional[HeartbeatDriver] = None
        self._heartbeat_factory = heartbeat_factory
        self._state_lock = threading.Lock()

        if transport_factory is None:
            self._transport = Transport.open(uri, timeout=timeout)
        else:
            self._transport = transport_factory(uri)

        try:
            self._handshake()
        except BaseException:
            self.state = SessionState.CLOSED
            self._transport.close()
            raise

    def __enter__(self) -> 'Session':
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    @property
    def heartbeat(self) -> Optional[HeartbeatDriver]:
        """The heartbeat driver, None until the session is ready."""
        return self._heartbeat

    def _receive_handshake_frame(self) -> Envelope:
        try:
            envelope = self._transport.receive_frame()
        except ReadError as exc:
            raise HandshakeError(f'Reading failed while {self.state.value}: {exc}') from exc

        if envelope.s is not None:
            self.sequence = envelope.s
        return envelope

    def _handshake(self) -> None:
        self.state = SessionState.AWAITING_HELLO

        hello = self._receive_handshake_frame()
        if hello.op != Opcode.HELLO:
            raise HandshakeError(f'Expected HELLO as the first payload, got opcode {hello.op}')

        interval = hello.d.get('heartbeat_interval') if isinstance(hello.d, dict) else None
        if not isinstance(interval, (int, float)) or isinstance(interval, bool) or interval <= 0:
            raise HandshakeError(f'HELLO has an invalid heartbeat interval: {interval!r}')
        self.heartbeat_interval = interval

        self.state = SessionState.IDENTIFYING
        try:
            self._transport.send_frame(self._identify())
        except WriteError as exc:
            raise HandshakeError(f'Sending IDENTIFY failed: {exc}') from exc

        self.state = SessionState.AWAITING_READY
        while True:
            envelope = self._receive_handshake_frame()
            if envelope.op == Opcode.DISPATCH and envelope.t == 'READY':
                break
            _LOGGER.debug('Discarding %r received before READY', envelope)

        try:
            ready = Ready.from_payload(envelope.d)
        except EventDecodeError as exc:
            raise HandshakeError(str(exc)) from exc

        self.user = ready.user
        self.session_id = ready.session_id

        self._heartbeat = self._heartbeat_factory(self._send_heartbeat, interval)
        self.state = SessionState.READY
        self._heartbeat.start()

        _LOGGER.info('Session ready as %s (%s)', self.user.name, self.user.id)

    def _identify(self) -> Envelope:
        return Envelope(Opcode.IDENTIFY, {
            'token': self._token,
            'intents': self.intents,
            'properties': self._properties,
        })

    def _send_heartbeat(self) -> None:
        # Incremented from the heartbeat thread, reset from the reader
        with self._state_lock:
            self.missed_acks += 1
        self._transport.send_frame(Envelope(Opcode.HEARTBEAT))

    def receive_next(self) -> Envelope:
        """Block until the next DISPATCH envelope is received.

        Other opcodes are consumed here: HEARTBEAT_ACK resets `missed_acks`,
        HEARTBEAT requests are answered right away, RECONNECT and
        INVALID_SESSION are only logged. The returned envelope's data is left
        as-is, see `decode_event()`.

        Raises:
            AlreadyClosed: The session has been shut down.
            SessionReadError: Reading failed, the session is unusable.
        """
        while True:
            if self.state is not SessionState.READY:
                raise AlreadyClosed(f'Cannot receive events when {self.state.value}')

            try:
                envelope = self._transport.receive_frame()
            except ReadError as exc:
                raise SessionReadError(str(exc), exc.code) from exc

            if envelope.s is not None:
                self.sequence = envelope.s

            if envelope.op == Opcode.DISPATCH:
                return envelope

            elif envelope.op == Opcode.HEARTBEAT_ACK:
                with self._state_lock:
                    self.missed_acks = 0

            elif envelope.op == Opcode.HEARTBEAT:
                # The gateway requests an immediate heartbeat
                try:
                    self._transport.send_frame(Envelope(Opcode.HEARTBEAT))
                except WriteError as exc:
                    raise SessionReadError(f'Answering HEARTBEAT failed: {exc}') from exc

            elif envelope.op == Opcode.RECONNECT:
                _LOGGER.warning('Gateway requested a reconnect, which is not supported')

            elif envelope.op == Opcode.INVALID_SESSION:
                _LOGGER.warning('Gateway invalidated the session (resumable: %s)', envelope.d)

            else:
                _LOGGER.debug('Ignoring unexpected %r', envelope)

    def shutdown(self) -> None:
        """Close the session, best-effort.

        A CLOSE payload is sent and the transport is closed afterwards even if
        sending failed. No CLOSE payload is sent when the WebSocket is already
        closing, for example after the server closed it. Calling this again
        does nothing.

        Raises:
            WriteError:
                Sending the CLOSE payload failed. The transport has been closed
                regardless.
        """
        with self._state_lock:
            if self.state in {SessionState.CLOSING, SessionState.CLOSED}:
                return
            self.state = SessionState.CLOSING

        try:
            if self._transport.closing:
                _LOGGER.debug('WebSocket already closing, not sending CLOSE')
                return
            self._transport.send_frame(Envelope(Opcode.CLOSE))
        except WriteError as exc:
            _LOGGER.warning('Could not announce closing to the gateway: %s', exc)
            raise
        finally:
            self._transport.close()
            self.state = SessionState.CLOSED
            _LOGGER.info('Session closed')


def connect(token: str, intents: int, **options: Any) -> Session:
    """Connect to the gateway and return a ready session.

    This is a shorthand for `Session(token, intents, **options)`.

    Raises:
        GatewayConnectionError: The connection could not be established.
        HandshakeError: The gateway did not complete the handshake.
    """
    return Session(token, intents, **options)
