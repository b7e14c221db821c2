import json
import queue
import socket
import threading
from typing import Any, Callable, Dict, List, Optional

import pytest
from wsproto import ConnectionType, WSConnection
from wsproto.connection import ConnectionState
from wsproto.events import (
    AcceptConnection, CloseConnection, Event, Request, TextMessage
)

from gateway_session import Envelope, Opcode, ReadError, WriteError


def hello(interval: float = 41250) -> Envelope:
    return Envelope(Opcode.HELLO, {'heartbeat_interval': interval})


def ready(user_id: str = '80351110224678912', username: str = 'Nelly', seq: int = 1) -> Envelope:
    return Envelope(Opcode.DISPATCH, {
        'v': 10,
        'user': {'id': user_id, 'username': username, 'bot': True},
        'session_id': 'd1c2a3f4',
        'resume_gateway_url': 'wss://gateway-us-east1-b.discord.gg',
        'guilds': [],
    }, s=seq, t='READY')


_CLOSED = object()


class FakeTransport:
    """Transport double fed with envelopes, recording everything sent."""

    def __init__(self, frames=()) -> None:
        self.incoming: 'queue.Queue[Any]' = queue.Queue()
        for frame in frames:
            self.incoming.put(frame)

        self.sent: List[Envelope] = []
        self.closed = False
        self.close_calls = 0
        self.fail_sends = False
        self.remote_closed = False

        self._lock = threading.Lock()

    def push(self, item: Any) -> None:
        """Queue an envelope to receive, or a ReadError to raise."""
        self.incoming.put(item)

    def sent_ops(self) -> List[int]:
        with self._lock:
            return [envelope.op for envelope in self.sent]

    def send_frame(self, envelope: Envelope) -> None:
        with self._lock:
            if self.closed:
                raise WriteError('Cannot send on a closed transport')
            if self.fail_sends:
                raise WriteError('Broken pipe')
            self.sent.append(envelope)

    def receive_frame(self) -> Envelope:
        if self.closed:
            raise ReadError('Cannot receive on a closed transport')

        try:
            item = self.incoming.get(timeout=5)
        except queue.Empty:
            raise ReadError('Nothing received in time')

        if item is _CLOSED:
            raise ReadError('Transport was closed while reading')
        if isinstance(item, ReadError):
            raise item
        return item

    @property
    def closing(self) -> bool:
        return self.closed or self.remote_closed

    def close(self) -> None:
        self.close_calls += 1
        with self._lock:
            self.closed = True
        self.incoming.put(_CLOSED)


class StubDriver:
    """Heartbeat driver that only beats when told to."""

    def __init__(self, send: Callable[[], None], interval: float) -> None:
        self.send = send
        self.interval = interval
        self.started = False

    def start(self) -> None:
        self.started = True

    def beat(self) -> None:
        self.send()


@pytest.fixture()
def heartbeat_factory():
    created: List[StubDriver] = []

    def factory(send: Callable[[], None], interval: float) -> StubDriver:
        driver = StubDriver(send, interval)
        created.append(driver)
        return driver

    factory.created = created
    return factory


class GatewayServer:
    """Minimal gateway speaking wsproto over one end of a socket pair.

    Every JSON message received is put on `received`, as is a
    `('close', code)` tuple for a closing frame. `handler` is called with the
    server and each decoded payload and may reply with `send()`.
    """

    def __init__(
        self,
        sock: socket.socket,
        handler: Optional[Callable[['GatewayServer', Dict[str, Any]], None]] = None
    ) -> None:
        self.sock = sock
        self.handler = handler
        self.received: 'queue.Queue[Any]' = queue.Queue()

        self._ws = WSConnection(ConnectionType.SERVER)
        self._text_buffer = ''
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: float = 2) -> None:
        self._thread.join(timeout)

    def _write(self, event: Event) -> None:
        with self._lock:
            data = self._ws.send(event)
        self.sock.sendall(data)

    def send(self, payload: Dict[str, Any]) -> None:
        self._write(TextMessage(json.dumps(payload)))

    def send_raw(self, event: Event) -> None:
        self._write(event)

    def send_batch(self, *events: Event) -> None:
        """Write several frames with a single `sendall()`."""
        with self._lock:
            data = b''.join(self._ws.send(event) for event in events)
        self.sock.sendall(data)

    def _run(self) -> None:
        while True:
            try:
                data = self.sock.recv(65536)
            except OSError:
                return
            if not data:
                return

            with self._lock:
                self._ws.receive_data(data)
                events = list(self._ws.events())

            for event in events:
                if isinstance(event, Request):
                    self._write(AcceptConnection())
                elif isinstance(event, TextMessage):
                    self._text_buffer += event.data
                    if not event.message_finished:
                        continue

                    payload = json.loads(self._text_buffer)
                    self._text_buffer = ''
                    self.received.put(payload)
                    if self.handler is not None:
                        self.handler(self, payload)
                elif isinstance(event, CloseConnection):
                    self.received.put(('close', event.code))
                    if self._ws.state == ConnectionState.REMOTE_CLOSING:
                        self._write(event.response())
                    return

    def next_received(self, timeout: float = 2) -> Any:
        return self.received.get(timeout=timeout)


@pytest.fixture()
def socket_pair():
    client, server = socket.socketpair()
    yield client, server
    client.close()
    server.close()
