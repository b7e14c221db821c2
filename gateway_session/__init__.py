"""Blocking client for the Discord gateway.

A `Session` opens the WebSocket, performs the HELLO, IDENTIFY, READY handshake
and keeps the connection alive with heartbeats sent from a background thread
while the caller reads events:

    with gateway_session.connect(token, Intents.GUILD_MESSAGES) as session:
        while True:
            event = gateway_session.decode_event(session.receive_next())

The WebSocket protocol itself is handled sans-I/O by `wsproto`.
"""

from ._codec import *
from ._conn import *
from ._errors import *
from ._events import *
from ._heartbeat import *
from ._opcode import *
from ._session import *
from ._transport import *
