import logging
import threading
import time
from typing import Callable, Optional

from ._errors import WriteError

__all__ = ('HeartbeatDriver',)


_LOGGER = logging.getLogger(__name__)


class HeartbeatDriver:
    """Background thread sending a HEARTBEAT every interval.

    The driver only knows how to send a beat, it never owns the connection.
    There is no way to stop it other than making `send` fail: the first
    `WriteError` (the connection is gone) ends the thread for good.

    The driver does not wait for HEARTBEAT_ACK before the next beat, a
    half-dead connection is only noticed once writing to it fails.

    Attributes:
        interval: Seconds between two beats.
        beats: How many beats have been sent successfully.
    """

    interval: float
    beats: int

    __slots__ = ('interval', 'beats', '_send', '_thread')

    def __init__(self, send: Callable[[], None], interval: float) -> None:
        """Initialize the driver, it does nothing until `start()` is called.

        Parameters:
            send: Called to send one heartbeat, raising `WriteError` on failure.
            interval: Milliseconds between two beats, as sent in HELLO.
        """
        if interval <= 0:
            raise ValueError(f'Heartbeat interval must be positive, got {interval}')

        self.interval = interval / 1000
        self.beats = 0

        self._send = send
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        """Whether the background thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start sending heartbeats from a daemon thread.

        The first beat is sent one interval after this is called.
        """
        if self._thread is not None:
            raise RuntimeError('Heartbeat driver has already been started')

        self._thread = threading.Thread(
            target=self._run, name='gateway-heartbeat', daemon=True
        )
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the background thread to have stopped."""
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        _LOGGER.debug('Sending heartbeats every %.3f seconds', self.interval)

        # Beats are scheduled relative to the start so that time spent sending
        # doesn't accumulate as drift.
        deadline = time.monotonic()
        while True:
            deadline += self.interval
            delay = deadline - time.monotonic()
            if delay > 0:
                time.sleep(delay)

            try:
                self._send()
            except WriteError as exc:
                _LOGGER.info('Stopping heartbeats after %d beats: %s', self.beats, exc)
                return

            self.beats += 1
