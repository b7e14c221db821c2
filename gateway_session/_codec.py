from typing import Any, Dict, Optional

from ._errors import ReadError

try:
    from ujson import dumps as json_dumps
    from ujson import loads as json_loads
except ImportError:
    from json import dumps as json_dumps
    from json import loads as json_loads


__all__ = ('Envelope', 'encode_envelope', 'decode_envelope')


class Envelope:
    """Generic gateway payload wrapping every frame sent or received.

    Attributes:
        op: Opcode of the payload, see `Opcode`.
        d: The event data. Its shape depends on `op` and `t`.
        s: Sequence number, only set for DISPATCH events.
        t: Event name, only set for DISPATCH events.
    """

    op: int
    d: Any
    s: Optional[int]
    t: Optional[str]

    __slots__ = ('op', 'd', 's', 't')

    def __init__(
        self,
        op: int,
        d: Any = None,
        *,
        s: Optional[int] = None,
        t: Optional[str] = None
    ) -> None:
        self.op = op
        self.d = d
        self.s = s
        self.t = t

    def __repr__(self) -> str:
        return f'Envelope(op={self.op!r}, t={self.t!r}, s={self.s!r})'

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Envelope):
            return NotImplemented

        return (
            self.op == other.op and self.d == other.d
            and self.s == other.s and self.t == other.t
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert the envelope into the flat mapping sent over the wire.

        Both `s` and `t` are left out when they aren't set, `d` is always
        present (as null when there is no data).
        """
        payload = {'op': int(self.op), 'd': self.d}

        if self.s is not None:
            payload['s'] = self.s

        if self.t is not None:
            payload['t'] = self.t

        return payload

    @classmethod
    def from_dict(cls, payload: Any) -> 'Envelope':
        """Validate a decoded JSON object and build an envelope from it.

        Raises:
            ReadError: The object is not a valid gateway payload.
        """
        if not isinstance(payload, dict):
            raise ReadError(f'Gateway payload must be an object, got {type(payload).__name__}')

        op = payload.get('op')
        # bool is a subclass of int, but true/false never is an opcode
        if not isinstance(op, int) or isinstance(op, bool):
            raise ReadError(f'Gateway payload has an invalid opcode: {op!r}')

        seq = payload.get('s')
        if seq is not None and (not isinstance(seq, int) or isinstance(seq, bool)):
            raise ReadError(f'Gateway payload has an invalid sequence: {seq!r}')

        name = payload.get('t')
        if name is not None and not isinstance(name, str):
            raise ReadError(f'Gateway payload has an invalid event name: {name!r}')

        return cls(op, payload.get('d'), s=seq, t=name)


def encode_envelope(envelope: Envelope) -> str:
    """Encode an envelope into the JSON text sent in a WebSocket frame."""
    return json_dumps(envelope.to_dict())


def decode_envelope(data: str) -> Envelope:
    """Decode the JSON text of a complete WebSocket message.

    Raises:
        ReadError: The text is not JSON or not a valid gateway payload.
    """
    try:
        payload = json_loads(data)
    except ValueError as exc:
        raise ReadError(f'Received malformed JSON from the gateway: {exc}') from exc

    return Envelope.from_dict(payload)
