from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from ._codec import Envelope
from ._errors import EventDecodeError
from ._opcode import Opcode

__all__ = (
    'User',
    'Ready',
    'MessageCreated',
    'Unrecognized',
    'Event',
    'decode_event',
)


def _field(event: str, data: Dict[str, Any], key: str, kind: type, *, optional: bool = False) -> Any:
    value = data.get(key)
    if value is None and optional:
        return None

    if not isinstance(value, kind):
        raise EventDecodeError(event, f"'{key}' should be {kind.__name__}, got {value!r}")

    return value


def _object(event: str, data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise EventDecodeError(event, f'expected an object, got {type(data).__name__}')
    return data


@dataclass(frozen=True)
class User:
    """A Discord user, only the fields needed to identify it."""

    id: str
    name: str

    @classmethod
    def from_payload(cls, event: str, data: Any) -> 'User':
        data = _object(event, data)
        return cls(
            id=_field(event, data, 'id', str),
            name=_field(event, data, 'username', str),
        )


@dataclass(frozen=True)
class Ready:
    """READY, the first event after IDENTIFY.

    `session_id` and `resume_gateway_url` would be needed to RESUME, which
    this library does not do.
    """

    user: User
    session_id: Optional[str] = None
    resume_gateway_url: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Any) -> 'Ready':
        data = _object('READY', data)
        return cls(
            user=User.from_payload('READY', data.get('user')),
            session_id=_field('READY', data, 'session_id', str, optional=True),
            resume_gateway_url=_field('READY', data, 'resume_gateway_url', str, optional=True),
        )


@dataclass(frozen=True)
class MessageCreated:
    """MESSAGE_CREATE, a message was sent in a channel the bot can see.

    `guild_id` is None for direct messages.
    """

    id: str
    channel_id: str
    content: str
    author: User
    guild_id: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Any) -> 'MessageCreated':
        data = _object('MESSAGE_CREATE', data)
        return cls(
            id=_field('MESSAGE_CREATE', data, 'id', str),
            channel_id=_field('MESSAGE_CREATE', data, 'channel_id', str),
            # Without the MESSAGE_CONTENT intent the content is empty
            content=_field('MESSAGE_CREATE', data, 'content', str, optional=True) or '',
            author=User.from_payload('MESSAGE_CREATE', data.get('author')),
            guild_id=_field('MESSAGE_CREATE', data, 'guild_id', str, optional=True),
        )


@dataclass(frozen=True)
class Unrecognized:
    """Any event without a dedicated type, `data` is left untouched."""

    name: str
    data: Any


Event = Union[Ready, MessageCreated, Unrecognized]


EVENT_DECODERS: Dict[str, Callable[[Any], Event]] = {
    'READY': Ready.from_payload,
    'MESSAGE_CREATE': MessageCreated.from_payload,
}


def decode_event(envelope: Envelope) -> Event:
    """Decode the data of a DISPATCH envelope into a typed event.

    Event names without a decoder are returned as `Unrecognized` so that new
    events added to the gateway don't break callers.

    Raises:
        ValueError: The envelope is not a DISPATCH.
        EventDecodeError: The data of a known event is malformed.
    """
    if envelope.op != Opcode.DISPATCH:
        raise ValueError(f'Only DISPATCH envelopes carry events, got opcode {envelope.op}')

    name = envelope.t or ''
    decoder = EVENT_DECODERS.get(name)
    if decoder is None:
        return Unrecognized(name, envelope.d)

    return decoder(envelope.d)
