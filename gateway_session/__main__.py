"""Run a bot that logs every message it can see.

Usage:
    python -m gateway_session                       # token from $DISCORD_TOKEN
    python -m gateway_session --token TOKEN
    python -m gateway_session --log-level DEBUG

A `.env` file in the working directory is loaded first.
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

try:
    from dotenv import load_dotenv
except ImportError:
    raise SystemExit('The command line requires extras: pip install gateway_session[cli]')

from ._conn import DEFAULT_GATEWAY_URI
from ._errors import GatewayError, SessionReadError
from ._events import MessageCreated, decode_event
from ._opcode import Intents, should_reconnect
from ._session import Session

_LOGGER = logging.getLogger('gateway_session')


INTENTS = (
    Intents.GUILDS | Intents.GUILD_MESSAGES | Intents.GUILD_VOICE_STATES
    | Intents.DIRECT_MESSAGES | Intents.MESSAGE_CONTENT
)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='gateway_session',
        description='Connect to the Discord gateway and log incoming messages.',
    )
    parser.add_argument(
        '--token',
        default=None,
        help='Bot token (default: $DISCORD_TOKEN)',
    )
    parser.add_argument(
        '--uri',
        default=DEFAULT_GATEWAY_URI,
        help=f'Gateway URI (default: {DEFAULT_GATEWAY_URI})',
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default='INFO',
        help='Log level (default: INFO)',
    )
    return parser.parse_args(argv)


def run(session: Session) -> None:
    """Log messages until reading from the session fails."""
    while True:
        event = decode_event(session.receive_next())

        if not isinstance(event, MessageCreated):
            continue

        if session.user is not None and event.author.id == session.user.id:
            continue

        _LOGGER.info('AUTHOR: %s MSG: %s', event.author.name, event.content)


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)

    logging.basicConfig(
        level=args.log_level,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    token = args.token or os.environ.get('DISCORD_TOKEN')
    if not token:
        print('No token given, pass --token or set DISCORD_TOKEN', file=sys.stderr)
        return 2

    try:
        session = Session(token, INTENTS, uri=args.uri)
    except GatewayError as exc:
        _LOGGER.error('Could not start a session: %s', exc)
        return 1

    _LOGGER.info('Bot "%s" is now running! Press Ctrl+C to exit.', session.user.name)

    try:
        run(session)
    except KeyboardInterrupt:
        pass
    except SessionReadError as exc:
        _LOGGER.error('Lost the gateway connection: %s', exc)
        if not should_reconnect(exc.code):
            _LOGGER.error('Close code %s does not allow reconnecting', exc.code)
        return 1
    finally:
        try:
            session.shutdown()
        except GatewayError as exc:
            _LOGGER.warning('Failed to shut down gracefully: %s', exc)

    _LOGGER.info('Bot shut down gracefully')
    return 0


if __name__ == '__main__':
    sys.exit(main())
