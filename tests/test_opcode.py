import pytest

from gateway_session import CloseCode, Intents, Opcode, should_reconnect


class TestShouldReconnect:
    def test_no_code(self) -> None:
        assert should_reconnect(None)

    @pytest.mark.parametrize('code', (1000, 1001, 1006, 3000))
    def test_websocket_codes(self, code: int) -> None:
        assert should_reconnect(code)

    @pytest.mark.parametrize('code', (
        CloseCode.AUTHENTICATION_FAILED, CloseCode.INVALID_SHARD,
        CloseCode.SHARDING_REQUIRED, CloseCode.INVALID_API_VERSION,
        CloseCode.INVALID_INTENTS, CloseCode.DISALLOWED_INTENTS,
    ))
    def test_fatal_codes(self, code: CloseCode) -> None:
        assert not should_reconnect(code)
        assert not should_reconnect(int(code))

    def test_recoverable_code(self) -> None:
        assert should_reconnect(CloseCode.SESSION_TIMED_OUT)

    def test_unknown_gateway_code(self) -> None:
        assert should_reconnect(4999)


class TestIntents:
    def test_combined(self) -> None:
        intents = Intents.GUILDS | Intents.GUILD_MESSAGES | Intents.MESSAGE_CONTENT

        assert int(intents) == (1 << 0) | (1 << 9) | (1 << 15)
        assert Intents.GUILD_MESSAGES in intents
        assert Intents.DIRECT_MESSAGES not in intents

    def test_polls(self) -> None:
        assert Intents.DIRECT_MESSAGE_POLLS == 1 << 25


def test_close_opcode() -> None:
    assert Opcode.CLOSE == 1000
    assert Opcode.HELLO == 10
