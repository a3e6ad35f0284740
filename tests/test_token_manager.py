import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from solar_bridge.client import TransportError
from solar_bridge.models import Token
from solar_bridge.token_manager import ClockSkewError, TokenManager, parse_expiry


NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeIssuer:
    def __init__(self, tokens, delay=0.0):
        self.tokens = list(tokens)
        self.calls = 0
        self.delay = delay

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.tokens.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _token(value, expires="2024-05-01T13:00:00Z"):
    return Token(token=value, expires=expires, duration=3600)


def test_parse_expiry_variants():
    assert parse_expiry("2024-05-01T13:00:00Z") == datetime(2024, 5, 1, 13, 0, tzinfo=timezone.utc)
    assert parse_expiry("2024-05-01T22:30:00+09:30") == datetime(2024, 5, 1, 13, 0, tzinfo=timezone.utc)
    # Nanosecond precision is truncated to microseconds
    assert parse_expiry("2024-05-01T13:00:00.123456789Z").microsecond == 123456


@pytest.mark.parametrize("raw", ["", "soon", "2024-05-01T13:00:00", "2024-13-01T00:00:00Z"])
def test_parse_expiry_rejects_bad_values(raw):
    with pytest.raises(ClockSkewError):
        parse_expiry(raw)


def test_absent_token_triggers_single_request():
    issuer = FakeIssuer([_token("a")])
    manager = TokenManager(issuer, clock=Clock())

    assert manager.token is None
    assert not manager.is_valid

    token = asyncio.run(manager.ensure_valid())

    assert issuer.calls == 1
    assert token.token == "a"
    assert token.expires_at == datetime(2024, 5, 1, 13, 0, tzinfo=timezone.utc)
    assert manager.is_valid


def test_valid_token_is_reused_without_request():
    issuer = FakeIssuer([_token("a"), _token("b")])
    clock = Clock()
    manager = TokenManager(issuer, clock=clock)

    async def scenario():
        first = await manager.ensure_valid()
        clock.advance(minutes=59)
        second = await manager.ensure_valid()
        return first, second

    first, second = asyncio.run(scenario())

    assert issuer.calls == 1
    assert second is first


def test_expired_token_is_replaced():
    issuer = FakeIssuer([_token("a"), _token("b", expires="2024-05-01T15:00:00Z")])
    clock = Clock()
    manager = TokenManager(issuer, clock=clock)

    async def scenario():
        await manager.ensure_valid()
        clock.advance(hours=1)  # exactly at expiry counts as expired
        return await manager.ensure_valid()

    token = asyncio.run(scenario())

    assert issuer.calls == 2
    assert token.token == "b"
    assert token.expires_at == datetime(2024, 5, 1, 15, 0, tzinfo=timezone.utc)


def test_unparsable_expiry_is_used_once_then_refreshed():
    issuer = FakeIssuer([_token("a", expires="not-a-date"), _token("b")])
    manager = TokenManager(issuer, clock=Clock())

    async def scenario():
        first = await manager.ensure_valid()
        valid_after_first = manager.is_valid
        second = await manager.ensure_valid()
        return first, valid_after_first, second

    first, valid_after_first, second = asyncio.run(scenario())

    assert first.token == "a"
    assert first.expires_at is None
    assert valid_after_first is False
    assert second.token == "b"
    assert issuer.calls == 2


def test_failed_refresh_raises_and_keeps_cached_token():
    issuer = FakeIssuer([_token("a"), TransportError("boom")])
    clock = Clock()
    manager = TokenManager(issuer, clock=clock)

    async def scenario():
        first = await manager.ensure_valid()
        clock.advance(hours=2)
        with pytest.raises(TransportError):
            await manager.ensure_valid()
        return first

    first = asyncio.run(scenario())

    assert manager.token is first
    assert not manager.is_valid


def test_concurrent_callers_share_one_refresh():
    issuer = FakeIssuer([_token("a"), _token("b")], delay=0.01)
    manager = TokenManager(issuer, clock=Clock())

    async def scenario():
        return await asyncio.gather(*(manager.ensure_valid() for _ in range(5)))

    tokens = asyncio.run(scenario())

    assert issuer.calls == 1
    assert {t.token for t in tokens} == {"a"}


def test_invalidate_forces_new_request():
    issuer = FakeIssuer([_token("a"), _token("b")])
    manager = TokenManager(issuer, clock=Clock())

    async def scenario():
        await manager.ensure_valid()
        manager.invalidate()
        return await manager.ensure_valid()

    assert asyncio.run(scenario()).token == "b"
    assert issuer.calls == 2


def test_token_repr_hides_secret():
    token = _token("super-secret")
    assert "super-secret" not in repr(token)
    assert "super-secret" not in str(token)
