from datetime import datetime, timedelta, timezone

import pytest

from passwordless.domain.entities import Token
from passwordless.domain.services import hash_code

NOW = datetime(2026, 3, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


def make_token(**overrides) -> Token:
    fields = dict(
        id="abc",
        recipient="user@example.com",
        code_hash=hash_code("123456"),
        created_at=NOW,
        expires_at=NOW + timedelta(minutes=15),
    )
    fields.update(overrides)
    return Token(**fields)


def test_defaults():
    token = make_token()
    assert token.attempts == 0
    assert token.expires_at - token.created_at == timedelta(minutes=15)


def test_id_is_required():
    with pytest.raises(ValueError):
        make_token(id="")


def test_negative_attempts_rejected():
    with pytest.raises(ValueError):
        make_token(attempts=-1)


def test_naive_datetimes_are_taken_as_utc():
    token = make_token(created_at=NOW.replace(tzinfo=None))
    assert token.created_at == NOW
    assert token.created_at.tzinfo is not None


def test_expiry_is_strictly_after_expires_at():
    token = make_token()
    assert token.is_expired(token.expires_at) is False
    assert token.is_expired(token.expires_at + timedelta(microseconds=1)) is True


def test_register_failed_attempt_only_touches_the_counter():
    token = make_token()
    before = (token.code_hash, token.expires_at)
    assert token.register_failed_attempt() == 1
    assert token.register_failed_attempt() == 2
    assert (token.code_hash, token.expires_at) == before


def test_record_round_trip_is_lossless():
    token = make_token(attempts=2)
    record = token.to_record()
    assert record["code_hash"] == token.code_hash.hex()
    assert Token.from_record(record) == token
