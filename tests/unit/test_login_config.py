from datetime import timedelta

import pytest

from passwordless.application.config import LoginConfig
from passwordless.domain.errors import InvalidParameter
from passwordless.settings import Settings


def test_defaults():
    cfg = LoginConfig().with_defaults()
    assert cfg.code_length == 6
    assert cfg.code_charset == "0123456789"
    assert cfg.token_ttl == timedelta(minutes=15)
    assert cfg.max_failed_attempts == 3
    assert len(cfg.id_generator()) == 32


def test_zero_values_fall_back_to_defaults():
    cfg = LoginConfig(
        code_length=0,
        code_charset="",
        token_ttl=timedelta(0),
        id_generator=None,
        max_failed_attempts=0,
    ).with_defaults()
    assert cfg.code_length == 6
    assert cfg.code_charset == "0123456789"
    assert cfg.token_ttl == timedelta(minutes=15)
    assert cfg.max_failed_attempts == 3
    assert cfg.id_generator is not None
    assert len(cfg.id_generator()) == 32


def test_custom_values_are_kept():
    cfg = LoginConfig(
        code_length=8,
        code_charset="ABC",
        token_ttl=timedelta(minutes=2),
        id_generator=lambda: "custom-id-123",
        max_failed_attempts=5,
    ).with_defaults()
    assert cfg.code_length == 8
    assert cfg.code_charset == "ABC"
    assert cfg.token_ttl == timedelta(minutes=2)
    assert cfg.id_generator() == "custom-id-123"
    assert cfg.max_failed_attempts == 5


@pytest.mark.parametrize(
    "field,value",
    [
        ("code_length", -1),
        ("max_failed_attempts", -2),
        ("token_ttl", timedelta(seconds=-1)),
    ],
)
def test_negative_values_rejected(field, value):
    with pytest.raises(InvalidParameter):
        LoginConfig(**{field: value}).with_defaults()


def test_from_settings():
    settings = Settings(
        code_length=8,
        code_charset="ABCDEF",
        token_ttl_seconds=60,
        max_failed_attempts=0,
    )
    cfg = LoginConfig.from_settings(settings)
    assert cfg.code_length == 8
    assert cfg.code_charset == "ABCDEF"
    assert cfg.token_ttl == timedelta(seconds=60)
    assert cfg.max_failed_attempts == 3
