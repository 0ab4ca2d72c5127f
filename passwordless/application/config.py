from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Callable, Optional

from passwordless.domain.errors import InvalidParameter
from passwordless.domain.services import DIGITS, generate_token_id
from passwordless.settings import Settings

DEFAULT_CODE_LENGTH = 6
DEFAULT_CODE_CHARSET = DIGITS
DEFAULT_TOKEN_TTL = timedelta(minutes=15)
DEFAULT_MAX_FAILED_ATTEMPTS = 3


@dataclass(frozen=True)
class LoginConfig:
    """
    Policy for one LoginManager.

    Zero / empty / None fields mean "use the default"; `with_defaults()`
    fills them in so that e.g. max_failed_attempts=0 never disables the
    attempt limit.
    """

    code_length: int = DEFAULT_CODE_LENGTH
    code_charset: str = DEFAULT_CODE_CHARSET
    token_ttl: timedelta = DEFAULT_TOKEN_TTL
    id_generator: Optional[Callable[[], str]] = generate_token_id
    max_failed_attempts: int = DEFAULT_MAX_FAILED_ATTEMPTS

    def with_defaults(self) -> "LoginConfig":
        if self.code_length < 0:
            raise InvalidParameter("code_length cannot be negative")
        if self.token_ttl < timedelta(0):
            raise InvalidParameter("token_ttl cannot be negative")
        if self.max_failed_attempts < 0:
            raise InvalidParameter("max_failed_attempts cannot be negative")

        return replace(
            self,
            code_length=self.code_length or DEFAULT_CODE_LENGTH,
            code_charset=self.code_charset or DEFAULT_CODE_CHARSET,
            token_ttl=self.token_ttl or DEFAULT_TOKEN_TTL,
            id_generator=self.id_generator or generate_token_id,
            max_failed_attempts=self.max_failed_attempts
            or DEFAULT_MAX_FAILED_ATTEMPTS,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "LoginConfig":
        return cls(
            code_length=settings.code_length,
            code_charset=settings.code_charset,
            token_ttl=timedelta(seconds=settings.token_ttl_seconds),
            max_failed_attempts=settings.max_failed_attempts,
        ).with_defaults()
