from __future__ import annotations

import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

import httpx

from passwordless.application.config import LoginConfig
from passwordless.domain import services as domain_services
from passwordless.domain.context import CallContext
from passwordless.domain.entities import Token, utc_now
from passwordless.domain.errors import (
    Canceled,
    DeliveryError,
    DomainError,
    InvalidParameter,
    TokenExpired,
    VerificationFailed,
)
from passwordless.domain.ports.token_store import TokenStorePort
from passwordless.domain.ports.transport import TransportPort

logger = logging.getLogger(__name__)

# bound on the compensating delete after a failed delivery
_COMPENSATION_TIMEOUT_SECONDS = 5.0

Deliver = Callable[[Token, str], Awaitable[None]]


class LoginManager:
    """
    Issues one-time login codes and verifies them exactly once.

    Construct one per application with an explicit store, transport and
    config; there is no module-level instance.

    Verification runs through the store's own `verify` / `verify_link`, so
    the read-check-write is atomic in the backend even across processes.
    Outcomes are raised, not returned:
      - TokenNotFound: unknown, consumed or already deleted token
      - TokenExpired: past its TTL (token deleted)
      - InvalidCode: wrong code, attempts left (counter persisted)
      - AttemptsExhausted: wrong code, limit reached (token deleted)
    """

    def __init__(
        self,
        store: TokenStorePort,
        transport: TransportPort,
        config: Optional[LoginConfig] = None,
        *,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.transport = transport
        self.config = (config or LoginConfig()).with_defaults()
        self._now = now

    @property
    def max_failed_attempts(self) -> int:
        return self.config.max_failed_attempts

    async def start_login(self, ctx: CallContext, recipient: str) -> str:
        """Generate, store and deliver a code. Return the token id."""
        token = await self._issue(ctx, recipient, self._send_code(ctx, recipient))
        return token.id

    async def verify_login(self, ctx: CallContext, token_id: str, code: str) -> Token:
        """Check `code` against the token and consume it on success."""
        verification = self.store.verify(
            ctx, token_id, code, max_failed_attempts=self.max_failed_attempts
        )
        return await self._attempt(ctx, token_id, verification)

    async def generate_login_link(
        self, ctx: CallContext, recipient: str, base_url: str
    ) -> str:
        """
        Start a login and return `base_url` with `token` and `hash` query
        parameters. The hash is sha256(code_hash), never the code itself.

        The link goes back to the caller; the recipient only receives the
        code. Use send_login_link when the caller must not see the link.
        """
        url = _parse_base_url(base_url)
        token = await self._issue(ctx, recipient, self._send_code(ctx, recipient))
        return _login_link(url, token)

    async def send_login_link(
        self, ctx: CallContext, recipient: str, base_url: str
    ) -> str:
        """
        Start a login and deliver the login link itself to the recipient.
        Return the token id; the link is never handed to the caller.
        """
        url = _parse_base_url(base_url)

        async def deliver(token: Token, _code: str) -> None:
            await self.transport.send_link(ctx, recipient, _login_link(url, token))

        token = await self._issue(ctx, recipient, deliver)
        return token.id

    async def verify_login_link(
        self, ctx: CallContext, token_id: str, provided_hash: str
    ) -> Token:
        """Same lifecycle as verify_login, comparing the link hash instead."""
        verification = self.store.verify_link(
            ctx, token_id, provided_hash, max_failed_attempts=self.max_failed_attempts
        )
        return await self._attempt(ctx, token_id, verification)

    def _send_code(self, ctx: CallContext, recipient: str) -> Deliver:
        async def deliver(_token: Token, code: str) -> None:
            await self.transport.send(ctx, recipient, code)

        return deliver

    async def _issue(self, ctx: CallContext, recipient: str, deliver: Deliver) -> Token:
        ctx.check()
        token_id = self.config.id_generator()
        if not token_id:
            raise InvalidParameter("id generator returned an empty token id")
        code = domain_services.generate_code(
            self.config.code_length, self.config.code_charset
        )
        now = self._now()
        token = Token(
            id=token_id,
            recipient=recipient,
            code_hash=domain_services.hash_code(code),
            created_at=now,
            expires_at=now + self.config.token_ttl,
        )

        await self.store.store(ctx, token)

        try:
            await deliver(token, code)
        except Exception as e:
            await self._compensate(ctx, token.id)
            logger.warning(
                "login delivery failed; token removed",
                extra={"token_id": token.id, "error": str(e)},
            )
            if isinstance(e, (DeliveryError, Canceled)):
                raise
            raise DeliveryError(f"failed to deliver login: {e}") from e

        logger.info(
            "login started",
            extra={"token_id": token.id, "expires_at": token.expires_at.isoformat()},
        )
        return token

    async def _compensate(self, ctx: CallContext, token_id: str) -> None:
        # the caller's context may be the reason delivery failed
        cleanup_ctx = ctx.detached(_COMPENSATION_TIMEOUT_SECONDS)
        try:
            await self.store.delete(cleanup_ctx, token_id)
        except DomainError:
            logger.exception(
                "could not remove token after failed delivery",
                extra={"token_id": token_id},
            )
            raise

    async def _attempt(
        self, ctx: CallContext, token_id: str, verification: Awaitable[Token]
    ) -> Token:
        try:
            token = await verification
        except TokenExpired:
            # backends may report expiry without removing the token
            await self.store.delete(ctx, token_id)
            logger.info(
                "login verification failed",
                extra={"token_id": token_id, "outcome": "expired"},
            )
            raise
        except VerificationFailed as e:
            logger.info(
                "login verification failed",
                extra={"token_id": token_id, "outcome": type(e).__name__},
            )
            raise

        logger.info("login verified", extra={"token_id": token_id})
        return token


def _login_link(url: httpx.URL, token: Token) -> str:
    link = url.copy_merge_params(
        {"token": token.id, "hash": domain_services.link_digest(token.code_hash)}
    )
    return str(link)


def _parse_base_url(base_url: str) -> httpx.URL:
    try:
        url = httpx.URL(base_url)
    except (httpx.InvalidURL, TypeError) as e:
        raise InvalidParameter(f"invalid base URL: {e}") from e
    if url.scheme not in ("http", "https") or not url.host:
        raise InvalidParameter(f"base URL must be absolute http(s): {base_url!r}")
    return url
