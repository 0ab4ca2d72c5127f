from __future__ import annotations

from typing import Protocol

from passwordless.domain.context import CallContext


class TransportPort(Protocol):
    async def send(self, ctx: CallContext, recipient: str, code: str) -> None:
        """Deliver the plaintext code. Raise DeliveryError on failure."""

    async def send_link(self, ctx: CallContext, recipient: str, url: str) -> None:
        """Deliver a login link. Raise DeliveryError on failure."""
