from __future__ import annotations

import logging

from passwordless.domain.context import CallContext
from passwordless.domain.ports.transport import TransportPort

logger = logging.getLogger(__name__)


class LogTransport(TransportPort):
    """Writes the code to the log instead of delivering it. Development only."""

    async def send(self, ctx: CallContext, recipient: str, code: str) -> None:
        ctx.check()
        logger.warning(
            "login code (log transport)",
            extra={"recipient": recipient, "code": code},
        )

    async def send_link(self, ctx: CallContext, recipient: str, url: str) -> None:
        ctx.check()
        logger.warning(
            "login link (log transport)",
            extra={"recipient": recipient, "url": url},
        )
