from __future__ import annotations

from typing import Optional

import httpx

from passwordless.domain.context import CallContext
from passwordless.domain.errors import DeliveryError
from passwordless.domain.ports.transport import TransportPort

DEFAULT_BODY_TEMPLATE = "Your login code is {code}"
DEFAULT_LINK_TEMPLATE = "Click the link to log in: {url}"


class HttpSmtpTransport(TransportPort):
    """
    Delivers codes and login links through an HTTP mail gateway that
    accepts `POST {base_url}/send` with a JSON `{to, subject, body}` payload.
    """

    def __init__(
        self,
        base_url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
        send_path: str = "/send",
        subject: str = "Your login code",
        body_template: str = DEFAULT_BODY_TEMPLATE,
        link_template: str = DEFAULT_LINK_TEMPLATE,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._send_path = send_path if send_path.startswith("/") else f"/{send_path}"
        self._subject = subject
        self._body_template = body_template
        self._link_template = link_template
        self._owns_client: bool = client is None
        self._client: httpx.AsyncClient = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, ctx: CallContext, recipient: str, code: str) -> None:
        await self._post(ctx, recipient, self._body_template.format(code=code))

    async def send_link(self, ctx: CallContext, recipient: str, url: str) -> None:
        await self._post(ctx, recipient, self._link_template.format(url=url))

    async def _post(self, ctx: CallContext, recipient: str, body: str) -> None:
        url = f"{self._base_url}{self._send_path}"
        payload = {"to": recipient, "subject": self._subject, "body": body}

        try:
            resp = await ctx.run(self._client.post(url, json=payload))
        except httpx.HTTPError as e:
            raise DeliveryError(f"SMTP HTTP error: {e}") from e
        if not (200 <= resp.status_code < 300):
            text = resp.text[:200]
            raise DeliveryError(f"SMTP responded {resp.status_code}: {text}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
