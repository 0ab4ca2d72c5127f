import json

import httpx
import pytest

from passwordless.domain.context import CallContext
from passwordless.domain.errors import Canceled, DeliveryError
from passwordless.infrastructure.transport.http_smtp_transport import HttpSmtpTransport


def make_transport(handler, **kwargs) -> tuple[HttpSmtpTransport, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    transport = HttpSmtpTransport(
        base_url="http://smtp-mock:8025/", client=client, **kwargs
    )
    return transport, client


@pytest.mark.asyncio
async def test_send_posts_code_to_gateway(ctx):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["json"] = json.loads(request.content.decode("utf-8"))
        return httpx.Response(202, text="Accepted")

    transport, client = make_transport(handler)
    await transport.send(ctx, "a@a.com", "123456")

    assert seen["url"] == "http://smtp-mock:8025/send"
    assert seen["json"] == {
        "to": "a@a.com",
        "subject": "Your login code",
        "body": "Your login code is 123456",
    }

    await client.aclose()


@pytest.mark.asyncio
async def test_custom_subject_path_and_body(ctx):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["json"] = json.loads(request.content.decode("utf-8"))
        return httpx.Response(200, json={"ok": True})

    transport, client = make_transport(
        handler,
        send_path="mail",
        subject="Sign in",
        body_template="Code: {code}",
    )
    await transport.send(ctx, "b@a.com", "ABC123")

    assert seen["path"] == "/mail"
    assert seen["json"]["subject"] == "Sign in"
    assert seen["json"]["body"] == "Code: ABC123"

    await client.aclose()


@pytest.mark.asyncio
async def test_send_non_2xx_raises_delivery_error(ctx):
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(422, text="nope")

    transport, client = make_transport(handler)

    with pytest.raises(DeliveryError) as ei:
        await transport.send(ctx, "x@y.com", "123456")

    msg = str(ei.value)
    assert "SMTP responded 422" in msg
    assert "nope" in msg

    await client.aclose()


@pytest.mark.asyncio
async def test_network_error_is_wrapped_as_delivery_error(ctx):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    transport, client = make_transport(handler)

    with pytest.raises(DeliveryError) as ei:
        await transport.send(ctx, "x@y.com", "123456")

    assert "SMTP HTTP error:" in str(ei.value)
    assert isinstance(ei.value.__cause__, httpx.ConnectError)

    await client.aclose()


@pytest.mark.asyncio
async def test_canceled_context_sends_nothing():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(202)

    transport, client = make_transport(handler)
    ctx = CallContext.background()
    ctx.cancel()

    with pytest.raises(Canceled):
        await transport.send(ctx, "x@y.com", "123456")
    assert calls == []

    await client.aclose()


@pytest.mark.asyncio
async def test_aclose_closes_owned_client_only():
    owned = HttpSmtpTransport(base_url="http://smtp-mock:8025")
    await owned.aclose()
    assert owned._client.is_closed  # type: ignore[attr-defined]

    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200)

    shared_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    not_owned = HttpSmtpTransport(base_url="http://smtp-mock:8025", client=shared_client)

    await not_owned.aclose()
    assert shared_client.is_closed is False

    await shared_client.aclose()


@pytest.mark.asyncio
async def test_send_link_posts_link_body(ctx):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["json"] = json.loads(request.content.decode("utf-8"))
        return httpx.Response(202)

    transport, client = make_transport(handler, link_template="Sign in: {url}")
    await transport.send_link(ctx, "a@a.com", "https://app/login?token=t&hash=h")

    assert seen["json"] == {
        "to": "a@a.com",
        "subject": "Your login code",
        "body": "Sign in: https://app/login?token=t&hash=h",
    }

    await client.aclose()
