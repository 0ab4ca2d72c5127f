from typing import Annotated

from fastapi import APIRouter, Depends, Query

from passwordless.application.login_manager import LoginManager
from passwordless.domain.context import CallContext
from passwordless.presentation.dependencies import get_call_context, get_login_manager
from passwordless.schemas.requests import LoginLinkIn, StartLoginIn, VerifyLoginIn
from passwordless.schemas.responses import LoginStartedOut, VerifiedOut

router = APIRouter(prefix="/login", tags=["Login"])


@router.post("/start", status_code=202, response_model=LoginStartedOut)
async def post_start_login(
    body: StartLoginIn,
    manager: Annotated[LoginManager, Depends(get_login_manager)],
    ctx: Annotated[CallContext, Depends(get_call_context)],
):
    token_id = await manager.start_login(ctx, body.recipient)
    return LoginStartedOut(token_id=token_id)


@router.post("/verify", response_model=VerifiedOut)
async def post_verify_login(
    body: VerifyLoginIn,
    manager: Annotated[LoginManager, Depends(get_login_manager)],
    ctx: Annotated[CallContext, Depends(get_call_context)],
):
    token = await manager.verify_login(ctx, body.token_id, body.code)
    return VerifiedOut(recipient=token.recipient)


@router.post("/link", status_code=202, response_model=LoginStartedOut)
async def post_login_link(
    body: LoginLinkIn,
    manager: Annotated[LoginManager, Depends(get_login_manager)],
    ctx: Annotated[CallContext, Depends(get_call_context)],
):
    # the link goes to the recipient only, never back to the caller
    token_id = await manager.send_login_link(ctx, body.recipient, str(body.base_url))
    return LoginStartedOut(token_id=token_id)


@router.get("/link/verify", response_model=VerifiedOut)
async def get_verify_login_link(
    token: Annotated[str, Query(min_length=1, max_length=128)],
    hash: Annotated[str, Query(min_length=1, max_length=128)],
    manager: Annotated[LoginManager, Depends(get_login_manager)],
    ctx: Annotated[CallContext, Depends(get_call_context)],
):
    verified = await manager.verify_login_link(ctx, token, hash)
    return VerifiedOut(recipient=verified.recipient)
