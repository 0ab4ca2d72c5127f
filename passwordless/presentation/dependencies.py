from fastapi import Request

from passwordless.application.login_manager import LoginManager
from passwordless.domain.context import CallContext
from passwordless.settings import get_settings


def get_login_manager(request: Request) -> LoginManager:
    # This is set in passwordless.main lifespan()
    return request.app.state.login_manager


def get_call_context() -> CallContext:
    return CallContext.with_timeout(get_settings().request_timeout_seconds)
