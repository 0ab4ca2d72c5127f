from fastapi import APIRouter

from passwordless.presentation.routers.v1.login import router as login_router
from passwordless.presentation.routes.health import router as health_router

api = APIRouter()

# Add all v1 routers here
routers = (login_router,)
for router in routers:
    api.include_router(router, prefix="/v1")

api.include_router(health_router)
