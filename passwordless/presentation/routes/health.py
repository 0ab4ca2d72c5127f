from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/healthz")
async def healthz(request: Request) -> dict:
    return {"status": "ok", "store": request.app.state.settings.store_backend}
