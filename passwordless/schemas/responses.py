from typing import Literal

from pydantic import BaseModel, Field


class LoginStartedOut(BaseModel):
    token_id: str = Field(..., description="Id to submit along with the code")


class VerifiedOut(BaseModel):
    status: Literal["ok"] = "ok"
    recipient: str


class ErrorOut(BaseModel):
    error: str
    code: str
    attempts_remaining: int | None = None
