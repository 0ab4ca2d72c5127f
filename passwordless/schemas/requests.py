from pydantic import AnyHttpUrl, BaseModel, Field


class StartLoginIn(BaseModel):
    recipient: str = Field(
        ..., description="Where the code is sent (e.g. an email)", min_length=1, max_length=255
    )


class VerifyLoginIn(BaseModel):
    token_id: str = Field(..., min_length=1, max_length=128)
    code: str = Field(..., min_length=1, max_length=64)


class LoginLinkIn(BaseModel):
    recipient: str = Field(..., min_length=1, max_length=255)
    base_url: AnyHttpUrl = Field(..., description="Page the login link points at")
