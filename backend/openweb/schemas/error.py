from pydantic import BaseModel


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
    message: str | None = None
    request_id: str | None = None
