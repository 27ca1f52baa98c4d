from typing import Any

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    error: str
    code: str | None = None
    detail: Any = None
