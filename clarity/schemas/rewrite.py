from __future__ import annotations

from pydantic import BaseModel


class RewriteRequest(BaseModel):
    # Emptiness is checked by the gateway so it can answer 400 instead of 422.
    text: str | None = None
    style: str | None = None


class RewriteResponse(BaseModel):
    result: str
    remaining: int
