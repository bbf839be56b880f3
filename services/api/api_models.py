from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class PhotoCheckPayload(BaseModel):
    """Raw check result as returned by the AI-invocation collaborator.

    Envelope fields stay untyped. Batch, attempt, problem and summary shapes
    vary per provider; the photo-check normalizers drop malformed entries.
    """

    model_config = {"extra": "allow"}

    results: Optional[Any] = None
    problems: Optional[Any] = None
    attempts: Optional[Any] = None
    summary: Optional[Any] = None
    image: Optional[Any] = None
    recordId: Optional[Any] = None
    createdAt: Optional[Any] = None
    alias: Optional[Any] = None


class PhotoCheckAliasRequest(BaseModel):
    alias: str = Field(..., min_length=1, max_length=120)
