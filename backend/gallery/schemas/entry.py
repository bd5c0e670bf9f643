from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class AssetPublic(BaseModel):
    url: str
    identifier: str
    preview: str | None = None
    placeholder: bool = False


class EntryPublic(BaseModel):
    id: str
    title: str
    description: str
    before_image: AssetPublic
    after_image: AssetPublic
    like_count: int
    created_at: datetime


class EntryDeleteResponse(BaseModel):
    ok: bool
    message: str
