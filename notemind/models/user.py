"""User directory model."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class UserProfile(BaseModel):
    """Public profile of a user, as returned by email lookup."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str
    display_name: str | None = None
    photo_url: str | None = None
