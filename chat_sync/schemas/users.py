from __future__ import annotations

from chat_sync.schemas.base import WireModel


class UserSummary(WireModel):
    id: str
    first_name: str | None = None
    last_name: str | None = None
    profile_photo: str | None = None

    @property
    def display_name(self) -> str:
        parts = [part for part in (self.first_name, self.last_name) if part]
        return " ".join(parts) if parts else self.id


class UserSearchResult(WireModel):
    users: list[UserSummary]
