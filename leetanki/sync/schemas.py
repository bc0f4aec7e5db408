"""
Boundary models for the sync pipeline.

Completion events arrive from the scraping/API collaborator in camelCase
(`itemId`, `acceptedAt`); snake_case names are accepted too. The sync cursor
is persisted between sessions so an interrupted sync resumes where it stopped.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from leetanki.exceptions import MalformedEvent
from leetanki.timeutils import ensure_utc


class ItemMetadata(BaseModel):
    """Display metadata carried by a completion event."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    title: str | None = None
    difficulty: str | None = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> list[str]:
        # LeetCode topic tags come as {"name": ..., "slug": ...} objects.
        if value is None:
            return []
        if isinstance(value, (str, bytes)):
            return [value]
        if isinstance(value, dict) or not isinstance(value, Iterable):
            raise ValueError(f"tags must be a list, got {type(value).__name__}")
        tags = []
        for tag in value:
            if isinstance(tag, dict):
                tag = tag.get("name") or tag.get("slug")
            if tag:
                tags.append(str(tag).strip())
        return tags

    def as_patch(self) -> dict[str, Any]:
        return {"title": self.title, "difficulty": self.difficulty, "tags": set(self.tags)}


class CompletionEvent(BaseModel):
    """An item was completed (solved) at `accepted_at`."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    item_id: str = Field(alias="itemId", min_length=1)
    metadata: ItemMetadata = Field(default_factory=ItemMetadata)
    accepted_at: datetime = Field(alias="acceptedAt")

    @field_validator("accepted_at")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


def parse_event(raw: CompletionEvent | dict[str, Any]) -> CompletionEvent:
    """
    Validate one raw completion event.

    Raises:
        MalformedEvent: missing item id or unparseable timestamp
    """
    if isinstance(raw, CompletionEvent):
        return raw
    try:
        return CompletionEvent.model_validate(raw)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise MalformedEvent(f"Invalid completion event ({fields})", raw=raw) from exc


class SyncCursor(BaseModel):
    """Pagination progress through the external event source."""

    offset: int = Field(default=0, ge=0)
    page_token: str | None = None
    is_complete: bool = False
