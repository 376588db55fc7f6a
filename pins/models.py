"""
pins/models.py -- Domain dataclasses for pins and tags.

These are pure data containers. Business rules (duplicate URLs, tag name
normalization, ownership) live in pins/service.py; SQL lives in pins/store.py.
Every entity exposes owner_id for auth/access.py.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Pin:
    """A saved URL.

    tag_names is the denormalized view of the pins_tags join, always
    lower-case and sorted. id is None before the record is written.
    """

    user_id: str
    url: str
    title: str
    description: Optional[str] = None
    read_later: bool = False
    tag_names: list[str] = field(default_factory=list)
    id: Optional[str] = None
    created_at: str = ""  # ISO 8601, set by store on insert unless supplied (imports)
    updated_at: str = ""

    @property
    def owner_id(self) -> str:
        return self.user_id


@dataclass
class Tag:
    user_id: str
    name: str
    id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def owner_id(self) -> str:
        return self.user_id


@dataclass
class TagWithCount(Tag):
    pin_count: int = 0


@dataclass(frozen=True)
class PinFilter:
    """Optional constraints for pin listing and tag counts. None means "any"."""

    tag: Optional[str] = None
    read_later: Optional[bool] = None
    search: Optional[str] = None
