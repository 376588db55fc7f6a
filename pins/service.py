"""
pins/service.py -- Pin and tag use cases, gated by AccessControl.

Every public method takes the request's AccessControl first and checks it
before touching data it does not own. Failures raise PinSquirrelError:

  PIN_NOT_FOUND / TAG_NOT_FOUND -- no such row
  FORBIDDEN                     -- row exists but belongs to someone else,
                                   or the request is anonymous
  DUPLICATE_PIN / DUPLICATE_TAG -- uniqueness per user
  VALIDATION                    -- field_errors={field: [messages]}

The API layer renders FORBIDDEN exactly like NOT_FOUND so a caller cannot
probe which ids exist for other users.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable
from urllib.parse import urlsplit

from sqlalchemy.exc import IntegrityError

from auth.access import AccessControl
from core.errors import ErrorKind, PinSquirrelError, validation_error
from core.pagination import Pagination
from pins.models import Pin, PinFilter, Tag, TagWithCount
from pins.store import PinStore

logger = logging.getLogger("pinsquirrel.pins")

URL_MAX = 2048
TITLE_MAX = 200
DESCRIPTION_MAX = 1000
TAG_NAME_MAX = 50

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

# Marks "argument not given" where None is a meaningful value (clear description).
_UNSET = object()


# ---------------------------------------------------------------------------
# Field validation
# ---------------------------------------------------------------------------


def url_errors(url: str) -> list[str]:
    if len(url) > URL_MAX:
        return [f"URL must be at most {URL_MAX} characters."]
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return ["Must be a valid URL."]
    return []


def title_errors(title: str) -> list[str]:
    if not title.strip():
        return ["Title must be at least 1 character."]
    if len(title) > TITLE_MAX:
        return [f"Title must be at most {TITLE_MAX} characters."]
    return []


def description_errors(description: str | None) -> list[str]:
    if description is not None and len(description) > DESCRIPTION_MAX:
        return [f"Description must be at most {DESCRIPTION_MAX} characters."]
    return []


def normalize_tag_name(name: str) -> str:
    """Trim and lower-case a tag name. Raises VALIDATION for unusable names."""
    if _CONTROL_CHARS.search(name):
        raise validation_error({"tag_names": ["Tag name cannot contain control characters."]})
    normalized = name.strip().lower()
    if not normalized:
        raise validation_error({"tag_names": ["Tag name cannot be only whitespace."]})
    if len(normalized) > TAG_NAME_MAX:
        raise validation_error({"tag_names": [f"Tag name must be at most {TAG_NAME_MAX} characters."]})
    return normalized


def normalize_tag_names(names: Iterable[str]) -> list[str]:
    """Normalize and de-duplicate, preserving first-seen order."""
    return list(dict.fromkeys(normalize_tag_name(n) for n in names))


def _check(**fields: list[str]) -> None:
    errors = {name: msgs for name, msgs in fields.items() if msgs}
    if errors:
        raise validation_error(errors)


def _forbidden() -> PinSquirrelError:
    return PinSquirrelError(ErrorKind.FORBIDDEN)


# ---------------------------------------------------------------------------
# Pins
# ---------------------------------------------------------------------------


class PinService:
    def __init__(self, store: PinStore) -> None:
        self._store = store

    def create_pin(
        self,
        ac: AccessControl,
        user_id: str,
        url: str,
        title: str,
        description: str | None = None,
        read_later: bool = False,
        tag_names: Iterable[str] = (),
        created_at: str = "",
    ) -> Pin:
        if not ac.can_create_as(user_id):
            raise _forbidden()
        url = url.strip()
        _check(url=url_errors(url), title=title_errors(title), description=description_errors(description))
        tags = normalize_tag_names(tag_names)

        existing = self._store.find_by_user_and_url(user_id, url)
        if existing is not None:
            raise PinSquirrelError(
                ErrorKind.DUPLICATE_PIN,
                existing_pin_id=existing.id,
                existing_created_at=existing.created_at,
            )

        pin = Pin(
            user_id=user_id,
            url=url,
            title=title.strip(),
            description=description,
            read_later=read_later,
            tag_names=tags,
            created_at=created_at,
        )
        pin_id = self._store.create_pin(pin)
        return self._store.get_pin(pin_id)

    def get_pin(self, ac: AccessControl, pin_id: str) -> Pin:
        pin = self._store.get_pin(pin_id)
        if pin is None:
            raise PinSquirrelError(ErrorKind.PIN_NOT_FOUND, pin_id=pin_id)
        if not ac.can_read(pin):
            raise _forbidden()
        return pin

    def update_pin(
        self,
        ac: AccessControl,
        pin_id: str,
        url: str | None = None,
        title: str | None = None,
        description=_UNSET,
        read_later: bool | None = None,
        tag_names: Iterable[str] | None = None,
    ) -> Pin:
        """Apply the given changes; omitted arguments keep their current value.

        description=None clears the description.
        """
        existing = self._store.get_pin(pin_id)
        if existing is None:
            raise PinSquirrelError(ErrorKind.PIN_NOT_FOUND, pin_id=pin_id)
        if not ac.can_update(existing):
            raise _forbidden()

        if url is not None:
            url = url.strip()
        _check(
            url=url_errors(url) if url is not None else [],
            title=title_errors(title) if title is not None else [],
            description=description_errors(description) if description is not _UNSET else [],
        )

        if url is not None and url != existing.url:
            duplicate = self._store.find_by_user_and_url(existing.user_id, url)
            if duplicate is not None and duplicate.id != pin_id:
                raise PinSquirrelError(
                    ErrorKind.DUPLICATE_PIN,
                    existing_pin_id=duplicate.id,
                    existing_created_at=duplicate.created_at,
                )

        updated = Pin(
            id=existing.id,
            user_id=existing.user_id,
            url=url if url is not None else existing.url,
            title=title.strip() if title is not None else existing.title,
            description=existing.description if description is _UNSET else description,
            read_later=existing.read_later if read_later is None else read_later,
            tag_names=existing.tag_names if tag_names is None else normalize_tag_names(tag_names),
            created_at=existing.created_at,
        )
        if not self._store.update_pin(updated):
            raise PinSquirrelError(ErrorKind.PIN_NOT_FOUND, pin_id=pin_id)
        return self._store.get_pin(pin_id)

    def delete_pin(self, ac: AccessControl, pin_id: str) -> None:
        pin = self._store.get_pin(pin_id)
        if pin is None:
            raise PinSquirrelError(ErrorKind.PIN_NOT_FOUND, pin_id=pin_id)
        if not ac.can_delete(pin):
            raise _forbidden()
        self._store.delete_pin(pin_id)

    def list_pins(
        self,
        ac: AccessControl,
        pin_filter: PinFilter | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> tuple[list[Pin], Pagination, int]:
        """Return (pins on this page, pagination, total matching) for the principal."""
        if ac.principal is None:
            raise _forbidden()
        user_id = ac.principal.id
        total = self._store.count_pins(user_id, pin_filter)
        pagination = Pagination.from_total_count(total, page=page, page_size=page_size)
        pins = self._store.list_pins(user_id, pin_filter, limit=pagination.page_size, offset=pagination.offset)
        return [p for p in pins if ac.can_read(p)], pagination, total


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


class TagService:
    def __init__(self, store: PinStore) -> None:
        self._store = store

    def list_tags(self, ac: AccessControl, user_id: str) -> list[Tag]:
        """Tags of user_id that the principal may read (none for anonymous callers)."""
        return [t for t in self._store.list_tags(user_id) if ac.can_read(t)]

    def list_tags_with_counts(
        self, ac: AccessControl, user_id: str, pin_filter: PinFilter | None = None
    ) -> list[TagWithCount]:
        return [t for t in self._store.list_tags_with_counts(user_id, pin_filter) if ac.can_read(t)]

    def create_tag(self, ac: AccessControl, user_id: str, name: str) -> Tag:
        if not ac.can_create_as(user_id):
            raise _forbidden()
        try:
            normalized = normalize_tag_name(name)
        except PinSquirrelError as exc:
            raise validation_error({"name": exc.payload["field_errors"]["tag_names"]}) from exc
        if self._store.get_tag_by_name(user_id, normalized) is not None:
            raise PinSquirrelError(ErrorKind.DUPLICATE_TAG)
        try:
            tag_id = self._store.create_tag(Tag(user_id=user_id, name=normalized))
        except IntegrityError as exc:
            raise PinSquirrelError(ErrorKind.DUPLICATE_TAG) from exc
        return self._store.get_tag(tag_id)

    def delete_tag(self, ac: AccessControl, tag_id: str) -> None:
        tag = self._get_owned(ac, tag_id, ac.can_delete)
        if not self._store.delete_tag(tag.id):
            raise PinSquirrelError(ErrorKind.TAG_NOT_FOUND, tag_id=tag_id)

    def merge_tags(self, ac: AccessControl, source_tag_ids: Iterable[str], target_tag_id: str) -> int:
        """Fold the source tags into the target. Every tag involved must be the principal's."""
        if ac.principal is None:
            raise _forbidden()
        self._get_owned(ac, target_tag_id, ac.can_update)
        source_tag_ids = list(source_tag_ids)
        for source_id in source_tag_ids:
            self._get_owned(ac, source_id, ac.can_update)
        merged = self._store.merge_tags(ac.principal.id, source_tag_ids, target_tag_id)
        logger.info("Merged %d tags into %s", merged, target_tag_id)
        return merged

    def delete_unused_tags(self, ac: AccessControl, user_id: str) -> int:
        if not ac.can_create_as(user_id):
            raise _forbidden()
        return self._store.delete_unused_tags(user_id)

    def _get_owned(self, ac: AccessControl, tag_id: str, allowed) -> Tag:
        tag = self._store.get_tag(tag_id)
        if tag is None:
            raise PinSquirrelError(ErrorKind.TAG_NOT_FOUND, tag_id=tag_id)
        if not allowed(tag):
            raise _forbidden()
        return tag
