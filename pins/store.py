"""
pins/store.py -- SQLAlchemy-backed persistence layer for pins and tags.

Uses SQLAlchemy Core (not ORM) so the dataclasses in pins/models.py remain the
authoritative domain representation.

Pattern: Repository + Data Mapper. PinStore is the repository; the _row_to_*
functions are the mappers. Services never touch SQL directly.

The store does no authorization. Callers pass ids they have already checked
through auth/access.AccessControl (see pins/service.py). The one exception is
scoping: every listing query takes the owning user_id, so a list can never
mix two users' rows.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = PinStore()                               # SQLite default
    store = PinStore("postgresql://user:pw@host/db") # PostgreSQL
    pin_id = store.create_pin(Pin(user_id=uid, url="https://example.com", title="Example", tag_names=["news"]))
    pins = store.list_pins(uid, PinFilter(tag="news"), limit=25, offset=0)
    store.close()
"""

import uuid
from typing import Iterable, Optional

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    UniqueConstraint,
    and_,
    exists,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine

from core.config import get_settings
from core.db import make_engine, now_iso
from pins.models import Pin, PinFilter, Tag, TagWithCount

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_pins = Table(
    "pins",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), nullable=False, index=True),
    Column("url", Text, nullable=False),
    Column("title", Text, nullable=False),
    Column("description", Text),
    Column("read_later", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_tags = Table(
    "tags",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), nullable=False),
    Column("name", String(50), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("user_id", "name", name="uq_tags_user_name"),
)

_pins_tags = Table(
    "pins_tags",
    metadata,
    Column("pin_id", String(36), ForeignKey("pins.id", ondelete="CASCADE"), nullable=False),
    Column("tag_id", String(36), ForeignKey("tags.id", ondelete="CASCADE"), nullable=False),
    PrimaryKeyConstraint("pin_id", "tag_id"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _new_id() -> str:
    return str(uuid.uuid4())


def _pin_conditions(user_id: str, pin_filter: Optional[PinFilter]) -> list:
    """WHERE clauses selecting one user's pins that match the filter."""
    conds = [_pins.c.user_id == user_id]
    if pin_filter is None:
        return conds
    if pin_filter.read_later is not None:
        conds.append(_pins.c.read_later == pin_filter.read_later)
    if pin_filter.tag:
        # Aliased so an enclosing query over tags (tag counts) cannot correlate it.
        ft = _tags.alias("filter_tag")
        fl = _pins_tags.alias("filter_link")
        conds.append(
            exists(
                select(fl.c.pin_id)
                .join(ft, ft.c.id == fl.c.tag_id)
                .where(and_(fl.c.pin_id == _pins.c.id, ft.c.name == pin_filter.tag.strip().lower()))
            )
        )
    if pin_filter.search and pin_filter.search.strip():
        term = pin_filter.search.strip().lower()
        conds.append(
            or_(
                func.lower(_pins.c.url).contains(term, autoescape=True),
                func.lower(_pins.c.title).contains(term, autoescape=True),
                func.lower(func.coalesce(_pins.c.description, "")).contains(term, autoescape=True),
            )
        )
    return conds


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class PinStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Pins
    # ------------------------------------------------------------------

    def create_pin(self, pin: Pin) -> str:
        """Insert a pin and link its tags (creating missing tags). Returns the new ID.

        created_at/updated_at are kept when supplied so imports preserve the
        original bookmark dates.
        """
        pin_id = _new_id()
        now = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _pins.insert().values(
                    id=pin_id,
                    user_id=pin.user_id,
                    url=pin.url,
                    title=pin.title,
                    description=pin.description,
                    read_later=pin.read_later,
                    created_at=pin.created_at or now,
                    updated_at=pin.updated_at or pin.created_at or now,
                )
            )
            self._set_pin_tags(conn, pin_id, pin.user_id, pin.tag_names)
            conn.commit()
        return pin_id

    def get_pin(self, pin_id: str) -> Optional[Pin]:
        with self.engine.connect() as conn:
            row = conn.execute(_pins.select().where(_pins.c.id == pin_id)).fetchone()
            if row is None:
                return None
            return _row_to_pin(row, self._tag_names(conn, [pin_id]).get(pin_id, []))

    def find_by_user_and_url(self, user_id: str, url: str) -> Optional[Pin]:
        with self.engine.connect() as conn:
            row = conn.execute(_pins.select().where((_pins.c.user_id == user_id) & (_pins.c.url == url))).fetchone()
            if row is None:
                return None
            return _row_to_pin(row, self._tag_names(conn, [row.id]).get(row.id, []))

    def update_pin(self, pin: Pin) -> bool:
        """Overwrite a pin's mutable fields and replace its tag set."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _pins.update()
                .where(_pins.c.id == pin.id)
                .values(
                    url=pin.url,
                    title=pin.title,
                    description=pin.description,
                    read_later=pin.read_later,
                    updated_at=now_iso(),
                )
            )
            if result.rowcount == 0:
                return False
            self._set_pin_tags(conn, pin.id, pin.user_id, pin.tag_names)
            conn.commit()
        return True

    def delete_pin(self, pin_id: str) -> bool:
        with self.engine.connect() as conn:
            conn.execute(_pins_tags.delete().where(_pins_tags.c.pin_id == pin_id))
            result = conn.execute(_pins.delete().where(_pins.c.id == pin_id))
            conn.commit()
        return result.rowcount > 0

    def count_pins(self, user_id: str, pin_filter: Optional[PinFilter] = None) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_pins).where(*_pin_conditions(user_id, pin_filter))
            ).scalar()
        return result or 0

    def list_pins(
        self,
        user_id: str,
        pin_filter: Optional[PinFilter] = None,
        limit: int = 25,
        offset: int = 0,
    ) -> list[Pin]:
        """Return one page of a user's pins, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _pins.select()
                .where(*_pin_conditions(user_id, pin_filter))
                .order_by(_pins.c.created_at.desc(), _pins.c.id)
                .limit(limit)
                .offset(offset)
            ).fetchall()
            names = self._tag_names(conn, [r.id for r in rows])
        return [_row_to_pin(r, names.get(r.id, [])) for r in rows]

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def create_tag(self, tag: Tag) -> str:
        """Insert a tag. Raises IntegrityError if (user_id, name) already exists."""
        tag_id = _new_id()
        now = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _tags.insert().values(id=tag_id, user_id=tag.user_id, name=tag.name, created_at=now, updated_at=now)
            )
            conn.commit()
        return tag_id

    def get_tag(self, tag_id: str) -> Optional[Tag]:
        with self.engine.connect() as conn:
            row = conn.execute(_tags.select().where(_tags.c.id == tag_id)).fetchone()
        return _row_to_tag(row) if row is not None else None

    def get_tag_by_name(self, user_id: str, name: str) -> Optional[Tag]:
        with self.engine.connect() as conn:
            row = conn.execute(_tags.select().where((_tags.c.user_id == user_id) & (_tags.c.name == name))).fetchone()
        return _row_to_tag(row) if row is not None else None

    def list_tags(self, user_id: str) -> list[Tag]:
        with self.engine.connect() as conn:
            rows = conn.execute(_tags.select().where(_tags.c.user_id == user_id).order_by(_tags.c.name)).fetchall()
        return [_row_to_tag(r) for r in rows]

    def list_tags_with_counts(self, user_id: str, pin_filter: Optional[PinFilter] = None) -> list[TagWithCount]:
        """Every tag of the user with the number of its pins matching the filter."""
        matching = select(_pins.c.id).where(*_pin_conditions(user_id, pin_filter))
        pin_count = (
            select(func.count())
            .select_from(_pins_tags)
            .where((_pins_tags.c.tag_id == _tags.c.id) & (_pins_tags.c.pin_id.in_(matching)))
            .scalar_subquery()
        )
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_tags, pin_count.label("pin_count")).where(_tags.c.user_id == user_id).order_by(_tags.c.name)
            ).fetchall()
        return [
            TagWithCount(
                id=r.id,
                user_id=r.user_id,
                name=r.name,
                created_at=r.created_at,
                updated_at=r.updated_at,
                pin_count=r.pin_count or 0,
            )
            for r in rows
        ]

    def delete_tag(self, tag_id: str) -> bool:
        """Delete a tag and unlink it from its pins. The pins are kept."""
        with self.engine.connect() as conn:
            conn.execute(_pins_tags.delete().where(_pins_tags.c.tag_id == tag_id))
            result = conn.execute(_tags.delete().where(_tags.c.id == tag_id))
            conn.commit()
        return result.rowcount > 0

    def merge_tags(self, user_id: str, source_ids: Iterable[str], target_id: str) -> int:
        """Move every pin of the source tags onto the target, then delete the sources.

        A pin carrying both a source and the target ends up linked once.
        Returns the number of source tags removed.
        """
        sources = [s for s in dict.fromkeys(source_ids) if s != target_id]
        if not sources:
            return 0
        with self.engine.connect() as conn:
            source_pins = {
                r.pin_id
                for r in conn.execute(
                    select(_pins_tags.c.pin_id)
                    .join(_tags, _tags.c.id == _pins_tags.c.tag_id)
                    .where(_pins_tags.c.tag_id.in_(sources) & (_tags.c.user_id == user_id))
                )
            }
            target_pins = {
                r.pin_id for r in conn.execute(select(_pins_tags.c.pin_id).where(_pins_tags.c.tag_id == target_id))
            }
            for pin_id in sorted(source_pins - target_pins):
                conn.execute(_pins_tags.insert().values(pin_id=pin_id, tag_id=target_id))
            conn.execute(_pins_tags.delete().where(_pins_tags.c.tag_id.in_(sources)))
            result = conn.execute(_tags.delete().where(_tags.c.id.in_(sources) & (_tags.c.user_id == user_id)))
            conn.commit()
        return result.rowcount

    def delete_unused_tags(self, user_id: str) -> int:
        """Delete the user's tags that no pin references. Returns the count removed."""
        used = select(_pins_tags.c.tag_id).distinct()
        with self.engine.connect() as conn:
            result = conn.execute(_tags.delete().where((_tags.c.user_id == user_id) & _tags.c.id.not_in(used)))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _set_pin_tags(conn, pin_id: str, user_id: str, names: Iterable[str]) -> None:
        """Replace the pin's tag links with the given names, creating tags as needed."""
        conn.execute(_pins_tags.delete().where(_pins_tags.c.pin_id == pin_id))
        for name in sorted(set(names)):
            row = conn.execute(
                select(_tags.c.id).where((_tags.c.user_id == user_id) & (_tags.c.name == name))
            ).fetchone()
            if row is None:
                tag_id = _new_id()
                now = now_iso()
                conn.execute(
                    _tags.insert().values(id=tag_id, user_id=user_id, name=name, created_at=now, updated_at=now)
                )
            else:
                tag_id = row.id
            conn.execute(_pins_tags.insert().values(pin_id=pin_id, tag_id=tag_id))

    @staticmethod
    def _tag_names(conn, pin_ids: list[str]) -> dict[str, list[str]]:
        if not pin_ids:
            return {}
        rows = conn.execute(
            select(_pins_tags.c.pin_id, _tags.c.name)
            .join(_tags, _tags.c.id == _pins_tags.c.tag_id)
            .where(_pins_tags.c.pin_id.in_(pin_ids))
            .order_by(_tags.c.name)
        ).fetchall()
        names: dict[str, list[str]] = {}
        for r in rows:
            names.setdefault(r.pin_id, []).append(r.name)
        return names

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_pin(row, tag_names: list[str]) -> Pin:
    return Pin(
        id=row.id,
        user_id=row.user_id,
        url=row.url,
        title=row.title,
        description=row.description,
        read_later=bool(row.read_later),
        tag_names=tag_names,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_tag(row) -> Tag:
    return Tag(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
