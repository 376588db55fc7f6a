"""Unit tests for pins/store.py -- PinStore.

Covers:
- create/get pins with tags; supplied created_at is preserved
- listing is per-user, newest first, paginated with limit/offset
- PinFilter: tag, read_later, case-insensitive search (LIKE wildcards escaped)
- tag counts honour the filter; merge, delete, delete-unused
"""

import pytest
from sqlalchemy.exc import IntegrityError

from pins.models import Pin, PinFilter, Tag


def _pin(user_id="u1", url="https://example.com/", title="Example", created_at="", **kw) -> Pin:
    return Pin(user_id=user_id, url=url, title=title, created_at=created_at, **kw)


@pytest.fixture
def seeded(pin_store):
    """Three pins for u1 (oldest to newest) and one for u2."""
    ids = {
        "python": pin_store.create_pin(
            _pin(url="https://python.org", title="Python", tag_names=["python", "lang"], created_at="2024-01-01T00:00:00+00:00")
        ),
        "rust": pin_store.create_pin(
            _pin(
                url="https://rust-lang.org",
                title="Rust",
                description="Systems 100% safe",
                tag_names=["lang"],
                read_later=True,
                created_at="2024-02-01T00:00:00+00:00",
            )
        ),
        "news": pin_store.create_pin(
            _pin(url="https://news.example.com", title="Daily News", created_at="2024-03-01T00:00:00+00:00")
        ),
        "other": pin_store.create_pin(
            _pin(user_id="u2", url="https://python.org", title="Python (u2)", tag_names=["python"])
        ),
    }
    return pin_store, ids


def test_create_and_get(seeded):
    store, ids = seeded
    pin = store.get_pin(ids["python"])
    assert pin.user_id == "u1"
    assert pin.tag_names == ["lang", "python"]
    assert pin.created_at == "2024-01-01T00:00:00+00:00"
    assert pin.read_later is False
    assert store.get_pin("missing") is None


def test_find_by_user_and_url_is_scoped(seeded):
    store, ids = seeded
    assert store.find_by_user_and_url("u1", "https://python.org").id == ids["python"]
    assert store.find_by_user_and_url("u2", "https://python.org").id == ids["other"]
    assert store.find_by_user_and_url("u3", "https://python.org") is None


def test_list_is_per_user_and_newest_first(seeded):
    store, ids = seeded
    assert [p.id for p in store.list_pins("u1")] == [ids["news"], ids["rust"], ids["python"]]
    assert [p.id for p in store.list_pins("u1", limit=1, offset=1)] == [ids["rust"]]
    assert store.count_pins("u1") == 3
    assert store.count_pins("u2") == 1


@pytest.mark.parametrize(
    ("pin_filter", "expected"),
    [
        (PinFilter(tag="lang"), {"python", "rust"}),
        (PinFilter(tag=" LANG "), {"python", "rust"}),
        (PinFilter(tag="nope"), set()),
        (PinFilter(read_later=True), {"rust"}),
        (PinFilter(read_later=False), {"python", "news"}),
        (PinFilter(search="PYTHON"), {"python"}),
        (PinFilter(search="news.example"), {"news"}),
        (PinFilter(search="100%"), {"rust"}),
        (PinFilter(search="%"), {"rust"}),
        (PinFilter(tag="lang", read_later=True), {"rust"}),
    ],
)
def test_filters(seeded, pin_filter, expected):
    store, ids = seeded
    by_id = {v: k for k, v in ids.items()}
    assert {by_id[p.id] for p in store.list_pins("u1", pin_filter)} == expected
    assert store.count_pins("u1", pin_filter) == len(expected)


def test_update_replaces_tags(seeded):
    store, ids = seeded
    pin = store.get_pin(ids["python"])
    pin.title = "Python.org"
    pin.tag_names = ["docs"]
    assert store.update_pin(pin) is True
    updated = store.get_pin(ids["python"])
    assert updated.title == "Python.org"
    assert updated.tag_names == ["docs"]
    assert updated.updated_at != updated.created_at

    ghost = _pin(id="missing")
    assert store.update_pin(ghost) is False


def test_delete_pin_keeps_tags(seeded):
    store, ids = seeded
    assert store.delete_pin(ids["python"]) is True
    assert store.get_pin(ids["python"]) is None
    assert "python" in [t.name for t in store.list_tags("u1")]


def test_tag_counts(seeded):
    store, _ids = seeded
    counts = {t.name: t.pin_count for t in store.list_tags_with_counts("u1")}
    assert counts == {"lang": 2, "python": 1}
    filtered = {t.name: t.pin_count for t in store.list_tags_with_counts("u1", PinFilter(read_later=True))}
    assert filtered == {"lang": 1, "python": 0}
    by_tag = {t.name: t.pin_count for t in store.list_tags_with_counts("u1", PinFilter(tag="python"))}
    assert by_tag == {"lang": 1, "python": 1}


def test_create_tag_unique_per_user(pin_store):
    pin_store.create_tag(Tag(user_id="u1", name="go"))
    pin_store.create_tag(Tag(user_id="u2", name="go"))
    with pytest.raises(IntegrityError):
        pin_store.create_tag(Tag(user_id="u1", name="go"))


def test_merge_tags(seeded):
    store, ids = seeded
    target = store.get_tag_by_name("u1", "lang")
    source = store.get_tag_by_name("u1", "python")
    assert store.merge_tags("u1", [source.id, target.id], target.id) == 1
    assert store.get_tag(source.id) is None
    assert store.get_pin(ids["python"]).tag_names == ["lang"]
    assert {t.name: t.pin_count for t in store.list_tags_with_counts("u1")} == {"lang": 2}


def test_delete_tag_and_unused(seeded):
    store, ids = seeded
    store.create_tag(Tag(user_id="u1", name="empty"))
    assert store.delete_unused_tags("u1") == 1
    assert store.get_tag_by_name("u1", "empty") is None

    lang = store.get_tag_by_name("u1", "lang")
    assert store.delete_tag(lang.id) is True
    assert store.get_pin(ids["rust"]).tag_names == []
    assert store.delete_tag(lang.id) is False
