"""Unit tests for core/pagination.py."""

import pytest

from core.pagination import Pagination


def test_defaults():
    p = Pagination.from_total_count(60)
    assert (p.page, p.page_size, p.offset, p.total_pages) == (1, 25, 0, 3)
    assert p.has_next is True
    assert p.has_previous is False


def test_last_page():
    p = Pagination.from_total_count(60, page=3, page_size=25)
    assert p.offset == 50
    assert p.has_next is False
    assert p.has_previous is True


def test_empty_collection_has_one_page():
    p = Pagination.from_total_count(0)
    assert p.total_pages == 1
    assert p.has_next is False


@pytest.mark.parametrize(
    ("page", "page_size", "expected_page", "expected_size"),
    [(0, 10, 1, 10), (-5, 10, 1, 10), (1, 0, 1, 1), (1, 1000, 1, 100)],
)
def test_out_of_range_inputs_are_clamped(page, page_size, expected_page, expected_size):
    p = Pagination.from_total_count(10, page=page, page_size=page_size)
    assert p.page == expected_page
    assert p.page_size == expected_size
