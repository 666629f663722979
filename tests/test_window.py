#!/usr/bin/env python3
"""Tests for the bounded view window."""

import sys
from collections import namedtuple
from datetime import datetime
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from tweet_memento.core import Account
from tweet_memento.errors import InvalidWindowConfigError
from tweet_memento.index import TweetIndex
from tweet_memento.window import MAX_VISIBLE, ViewWindow, compute_window, find_first_in_year
from generate_test_archive import generate_synthetic_tweets, make_tweet

Item = namedtuple("Item", ["id", "local_year"])


def make_items(years):
    """Newest-first items, one per entry in ``years``."""
    return [Item(str(i), year) for i, year in enumerate(years)]


def test_small_sequence_is_fully_visible():
    """Two records fit in the window with nothing truncated."""
    index = TweetIndex.build(
        Account(username="u"),
        [
            make_tweet("2", "older", datetime(2019, 6, 1, 12, 0)),
            make_tweet("1", "newer", datetime(2020, 6, 1, 12, 0)),
        ],
    )
    results = index.search("")

    window = compute_window(results, focus_year=None, max_visible=500)

    assert window == ViewWindow(begin=0, end=2, truncated_before=0, truncated_after=0)
    assert [r.id for r in window.apply(results)] == ["1", "2"]


def test_window_anchors_on_focus_year():
    """2,000 tweets over 2015-2023 focused on 2018."""
    index = TweetIndex.build(Account(username="u"), generate_synthetic_tweets(2000, 2015, 2023))
    results = index.search("")
    first_2018 = next(i for i, r in enumerate(results) if r.local_year == 2018)

    window = compute_window(results, focus_year=2018, max_visible=500)

    assert window.begin == max(0, first_2018 - 125)
    assert window.size == 500
    assert results[window.begin].local_year <= 2019
    assert window.truncated_before == window.begin
    assert window.truncated_after == len(results) - window.end
    assert any(r.local_year == 2018 for r in window.apply(results))
    print(f"✓ Window [{window.begin}, {window.end}) around first 2018 tweet at {first_2018}")


def test_window_opens_quarter_window_before_anchor():
    items = make_items([2023] * 300 + [2022] * 300 + [2021] * 400)

    window = compute_window(items, focus_year=2022, max_visible=100)

    assert window == ViewWindow(begin=275, end=375, truncated_before=275, truncated_after=625)


def test_window_clamps_at_start():
    items = make_items([2023] * 10 + [2022] * 990)

    window = compute_window(items, focus_year=2022, max_visible=100)

    assert window.begin == 0
    assert window.end == 100


def test_window_clamps_at_end():
    items = make_items([2023] * 950 + [2022] * 50)

    window = compute_window(items, focus_year=2022, max_visible=200)

    assert window.begin == 900
    assert window.end == 1000
    assert window.truncated_after == 0
    assert window.size == 100


def test_missing_focus_year_falls_back_to_start():
    items = make_items([2023] * 600 + [2022] * 600)

    window = compute_window(items, focus_year=1999, max_visible=500)

    assert window == ViewWindow(begin=0, end=500, truncated_before=0, truncated_after=700)


def test_default_focus_is_current_year():
    items = make_items([2023] * 600 + [2022] * 600)

    assert compute_window(items, max_visible=400, current_year=2022).begin == 500

    this_year = datetime.now().year
    items = make_items([this_year + 1] * 600 + [this_year] * 600)
    assert compute_window(items, max_visible=400).begin == 500


def test_empty_sequence():
    assert compute_window([], focus_year=2020, max_visible=10) == ViewWindow(0, 0, 0, 0)
    assert compute_window([], max_visible=10).apply([]) == []


@pytest.mark.parametrize("max_visible", [0, -1, -500])
def test_invalid_max_visible(max_visible):
    with pytest.raises(InvalidWindowConfigError):
        compute_window(make_items([2020]), max_visible=max_visible)
    with pytest.raises(InvalidWindowConfigError):
        compute_window([], max_visible=max_visible)


@pytest.mark.parametrize("max_visible", [1, 3, 4, 7, 50, 999])
@pytest.mark.parametrize("focus_year", [None, 2015, 2019, 2023, 1990])
def test_window_invariants(max_visible, focus_year):
    """Window sizes and truncation counts always add up."""
    years = [2023 - (i // 37) for i in range(333)]
    items = make_items(years)

    window = compute_window(items, focus_year=focus_year, max_visible=max_visible, current_year=2020)

    assert 0 <= window.begin <= window.end <= len(items)
    assert window.size <= max_visible
    assert window.truncated_before + window.size + window.truncated_after == len(items)
    assert len(window.apply(items)) == window.size


def test_find_first_in_year():
    items = make_items([2021, 2020, 2020, 2019])
    assert find_first_in_year(items, 2020) == 1
    assert find_first_in_year(items, 2018) is None


def test_default_max_visible():
    items = make_items([2020] * (MAX_VISIBLE + 10))
    window = compute_window(items, focus_year=2020)
    assert window.size == MAX_VISIBLE
    assert window.truncated_after == 10
