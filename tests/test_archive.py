#!/usr/bin/env python3
"""Tests for reading export archives and swapping loaded indexes.

This test suite validates:
- Locating account and tweet entries inside the ZIP
- Error reporting for corrupt archives, missing entries and bad JSON
- Atomic, last-write-wins replacement of the loaded index
"""

import io
import sys
import zipfile
from datetime import datetime
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from tweet_memento.archive import ArchiveReader, IndexHolder, load_tweet_index
from tweet_memento.errors import ArchiveReadError, MalformedExportError
from generate_test_archive import (
    build_archive_bytes,
    build_export_entry,
    generate_synthetic_tweets,
    make_tweet,
)


def sample_tweets():
    return [
        make_tweet("1", "first &amp; oldest", datetime(2016, 6, 1, 12, 0)),
        make_tweet("2", "second", datetime(2019, 6, 1, 12, 0)),
        make_tweet("3", "third", datetime(2017, 6, 1, 12, 0)),
    ]


def test_load_from_bytes():
    """A standard export ZIP loads into a sorted index."""
    data = build_archive_bytes(sample_tweets())

    index = load_tweet_index(data)

    assert index.count() == 3
    assert index.account.username == "memento_user"
    assert [r.id for r in index.records] == ["2", "3", "1"]
    assert index.records[-1].display_text == "first & oldest"
    assert index.search("")[0].url == "https://twitter.com/memento_user/status/2"
    print(f"✓ Loaded {index.count()} tweets from in-memory archive")


def test_load_from_path_and_file_object(tmp_path):
    data = build_archive_bytes(sample_tweets())
    archive_path = tmp_path / "twitter-export.zip"
    archive_path.write_bytes(data)

    assert load_tweet_index(archive_path).count() == 3
    assert load_tweet_index(str(archive_path)).count() == 3
    with open(archive_path, "rb") as f:
        assert load_tweet_index(f).count() == 3


def test_load_root_level_legacy_entries():
    """Older exports keep tweets.js at the archive root."""
    data = build_archive_bytes(sample_tweets(), posts_entry="tweets.js", account_entry="account.js")

    index = load_tweet_index(data)

    assert index.count() == 3


def test_load_without_username_uses_fallback_permalink():
    data = build_archive_bytes(sample_tweets(), username=None)

    index = load_tweet_index(data)

    assert index.account.username is None
    assert index.search("second")[0].url == "https://twitter.com/i/web/status/2"


def test_load_counts_skipped_records():
    tweets = sample_tweets() + [make_tweet("4", "no date", None)]

    index = load_tweet_index(build_archive_bytes(tweets))

    assert index.count() == 3
    assert index.skipped_count == 1


def test_missing_posts_entry():
    data = build_archive_bytes([], posts_entry=None)
    with pytest.raises(ArchiveReadError) as excinfo:
        load_tweet_index(data)
    assert "tweet.js" in str(excinfo.value)


def test_missing_account_entry():
    data = build_archive_bytes(sample_tweets(), account_entry=None)
    with pytest.raises(ArchiveReadError):
        load_tweet_index(data)


def test_corrupt_archive():
    with pytest.raises(ArchiveReadError):
        load_tweet_index(b"this is not a zip file")
    with pytest.raises(ArchiveReadError):
        load_tweet_index("/nonexistent/export.zip")


def test_malformed_posts_entry():
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("data/account.js", build_export_entry("account", [{"account": {"username": "u"}}]))
        zf.writestr("data/tweet.js", "window.YTD.tweet.part0 = [{broken")

    with pytest.raises(MalformedExportError):
        load_tweet_index(buffer.getvalue())


def test_posts_entry_must_be_list():
    empty_export = build_archive_bytes([])
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("account.js", build_export_entry("account", []))
        zf.writestr("tweet.js", 'window.YTD.tweet.part0 = "just a string"')

    assert load_tweet_index(empty_export).count() == 0
    with pytest.raises(MalformedExportError):
        load_tweet_index(buffer.getvalue())


def test_archive_reader_entries():
    data = build_archive_bytes(sample_tweets(), extra_entries={"data/like.js": "window.YTD.like.part0 = []"})

    with ArchiveReader(data) as reader:
        assert reader.find_entry(["tweets.js", "tweet.js"]) == "data/tweet.js"
        assert reader.find_entry(["profile.js"]) is None
        assert "data/like.js" in reader.namelist()
        assert reader.read_text("data/like.js") == "window.YTD.like.part0 = []"
        with pytest.raises(ArchiveReadError):
            reader.read_bytes("data/missing.js")


def test_holder_replaces_index_on_load():
    """Loading a new export replaces the previous index."""
    holder = IndexHolder()
    assert not holder.loaded
    assert holder.status() == {"count": 0, "skipped": 0}

    first = holder.load(build_archive_bytes(sample_tweets()))
    assert holder.index is first
    assert holder.status() == {"count": 3, "skipped": 0}

    second = holder.load(build_archive_bytes(generate_synthetic_tweets(20)))
    assert holder.index is second
    assert holder.index.count() == 20


def test_holder_keeps_previous_index_when_load_fails():
    holder = IndexHolder()
    first = holder.load(build_archive_bytes(sample_tweets()))

    with pytest.raises(ArchiveReadError):
        holder.load(b"garbage")

    assert holder.index is first, "Failed load should not replace the current index"


def test_holder_discards_stale_load():
    """An older load finishing after a newer one is discarded."""
    holder = IndexHolder()
    old_index = load_tweet_index(build_archive_bytes(sample_tweets()))
    new_index = load_tweet_index(build_archive_bytes(generate_synthetic_tweets(10)))

    old_ticket = holder.begin_load()
    new_ticket = holder.begin_load()

    assert holder.complete_load(new_ticket, new_index) is True
    assert holder.complete_load(old_ticket, old_index) is False
    assert holder.index is new_index


def test_holder_installs_older_load_that_finishes_first():
    holder = IndexHolder()
    old_index = load_tweet_index(build_archive_bytes(sample_tweets()))
    new_index = load_tweet_index(build_archive_bytes(generate_synthetic_tweets(10)))

    old_ticket = holder.begin_load()
    new_ticket = holder.begin_load()

    assert holder.complete_load(old_ticket, old_index) is True
    assert holder.index is old_index
    assert holder.complete_load(new_ticket, new_index) is True
    assert holder.index is new_index
