"""Tweet Memento - searchable in-memory index of a Twitter archive export."""

from tweet_memento.archive import ArchiveReader, IndexHolder, load_tweet_index
from tweet_memento.core import (
    Account,
    CanonicalRecord,
    detect_and_decode,
    strip_assignment_prefix,
    parse_export_text,
    parse_export_bytes,
    parse_account,
    normalize_record,
)
from tweet_memento.errors import (
    MementoError,
    MalformedExportError,
    MissingRequiredFieldError,
    InvalidWindowConfigError,
    ArchiveReadError,
)
from tweet_memento.index import SearchResult, TweetIndex, YearBucket, year_histogram
from tweet_memento.window import MAX_VISIBLE, ViewWindow, compute_window

__version__ = "1.0.0"

__all__ = [
    "Account",
    "CanonicalRecord",
    "detect_and_decode",
    "strip_assignment_prefix",
    "parse_export_text",
    "parse_export_bytes",
    "parse_account",
    "normalize_record",
    "TweetIndex",
    "SearchResult",
    "YearBucket",
    "year_histogram",
    "MAX_VISIBLE",
    "ViewWindow",
    "compute_window",
    "ArchiveReader",
    "IndexHolder",
    "load_tweet_index",
    "MementoError",
    "MalformedExportError",
    "MissingRequiredFieldError",
    "InvalidWindowConfigError",
    "ArchiveReadError",
]
