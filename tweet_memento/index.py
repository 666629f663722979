"""Searchable in-memory immutable index of tweets."""

import json
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from tweet_memento.core import Account, CanonicalRecord, normalize_record
from tweet_memento.errors import MissingRequiredFieldError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchResult:
    """What the presentation layer renders for one tweet."""

    id: str
    text: str
    local_year: int
    local_date: str
    url: str
    media_urls: Tuple[str, ...]
    json: str
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class YearBucket:
    """Number of tweets in one local calendar year."""

    year: int
    count: int


def to_search_result(record: CanonicalRecord) -> SearchResult:
    """Build the display view of a record, including its pretty-printed raw form."""
    return SearchResult(
        id=record.id,
        text=record.display_text,
        local_year=record.local_year,
        local_date=record.created_at.astimezone().strftime("%x"),
        url=record.permalink_url,
        media_urls=record.media_urls,
        json=json.dumps(record.raw_form, indent=2, ensure_ascii=False),
        created_at=record.created_at,
    )


def year_histogram(results: Iterable[Any]) -> List[YearBucket]:
    """Count results per local year, newest year first.

    Works on anything with a ``local_year`` attribute, so both search results
    and canonical records can be aggregated. Pass the filtered results so the
    buckets reflect the active query.
    """
    counts = Counter(result.local_year for result in results)
    return [YearBucket(year=year, count=counts[year]) for year in sorted(counts, reverse=True)]


class TweetIndex:
    """Immutable, newest-first collection of normalized tweets.

    Build one with ``TweetIndex.build``. Records are sorted once at
    construction and never reordered or mutated afterwards, so every derived
    view (search results, histograms, windows) can rely on newest-first order.
    """

    def __init__(self, account: Account, records: Sequence[CanonicalRecord], skipped_count: int = 0):
        self.account = account
        self._records: Tuple[CanonicalRecord, ...] = tuple(records)
        self._results: Tuple[SearchResult, ...] = tuple(to_search_result(r) for r in self._records)
        self._by_id: Dict[str, SearchResult] = {}
        for result in self._results:
            self._by_id.setdefault(result.id, result)
        self.skipped_count = skipped_count

    @classmethod
    def build(
        cls,
        account: Account,
        raw_records: List[Dict],
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> "TweetIndex":
        """Normalize raw export records and sort them newest-first.

        Records missing their id, text or timestamp are skipped and counted
        in ``skipped_count`` instead of aborting the build.

        Args:
            account: Export owner.
            raw_records: Records as decoded from the posts entry.
            progress_callback: Optional callback function(current, total, message).

        Returns:
            A new TweetIndex.
        """
        records = []
        skipped = 0
        total = len(raw_records)

        for idx, raw in enumerate(raw_records):
            if progress_callback and idx % 1000 == 0:
                progress_callback(idx, total, f"Normalizing record {idx:,} of {total:,}...")
            try:
                records.append(normalize_record(raw, account))
            except MissingRequiredFieldError as e:
                skipped += 1
                logger.debug("Skipping record %d: %s", idx, e)

        if progress_callback:
            progress_callback(total, total, "Normalization complete")

        if skipped:
            logger.warning("Skipped %d of %d records with missing id, text or timestamp", skipped, total)

        # sorted() is stable with reverse=True, so ties keep export order
        records = sorted(records, key=lambda r: r.created_at, reverse=True)
        logger.info("Built index of %d tweets", len(records))
        return cls(account, records, skipped_count=skipped)

    @property
    def records(self) -> Tuple[CanonicalRecord, ...]:
        return self._records

    def count(self) -> int:
        """O(1)"""
        return len(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def search(self, query: str) -> List[SearchResult]:
        """Return the tweets whose text contains ``query``, newest first.

        Matching is a case-sensitive substring test over the decoded text.
        An empty query matches every tweet.
        """
        if not query:
            return list(self._results)
        return [
            result
            for record, result in zip(self._records, self._results)
            if query in record.display_text
        ]

    def year_histogram(self, results: Iterable[Any]) -> List[YearBucket]:
        """Per-year counts of ``results`` (usually the output of ``search``), newest year first."""
        return year_histogram(results)

    def get(self, tweet_id: str) -> Optional[SearchResult]:
        """Look up a single tweet for raw inspection."""
        return self._by_id.get(str(tweet_id))

    def to_dataframe(self, results: Optional[Iterable[SearchResult]] = None) -> pd.DataFrame:
        """Tabulate search results (all tweets by default) for CSV export.

        Args:
            results: Search results to include, in the order given.

        Returns:
            DataFrame with one row per result.
        """
        if results is None:
            results = self._results
        rows = []
        for result in results:
            rows.append(
                {
                    "id": result.id,
                    "created_at": result.created_at,
                    "local_year": result.local_year,
                    "local_date": result.local_date,
                    "text": result.text,
                    "url": result.url,
                    "media_urls": " ".join(result.media_urls),
                }
            )
        columns = ["id", "created_at", "local_year", "local_date", "text", "url", "media_urls"]
        df = pd.DataFrame(rows, columns=columns)
        if not df.empty:
            df["created_at"] = pd.to_datetime(df["created_at"], utc=True)
        return df
