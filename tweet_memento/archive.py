"""Loading a Twitter export ZIP into a TweetIndex.

``ArchiveReader`` exposes the named text entries of the export container,
``load_tweet_index`` runs the whole ingestion pipeline, and ``IndexHolder``
keeps the currently visible index for callers that reload exports.
"""

import io
import logging
import os
import posixpath
import threading
import zipfile
from typing import BinaryIO, Callable, Dict, Iterable, Optional, Tuple, Union

from tweet_memento.core import detect_and_decode, parse_account, parse_export_text
from tweet_memento.errors import ArchiveReadError, MalformedExportError
from tweet_memento.index import TweetIndex

logger = logging.getLogger(__name__)

ACCOUNT_ENTRY_NAMES = ("account.js",)
# Exports from 2019 name the posts entry tweet.js, older ones tweets.js
POSTS_ENTRY_NAMES = ("tweet.js", "tweets.js")
ENTRY_DIRECTORIES = ("", "data")

ArchiveSource = Union[bytes, bytearray, str, os.PathLike, BinaryIO]


class ArchiveReader:
    """Read-only view of the named text entries in an export ZIP."""

    def __init__(self, source: ArchiveSource):
        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(source)
        try:
            self._zip = zipfile.ZipFile(source)
        except (zipfile.BadZipFile, OSError, ValueError) as e:
            raise ArchiveReadError(f"Could not open export archive: {e}") from e
        self._names = {info.filename for info in self._zip.infolist() if not info.is_dir()}
        logger.debug("Archive entries: %s", sorted(self._names))

    def __enter__(self) -> "ArchiveReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._zip.close()

    def namelist(self) -> Tuple[str, ...]:
        return tuple(sorted(self._names))

    def find_entry(self, candidates: Iterable[str]) -> Optional[str]:
        """Return the first candidate present at the root or under ``data/``."""
        for name in candidates:
            for directory in ENTRY_DIRECTORIES:
                path = posixpath.join(directory, name) if directory else name
                if path in self._names:
                    return path
        return None

    def read_bytes(self, name: str) -> bytes:
        try:
            return self._zip.read(name)
        except KeyError as e:
            raise ArchiveReadError(f"Entry {name} not found in export archive") from e
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, RuntimeError) as e:
            # RuntimeError: encrypted entry
            raise ArchiveReadError(f"Could not read {name}: {e}") from e

    def read_text(self, name: str) -> str:
        return detect_and_decode(self.read_bytes(name))

    def read_entry(self, candidates: Iterable[str]) -> Tuple[str, str]:
        """Read the first available entry among ``candidates``.

        Returns:
            Tuple of (entry name, decoded text).

        Raises:
            ArchiveReadError: If none of the candidates exist.
        """
        candidates = tuple(candidates)
        name = self.find_entry(candidates)
        if name is None:
            raise ArchiveReadError(
                f"Export archive has no {' or '.join(candidates)} entry"
            )
        return name, self.read_text(name)


def load_tweet_index(
    source: ArchiveSource,
    progress_callback: Optional[Callable[[int, int, str], None]] = None,
) -> TweetIndex:
    """Read an export ZIP and build its TweetIndex.

    Args:
        source: ZIP bytes, a path, or a binary file object.
        progress_callback: Optional callback function(current, total, message).

    Returns:
        The built index.

    Raises:
        ArchiveReadError: If the archive is corrupt or lacks a required entry.
        MalformedExportError: If an entry's payload is not valid JSON.
    """
    with ArchiveReader(source) as reader:
        account_name, account_text = reader.read_entry(ACCOUNT_ENTRY_NAMES)
        posts_name, posts_text = reader.read_entry(POSTS_ENTRY_NAMES)

    logger.info("Loading %s and %s", account_name, posts_name)
    account = parse_account(parse_export_text(account_text, account_name))
    raw_records = parse_export_text(posts_text, posts_name)
    if isinstance(raw_records, dict):
        raw_records = [raw_records]
    if not isinstance(raw_records, list):
        raise MalformedExportError(f"Top-level JSON in {posts_name} must be an array or object.")

    return TweetIndex.build(account, raw_records, progress_callback=progress_callback)


class IndexHolder:
    """The currently visible index, replaced atomically on each load.

    Loads may overlap. Each load takes a ticket from ``begin_load``; its
    result is installed only if no newer load has been installed already, so
    the last completed load wins and stale results are discarded. A failed
    load leaves the current index in place.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._index: Optional[TweetIndex] = None
        self._next_ticket = 0
        self._installed_ticket = -1

    @property
    def index(self) -> Optional[TweetIndex]:
        return self._index

    @property
    def loaded(self) -> bool:
        return self._index is not None

    def begin_load(self) -> int:
        with self._lock:
            ticket = self._next_ticket
            self._next_ticket += 1
            return ticket

    def complete_load(self, ticket: int, index: TweetIndex) -> bool:
        """Install ``index`` unless a newer load already completed.

        Returns:
            True if the index became current.
        """
        with self._lock:
            if ticket < self._installed_ticket:
                logger.info("Discarding load %d, load %d is already installed", ticket, self._installed_ticket)
                return False
            self._index = index
            self._installed_ticket = ticket
            return True

    def load(
        self,
        source: ArchiveSource,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> Optional[TweetIndex]:
        """Load an export and make it current.

        Returns:
            The new index, or None if a newer load won in the meantime.
        """
        ticket = self.begin_load()
        index = load_tweet_index(source, progress_callback=progress_callback)
        return index if self.complete_load(ticket, index) else None

    def status(self) -> Dict[str, int]:
        index = self._index
        if index is None:
            return {"count": 0, "skipped": 0}
        return {"count": index.count(), "skipped": index.skipped_count}
