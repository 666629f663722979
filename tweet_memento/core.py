"""Parsing and normalization of Twitter export entries.

Twitter exports wrap every data file in a pseudo-assignment such as
``window.YTD.tweet.part0 = [ ... ]``. This module strips that wrapper, decodes
the JSON payload and flattens raw post objects into ``CanonicalRecord`` values
that the index is built from.
"""

import copy
import html
import json
import logging
import textwrap
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import chardet
import pandas as pd

from tweet_memento.errors import MalformedExportError, MissingRequiredFieldError

logger = logging.getLogger(__name__)

# Weaker chardet guesses are ignored unless they are UTF-8 anyway
MIN_CHARDET_CONFIDENCE = 0.7
UTF8_COMPATIBLE_ENCODINGS = ("utf-8", "ascii", "utf-8-sig")

ASSIGNMENT_SEPARATOR = " = "

TWITTER_BASE_URL = "https://twitter.com"
# Twitter resolves this path to the right account when the handle is unknown
FALLBACK_STATUS_PATH = "i/web"


@dataclass(frozen=True)
class Account:
    """Owner of the export. Only ``username`` is needed to build permalinks."""

    username: Optional[str] = None
    account_id: Optional[str] = None
    display_name: Optional[str] = None


@dataclass(frozen=True)
class CanonicalRecord:
    """One normalized post. Never mutated once the index holds it."""

    id: str
    display_text: str
    created_at: datetime
    local_year: int
    permalink_url: str
    media_urls: Tuple[str, ...] = ()
    raw_form: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


def detect_and_decode(data: bytes) -> str:
    """Decode an export entry to NFC-normalized text.

    Exports are written as UTF-8; chardet is only consulted for entries that
    fail to decode, and a weak non-UTF-8 guess falls back to UTF-8 with
    replacement characters.
    """
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        guess = chardet.detect(data) or {}
        encoding = guess.get("encoding") or "utf-8"
        if guess.get("confidence", 0) < MIN_CHARDET_CONFIDENCE and encoding.lower() not in UTF8_COMPATIBLE_ENCODINGS:
            logger.debug("Ignoring chardet guess %s (confidence %.2f)", encoding, guess.get("confidence", 0))
            encoding = "utf-8"
        try:
            text = data.decode(encoding, errors="replace")
        except LookupError:
            logger.debug("chardet returned unknown encoding %s", encoding)
            text = data.decode("utf-8", errors="replace")
    return unicodedata.normalize("NFC", text)


def strip_assignment_prefix(text: str) -> str:
    """Return the JSON payload of an export entry.

    Export entries look like ``window.YTD.tweet.part0 = [ ... ]``. Everything
    after the first ``" = "`` is the payload; text without the separator is
    returned unchanged.

    Args:
        text: Raw text of an export entry.

    Returns:
        The payload portion of the text.
    """
    if text and text[0] == "\ufeff":
        text = text[1:]
    separator_index = text.find(ASSIGNMENT_SEPARATOR)
    if separator_index < 0:
        return text
    return text[separator_index + len(ASSIGNMENT_SEPARATOR):]


def parse_export_text(text: str, name: str = "<entry>") -> Any:
    """Parse the text of an export entry into Python data.

    Args:
        text: Entry text, with or without the assignment prefix.
        name: Entry name, used in error messages.

    Returns:
        The decoded JSON value (usually a list of dicts).

    Raises:
        MalformedExportError: If the payload is not valid JSON.
    """
    payload = strip_assignment_prefix(text)
    try:
        return json.loads(payload)
    except json.JSONDecodeError as jde:
        context = textwrap.shorten(text, width=200, placeholder="...")
        raise MalformedExportError(f"JSON parse error in {name}: {jde}. Sample: {context}") from jde


def parse_export_bytes(data: bytes, name: str = "<entry>") -> Any:
    """Decode and parse the raw bytes of an export entry."""
    return parse_export_text(detect_and_decode(data), name)


def safe_get(d: Dict, *keys, default=None) -> Any:
    """Follow ``keys`` through nested dicts, returning ``default`` on any miss."""
    for key in keys:
        if not isinstance(d, dict) or key not in d:
            return default
        d = d[key]
    return d


def parse_account(payload: Any) -> Account:
    """Build an Account from a parsed ``account.js`` payload.

    Accepts the export's ``[{"account": {...}}]`` list as well as a bare
    ``{"account": {...}}`` or account dict. Missing fields are left as None.
    """
    if isinstance(payload, list):
        payload = payload[0] if payload else {}
    if not isinstance(payload, dict):
        return Account()
    info = payload.get("account", payload)
    if not isinstance(info, dict):
        return Account()

    username = info.get("username") or info.get("screen_name")
    account_id = info.get("accountId") or info.get("id_str")
    return Account(
        username=str(username) if username else None,
        account_id=str(account_id) if account_id else None,
        display_name=info.get("accountDisplayName") or info.get("name"),
    )


def parse_created_at(value: Any) -> datetime:
    """Parse a tweet timestamp into an aware UTC datetime.

    Twitter exports use two formats:
    1. "Wed Nov 15 12:00:45 +0000 2023" (tweet.created_at)
    2. "2023-11-15T12:30:45.000Z" (noteTweet.createdAt and newer dumps)

    Raises:
        MissingRequiredFieldError: If the value is absent or unparsable.
    """
    if not isinstance(value, str) or not value.strip():
        raise MissingRequiredFieldError("created_at")
    # pandas reads "now" and "today" as the current time
    if not any(ch.isdigit() for ch in value):
        raise MissingRequiredFieldError("created_at", f"Unparsable created_at {value!r}")
    try:
        ts = pd.to_datetime(value, format="mixed", utc=True)
    except (ValueError, TypeError, OverflowError) as e:
        raise MissingRequiredFieldError("created_at", f"Unparsable created_at {value!r}: {e}") from e
    if pd.isna(ts):
        raise MissingRequiredFieldError("created_at", f"Unparsable created_at {value!r}")
    return ts.to_pydatetime()


def build_permalink(account: Optional[Account], tweet_id: str) -> str:
    """Build the public URL of a tweet."""
    handle = account.username if account is not None and account.username else FALLBACK_STATUS_PATH
    return f"{TWITTER_BASE_URL}/{handle}/status/{tweet_id}"


def extract_media_urls(rec: Dict) -> Tuple[str, ...]:
    """Collect attachment URLs in export order.

    ``extended_entities`` lists every attachment; ``entities.media`` only the
    first one, so it is used only when extended entities are absent.
    """
    media = safe_get(rec, "extended_entities", "media") or safe_get(rec, "entities", "media") or []
    urls = []
    for item in media:
        if not isinstance(item, dict):
            continue
        url = item.get("media_url_https") or item.get("media_url")
        if url:
            urls.append(url)
    return tuple(urls)


def normalize_record(raw: Dict, account: Optional[Account] = None) -> CanonicalRecord:
    """Flatten one raw export record into a CanonicalRecord.

    Args:
        raw: A post object, either bare or wrapped as ``{"tweet": {...}}``.
        account: Export owner, used for the permalink.

    Returns:
        The normalized record.

    Raises:
        MissingRequiredFieldError: If id, text or timestamp is absent or invalid.
    """
    if not isinstance(raw, dict):
        raise MissingRequiredFieldError("tweet", f"Expected a JSON object, got {type(raw).__name__}")
    rec = raw.get("tweet") if isinstance(raw.get("tweet"), dict) else raw

    tweet_id = rec.get("id_str") or rec.get("id")
    if tweet_id is None or str(tweet_id) == "":
        raise MissingRequiredFieldError("id_str")
    tweet_id = str(tweet_id)

    text_val = rec.get("full_text")
    if text_val is None:
        text_val = rec.get("text")
    if not isinstance(text_val, str):
        raise MissingRequiredFieldError("full_text")

    created = parse_created_at(rec.get("created_at"))

    return CanonicalRecord(
        id=tweet_id,
        display_text=html.unescape(text_val),
        created_at=created,
        local_year=created.astimezone().year,
        permalink_url=build_permalink(account, tweet_id),
        media_urls=extract_media_urls(rec),
        raw_form=copy.deepcopy(raw),
    )
