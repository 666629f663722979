"""Bounded view over a filtered result sequence.

Rendering tens of thousands of tweets at once is slow, so callers only
materialize a window of at most ``max_visible`` results. The window is
anchored on a focus year: it opens a quarter window before the first
(most recent) tweet of that year, so a little of the newer content stays
visible above it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

from tweet_memento.errors import InvalidWindowConfigError

logger = logging.getLogger(__name__)

# Upper bound on tweets rendered at once
MAX_VISIBLE = 1000


@dataclass(frozen=True)
class ViewWindow:
    """Slice ``[begin, end)`` of a filtered sequence plus what was left out."""

    begin: int
    end: int
    truncated_before: int
    truncated_after: int

    @property
    def size(self) -> int:
        return self.end - self.begin

    def apply(self, items: Sequence[Any]) -> Sequence[Any]:
        """Return the materialized part of ``items``."""
        return items[self.begin : self.end]


def find_first_in_year(filtered: Sequence[Any], year: int) -> Optional[int]:
    """Index of the first item of ``year``, or None.

    The sequence is newest-first, so this is that year's most recent item.
    """
    for idx, item in enumerate(filtered):
        if item.local_year == year:
            return idx
    return None


def compute_window(
    filtered: Sequence[Any],
    focus_year: Optional[int] = None,
    max_visible: int = MAX_VISIBLE,
    current_year: Optional[int] = None,
) -> ViewWindow:
    """Compute which slice of ``filtered`` to materialize.

    Args:
        filtered: Newest-first results; items need a ``local_year`` attribute.
        focus_year: Year to anchor on. Defaults to ``current_year``.
        max_visible: Upper bound on the window size.
        current_year: Fallback anchor; the local calendar year when omitted.

    Returns:
        The ViewWindow to render.

    Raises:
        InvalidWindowConfigError: If max_visible is not positive.
    """
    if max_visible <= 0:
        raise InvalidWindowConfigError(f"max_visible must be positive, got {max_visible}")

    total = len(filtered)
    if total <= max_visible:
        return ViewWindow(begin=0, end=total, truncated_before=0, truncated_after=0)

    if focus_year is not None:
        target = focus_year
    elif current_year is not None:
        target = current_year
    else:
        target = datetime.now().year

    anchor = find_first_in_year(filtered, target)
    if anchor is None:
        logger.debug("No results in %d, anchoring window at the newest result", target)
        anchor = 0

    begin = max(0, anchor - max_visible // 4)
    end = min(total, begin + max_visible)
    logger.debug("Window [%d, %d) of %d results, focus year %d", begin, end, total, target)
    return ViewWindow(begin=begin, end=end, truncated_before=begin, truncated_after=total - end)
