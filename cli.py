#!/usr/bin/env python3
"""Tweet Memento CLI.

Command-line interface for searching a Twitter archive export (.zip).
Prints the year histogram and a bounded window of matching tweets, and can
export the matches to CSV and the histogram to an HTML chart.
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from markupsafe import escape
from tqdm import tqdm

from tweet_memento.archive import load_tweet_index
from tweet_memento.errors import ArchiveReadError, MalformedExportError
from tweet_memento.index import SearchResult, YearBucket
from tweet_memento.visualizations import create_year_histogram_chart, get_chart_html
from tweet_memento.window import MAX_VISIBLE, ViewWindow, compute_window

# Characters of tweet text shown per result line
PREVIEW_WIDTH = 100


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def format_result_line(result: SearchResult) -> str:
    """Format one search result as a single line."""
    text = " ".join(result.text.split())
    if len(text) > PREVIEW_WIDTH:
        text = text[: PREVIEW_WIDTH - 3] + "..."
    media = f" [{len(result.media_urls)} media]" if result.media_urls else ""
    return f"{result.local_date}  {text}{media}\n    {result.url}"


def format_histogram(buckets: Sequence[YearBucket]) -> str:
    """Render year buckets as text, one year per line."""
    if not buckets:
        return "  (no tweets)"
    width = len(f"{max(b.count for b in buckets):,}")
    return "\n".join(f"  {b.year}: {b.count:>{width},}" for b in buckets)


def generate_html_report(
    query: str,
    buckets: Sequence[YearBucket],
    chart_html: str,
    visible: Sequence[SearchResult],
    window: ViewWindow,
    timestamp: str,
) -> str:
    """Generate an HTML page with the histogram chart and the visible tweets.

    Args:
        query: Active search query.
        buckets: Year buckets for the query.
        chart_html: Embedded chart HTML (may be empty).
        visible: Results inside the window.
        window: The window the results were cut with.
        timestamp: Timestamp string for the report.

    Returns:
        HTML string.
    """
    year_rows = "\n".join(
        f"<tr><td>{b.year}</td><td>{b.count:,}</td></tr>" for b in buckets
    )
    tweet_items = "\n".join(
        f'<li><span class="date">{escape(r.local_date)}</span> '
        f'<a href="{escape(r.url)}">{escape(r.text)}</a></li>'
        for r in visible
    )
    before = f"<p class=\"truncated\">{window.truncated_before:,} newer tweets not shown</p>" if window.truncated_before else ""
    after = f"<p class=\"truncated\">{window.truncated_after:,} older tweets not shown</p>" if window.truncated_after else ""

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Tweet Memento</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            max-width: 1000px;
            margin: 0 auto;
            padding: 20px;
        }}
        h1, h2 {{
            color: #1da1f2;
        }}
        .date, .truncated, .timestamp {{
            color: #666;
        }}
    </style>
</head>
<body>
    <h1>Tweet Memento</h1>
    <p class="timestamp">Generated: {escape(timestamp)} | Query: {escape(query) or "(all)"}</p>

    <h2>Years</h2>
    <table>
        <thead><tr><th>Year</th><th>Tweets</th></tr></thead>
        <tbody>{year_rows}</tbody>
    </table>
    {chart_html}

    <h2>Tweets</h2>
    {before}
    <ul>{tweet_items}</ul>
    {after}
</body>
</html>"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Search a Twitter archive export and show matching tweets by year.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s twitter-2023.zip
  %(prog)s -q "coffee" twitter-2023.zip
  %(prog)s -q "coffee" --focus-year 2018 --max-visible 200 twitter-2023.zip
  %(prog)s --csv --chart -o ./exports twitter-2023.zip
        """,
    )
    parser.add_argument("archive", help="Twitter export .zip file")
    parser.add_argument(
        "-q",
        "--query",
        default="",
        help="Case-sensitive substring to search for (default: all tweets)",
    )
    parser.add_argument(
        "--focus-year",
        type=int,
        metavar="YEAR",
        help="Year to anchor the visible window on (default: current year)",
    )
    parser.add_argument(
        "--max-visible",
        type=int,
        default=MAX_VISIBLE,
        metavar="N",
        help=f"Maximum number of tweets to show (default: {MAX_VISIBLE})",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        default="exports",
        help="Output directory for --csv and --chart (default: exports)",
    )
    parser.add_argument(
        "--csv",
        action="store_true",
        help="Export all matching tweets to CSV",
    )
    parser.add_argument(
        "--chart",
        action="store_true",
        help="Write an HTML page with the per-year chart and visible tweets",
    )
    parser.add_argument(
        "--show-raw",
        metavar="TWEET_ID",
        help="Print the raw export JSON of one tweet and exit",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Print verbose output",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if args.max_visible <= 0:
        print("Error: --max-visible must be a positive integer", file=sys.stderr)
        return 1

    archive_path = Path(args.archive)
    if not archive_path.exists():
        print(f"Error: File not found: {archive_path}", file=sys.stderr)
        return 1

    print(f"Loading {archive_path.name}...")
    pbar = tqdm(desc="Indexing", unit="tweet", disable=not sys.stderr.isatty())

    def progress_callback(current, total, message):
        """Update progress bar."""
        if pbar.total != total:
            pbar.total = total
        pbar.update(current - pbar.n)

    try:
        index = load_tweet_index(archive_path, progress_callback=progress_callback)
    except (ArchiveReadError, MalformedExportError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        pbar.close()

    print(f"Indexed {index.count():,} tweets" + (f" for @{index.account.username}" if index.account.username else ""))
    if index.skipped_count:
        print(f"Warning: skipped {index.skipped_count:,} record(s) missing id, text or timestamp", file=sys.stderr)

    if args.show_raw:
        result = index.get(args.show_raw)
        if result is None:
            print(f"Error: No tweet with id {args.show_raw}", file=sys.stderr)
            return 1
        print(result.url)
        print(result.json)
        return 0

    results = index.search(args.query)
    buckets = index.year_histogram(results)
    window = compute_window(results, focus_year=args.focus_year, max_visible=args.max_visible)
    visible = window.apply(results)

    if args.query:
        print(f"{len(results):,} of {index.count():,} tweets match {args.query!r}")

    print("\nYears:")
    print(format_histogram(buckets))

    print(f"\nShowing tweets {window.begin + 1:,}-{window.end:,} of {len(results):,}:" if results else "\nNo tweets to show.")
    if window.truncated_before:
        print(f"  ... {window.truncated_before:,} newer tweets not shown")
    for result in visible:
        print(format_result_line(result))
    if window.truncated_after:
        print(f"  ... {window.truncated_after:,} older tweets not shown")

    if args.csv or args.chart:
        output_dir = Path(args.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        print(f"\nExporting to {output_dir}/...")

        if args.csv:
            csv_path = output_dir / f"tweets_{timestamp}.csv"
            index.to_dataframe(results).to_csv(csv_path, index=False)
            print(f"  - {csv_path}")

        if args.chart:
            fig = create_year_histogram_chart(buckets, query=args.query)
            chart_html = get_chart_html(fig, include_plotlyjs=True) if fig is not None else ""
            html_path = output_dir / f"memento_{timestamp}.html"
            html_report = generate_html_report(args.query, buckets, chart_html, visible, window, timestamp)
            with open(html_path, "w", encoding="utf-8") as f:
                f.write(html_report)
            print(f"  - {html_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
