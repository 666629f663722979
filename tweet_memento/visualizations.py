"""Chart generation for the per-year histogram.

This module renders ``year_histogram`` buckets with Plotly for both the CLI's
HTML output and the web API.
"""

from typing import Optional, Sequence

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import plotly.io as pio

from tweet_memento.index import YearBucket


def create_year_histogram_chart(
    buckets: Sequence[YearBucket], query: str = ""
) -> Optional[go.Figure]:
    """Create a bar chart of tweet counts per year.

    Args:
        buckets: Year buckets, newest first.
        query: Active search query, shown in the title.

    Returns:
        Plotly Figure or None if there are no buckets.
    """
    if not buckets:
        return None

    df = pd.DataFrame([{"year": str(b.year), "count": b.count} for b in buckets])
    title = f'Tweets per Year matching "{query}"' if query else "Tweets per Year"

    fig = px.bar(df, x="year", y="count", title=title)
    # newest year on the left, matching the year menu
    fig.update_xaxes(type="category", categoryorder="array", categoryarray=list(df["year"]))
    return fig


def get_chart_html(fig: go.Figure, include_plotlyjs: bool = False) -> str:
    """Get HTML representation of a chart for embedding.

    Args:
        fig: Plotly Figure.
        include_plotlyjs: Whether to include Plotly.js library.

    Returns:
        HTML string.
    """
    return pio.to_html(
        fig,
        full_html=False,
        include_plotlyjs="cdn" if include_plotlyjs else False,
    )
