"""
Rankings and Plotly Charts
"""
from typing import List, Optional, Sequence

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

import config
from data_manager import EntityValue, HistoryPoint
from map_utils import Statistics

RANKING_MODES = ("top", "bottom", "around-median")

# --- RANKINGS ---
def rank_entities(
    data: Sequence[EntityValue],
    mode: str = "top",
    count: int = config.DEFAULT_RANKING_COUNT,
    median: Optional[float] = None,
) -> List[EntityValue]:
    """
    Entities with values, ordered for display.
    top: highest first. bottom: lowest first.
    around-median: a window of `count` entities (highest first) centered on the median.
    """
    if mode not in RANKING_MODES:
        raise ValueError(f"Unknown ranking mode: {mode}")

    valid = sorted((item for item in data if item.value is not None), key=lambda item: item.value, reverse=True)

    if mode == "top":
        return valid[:count]
    if mode == "bottom":
        return list(reversed(valid))[:count]

    if median is None or not valid:
        return []
    median_index = next((i for i, item in enumerate(valid) if item.value <= median), len(valid))
    start = max(0, median_index - count // 2)
    return valid[start:start + count]


def to_frame(data: Sequence[EntityValue]) -> pd.DataFrame:
    return pd.DataFrame(
        [{"Entity": item.entity_name, "Value": item.value} for item in data],
        columns=["Entity", "Value"],
    )


# --- VISUALIZATION HELPERS ---
def create_ranking_chart(ranked: Sequence[EntityValue], parameter_name: str, year: Optional[int]):
    """Bar chart of ranked entities."""
    df_plot = to_frame(ranked)
    title = f"{parameter_name} ({year})" if year else parameter_name

    fig = px.bar(
        df_plot,
        x="Entity",
        y="Value",
        title=title,
        labels={"Entity": "", "Value": parameter_name},
        color="Value",
        color_continuous_scale="Blues",
    )
    fig.update_layout(height=450, xaxis_tickangle=-45, showlegend=False)
    return fig


def create_share_pie(ranked: Sequence[EntityValue], parameter_name: str):
    """Pie chart of each ranked entity's share of the shown total."""
    df_plot = to_frame(ranked)
    fig = px.pie(
        df_plot,
        names="Entity",
        values="Value",
        title=parameter_name,
        color_discrete_sequence=px.colors.qualitative.Set2,
    )
    fig.update_layout(height=450)
    return fig


def create_history_chart(
    history: Sequence[HistoryPoint],
    entity_name: str,
    parameter_name: str,
    trend: Optional[dict] = None,
    stats: Optional[Statistics] = None,
):
    """Line chart of an entity's values across years, with the linear trend projection if given."""
    df_plot = pd.DataFrame(
        [{"Year": point.year, "Value": point.value} for point in history],
        columns=["Year", "Value"],
    )

    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=df_plot["Year"],
        y=df_plot["Value"],
        mode="lines+markers",
        name=entity_name,
        connectgaps=False,
    ))

    if trend is not None and not df_plot.empty:
        first_year = int(df_plot["Year"].min())
        years = [first_year, trend["next_year"]]
        fig.add_trace(go.Scatter(
            x=years,
            y=[trend["slope"] * year + trend["intercept"] for year in years],
            mode="lines",
            name="Trend",
            line={"dash": "dash"},
        ))

    if stats is not None and stats.avg is not None:
        fig.add_hline(y=stats.avg, line_dash="dot", annotation_text="Povprečje")

    fig.update_layout(
        height=400,
        title=f"{entity_name}: {parameter_name}",
        xaxis_title="Leto",
        yaxis_title=parameter_name,
        xaxis={"dtick": 1},
    )
    return fig
