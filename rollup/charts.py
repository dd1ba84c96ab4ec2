from __future__ import annotations

from typing import Any, Dict, List

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

PERIOD_LABELS = {"y": "Yesterday", "w": "WTD", "m": "MTD"}


def to_vega_spec(chart: alt.TopLevelMixin) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def achievement_chart(rows: List[Dict[str, Any]], *, title: str = "Senior Manager") -> Dict[str, Any]:
    """Grouped bars of % achieved per node and period, with a 100% reference line.

    ``rows`` are records with ``name``, ``period`` (y/w/m) and ``pct``.
    """
    if not rows:
        return {}
    df = pd.DataFrame(rows)
    df["period_label"] = df["period"].map(PERIOD_LABELS).fillna(df["period"])
    hover = alt.selection_point(fields=["period_label"], on="mouseover", empty="all")
    bars = (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("name:N", sort=None, title=title, axis=alt.Axis(labelAngle=-30)),
            xOffset=alt.XOffset("period_label:N", sort=list(PERIOD_LABELS.values())),
            y=alt.Y("pct:Q", title="% achieved", axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color("period_label:N", title="Period", sort=list(PERIOD_LABELS.values())),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.3)),
            tooltip=["name", alt.Tooltip("period_label", title="Period"), alt.Tooltip("pct:Q", format=".0f")],
        )
        .add_params(hover)
        .properties(height=260)
    )
    target_line = alt.Chart(pd.DataFrame({"pct": [100]})).mark_rule(strokeDash=[4, 4]).encode(y="pct:Q")
    return to_vega_spec(bars + target_line)
