from __future__ import annotations

from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd

from core.chart_config import ChartConfig

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def _value_title(config: ChartConfig) -> str:
    measure = config.measure
    if measure is None:
        return "Value"
    if measure.op == "COUNT" or not measure.field:
        return "Count"
    return f"{measure.op.capitalize()} of {measure.field}"


def build_chart_spec(config: ChartConfig, rows: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Vega-Lite spec for aggregated ``{"name", "value"}`` rows; None for table widgets."""
    if config.is_table:
        return None
    df = pd.DataFrame(rows, columns=["name", "value"])
    # Keep the engine's row order on the category axis.
    order = df["name"].astype(str).tolist()
    name_title = config.dimension or "Name"
    value_title = _value_title(config)
    tooltip = [alt.Tooltip("name:N", title=name_title), alt.Tooltip("value:Q", title=value_title, format=",.2f")]
    base = alt.Chart(df)

    if config.type in {"pie", "donut"}:
        chart = base.mark_arc(innerRadius=60 if config.type == "donut" else 0).encode(
            theta=alt.Theta("value:Q", stack=True),
            color=alt.Color("name:N", title=name_title, sort=order),
            tooltip=tooltip,
        )
    elif config.type == "scatter":
        chart = base.mark_point(filled=True, size=80).encode(
            x=alt.X("name:N", title=name_title, sort=order),
            y=alt.Y("value:Q", title=value_title),
            tooltip=tooltip,
        )
    elif config.type in {"line", "area"}:
        mark = base.mark_line(point=True) if config.type == "line" else base.mark_area(line=True, opacity=0.4)
        chart = mark.encode(
            x=alt.X("name:N", title=name_title, sort=order, axis=alt.Axis(grid=False)),
            y=alt.Y("value:Q", title=value_title, axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
            tooltip=tooltip,
        )
    elif config.type == "stackedBar":
        chart = base.mark_bar().encode(
            x=alt.X("value:Q", title=value_title, stack="zero"),
            color=alt.Color("name:N", title=name_title, sort=order),
            tooltip=tooltip,
        )
    else:
        hover = alt.selection_point(fields=["name"], on="mouseover", empty="all")
        chart = (
            base.mark_bar()
            .encode(
                x=alt.X("name:N", title=name_title, sort=order, axis=alt.Axis(grid=False)),
                y=alt.Y("value:Q", title=value_title, axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
                opacity=alt.condition(hover, alt.value(1), alt.value(0.6)),
                tooltip=tooltip,
            )
            .add_params(hover)
        )
    return to_vega_spec(chart)
