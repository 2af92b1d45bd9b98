"""
Plotly figures and table rows built from ledger snapshots.

Figures are plain plotly objects with no Streamlit calls.
"""

from typing import Dict, List, Sequence

import plotly.graph_objects as go

from .engine import Region
from .utils import format_mib, get_color


def region_label(region: Region) -> str:
    if region.is_free:
        return "Free"
    return region.owner.program_name


def region_rows(snapshot: Sequence[Region]) -> List[dict]:
    """
    Build table rows for a ledger snapshot.

    Each row has the partition index (current region order), program name,
    used size, free size and the action available for the region.
    """
    rows = []
    for i, region in enumerate(snapshot):
        if region.is_free:
            rows.append({
                "partition": i,
                "program": "-",
                "used_mib": "-",
                "free_mib": format_mib(region.size),
                "status": "Free",
            })
        else:
            rows.append({
                "partition": i,
                "program": region.owner.program_name,
                "used_mib": format_mib(region.size),
                "free_mib": format_mib(0),
                "status": "Protected" if region.reserved else "Running",
            })
    return rows


def ledger_figure(snapshot: Sequence[Region], capacity: float, title: str = "") -> go.Figure:
    """
    Draw the address space as one horizontal stacked bar.

    One trace per region so each keeps its own colour and hover text;
    widths are MiB so the bar spans exactly ``capacity``.
    """
    fig = go.Figure()

    for region in snapshot:
        label = region_label(region)
        hover = f"{label}: {format_mib(region.start)}-{format_mib(region.end)} MiB ({format_mib(region.size)} MiB)"
        fig.add_trace(go.Bar(
            x=[region.size],
            y=["RAM"],
            orientation="h",
            name=label,
            text="" if region.is_free else label,
            marker_color=get_color(not region.is_free, label, region.reserved),
            marker_line=dict(color="white", width=1),
            hovertext=hover,
            hoverinfo="text",
        ))

    fig.update_layout(
        barmode="stack",
        height=140,
        showlegend=False,
        title=title,
        xaxis=dict(range=[0, capacity], title="MiB"),
        yaxis=dict(showticklabels=False),
        margin=dict(l=10, r=10, t=40 if title else 10, b=30),
    )
    return fig


def metrics_figure(metrics_by_variant: Dict[str, dict], labels: Dict[str, str] = None) -> go.Figure:
    """Grouped bars of used vs free MiB for each variant."""
    labels = labels or {}
    names = [labels.get(key, key) for key in metrics_by_variant]

    fig = go.Figure()
    fig.add_trace(go.Bar(
        x=names,
        y=[m["used"] for m in metrics_by_variant.values()],
        name="Used",
    ))
    fig.add_trace(go.Bar(
        x=names,
        y=[m["free"] for m in metrics_by_variant.values()],
        name="Free (fragmentation)",
    ))
    fig.update_layout(barmode="group", height=300, title="Used vs Free per variant")
    return fig
