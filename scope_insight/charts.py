"""
Deterministic AnalysisResult -> Plotly figure conversion (no LLM involved).

The browser renders the returned {"data": [...], "layout": {...}} with
Plotly.newPlot as-is.
"""

from typing import Any, Dict, List

from .schemas import AnalysisResult

PIE_COLORS = ["#0088FE", "#00C49F", "#FFBB28", "#FF8042", "#8884d8"]
BAR_COLOR = "#0ea5e9"
LINE_COLOR = "#8b5cf6"


def result_to_plotly(result: AnalysisResult) -> Dict[str, Any]:
    names = [p.name for p in result.chart_data]
    values = [p.value for p in result.chart_data]

    layout: Dict[str, Any] = {
        "title": {"text": result.chart_title},
        "margin": {"l": 40, "r": 20, "t": 50, "b": 40},
    }

    if result.chart_type == "pie":
        colors = [PIE_COLORS[i % len(PIE_COLORS)] for i in range(len(values))]
        data: List[Dict[str, Any]] = [
            {
                "type": "pie",
                "labels": names,
                "values": values,
                "marker": {"colors": colors},
                "textinfo": "label+percent",
            }
        ]
        layout["showlegend"] = True
        return {"data": data, "layout": layout}

    # category, when present, becomes hover text
    hover = [p.category or "" for p in result.chart_data]
    if result.chart_type == "line":
        trace = {
            "type": "scatter",
            "mode": "lines+markers",
            "name": result.chart_title,
            "x": names,
            "y": values,
            "line": {"color": LINE_COLOR, "width": 3, "shape": "spline"},
        }
    else:
        trace = {
            "type": "bar",
            "name": result.chart_title,
            "x": names,
            "y": values,
            "marker": {"color": BAR_COLOR},
        }
    if any(hover):
        trace["text"] = hover

    layout["xaxis"] = {"automargin": True}
    layout["yaxis"] = {"automargin": True}
    return {"data": [trace], "layout": layout}
