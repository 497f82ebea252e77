"""Query result -> styled HTML table, ready for headless rendering.

Conditional backgrounds use a three-point gradient anchored at the column's
min, median and max, so the median value stays neutral however skewed the
distribution is.
"""

from __future__ import annotations

import html
import math
import re
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Sequence

from slackcast.schemas.table import ColumnConfig, VizConfig

NULL_PLACEHOLDER = "-"

GREEN = (87, 187, 138)
YELLOW = (254, 208, 102)
RED = (231, 127, 114)
GRADIENT_ALPHA = 0.85
RAMP_MAX_ALPHA = 0.8

NUMERIC_FORMATS = frozenset({"Number", "Currency", "Percent"})

_ISO_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_ALIGN_CLASS = {"Left": "text-left", "Center": "text-center", "Right": "text-right"}


def currency_symbol(currency: str) -> str:
    code = currency.upper()
    if "EUR" in code or "€" in currency:
        return "€"
    if "GBP" in code or "£" in currency:
        return "£"
    return "$"


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        if _ISO_DATETIME_RE.match(value) or _ISO_DATE_RE.match(value):
            try:
                return date.fromisoformat(value[:10])
            except ValueError:
                return None
    return None


def _as_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def format_value(value: Any, config: ColumnConfig) -> str:
    if value is None:
        return NULL_PLACEHOLDER

    as_date = _as_date(value)
    if as_date is not None:
        return f"{as_date.month}/{as_date.day}/{as_date.year}"

    if config.format in NUMERIC_FORMATS:
        number = _as_number(value)
        if number is None:
            return str(value)
        places = config.decimal_places
        if config.format == "Currency":
            return f"{currency_symbol(config.currency)}{number:,.{places}f}"
        if config.format == "Number":
            return f"{number:,.{places}f}"
        return f"{number:.{places}f}%"

    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _interpolate(a: Sequence[int], b: Sequence[int], factor: float) -> tuple[int, ...]:
    return tuple(round(x + factor * (y - x)) for x, y in zip(a, b))


def _three_point(low: Sequence[int], mid: Sequence[int], high: Sequence[int], position: float) -> str:
    if position <= 0.5:
        color = _interpolate(low, mid, position * 2)
    else:
        color = _interpolate(mid, high, (position - 0.5) * 2)
    return f"rgba({color[0]}, {color[1]}, {color[2]}, {GRADIENT_ALPHA})"


def _ramp(alpha: float) -> str:
    return f"rgba({GREEN[0]}, {GREEN[1]}, {GREEN[2]}, {round(alpha, 3):g})"


def background_color(value: Any, config: ColumnConfig, column_values: Iterable[Any]) -> str:
    """CSS background for one cell, or "" when no conditional colour applies."""
    if not config.conditional_formatting or config.format not in NUMERIC_FORMATS:
        return ""
    number = _as_number(value)
    if number is None:
        return ""

    ranked = sorted(n for n in (_as_number(v) for v in column_values) if n is not None)
    if not ranked:
        return ""
    low, high = ranked[0], ranked[-1]
    mid = ranked[len(ranked) // 2]
    if low == high:
        return ""

    if number <= mid:
        position = 0.0 if mid == low else (number - low) / (mid - low) * 0.5
    else:
        position = 0.5 + (number - mid) / (high - mid) * 0.5
    linear = (number - low) / (high - low)

    scale = config.color_scale
    if scale == "Low green, high red":
        return _three_point(GREEN, YELLOW, RED, position)
    if scale == "Low red, high green":
        return _three_point(RED, YELLOW, GREEN, position)
    if scale == "Low green, high white":
        return _ramp((1 - linear) * RAMP_MAX_ALPHA)
    if scale == "Low white, high green":
        alpha = linear * RAMP_MAX_ALPHA
        return "rgba(255, 255, 255, 0)" if alpha == 0 else _ramp(alpha)
    return ""


_STYLE = """
  body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', sans-serif;
         margin: 0; padding: 20px; background-color: #ffffff; }
  .table-container { background-color: white; border-radius: 8px; overflow: hidden;
                     box-shadow: 0 1px 3px rgba(0, 0, 0, 0.1); border: 1px solid #e5e7eb; }
  .table-title { background-color: #f9fafb; padding: 16px 20px; border-bottom: 1px solid #e5e7eb;
                 font-size: 16px; font-weight: 600; color: #374151; margin: 0; }
  table { width: 100%; border-collapse: collapse; font-size: 13px; }
  th { background-color: #B1E4E3; color: #374151; font-weight: 600; padding: 12px 16px;
       border-bottom: 2px solid #9fd3d1; white-space: nowrap; }
  td { padding: 10px 16px; border-bottom: 1px solid #f3f4f6; color: #374151; max-width: 200px;
       overflow: hidden; text-overflow: ellipsis; white-space: nowrap; }
  tr:nth-child(even) { background-color: #f9fafb; }
  .text-left { text-align: left; }
  .text-center { text-align: center; }
  .text-right { text-align: right; font-variant-numeric: tabular-nums; }
"""


def render_table_html(
    rows: Sequence[Mapping[str, Any]] | None,
    viz_config: VizConfig | dict | None = None,
    title: str = "Data Results",
) -> str | None:
    """Render *rows* as an HTML document. None for an empty result."""
    if not rows:
        return None
    if not isinstance(viz_config, VizConfig):
        viz_config = VizConfig.from_json(viz_config)

    headers = list(rows[0].keys())
    configs = {h: viz_config.column(h) for h in headers}
    columns = {h: [row.get(h) for row in rows] for h in headers}

    head_cells = "".join(
        f'<th class="{_ALIGN_CLASS[configs[h].alignment]}">{html.escape(str(h))}</th>' for h in headers
    )

    body_rows = []
    for row in rows:
        cells = []
        for h in headers:
            config = configs[h]
            raw = row.get(h)
            text = html.escape(format_value(raw, config))
            bg = background_color(raw, config, columns[h])
            style = f"background-color: {bg}" if bg else ""
            cells.append(
                f'<td class="{_ALIGN_CLASS[config.alignment]}" style="{style}" title="{text}">{text}</td>'
            )
        body_rows.append(f"<tr>{''.join(cells)}</tr>")

    return (
        "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"UTF-8\">\n"
        f"<style>{_STYLE}</style>\n</head>\n<body>\n"
        '<div class="table-container">\n'
        f'<h3 class="table-title">{html.escape(title)}</h3>\n'
        f"<table>\n<thead><tr>{head_cells}</tr></thead>\n"
        f"<tbody>\n{chr(10).join(body_rows)}\n</tbody>\n</table>\n</div>\n</body>\n</html>\n"
    )
