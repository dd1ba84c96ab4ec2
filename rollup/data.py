from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, Mapping, Optional

import pandas as pd

from rollup.errors import ConfigurationMissing
from rollup.filters import DashboardFilters, Viewer, normalize_filters, scope_sm_name
from rollup.hierarchy import build_hierarchy, load_entities, scope_hierarchy
from rollup.layout import LAYOUTS, SheetLayout
from rollup.source import SheetSource

logger = logging.getLogger(__name__)

# Ranges each page needs; hierarchy-based pages share the first two.
PAGE_RANGES: Dict[str, tuple] = {
    "hierarchy": ("targets", "revenue"),
    "revenue": ("targets", "revenue"),
    "underperformers": ("targets", "revenue"),
    "quality": ("quality",),
    "customer_rating": ("quality",),
    "dietitian_gaps": ("gaps", "key_mapping"),
    "key_mapping": ("key_mapping",),
}


def resolve_layouts(range_names: Optional[Mapping[str, str]] = None) -> Dict[str, SheetLayout]:
    """Layouts with configured range names; a blank configured name is an error."""
    overrides = dict(range_names or {})
    out: Dict[str, SheetLayout] = {}
    for key, layout in LAYOUTS.items():
        name = overrides.get(key, layout.range_name)
        if not name or not str(name).strip():
            raise ConfigurationMissing(f"ranges.{key}")
        out[key] = layout.with_range(str(name).strip())
    return out


def load_dashboard_data(
    source: SheetSource,
    *,
    include: Iterable[str],
    today: date,
    range_names: Optional[Mapping[str, str]] = None,
) -> Dict[str, object]:
    """Fetch the requested ranges and shape each into a named-column frame.

    Configuration is validated before anything is fetched. A failing fetch
    propagates as ``SourceUnavailable``; no partial context is returned.
    """
    layouts = resolve_layouts(range_names)
    keys = list(dict.fromkeys(include))
    unknown = [k for k in keys if k not in layouts]
    if unknown:
        raise ConfigurationMissing(f"ranges.{unknown[0]}", "unknown range key")
    if today is None:
        raise ConfigurationMissing("today")

    wanted = [layouts[k] for k in keys]
    raw = source.fetch_ranges([layout.range_name for layout in wanted])

    data_ctx: Dict[str, object] = {"today": today, "ranges": {l.key: l.range_name for l in wanted}}
    row_counts: Dict[str, int] = {}
    for layout in wanted:
        frame = layout.to_frame(raw.get(layout.range_name, []))
        data_ctx[layout.key] = frame
        row_counts[layout.key] = int(len(frame))
    data_ctx["row_counts"] = row_counts
    logger.info("Loaded ranges %s", row_counts)
    return data_ctx


def prepare_context(
    filters: dict | DashboardFilters,
    data_ctx: Dict[str, object],
    viewer: Optional[Viewer] = None,
) -> Dict[str, object]:
    filt = filters if isinstance(filters, DashboardFilters) else normalize_filters(filters)
    viewer = viewer or Viewer()
    today: date = data_ctx["today"]  # type: ignore[assignment]
    scope = scope_sm_name(filt, viewer)

    ctx: Dict[str, object] = {
        "filters": filt,
        "viewer": viewer,
        "today": today,
        "scope_sm": scope,
        "row_counts": data_ctx.get("row_counts", {}),
    }

    targets: Optional[pd.DataFrame] = data_ctx.get("targets")  # type: ignore[assignment]
    if targets is not None:
        revenue: pd.DataFrame = data_ctx.get("revenue", LAYOUTS["revenue"].to_frame([]))  # type: ignore[assignment]
        hierarchy = load_entities(targets, revenue, today)
        if scope is not None:
            hierarchy = scope_hierarchy(hierarchy, scope)
        ctx["hierarchy"] = hierarchy
        ctx["tree"] = build_hierarchy(hierarchy.sms, hierarchy.managers, hierarchy.ams, hierarchy.ems)

    for key in ("quality", "gaps", "key_mapping"):
        if key in data_ctx:
            ctx[key] = data_ctx[key]
    return ctx
