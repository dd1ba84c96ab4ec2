from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Iterable, List, Optional, Set

import pandas as pd

from rollup.errors import ConfigurationMissing
from rollup.filters import DashboardFilters
from rollup.hierarchy import HierarchyNode, iter_leaves
from rollup.metrics_revenue import metric
from rollup.parsing import names, numericize, round_half_up

NOT_ASSIGNED = "Not Assigned"

GAP_FIGURES = [
    "days_since_joining",
    "sales_target",
    "sales_achieved",
    "sales_zero_days",
    "sales_pct",
    "commerce_target",
    "commerce_achieved",
    "commerce_zero_days",
]

GAP_OUTPUT_COLUMNS = {
    "dietitian_name": "dietitian_name",
    "sm_name": "sm_name",
    "sales_zero_days": "consecutive_zero_days",
    "sales_target": "sales_target",
    "sales_achieved": "sales_achieved",
    "sales_pct": "percent_achieved",
    "days_since_joining": "days_since_joining",
    "commerce_target": "commerce_target",
    "commerce_achieved": "commerce_achieved",
    "commerce_pct": "commerce_percent_achieved",
    "commerce_zero_days": "commerce_consecutive_zero_days",
}


def find_underperformers(
    tree: Iterable[HierarchyNode],
    threshold_pct: Optional[float],
    sm_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """AM/FLAP leaves at or below ``threshold_pct`` of yesterday's service target."""
    if threshold_pct is None:
        raise ConfigurationMissing("threshold_pct")
    roots = [sm for sm in tree if sm_id is None or sm.id == sm_id]

    out: List[Dict[str, Any]] = []
    seen: Set[str] = set()
    for leaf in iter_leaves(roots):
        if leaf.id in seen:
            continue
        seen.add(leaf.id)
        entity = leaf.entity
        achieved = entity.achieved.service.y
        target = entity.scaled_targets.service.y
        performance = achieved / target * 100 if target > 0 else 0.0
        if performance > threshold_pct:
            continue
        out.append(
            {
                "id": entity.id,
                "name": entity.name,
                "role": entity.role,
                "manager_id": entity.manager_id,
                "sm_id": entity.sm_id,
                "performance_pct": round_half_up(performance, 1),
                "service": {
                    period: metric(entity.achieved.service.get(period), entity.scaled_targets.service.get(period), True)
                    for period in ("y", "w", "m")
                },
            }
        )
    return out


def load_excluded_names(key_mapping_df: Optional[pd.DataFrame]) -> Set[str]:
    if key_mapping_df is None or key_mapping_df.empty:
        return set()
    df = names(key_mapping_df.copy(), ["name"])
    return {n.lower() for n in df["name"].dropna()}


def find_gaps(
    gaps_df: pd.DataFrame,
    excluded_names: Iterable[str] = (),
    min_zero_days: int = 3,
    min_days_since_joining: int = 30,
) -> List[Dict[str, Any]]:
    """Dietitians with a run of zero-sales (or zero-commerce) days.

    A row qualifies when it has a name, has been on board for at least
    ``min_days_since_joining`` days, is not excluded (key-mapping name or an
    exclude flag of YES), and either zero-day streak reaches ``min_zero_days``.
    Longest streak first, then by dietitian and SM name.
    """
    if gaps_df is None or gaps_df.empty:
        return []
    excluded = [n.lower() for n in excluded_names]

    df = names(gaps_df.copy(), ["dietitian_name", "sm_name"])
    df = numericize(df, GAP_FIGURES)

    flag = df["exclude_flag"].fillna("").astype(str).str.strip().str.upper()
    lowered = pd.Series([n.lower() if n else None for n in df["dietitian_name"]], index=df.index, dtype=object)
    is_excluded = lowered.isin(excluded) | (flag == "YES")
    has_issue = (df["sales_zero_days"] >= min_zero_days) | (df["commerce_zero_days"] >= min_zero_days)
    mask = df["dietitian_name"].notna() & ~is_excluded & (df["days_since_joining"] >= min_days_since_joining) & has_issue

    out = df[mask].copy()
    if out.empty:
        return []
    out["sm_name"] = out["sm_name"].fillna(NOT_ASSIGNED)
    out["commerce_pct"] = (
        out["commerce_achieved"].div(out["commerce_target"].where(out["commerce_target"] > 0)).mul(100).fillna(0.0)
    )
    out["_max_zero_days"] = out[["sales_zero_days", "commerce_zero_days"]].max(axis=1)
    out["_name_key"] = out["dietitian_name"].str.casefold()
    out["_sm_key"] = out["sm_name"].str.casefold()
    out = out.sort_values(["_max_zero_days", "_name_key", "_sm_key"], ascending=[False, True, True], kind="mergesort")

    out = out[list(GAP_OUTPUT_COLUMNS)].rename(columns=GAP_OUTPUT_COLUMNS)
    return out.to_dict(orient="records")


def compute_underperformers(
    filters: DashboardFilters,
    ctx: Dict[str, Any],
    *,
    threshold_pct: Optional[float] = None,
) -> Dict[str, Any]:
    threshold = filters.thresholds.underperformer_pct if threshold_pct is None else threshold_pct
    rows = find_underperformers(ctx.get("tree", []), threshold)
    return {
        "filters": asdict(filters),
        "today": ctx.get("today"),
        "threshold_pct": threshold,
        "count": len(rows),
        "underperformers": rows,
    }


def compute_dietitian_gaps(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    excluded = load_excluded_names(ctx.get("key_mapping"))
    gaps = find_gaps(
        ctx.get("gaps", pd.DataFrame()),
        excluded,
        min_zero_days=filters.thresholds.min_zero_days,
        min_days_since_joining=filters.thresholds.min_days_since_joining,
    )
    scope = ctx.get("scope_sm")
    if scope is not None:
        wanted = scope.strip().lower()
        gaps = [g for g in gaps if wanted and g["sm_name"].lower() == wanted]
    return {
        "filters": asdict(filters),
        "count": len(gaps),
        "dietitian_gaps": gaps,
    }


def compute_key_mapping(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    return {"excluded_names": sorted(load_excluded_names(ctx.get("key_mapping")))}
