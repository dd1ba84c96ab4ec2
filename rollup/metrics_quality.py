"""Weight-loss quality and customer-rating metrics.

Both read the Dietitian Quality range. Every row counts toward each entity
named on it (EM, FLAP, AM, M, SM), keyed by the same ids as the hierarchy.
Accumulation and finalization are separate steps: sums and counts live in
an accumulator frame, and only the finished numbers are returned.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

import pandas as pd

from rollup.entities import entity_id
from rollup.filters import DashboardFilters
from rollup.layout import ROLE_NAME_COLUMNS
from rollup.parsing import names, numericize, round_half_up

ON_TRACK_LOSS = -0.5

RATING_FIGURES = ["ytd_csat", "wtd_csat", "latest_csat", "ytd_nps", "mtd_nps"]
RATING_OUTPUT = {
    "ytd_csat": "ytd_avg_csat",
    "wtd_csat": "wtd_avg_csat",
    "latest_csat": "latest_csat",
    "ytd_nps": "ytd_avg_nps",
    "mtd_nps": "mtd_avg_nps",
}

QUALITY_ACCUMULATORS = ["weekly_sum", "weekly_count", "weekly_on_track", "monthly_on_track"]


def _eligible_rows(
    quality_df: pd.DataFrame,
    figures: List[str],
    min_active_clients: float,
    sm_name: Optional[str] = None,
) -> pd.DataFrame:
    df = names(quality_df.copy(), ["customer_id"] + [col for _, col in ROLE_NAME_COLUMNS])
    df = numericize(df, ["active_clients"] + figures)
    df = df[df["active_clients"] >= min_active_clients]
    if sm_name is not None:
        wanted = sm_name.strip().lower()
        df = df[df["sm_name"].map(lambda n: bool(wanted) and n is not None and n.lower() == wanted).astype(bool)]
    return df


def _attribute(df: pd.DataFrame, cols: List[str]) -> pd.DataFrame:
    """One copy of each row per named role, tagged with that entity's id."""
    frames = []
    for role, col in ROLE_NAME_COLUMNS:
        part = df[df[col].notna()]
        if part.empty:
            continue
        part = part.assign(entity_id=part[col].map(lambda n, r=role: entity_id(n, r)))
        frames.append(part[["entity_id"] + cols])
    if not frames:
        return pd.DataFrame(columns=["entity_id"] + cols)
    return pd.concat(frames, ignore_index=True)


def accumulate_quality(
    quality_df: pd.DataFrame,
    min_active_clients: float = 30.0,
    sm_name: Optional[str] = None,
) -> pd.DataFrame:
    empty = pd.DataFrame(columns=["customers"] + QUALITY_ACCUMULATORS)
    if quality_df is None or quality_df.empty:
        return empty
    df = _eligible_rows(quality_df, ["weekly_weight_loss", "monthly_weight_loss"], min_active_clients, sm_name)

    weekly = df["weekly_weight_loss"]
    monthly = df["monthly_weight_loss"]
    df = df[(weekly != 0) | (monthly != 0)]
    if df.empty:
        return empty
    weekly = df["weekly_weight_loss"]
    monthly = df["monthly_weight_loss"]
    df = df.assign(
        weekly_sum=weekly,
        weekly_count=(weekly != 0).astype(int),
        weekly_on_track=((weekly != 0) & (weekly <= ON_TRACK_LOSS)).astype(int),
        monthly_on_track=((monthly != 0) & (monthly <= ON_TRACK_LOSS)).astype(int),
    )

    rows = _attribute(df, ["customer_id"] + QUALITY_ACCUMULATORS)
    if rows.empty:
        return empty
    return rows.groupby("entity_id").agg(
        customers=("customer_id", "nunique"),
        weekly_sum=("weekly_sum", "sum"),
        weekly_count=("weekly_count", "sum"),
        weekly_on_track=("weekly_on_track", "sum"),
        monthly_on_track=("monthly_on_track", "sum"),
    )


def finalize_quality(acc: pd.DataFrame) -> Dict[str, Dict[str, float]]:
    out: Dict[str, Dict[str, float]] = {}
    for key, r in acc.iterrows():
        customers = int(r["customers"])
        count = int(r["weekly_count"])
        out[str(key)] = {
            "avg_weekly_weight_loss": float(r["weekly_sum"]) / count if count > 0 else 0.0,
            "weekly_on_track_pct": round_half_up(r["weekly_on_track"] / customers * 100, 1) if customers > 0 else 0.0,
            "monthly_on_track_pct": round_half_up(r["monthly_on_track"] / customers * 100, 1) if customers > 0 else 0.0,
        }
    return out


def accumulate_customer_rating(
    quality_df: pd.DataFrame,
    min_active_clients: float = 30.0,
    sm_name: Optional[str] = None,
) -> pd.DataFrame:
    acc_cols = [f"{fig}_{part}" for fig in RATING_FIGURES for part in ("sum", "count")]
    if quality_df is None or quality_df.empty:
        return pd.DataFrame(columns=acc_cols)
    df = _eligible_rows(quality_df, RATING_FIGURES, min_active_clients, sm_name)
    df = df[(df[RATING_FIGURES] > 0).any(axis=1)]
    if df.empty:
        return pd.DataFrame(columns=acc_cols)

    parts = {}
    for fig in RATING_FIGURES:
        positive = df[fig] > 0
        parts[f"{fig}_sum"] = df[fig].where(positive, 0.0)
        parts[f"{fig}_count"] = positive.astype(int)
    df = df.assign(**parts)

    rows = _attribute(df, acc_cols)
    if rows.empty:
        return pd.DataFrame(columns=acc_cols)
    return rows.groupby("entity_id")[acc_cols].sum()


def finalize_customer_rating(acc: pd.DataFrame) -> Dict[str, Dict[str, float]]:
    out: Dict[str, Dict[str, float]] = {}
    for key, r in acc.iterrows():
        record: Dict[str, float] = {}
        for fig, label in RATING_OUTPUT.items():
            count = int(r[f"{fig}_count"])
            record[label] = round_half_up(r[f"{fig}_sum"] / count, 1) if count > 0 else 0.0
        out[str(key)] = record
    return out


def compute_quality(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    acc = accumulate_quality(
        ctx.get("quality", pd.DataFrame()),
        filters.thresholds.min_active_clients,
        ctx.get("scope_sm"),
    )
    return {"filters": asdict(filters), "quality": finalize_quality(acc)}


def compute_customer_rating(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    acc = accumulate_customer_rating(
        ctx.get("quality", pd.DataFrame()),
        filters.thresholds.min_active_clients,
        ctx.get("scope_sm"),
    )
    return {"filters": asdict(filters), "customer_rating": finalize_customer_rating(acc)}
