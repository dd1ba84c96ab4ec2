from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from rollup.errors import ConfigurationMissing


@dataclass(frozen=True)
class Thresholds:
    underperformer_pct: float = 25.0
    min_zero_days: int = 3
    min_days_since_joining: int = 30
    min_active_clients: float = 30.0


@dataclass(frozen=True)
class DashboardFilters:
    selected_sm: Optional[str] = None
    thresholds: Thresholds = field(default_factory=Thresholds)


@dataclass(frozen=True)
class Viewer:
    """Authorized caller. SM viewers only ever see their own SM."""

    role: str = "admin"
    name: str = ""

    @property
    def is_sm(self) -> bool:
        return self.role.lower() == "sm"


def _as_float(value: object, default: float) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def _as_int(value: object, default: int) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def normalize_filters(raw: dict) -> DashboardFilters:
    selected_sm = (raw.get("selected_sm") or "").strip() or None

    t = raw.get("thresholds") or {}
    if "underperformer_pct" in t and t["underperformer_pct"] is None:
        raise ConfigurationMissing("thresholds.underperformer_pct")
    thresholds = Thresholds(
        underperformer_pct=max(0.0, _as_float(t.get("underperformer_pct", 25.0), 25.0)),
        min_zero_days=max(1, _as_int(t.get("min_zero_days", 3), 3)),
        min_days_since_joining=max(0, _as_int(t.get("min_days_since_joining", 30), 30)),
        min_active_clients=max(0.0, _as_float(t.get("min_active_clients", 30.0), 30.0)),
    )
    return DashboardFilters(selected_sm=selected_sm, thresholds=thresholds)


def scope_sm_name(filters: DashboardFilters, viewer: Viewer) -> Optional[str]:
    """SM name the request is restricted to, or None for all SMs.

    An SM viewer without a name gets an empty scope, which matches no SM.
    """
    if viewer.is_sm:
        return viewer.name.strip()
    return filters.selected_sm
