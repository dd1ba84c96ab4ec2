from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from rollup.charts import achievement_chart
from rollup.entities import PERIODS, STREAMS, StreamValues
from rollup.filters import DashboardFilters
from rollup.hierarchy import Hierarchy, HierarchyNode, manager_options
from rollup.parsing import round_half_up

# Service revenue is reported in lakhs.
LAKH = 100_000.0
CURRENCY_SCALED_STREAMS = {"service"}


@dataclass
class Rollup:
    achieved: StreamValues = field(default_factory=StreamValues)
    target: StreamValues = field(default_factory=StreamValues)

    def __add__(self, other: "Rollup") -> "Rollup":
        return Rollup(self.achieved + other.achieved, self.target + other.target)


def pct(achieved: float, target: float) -> int:
    if target > 0:
        return int(round_half_up(achieved / target * 100))
    return 0


def metric(achieved: float, target: float, currency_scaled: bool = False) -> Dict[str, float]:
    """Achieved vs target for one stream and period; 0% when there is no target."""
    out_pct = pct(achieved, target)
    if currency_scaled:
        achieved = achieved / LAKH
        target = target / LAKH
    return {"achieved": float(achieved), "target": float(target), "pct": out_pct}


def block(values: Rollup) -> Dict[str, Dict[str, Dict[str, float]]]:
    return {
        stream: {
            period: metric(
                values.achieved.get(stream).get(period),
                values.target.get(stream).get(period),
                stream in CURRENCY_SCALED_STREAMS,
            )
            for period in PERIODS
        }
        for stream in STREAMS
    }


def own_rollup(node: HierarchyNode) -> Rollup:
    return Rollup(node.entity.achieved + StreamValues(), node.entity.scaled_targets + StreamValues())


def rollup(node: HierarchyNode) -> Rollup:
    """Leaves report their own figures; every other node is the sum of its children."""
    if node.is_leaf:
        return own_rollup(node)
    total = Rollup()
    for child in node.children:
        total = total + rollup(child)
    return total


def _node_payload(node: HierarchyNode) -> Tuple[Dict[str, Any], Rollup]:
    children: List[Dict[str, Any]] = []
    if node.is_leaf:
        totals = own_rollup(node)
    else:
        totals = Rollup()
        for child in node.children:
            child_payload, child_totals = _node_payload(child)
            children.append(child_payload)
            totals = totals + child_totals

    payload: Dict[str, Any] = {
        "id": node.id,
        "name": node.name,
        "role": node.role,
        "is_virtual": node.is_virtual,
        **block(totals),
    }
    if not node.is_leaf:
        payload["own"] = block(own_rollup(node))
        payload["children"] = children
    if node.role == "SM":
        payload["ems"] = [
            {"id": em.id, "name": em.name, "role": em.role, **block(own_rollup(em))}
            for em in node.ems
        ]
    return payload, totals


def revenue_tree(tree: Iterable[HierarchyNode]) -> Tuple[List[Dict[str, Any]], Rollup]:
    payloads: List[Dict[str, Any]] = []
    grand = Rollup()
    for sm in tree:
        payload, totals = _node_payload(sm)
        payloads.append(payload)
        grand = grand + totals
    return payloads, grand


def compute_hierarchy(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    hierarchy: Hierarchy = ctx.get("hierarchy", Hierarchy())
    return {
        "filters": asdict(filters),
        "today": ctx.get("today"),
        **hierarchy.to_dict(),
    }


def compute_revenue(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    tree: List[HierarchyNode] = ctx.get("tree", [])
    payloads, grand = revenue_tree(tree)

    chart_rows = [
        {"name": sm["name"], "period": period, "pct": sm["service"][period]["pct"]}
        for sm in payloads
        for period in PERIODS
    ]
    return {
        "filters": asdict(filters),
        "today": ctx.get("today"),
        "tree": payloads,
        "totals": block(grand),
        "manager_options": manager_options(tree),
        "charts": {"sm_service_achievement": achievement_chart(chart_rows)},
    }
