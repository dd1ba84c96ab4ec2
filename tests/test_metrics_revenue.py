import pytest

from rollup.entities import EntityRegistry, PeriodValues, StreamValues
from rollup.filters import DashboardFilters
from rollup.hierarchy import build_hierarchy
from rollup.metrics_revenue import compute_hierarchy, compute_revenue, metric, pct, rollup


def test_pct_rules():
    assert pct(80, 100) == 80
    assert pct(0, 0) == 0
    assert pct(50, 0) == 0
    assert pct(1, 3) == 33
    assert pct(15, 40) == 38


def test_metric_reports_service_in_lakhs():
    out = metric(250_000, 500_000, currency_scaled=True)
    assert out == {"achieved": 2.5, "target": 5.0, "pct": 50}
    assert metric(250, 500) == {"achieved": 250.0, "target": 500.0, "pct": 50}


def _leaf(registry, name, manager, sm, achieved_y, target_y):
    leaf = registry.resolve(name, "AM", manager_id=manager.id, sm_id=sm.id)
    leaf.achieved = StreamValues(service=PeriodValues(y=achieved_y))
    leaf.scaled_targets = StreamValues(service=PeriodValues(y=target_y))
    return leaf


def test_parent_is_sum_of_children_not_its_own_figures():
    registry = EntityRegistry()
    sm = registry.resolve("Root", "SM")
    sm.achieved = StreamValues(service=PeriodValues(y=1_000_000))
    manager = registry.resolve("Mid", "M", sm_id=sm.id)
    leaves = [
        _leaf(registry, "One", manager, sm, 30, 100),
        _leaf(registry, "Two", manager, sm, 50, 100),
    ]
    em = registry.resolve("Side", "EM", sm_id=sm.id)
    em.achieved = StreamValues(service=PeriodValues(y=999))

    (root,) = build_hierarchy([sm], [manager], leaves, [em])
    total = rollup(root)
    assert total.achieved.service.y == 80
    assert total.target.service.y == 200
    assert rollup(root.children[0]).achieved.service.y == 80


def test_compute_revenue_tree_and_totals(ctx):
    payload = compute_revenue(DashboardFilters(), ctx)

    asha, bina = payload["tree"]
    assert asha["id"] == "sm-asha-rao"
    assert asha["service"]["y"] == {"achieved": 0.15, "target": 0.3, "pct": 50}
    assert asha["service"]["w"]["pct"] == 58
    assert asha["commerce"]["y"] == {"achieved": 1000.0, "target": 2000.0, "pct": 50}
    assert asha["own"]["service"]["y"]["pct"] == 15
    assert [em["id"] for em in asha["ems"]] == ["em-meera"]

    virtual = asha["children"][0]
    assert virtual["is_virtual"] is True
    assert virtual["children"][0]["id"] == "flap-esha"
    assert "children" not in virtual["children"][0]

    assert bina["service"]["y"]["pct"] == 0
    assert payload["totals"]["service"]["y"] == {"achieved": 0.15, "target": 0.4, "pct": 38}
    assert payload["manager_options"] == [{"id": "m-kiran", "name": "Kiran", "sm_id": "sm-asha-rao"}]
    assert payload["charts"]["sm_service_achievement"]["layer"]


def test_parent_totals_match_children_for_every_stream_and_period(ctx):
    payload = compute_revenue(DashboardFilters(), ctx)

    def check(node):
        if "children" not in node:
            return
        for stream in ("service", "commerce"):
            for period in ("y", "w", "m"):
                achieved = sum(c[stream][period]["achieved"] for c in node["children"])
                target = sum(c[stream][period]["target"] for c in node["children"])
                assert node[stream][period]["achieved"] == pytest.approx(achieved)
                assert node[stream][period]["target"] == pytest.approx(target)
        for child in node["children"]:
            check(child)

    for sm in payload["tree"]:
        check(sm)


def test_empty_tree_is_not_an_error(ctx):
    ctx = dict(ctx, tree=[])
    payload = compute_revenue(DashboardFilters(), ctx)
    assert payload["tree"] == []
    assert payload["totals"]["service"]["y"]["pct"] == 0
    assert payload["charts"]["sm_service_achievement"] == {}


def test_compute_hierarchy_lists(ctx):
    payload = compute_hierarchy(DashboardFilters(), ctx)
    assert [e["id"] for e in payload["senior_managers"]] == ["sm-asha-rao", "sm-bina"]
    assert [e["id"] for e in payload["executive_managers"]] == ["em-meera"]
    assert payload["executive_managers"][0]["active_client_count"] == 45.0
