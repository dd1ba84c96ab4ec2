import pytest

from rollup.data import prepare_context
from rollup.errors import ConfigurationMissing
from rollup.filters import DashboardFilters, Thresholds, Viewer
from rollup.layout import GAPS, KEY_MAPPING
from rollup.metrics_issues import (
    NOT_ASSIGNED,
    compute_dietitian_gaps,
    compute_key_mapping,
    compute_underperformers,
    find_gaps,
    find_underperformers,
    load_excluded_names,
)


def test_underperformers_default_threshold(ctx):
    payload = compute_underperformers(DashboardFilters(), ctx)
    assert payload["threshold_pct"] == 25.0
    assert [u["id"] for u in payload["underperformers"]] == ["am-bob"]
    bob = payload["underperformers"][0]
    assert bob["performance_pct"] == 0.0
    assert bob["service"]["y"] == {"achieved": 0.0, "target": 0.1, "pct": 0}


def test_underperformer_threshold_is_inclusive(ctx):
    rows = find_underperformers(ctx["tree"], 50)
    assert [u["id"] for u in rows] == ["flap-esha", "am-dev", "am-bob"]
    assert find_underperformers(ctx["tree"], 49.9)[0]["id"] == "am-bob"


def test_underperformers_for_one_sm(ctx):
    rows = find_underperformers(ctx["tree"], 100, sm_id="sm-asha-rao")
    assert {u["sm_id"] for u in rows} == {"sm-asha-rao"}


def test_missing_threshold_is_a_configuration_error(ctx):
    with pytest.raises(ConfigurationMissing):
        find_underperformers(ctx["tree"], None)


def test_no_underperformers_is_an_empty_list(ctx):
    payload = compute_underperformers(DashboardFilters(), dict(ctx, tree=[]))
    assert payload["underperformers"] == []
    assert payload["count"] == 0


def test_excluded_names_are_lowercased(key_mapping_rows):
    assert load_excluded_names(KEY_MAPPING.to_frame(key_mapping_rows)) == {"excluded person"}
    assert load_excluded_names(KEY_MAPPING.to_frame([])) == set()


def test_gaps_filter_and_sort(gaps_rows):
    gaps = find_gaps(GAPS.to_frame(gaps_rows), {"excluded person"})

    assert [g["dietitian_name"] for g in gaps] == ["Bea", "Zara", "Amit"]
    zara = gaps[1]
    assert zara["sm_name"] == "Asha Rao"
    assert zara["consecutive_zero_days"] == 5.0
    assert zara["commerce_percent_achieved"] == 25.0
    amit = gaps[2]
    assert amit["sm_name"] == NOT_ASSIGNED
    assert amit["commerce_consecutive_zero_days"] == 4.0
    assert amit["commerce_percent_achieved"] == 0.0


def test_recent_joiners_are_not_gaps(make_row):
    rows = [make_row(GAPS, dietitian_name="New", days_since_joining="25", sales_zero_days="10")]
    assert find_gaps(GAPS.to_frame(rows)) == []
    rows = [make_row(GAPS, dietitian_name="Settled", days_since_joining="30", sales_zero_days="3")]
    assert [g["dietitian_name"] for g in find_gaps(GAPS.to_frame(rows))] == ["Settled"]


def test_gap_thresholds_are_configurable(gaps_rows):
    gaps = find_gaps(GAPS.to_frame(gaps_rows), {"excluded person"}, min_zero_days=2, min_days_since_joining=20)
    assert [g["dietitian_name"] for g in gaps] == ["Yash", "Bea", "Zara", "Amit", "Clean"]


def test_compute_dietitian_gaps_scoped_to_viewer_sm(data_ctx):
    ctx = prepare_context(DashboardFilters(), data_ctx, Viewer(role="sm", name="Bina"))
    payload = compute_dietitian_gaps(ctx["filters"], ctx)
    assert [g["dietitian_name"] for g in payload["dietitian_gaps"]] == ["Bea"]


def test_sm_viewer_without_a_name_sees_nothing(data_ctx):
    ctx = prepare_context(DashboardFilters(), data_ctx, Viewer(role="SM", name=""))
    assert compute_dietitian_gaps(ctx["filters"], ctx)["dietitian_gaps"] == []
    assert ctx["tree"] == []


def test_compute_gaps_uses_filter_thresholds(ctx):
    filters = DashboardFilters(thresholds=Thresholds(min_zero_days=6))
    payload = compute_dietitian_gaps(filters, ctx)
    assert payload["count"] == 0


def test_compute_key_mapping(ctx):
    assert compute_key_mapping(DashboardFilters(), ctx) == {"excluded_names": ["excluded person"]}
