import pytest

from rollup.data import PAGE_RANGES, load_dashboard_data, prepare_context, resolve_layouts
from rollup.errors import ConfigurationMissing, SourceUnavailable
from rollup.filters import DashboardFilters, Thresholds, Viewer, normalize_filters, scope_sm_name
from rollup.source import InMemorySource


class CountingSource(InMemorySource):
    def __init__(self, ranges):
        super().__init__(ranges)
        self.calls = 0

    def fetch_ranges(self, range_names):
        self.calls += 1
        return super().fetch_ranges(range_names)


def test_load_dashboard_data_builds_named_frames(data_ctx, today):
    assert data_ctx["today"] == today
    assert data_ctx["row_counts"]["targets"] == 10
    assert list(data_ctx["key_mapping"].columns) == ["name"]
    assert data_ctx["targets"].loc[0, "sm_name"] == "Asha Rao"


def test_blank_range_name_fails_before_fetching(today):
    source = CountingSource({})
    with pytest.raises(ConfigurationMissing):
        load_dashboard_data(source, include=["targets"], today=today, range_names={"targets": "  "})
    assert source.calls == 0


def test_unknown_range_key_is_a_configuration_error(today):
    with pytest.raises(ConfigurationMissing):
        load_dashboard_data(CountingSource({}), include=["funnel"], today=today)


def test_range_names_can_be_overridden():
    layouts = resolve_layouts({"targets": "Targets v2!A2:Y"})
    assert layouts["targets"].range_name == "Targets v2!A2:Y"
    assert layouts["revenue"].range_name == "Dietitian Revenue!A2:T"


def test_missing_range_fails_the_whole_load(targets_rows, today):
    source = InMemorySource({"Targets!A2:Y": targets_rows})
    with pytest.raises(SourceUnavailable):
        load_dashboard_data(source, include=PAGE_RANGES["revenue"], today=today)


def test_prepare_context_scopes_to_selected_sm(data_ctx):
    ctx = prepare_context({"selected_sm": "asha rao"}, data_ctx)
    assert [n.id for n in ctx["tree"]] == ["sm-asha-rao"]
    assert ctx["scope_sm"] == "asha rao"


def test_sm_viewer_scope_overrides_selection(data_ctx):
    ctx = prepare_context(DashboardFilters(selected_sm="Asha Rao"), data_ctx, Viewer(role="SM", name="Bina"))
    assert [n.id for n in ctx["tree"]] == ["sm-bina"]


def test_normalize_filters_clamps_and_coerces():
    f = normalize_filters(
        {
            "selected_sm": "  ",
            "thresholds": {"underperformer_pct": "-5", "min_zero_days": 0, "min_days_since_joining": "x"},
        }
    )
    assert f.selected_sm is None
    assert f.thresholds == Thresholds(underperformer_pct=0.0, min_zero_days=1, min_days_since_joining=30)


def test_normalize_filters_rejects_null_threshold():
    with pytest.raises(ConfigurationMissing):
        normalize_filters({"thresholds": {"underperformer_pct": None}})


def test_scope_sm_name():
    filters = DashboardFilters(selected_sm="Asha Rao")
    assert scope_sm_name(filters, Viewer()) == "Asha Rao"
    assert scope_sm_name(filters, Viewer(role="sm", name=" Bina ")) == "Bina"
    assert scope_sm_name(DashboardFilters(), Viewer()) is None
