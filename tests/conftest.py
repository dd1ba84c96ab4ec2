# tests/conftest.py

from datetime import date

import jwt
import pytest

from rollup.data import load_dashboard_data, prepare_context
from rollup.filters import DashboardFilters
from rollup.layout import GAPS, KEY_MAPPING, QUALITY, REVENUE, TARGETS
from rollup.source import InMemorySource

# A Wednesday: yesterday is Tuesday the 14th, two days into the week.
TODAY = date(2024, 5, 15)
AUTH_SECRET = "test-secret-0123456789abcdef0123456789abcdef"


def sheet_row(layout, **cells):
    """Build a raw sheet row with the named cells placed at their layout positions."""
    row = [""] * layout.width
    for name, value in cells.items():
        row[layout.columns[name]] = value
    return row


@pytest.fixture
def make_row():
    return sheet_row


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def targets_rows():
    return [
        sheet_row(TARGETS, sm_name="Asha Rao", sm_service_target="2,600,000", sm_commerce_target="260,000"),
        sheet_row(TARGETS, sm_name="Bina", sm_service_target="1,300,000", sm_commerce_target="0"),
        sheet_row(TARGETS, m_name="Kiran", m_service_target="1,300,000", m_sm_name="asha rao", m_commerce_target="130,000"),
        sheet_row(TARGETS, m_name="Orphan Manager", m_service_target="100", m_sm_name="Nobody"),
        sheet_row(
            TARGETS,
            am_name="Dev",
            am_service_target="520,000",
            am_manager_name="Kiran",
            am_sm_name="Asha Rao",
            am_role="AM",
            am_commerce_target="52,000",
        ),
        sheet_row(TARGETS, am_name="Esha", am_service_target="260,000", am_sm_name="Asha Rao", am_role="flap"),
        sheet_row(TARGETS, am_name="Bob", am_service_target="260,000", am_sm_name="Bina", am_role="AM"),
        sheet_row(TARGETS, am_name="Lone", am_service_target="260,000", am_role="AM"),
        sheet_row(TARGETS, em_name="Meera", em_service_target="260,000", em_sm_name="Asha Rao", em_active_clients="45"),
        sheet_row(TARGETS, em_name="Ghost", em_service_target="100", em_sm_name="Nobody", em_active_clients="5"),
    ]


@pytest.fixture
def revenue_rows():
    return [
        sheet_row(
            REVENUE,
            em_name="Meera",
            am_name="Dev",
            m_name="Kiran",
            sm_name="Asha Rao",
            service_y="10,000",
            service_w="30,000",
            service_m="200,000",
            commerce_y="1,000",
            commerce_w="2,000",
            commerce_m="10,000",
        ),
        sheet_row(REVENUE, flap_name="Esha", sm_name="Asha Rao", service_y="5000", service_w="5000", service_m="50000"),
        sheet_row(REVENUE, am_name="Bob", sm_name="Bina", service_y="0", service_w="#N/A", service_m=""),
    ]


@pytest.fixture
def quality_rows():
    return [
        sheet_row(
            QUALITY,
            customer_id="C1",
            active_clients="40",
            em_name="Meera",
            am_name="Dev",
            m_name="Kiran",
            sm_name="Asha Rao",
            ytd_csat="4.5",
            wtd_csat="4",
            latest_csat="5",
            ytd_nps="8",
            mtd_nps="9",
            weekly_weight_loss="-0.6",
            monthly_weight_loss="-1.0",
        ),
        sheet_row(
            QUALITY,
            customer_id="C2",
            active_clients="35",
            am_name="Dev",
            sm_name="Asha Rao",
            ytd_csat="3.5",
            latest_csat="4",
            weekly_weight_loss="-0.2",
            monthly_weight_loss="-0.8",
        ),
        # Below the active-client floor.
        sheet_row(QUALITY, customer_id="C3", active_clients="10", am_name="Dev", ytd_csat="1", weekly_weight_loss="-5"),
        # No weight-loss or rating figures at all.
        sheet_row(QUALITY, customer_id="C4", active_clients="50", am_name="Dev"),
        sheet_row(
            QUALITY,
            customer_id="C5",
            active_clients="60",
            am_name="Bob",
            sm_name="Bina",
            ytd_csat="2",
            weekly_weight_loss="-0.5",
        ),
    ]


@pytest.fixture
def gaps_rows():
    return [
        sheet_row(GAPS, dietitian_name="Zara", days_since_joining="60", sm_name="Asha Rao", sales_target="1000",
                  sales_achieved="0", sales_zero_days="5", sales_pct="0", commerce_target="200",
                  commerce_achieved="50", commerce_zero_days="1"),
        sheet_row(GAPS, dietitian_name="Amit", days_since_joining="45", sales_target="1000", sales_achieved="100",
                  sales_zero_days="2", sales_pct="10", commerce_target="0", commerce_achieved="0",
                  commerce_zero_days="4"),
        sheet_row(GAPS, dietitian_name="Yash", days_since_joining="25", sm_name="Asha Rao", sales_zero_days="10"),
        sheet_row(GAPS, dietitian_name="Excluded Person", days_since_joining="90", sm_name="Bina", sales_zero_days="7"),
        sheet_row(GAPS, dietitian_name="Flagged", days_since_joining="90", sm_name="Bina", sales_zero_days="7",
                  exclude_flag="yes"),
        sheet_row(GAPS, dietitian_name="Bea", days_since_joining="40", sm_name="Bina", sales_zero_days="5"),
        sheet_row(GAPS, dietitian_name="Clean", days_since_joining="100", sm_name="Bina", sales_zero_days="1",
                  commerce_zero_days="2"),
        sheet_row(GAPS, days_since_joining="100", sm_name="Bina", sales_zero_days="9"),
    ]


@pytest.fixture
def key_mapping_rows():
    return [["Excluded Person"], ["#N/A"], []]


@pytest.fixture
def source(targets_rows, revenue_rows, quality_rows, gaps_rows, key_mapping_rows):
    return InMemorySource(
        {
            TARGETS.range_name: targets_rows,
            REVENUE.range_name: revenue_rows,
            QUALITY.range_name: quality_rows,
            GAPS.range_name: gaps_rows,
            KEY_MAPPING.range_name: key_mapping_rows,
        }
    )


@pytest.fixture
def data_ctx(source):
    return load_dashboard_data(
        source,
        include=["targets", "revenue", "quality", "gaps", "key_mapping"],
        today=TODAY,
    )


@pytest.fixture
def ctx(data_ctx):
    return prepare_context(DashboardFilters(), data_ctx)


@pytest.fixture
def make_token():
    def _make(role="admin", name="", secret=AUTH_SECRET):
        return jwt.encode({"role": role, "name": name}, secret, algorithm="HS256")

    return _make


@pytest.fixture
def client(source):
    """TestClient with the sheet source, clock and settings pinned for the test."""
    from fastapi.testclient import TestClient

    from api.main import app, get_source, get_today
    from api.settings import Settings, get_settings

    app.dependency_overrides[get_settings] = lambda: Settings(auth_secret=AUTH_SECRET)
    app.dependency_overrides[get_source] = lambda: source
    app.dependency_overrides[get_today] = lambda: TODAY
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def signed_in(client, make_token):
    client.cookies.set("auth", make_token())
    return client
