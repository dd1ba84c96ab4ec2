from datetime import date

import jwt
import pytest

from api.auth import decode_viewer
from api.settings import Settings, build_source, load_settings, today
from rollup.errors import ConfigurationMissing
from rollup.source import WorkbookSource


def test_load_settings_from_mapping():
    settings = load_settings(
        {
            "GOOGLE_SHEET_ID": " sheet-123 ",
            "AUTH_SECRET": "s3cret",
            "SHEETS_TIMEOUT_SECONDS": "12.5",
        }
    )
    assert settings.google_sheet_id == "sheet-123"
    assert settings.auth_secret == "s3cret"
    assert settings.sheets_timeout_seconds == 12.5
    assert settings.timezone == "Asia/Kolkata"
    assert settings.workbook_path is None


def test_build_source_prefers_local_workbook(tmp_path):
    source = build_source(Settings(workbook_path=str(tmp_path / "export.xlsx")))
    assert isinstance(source, WorkbookSource)


def test_build_source_requires_sheet_and_credentials():
    with pytest.raises(ConfigurationMissing):
        build_source(Settings())
    with pytest.raises(ConfigurationMissing):
        build_source(Settings(google_sheet_id="sheet-123"))


def test_today_uses_configured_timezone():
    assert isinstance(today(Settings(timezone="UTC")), date)


def test_decode_viewer_defaults_to_admin():
    secret = "test-secret-0123456789abcdef0123456789abcdef"
    viewer = decode_viewer(jwt.encode({"name": "Asha"}, secret, algorithm="HS256"), secret)
    assert viewer.role == "admin"
    assert not viewer.is_sm
    sm = decode_viewer(jwt.encode({"role": "SM", "name": "Bina"}, secret, algorithm="HS256"), secret)
    assert sm.is_sm and sm.name == "Bina"
