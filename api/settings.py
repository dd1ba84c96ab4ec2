"""Runtime settings for the API and the Streamlit app.

Values come from environment variables, optionally seeded from a ``.env``
file in the project root. The core package never reads the environment;
everything it needs is passed in from here.
"""

from __future__ import annotations

import os
from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

import pandas as pd
from dotenv import load_dotenv
from pydantic import BaseModel

from rollup.errors import ConfigurationMissing
from rollup.source import GoogleSheetsSource, ServiceAccountInfo, SheetSource, WorkbookSource

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseModel):
    google_sheet_id: Optional[str] = None
    google_service_account: Optional[str] = None
    auth_secret: Optional[str] = None
    timezone: str = "Asia/Kolkata"
    sheets_timeout_seconds: float = 30.0
    # Local .xlsx export used instead of Google Sheets when set.
    workbook_path: Optional[str] = None


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    if env is None:
        load_dotenv(BASE_DIR / ".env")
        env = os.environ
    return Settings(
        google_sheet_id=(env.get("GOOGLE_SHEET_ID") or "").strip() or None,
        google_service_account=env.get("GOOGLE_SERVICE_ACCOUNT") or None,
        auth_secret=env.get("AUTH_SECRET") or None,
        timezone=env.get("DASHBOARD_TIMEZONE") or "Asia/Kolkata",
        sheets_timeout_seconds=env.get("SHEETS_TIMEOUT_SECONDS") or 30.0,
        workbook_path=(env.get("WORKBOOK_PATH") or "").strip() or None,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def build_source(settings: Settings) -> SheetSource:
    """Sheet source for the configured backend; fails before any fetch if incomplete."""
    if settings.workbook_path:
        return WorkbookSource(settings.workbook_path)
    if not settings.google_sheet_id:
        raise ConfigurationMissing("GOOGLE_SHEET_ID")
    credentials = ServiceAccountInfo.from_json(settings.google_service_account)
    return GoogleSheetsSource(credentials, settings.google_sheet_id, timeout=settings.sheets_timeout_seconds)


def today(settings: Settings) -> date:
    """Current calendar date in the dashboard's timezone."""
    return pd.Timestamp.now(tz=settings.timezone).date()
