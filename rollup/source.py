"""Data-source collaborators.

Every source returns a range as a list of rows, each row a list of cell
strings in sheet order, with trailing empty cells possibly omitted. Any
failure to deliver a range is raised as ``SourceUnavailable``; sources never
return partial data.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol, Sequence, Union

import google_auth_httplib2
import httplib2
import pandas as pd
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from rollup.errors import ConfigurationMissing, SourceUnavailable

logger = logging.getLogger(__name__)

Rows = List[List[str]]

SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]
_PEM_MARKER = re.compile(r"BEGIN [A-Z ]*PRIVATE KEY")


class SheetSource(Protocol):
    def fetch_range(self, range_name: str) -> Rows:
        ...

    def fetch_ranges(self, range_names: Sequence[str]) -> Dict[str, Rows]:
        ...


# ---------------- Google Sheets ----------------
def normalize_private_key(raw: str) -> str:
    """Accept a PEM key as-is, JSON-escaped (literal \\n) or base64 encoded."""
    key = (raw or "").strip()
    if "\\n" in key and "\n" not in key:
        key = key.replace("\\n", "\n")
    if not _PEM_MARKER.search(key):
        try:
            decoded = base64.b64decode(key, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            decoded = ""
        if _PEM_MARKER.search(decoded):
            key = decoded
    if not _PEM_MARKER.search(key):
        raise ConfigurationMissing("GOOGLE_SERVICE_ACCOUNT.private_key", "not a valid PEM private key")
    return key


@dataclass(frozen=True)
class ServiceAccountInfo:
    client_email: str
    private_key: str
    token_uri: str = "https://oauth2.googleapis.com/token"
    project_id: str = ""

    @classmethod
    def from_json(cls, raw: Union[str, Mapping[str, object], None]) -> "ServiceAccountInfo":
        if not raw:
            raise ConfigurationMissing("GOOGLE_SERVICE_ACCOUNT")
        if isinstance(raw, str):
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise ConfigurationMissing("GOOGLE_SERVICE_ACCOUNT", f"invalid JSON: {exc.msg}") from exc
        else:
            data = dict(raw)
        email = str(data.get("client_email") or "").strip()
        key = str(data.get("private_key") or "")
        if not email or not key:
            raise ConfigurationMissing("GOOGLE_SERVICE_ACCOUNT", "client_email/private_key missing")
        return cls(
            client_email=email,
            private_key=normalize_private_key(key),
            token_uri=str(data.get("token_uri") or cls.token_uri),
            project_id=str(data.get("project_id") or ""),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "type": "service_account",
            "client_email": self.client_email,
            "private_key": self.private_key,
            "token_uri": self.token_uri,
            "project_id": self.project_id,
        }


class GoogleSheetsSource:
    """Read-only Sheets v4 client; one ``values.batchGet`` per request."""

    def __init__(self, credentials: ServiceAccountInfo, spreadsheet_id: str, *, timeout: float = 30.0):
        if not spreadsheet_id:
            raise ConfigurationMissing("GOOGLE_SHEET_ID")
        self.credentials = credentials
        self.spreadsheet_id = spreadsheet_id
        self.timeout = timeout

    def _service(self):
        try:
            creds = service_account.Credentials.from_service_account_info(self.credentials.to_dict(), scopes=SCOPES)
        except ValueError as exc:
            raise ConfigurationMissing("GOOGLE_SERVICE_ACCOUNT", str(exc)) from exc
        http = google_auth_httplib2.AuthorizedHttp(creds, http=httplib2.Http(timeout=self.timeout))
        return build("sheets", "v4", http=http, cache_discovery=False)

    def fetch_range(self, range_name: str) -> Rows:
        return self.fetch_ranges([range_name])[range_name]

    def fetch_ranges(self, range_names: Sequence[str]) -> Dict[str, Rows]:
        names = list(range_names)
        label = ", ".join(names)
        try:
            resp = (
                self._service()
                .spreadsheets()
                .values()
                .batchGet(spreadsheetId=self.spreadsheet_id, ranges=names)
                .execute()
            )
        except HttpError as exc:
            raise SourceUnavailable(label, f"HTTP {exc.resp.status}: {exc.reason}") from exc
        except (GoogleAuthError, httplib2.HttpLib2Error, OSError) as exc:
            raise SourceUnavailable(label, f"{type(exc).__name__}: {exc}") from exc

        value_ranges = resp.get("valueRanges", []) or []
        if len(value_ranges) != len(names):
            raise SourceUnavailable(label, f"expected {len(names)} ranges, got {len(value_ranges)}")
        out = {name: [list(map(str, row)) for row in (vr.get("values") or [])] for name, vr in zip(names, value_ranges)}
        logger.info("Fetched %s", ", ".join(f"{n} ({len(r)} rows)" for n, r in out.items()))
        return out


# ---------------- Local workbook export ----------------
_A1_RANGE = re.compile(
    r"^(?:(?:'(?P<quoted>(?:[^']|'')+)'|(?P<sheet>[^!]+))!)?"
    r"(?P<c1>[A-Za-z]+)(?P<r1>\d+)?(?::(?P<c2>[A-Za-z]+)(?P<r2>\d+)?)?$"
)


def column_index(letters: str) -> int:
    """Zero-based index of a column label: A -> 0, Z -> 25, AA -> 26."""
    out = 0
    for ch in letters.upper():
        out = out * 26 + (ord(ch) - ord("A") + 1)
    return out - 1


@dataclass(frozen=True)
class A1Range:
    sheet: Optional[str]
    first_row: int
    first_col: int
    last_row: Optional[int] = None
    last_col: Optional[int] = None


def parse_a1_range(range_name: str) -> A1Range:
    match = _A1_RANGE.match(range_name.strip())
    if not match:
        raise ConfigurationMissing(f"range {range_name!r}", "not an A1 range")
    sheet = match.group("quoted")
    sheet = sheet.replace("''", "'") if sheet is not None else match.group("sheet")
    c2 = match.group("c2")
    r2 = match.group("r2")
    return A1Range(
        sheet=sheet,
        first_row=int(match.group("r1") or 1),
        first_col=column_index(match.group("c1")),
        last_row=int(r2) if r2 else None,
        last_col=column_index(c2) if c2 else None,
    )


def _trim_row(cells: List[str]) -> List[str]:
    while cells and cells[-1] == "":
        cells.pop()
    return cells


class WorkbookSource:
    """Reads ranges from a local .xlsx export of the spreadsheet."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read(self, xls: pd.ExcelFile, range_name: str) -> Rows:
        window = parse_a1_range(range_name)
        try:
            df = pd.read_excel(xls, sheet_name=window.sheet if window.sheet else 0, header=None, dtype=str)
        except ValueError as exc:
            raise SourceUnavailable(range_name, str(exc)) from exc
        last_col = window.last_col + 1 if window.last_col is not None else None
        df = df.iloc[window.first_row - 1 : window.last_row, window.first_col : last_col].fillna("")
        rows = [_trim_row([str(v) for v in row]) for row in df.itertuples(index=False, name=None)]
        while rows and not rows[-1]:
            rows.pop()
        return rows

    def fetch_range(self, range_name: str) -> Rows:
        return self.fetch_ranges([range_name])[range_name]

    def fetch_ranges(self, range_names: Sequence[str]) -> Dict[str, Rows]:
        names = list(range_names)
        try:
            with pd.ExcelFile(self.path) as xls:
                out = {name: self._read(xls, name) for name in names}
        except (OSError, ValueError) as exc:
            raise SourceUnavailable(", ".join(names), f"{type(exc).__name__}: {exc}") from exc
        logger.info("Read %d ranges from %s", len(out), self.path.name)
        return out


# ---------------- In-memory ----------------
class InMemorySource:
    """Serves fixed rows per range name."""

    def __init__(self, ranges: Mapping[str, Sequence[Sequence[object]]]):
        self._ranges: Dict[str, Rows] = {
            name: [[("" if c is None else str(c)) for c in row] for row in rows] for name, rows in ranges.items()
        }

    def fetch_range(self, range_name: str) -> Rows:
        if range_name not in self._ranges:
            raise SourceUnavailable(range_name, "range not found")
        return [list(row) for row in self._ranges[range_name]]

    def fetch_ranges(self, range_names: Sequence[str]) -> Dict[str, Rows]:
        return {name: self.fetch_range(name) for name in range_names}

