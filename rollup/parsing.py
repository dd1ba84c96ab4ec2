from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Sequence

import pandas as pd


# Spreadsheet error tokens that stand in for "no value".
SENTINELS = {"#N/A", "#REF!", "#VALUE!", "#DIV/0!", "#NAME?", "#NUM!", "#NULL!", "#ERROR!"}

_NUMBER_NOISE = re.compile(r"[,\s]")


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def is_sentinel(value: object) -> bool:
    if _is_missing(value):
        return False
    return str(value).strip().upper() in SENTINELS


def parse_number(value: object) -> float:
    """Parse a sheet cell into a number; anything unparseable is 0."""
    if _is_missing(value) or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        out = float(value)
        return out if math.isfinite(out) else 0.0
    s = _NUMBER_NOISE.sub("", str(value))
    if not s:
        return 0.0
    try:
        out = float(s)
    except ValueError:
        return 0.0
    return out if math.isfinite(out) else 0.0


def parse_optional_number(value: object) -> Optional[float]:
    """Like parse_number, but blank and sentinel cells are None."""
    if _is_missing(value) or is_sentinel(value) or not str(value).strip():
        return None
    return parse_number(value)


def parse_name(value: object) -> Optional[str]:
    if _is_missing(value):
        return None
    s = str(value).strip()
    if not s or s.upper() in SENTINELS:
        return None
    return s


def pad_rows(rows: Iterable[Sequence[object]], width: int) -> List[List[object]]:
    """Fixed-width copies of raw rows; absent trailing cells read as ''."""
    out: List[List[object]] = []
    for row in rows or []:
        cells = list(row or [])[:width]
        cells.extend([""] * (width - len(cells)))
        out.append(cells)
    return out


def numericize(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            df[col] = df[col].map(parse_number).astype(float)
    return df


def names(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    """Parse name columns in place; absent names stay None, never NaN."""
    for col in cols:
        if col in df.columns:
            df[col] = pd.Series([parse_name(v) for v in df[col]], index=df.index, dtype=object)
    return df


def round_half_up(value: object, ndigits: int = 0) -> float:
    if _is_missing(value):
        return 0.0
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))
