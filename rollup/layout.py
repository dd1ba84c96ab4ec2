"""Sheet ranges and column layouts.

Each layout names the zero-based positions (relative to the first column of
the range) of the cells the core reads. Nothing outside this module refers to
a column by index.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Iterable, Sequence

import pandas as pd

from rollup.parsing import pad_rows


@dataclass(frozen=True)
class SheetLayout:
    key: str
    range_name: str
    columns: Dict[str, int]

    @property
    def width(self) -> int:
        return max(self.columns.values()) + 1

    def with_range(self, range_name: str) -> "SheetLayout":
        return replace(self, range_name=range_name)

    def to_frame(self, rows: Iterable[Sequence[object]]) -> pd.DataFrame:
        """Pad raw rows to the layout width and keep only the named columns."""
        padded = pad_rows(rows, self.width)
        df = pd.DataFrame(padded, columns=list(range(self.width)), dtype=object)
        df = df[list(self.columns.values())]
        return df.set_axis(list(self.columns.keys()), axis=1).reset_index(drop=True)


# Targets!A2:Y: four side-by-side blocks (SM, Manager, AM/FLAP, EM).
TARGETS = SheetLayout(
    key="targets",
    range_name="Targets!A2:Y",
    columns={
        "sm_name": 0,             # A
        "sm_service_target": 2,   # C
        "sm_commerce_target": 4,  # E
        "m_name": 6,              # G
        "m_service_target": 7,    # H
        "m_sm_name": 8,           # I
        "m_commerce_target": 10,  # K
        "am_name": 12,            # M
        "am_service_target": 13,  # N
        "am_manager_name": 14,    # O
        "am_sm_name": 15,         # P
        "am_role": 17,            # R
        "am_commerce_target": 19, # T
        "em_name": 21,            # V
        "em_service_target": 22,  # W
        "em_sm_name": 23,         # X
        "em_active_clients": 24,  # Y
    },
)

REVENUE = SheetLayout(
    key="revenue",
    range_name="Dietitian Revenue!A2:T",
    columns={
        "em_name": 8,      # I
        "flap_name": 9,    # J
        "am_name": 10,     # K
        "m_name": 11,      # L
        "sm_name": 12,     # M
        "service_y": 14,   # O
        "service_w": 15,   # P
        "service_m": 16,   # Q
        "commerce_y": 17,  # R
        "commerce_w": 18,  # S
        "commerce_m": 19,  # T
    },
)

QUALITY = SheetLayout(
    key="quality",
    range_name="Dietitian Quality!A2:AB",
    columns={
        "customer_id": 0,            # A
        "active_clients": 6,         # G
        "em_name": 7,                # H
        "flap_name": 8,              # I
        "am_name": 9,                # J
        "m_name": 10,                # K
        "sm_name": 11,               # L
        "ytd_csat": 21,              # V
        "wtd_csat": 22,              # W
        "latest_csat": 23,           # X
        "ytd_nps": 24,               # Y
        "mtd_nps": 25,               # Z
        "weekly_weight_loss": 26,    # AA
        "monthly_weight_loss": 27,   # AB
    },
)

GAPS = SheetLayout(
    key="gaps",
    range_name="Dietitian Gaps!A2:T",
    columns={
        "dietitian_name": 1,          # B
        "days_since_joining": 3,      # D
        "sm_name": 8,                 # I
        "sales_target": 9,            # J
        "sales_achieved": 10,         # K
        "sales_zero_days": 11,        # L
        "exclude_flag": 12,           # M
        "sales_pct": 15,              # P
        "commerce_target": 17,        # R
        "commerce_achieved": 18,      # S
        "commerce_zero_days": 19,     # T
    },
)

KEY_MAPPING = SheetLayout(
    key="key_mapping",
    range_name="Key Mapping!C2:C",
    columns={"name": 0},  # C
)

LAYOUTS: Dict[str, SheetLayout] = {
    layout.key: layout for layout in (TARGETS, REVENUE, QUALITY, GAPS, KEY_MAPPING)
}

# Role columns shared by the revenue and quality sheets, in attribution order.
ROLE_NAME_COLUMNS = (
    ("EM", "em_name"),
    ("FLAP", "flap_name"),
    ("AM", "am_name"),
    ("M", "m_name"),
    ("SM", "sm_name"),
)
