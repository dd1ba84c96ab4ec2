from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ThresholdsModel(BaseModel):
    underperformer_pct: float = 25.0
    min_zero_days: int = 3
    min_days_since_joining: int = 30
    min_active_clients: float = 30.0


class DashboardFiltersModel(BaseModel):
    selected_sm: Optional[str] = None
    thresholds: ThresholdsModel = Field(default_factory=ThresholdsModel)


class ErrorResponse(BaseModel):
    error: str
    type: str
