"""Pydantic schemas for API usage analytics."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class UsageSummaryResponse(BaseModel):
    provider: Optional[str]
    since: datetime
    total_calls: int
    success_calls: int
    error_calls: int
    total_units: int
    avg_duration_ms: Optional[float]
