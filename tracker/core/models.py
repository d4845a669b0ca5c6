"""
Shared value types: consumption events in, level samples out.
"""

from datetime import datetime
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field


class ConsumptionEvent(BaseModel):
    """A single caffeine dose. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    amount: float = Field(..., ge=0)  # mg
    description: str = ""
    cost: int = 0  # cents


class TimeSample(NamedTuple):
    timestamp: datetime
    level: float
