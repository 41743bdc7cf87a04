"""
Health and Monitoring Schemas
"""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel


class BreakerStatsResponse(BaseModel):
    name: str
    state: str
    healthy: bool
    failure_count: int
    consecutive_failures: int
    success_count: int
    total_requests: int
    rejected_count: int
    last_failure_at: Optional[datetime] = None
    retry_after_seconds: Optional[float] = None


class HealthResponse(BaseModel):
    status: str
    checks: Dict[str, str]


class MonitoringResponse(BaseModel):
    healthy: bool
    circuit_breakers: Dict[str, BreakerStatsResponse]
    queue: Dict[str, int]
    tasks: Dict[str, int]
