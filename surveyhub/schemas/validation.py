from typing import List
from datetime import datetime
from pydantic import BaseModel, Field


class ValidationSummary(BaseModel):
    total_configs: int = 0
    valid_configs: int = 0
    invalid_configs: int = 0
    total_instances: int = 0
    reactivated_instances: int = 0
    deactivated_instances: int = 0
    errors: List[str] = Field(default_factory=list, description="Per-field violations, in discovery order")
    warnings: List[str] = Field(default_factory=list, description="Instance updates that could not be applied")


class StatusAutomationResult(BaseModel):
    activated: int = 0
    deactivated: int = 0
    timestamp: datetime


class UpcomingStatusChange(BaseModel):
    id: str
    title: str
    slug: str | None = None
    at: datetime


class UpcomingStatusChanges(BaseModel):
    upcoming_activations: List[UpcomingStatusChange] = Field(default_factory=list)
    upcoming_deactivations: List[UpcomingStatusChange] = Field(default_factory=list)


class CleanupStats(BaseModel):
    is_running: bool
    session_timeout_hours: float
    cleanup_interval_minutes: float
    max_sessions_per_cleanup: int
