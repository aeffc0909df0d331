"""
Date-window automation for survey instances.

Every sweep switches instances on when their active window opens and off
when it closes. Activation requires a valid config and no validation lock;
deactivation of an expired window always applies, locked or not.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from surveyhub.core.config import settings
from surveyhub.core.timeutils import now_utc
from surveyhub.schemas.survey import InstanceStatusChangeCreate, SurveyInstanceOut, SurveyInstanceUpdate
from surveyhub.schemas.validation import StatusAutomationResult, UpcomingStatusChange, UpcomingStatusChanges
from surveyhub.services.scheduler_service import remove_job, schedule_interval_job

logger = logging.getLogger(__name__)

AUTOMATION_ACTOR = "status-automation"


def should_activate(instance: SurveyInstanceOut, now: datetime) -> bool:
    window = instance.active_date_range
    return (
        window is not None
        and not instance.is_active
        and instance.config_valid
        and not instance.validation_in_progress
        and window.contains(now)
    )


def should_deactivate(instance: SurveyInstanceOut, now: datetime) -> bool:
    window = instance.active_date_range
    return window is not None and instance.is_active and not window.contains(now)


def inside_active_window(instance: SurveyInstanceOut, now: datetime) -> bool:
    """
    True while the instance's date window is open. A manual switch-off at such
    a moment must also clear config_valid, otherwise should_activate() turns
    the instance straight back on at the next sweep.
    """
    window = instance.active_date_range
    return window is not None and window.contains(now)



class InstanceStatusService:
    JOB_ID = "instance-status-updates"

    def __init__(self, helpers, scheduler=None, interval_minutes: Optional[float] = None,
                 clock: Callable[[], datetime] = now_utc):
        self._helpers = helpers
        self._scheduler = scheduler
        minutes = interval_minutes if interval_minutes is not None else settings.instance_status_interval_minutes
        self._interval = timedelta(minutes=minutes)
        self._clock = clock

    def start(self) -> None:
        if self._scheduler is None:
            raise RuntimeError("No scheduler configured for instance status automation")
        schedule_interval_job(self._scheduler, self._scheduled_update, self.JOB_ID, self._interval,
                              run_immediately=True)

    def stop(self) -> None:
        if self._scheduler is not None:
            remove_job(self._scheduler, self.JOB_ID)

    async def _scheduled_update(self) -> None:
        try:
            await self.update_instance_statuses()
        except Exception as e:
            logger.error("Scheduled instance status update failed: %s", e)

    async def update_instance_statuses(self) -> StatusAutomationResult:
        now = self._clock()
        instances = await self._helpers.get_survey_instances()
        result = StatusAutomationResult(timestamp=now)

        for instance in instances:
            if should_activate(instance, now):
                if await self._set_active(instance, True, "date_window_activation"):
                    result.activated += 1
            elif should_deactivate(instance, now):
                if await self._set_active(instance, False, "date_window_expired"):
                    result.deactivated += 1

        if result.activated or result.deactivated:
            logger.info("Instance status update: %s activated, %s deactivated", result.activated, result.deactivated)
        return result

    async def _set_active(self, instance: SurveyInstanceOut, is_active: bool, reason: str) -> bool:
        try:
            await self._helpers.update_survey_instance(
                instance.id, SurveyInstanceUpdate(is_active=is_active, metadata={"updated_by": AUTOMATION_ACTOR})
            )
        except Exception as e:
            logger.error("Failed to %s instance %s: %s", "activate" if is_active else "deactivate", instance.id, e,
                         extra={"instance_id": instance.id})
            return False

        try:
            await self._helpers.add_instance_status_change(InstanceStatusChangeCreate(
                instance_id=instance.id,
                old_status=instance.is_active,
                new_status=is_active,
                reason=reason,
                changed_by=AUTOMATION_ACTOR,
                details={"active_date_range": instance.active_date_range.model_dump(mode="json")},
            ))
        except Exception as e:
            logger.warning("Failed to record status change for instance %s: %s", instance.id, e)
        return True

    async def get_upcoming_status_changes(self, hours_ahead: float = 24) -> UpcomingStatusChanges:
        """Instances whose window opens or closes within the next ``hours_ahead`` hours."""
        now = self._clock()
        horizon = now + timedelta(hours=hours_ahead)
        upcoming = UpcomingStatusChanges()

        for instance in await self._helpers.get_survey_instances():
            window = instance.active_date_range
            if window is None:
                continue
            if not instance.is_active and instance.config_valid and now < window.start_date <= horizon:
                upcoming.upcoming_activations.append(
                    UpcomingStatusChange(id=instance.id, title=instance.title, slug=instance.slug,
                                         at=window.start_date)
                )
            if instance.is_active and now < window.end_date <= horizon:
                upcoming.upcoming_deactivations.append(
                    UpcomingStatusChange(id=instance.id, title=instance.title, slug=instance.slug,
                                         at=window.end_date)
                )

        upcoming.upcoming_activations.sort(key=lambda item: item.at)
        upcoming.upcoming_deactivations.sort(key=lambda item: item.at)
        return upcoming

    async def clear_validation_locks(self) -> int:
        cleared = await self._helpers.clear_validation_locks()
        logger.info("Cleared validation locks on %s instance(s)", cleared)
        return cleared
