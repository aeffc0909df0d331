"""
Date-window automation tests: activation / deactivation rules, audit trail,
upcoming changes and validation-lock clearing.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from conftest import FROZEN_NOW, make_instance, window
from surveyhub.services.instance_status_service import InstanceStatusService

OPEN = window(FROZEN_NOW - timedelta(days=1), FROZEN_NOW + timedelta(days=1))
CLOSED = window(FROZEN_NOW - timedelta(days=3), FROZEN_NOW - timedelta(days=1))


@pytest.fixture
def service(fake_helpers, clock):
    return InstanceStatusService(fake_helpers, scheduler=MagicMock(), interval_minutes=30, clock=clock)


async def test_activates_valid_instance_inside_window(fake_helpers, service):
    instance = make_instance("cfg", is_active=False, active_date_range=OPEN)
    fake_helpers.seed(instance)

    result = await service.update_instance_statuses()

    assert (result.activated, result.deactivated) == (1, 0)
    assert result.timestamp == FROZEN_NOW
    assert fake_helpers.instances[instance.id].is_active is True
    change = fake_helpers.status_changes[0]
    assert (change.old_status, change.new_status, change.reason) == (False, True, "date_window_activation")


@pytest.mark.parametrize("flags", [
    {"config_valid": False},
    {"validation_in_progress": True},
])
async def test_does_not_activate_invalid_or_locked_instance(fake_helpers, service, flags):
    instance = make_instance("cfg", is_active=False, active_date_range=OPEN, **flags)
    fake_helpers.seed(instance)

    result = await service.update_instance_statuses()

    assert result.activated == 0
    assert fake_helpers.instances[instance.id].is_active is False


async def test_deactivates_expired_window_even_when_locked(fake_helpers, service):
    instance = make_instance("cfg", is_active=True, validation_in_progress=True, active_date_range=CLOSED)
    fake_helpers.seed(instance)

    result = await service.update_instance_statuses()

    assert result.deactivated == 1
    assert fake_helpers.instances[instance.id].is_active is False
    assert fake_helpers.status_changes[0].reason == "date_window_expired"


async def test_instances_without_window_are_ignored(fake_helpers, service):
    fake_helpers.seed(make_instance("cfg", is_active=True), make_instance("cfg", is_active=False))

    result = await service.update_instance_statuses()

    assert (result.activated, result.deactivated) == (0, 0)
    assert fake_helpers.update_calls == []


async def test_failed_update_is_skipped(fake_helpers, service):
    failing = make_instance("cfg", is_active=False, active_date_range=OPEN)
    healthy = make_instance("cfg", is_active=False, active_date_range=OPEN)
    fake_helpers.seed(failing, healthy)
    fake_helpers.fail_instance_updates.add(failing.id)

    result = await service.update_instance_statuses()

    assert result.activated == 1
    assert fake_helpers.instances[healthy.id].is_active is True


async def test_upcoming_status_changes(fake_helpers, service):
    opens_soon = make_instance("cfg", title="Opens soon", is_active=False,
                               active_date_range=window(FROZEN_NOW + timedelta(hours=3), FROZEN_NOW + timedelta(days=2)))
    closes_soon = make_instance("cfg", title="Closes soon", is_active=True,
                                active_date_range=window(FROZEN_NOW - timedelta(days=1), FROZEN_NOW + timedelta(hours=5)))
    far_away = make_instance("cfg", title="Far away", is_active=False,
                             active_date_range=window(FROZEN_NOW + timedelta(days=5), FROZEN_NOW + timedelta(days=6)))
    invalid = make_instance("cfg", title="Invalid", is_active=False, config_valid=False,
                            active_date_range=window(FROZEN_NOW + timedelta(hours=1), FROZEN_NOW + timedelta(days=1)))
    fake_helpers.seed(opens_soon, closes_soon, far_away, invalid)

    upcoming = await service.get_upcoming_status_changes(hours_ahead=24)

    assert [item.title for item in upcoming.upcoming_activations] == ["Opens soon"]
    assert [item.title for item in upcoming.upcoming_deactivations] == ["Closes soon"]
    assert upcoming.upcoming_activations[0].at == FROZEN_NOW + timedelta(hours=3)


async def test_clear_validation_locks(fake_helpers, service):
    locked = make_instance("cfg", validation_in_progress=True)
    fake_helpers.seed(locked, make_instance("cfg"))

    assert await service.clear_validation_locks() == 1
    assert fake_helpers.instances[locked.id].validation_in_progress is False


def test_start_schedules_interval_job():
    scheduler = MagicMock()
    service = InstanceStatusService(MagicMock(), scheduler=scheduler, interval_minutes=30)

    service.start()
    service.stop()

    kwargs = scheduler.add_job.call_args.kwargs
    assert kwargs["id"] == InstanceStatusService.JOB_ID
    assert kwargs["seconds"] == 1800
    scheduler.remove_job.assert_called_once_with(InstanceStatusService.JOB_ID)
