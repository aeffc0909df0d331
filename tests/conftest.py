"""
Shared pytest fixtures for the survey engine test suite.

Provides:
    - FakeHelpers: in-memory implementation of the backend helper contract,
      with switches to make individual writes fail
    - fake_helpers: empty FakeHelpers (function-scoped)
    - ready_initializer / idle_initializer: stand-ins exposing is_initialized
    - frozen_now: fixed clock used by the reconciliation tests
    - make_config / make_instance / make_session / make_option_set builders
"""

from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

from surveyhub.core.errors import EntityNotFoundError
from surveyhub.db.base import new_id
from surveyhub.schemas.option_set import OptionSetOut
from surveyhub.schemas.survey import (
    InstanceStatusChangeOut,
    Metadata,
    SurveyConfigOut,
    SurveyInstanceOut,
    SurveyResponseOut,
    SurveySessionOut,
)
from surveyhub.services.database_helpers import merge_metadata, new_metadata

FROZEN_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeHelpers:
    """Dict-backed helper surface. Update calls are recorded in ``update_calls``."""

    provider = "fake"

    def __init__(self):
        self.configs: Dict[str, SurveyConfigOut] = {}
        self.instances: Dict[str, SurveyInstanceOut] = {}
        self.sessions: Dict[str, SurveySessionOut] = {}
        self.responses: List[SurveyResponseOut] = []
        self.rating_scales: Dict[str, OptionSetOut] = {}
        self.radio_option_sets: Dict[str, OptionSetOut] = {}
        self.select_option_sets: Dict[str, OptionSetOut] = {}
        self.multi_select_option_sets: Dict[str, OptionSetOut] = {}
        self.status_changes: List[InstanceStatusChangeOut] = []

        self.fail_instance_updates = set()
        self.fail_session_updates = set()
        self.fail_status_changes = False
        self.update_calls = []

    # -- seeding -----------------------------------------------------------
    def seed(self, *items):
        for item in items:
            if isinstance(item, SurveyConfigOut):
                self.configs[item.id] = item
            elif isinstance(item, SurveyInstanceOut):
                self.instances[item.id] = item
            elif isinstance(item, SurveySessionOut):
                self.sessions[item.id] = item
            else:
                raise TypeError(f"Cannot seed {type(item).__name__}")
        return self

    # -- configs -------------------------------------------------------------
    async def get_survey_configs(self):
        return list(self.configs.values())

    async def get_survey_config(self, config_id):
        return self.configs.get(config_id)

    async def add_survey_config(self, data):
        config = SurveyConfigOut(id=new_id(), title=data.title, description=data.description,
                                 sections=data.sections, version=data.version, is_active=data.is_active,
                                 metadata=Metadata.model_validate(new_metadata(data.metadata)))
        self.configs[config.id] = config
        return config

    async def delete_survey_config(self, config_id):
        if self.configs.pop(config_id, None) is None:
            raise EntityNotFoundError("Survey config", config_id)

    # -- instances -----------------------------------------------------------
    async def get_survey_instances(self):
        return list(self.instances.values())

    async def get_survey_instances_by_config(self, config_id):
        return [i for i in self.instances.values() if i.config_id == config_id]

    async def get_survey_instance(self, instance_id):
        return self.instances.get(instance_id)

    async def update_survey_instance(self, instance_id, data):
        self.update_calls.append((instance_id, data))
        if instance_id in self.fail_instance_updates:
            raise RuntimeError("write refused")
        current = self.instances.get(instance_id)
        if current is None:
            raise EntityNotFoundError("Survey instance", instance_id)
        changes = data.model_dump(exclude_unset=True)
        supplied = changes.pop("metadata", None)
        changes["metadata"] = Metadata.model_validate(
            merge_metadata(current.metadata.model_dump(exclude_none=True), supplied)
        )
        updated = current.model_copy(update=changes)
        self.instances[instance_id] = updated
        return updated

    async def clear_validation_locks(self):
        locked = [i for i in self.instances.values() if i.validation_in_progress]
        for instance in locked:
            self.instances[instance.id] = instance.model_copy(update={"validation_in_progress": False})
        return len(locked)

    # -- catalogs ------------------------------------------------------------
    async def get_rating_scales(self):
        return list(self.rating_scales.values())

    async def get_radio_option_sets(self):
        return list(self.radio_option_sets.values())

    async def get_select_option_sets(self):
        return list(self.select_option_sets.values())

    async def get_multi_select_option_sets(self):
        return list(self.multi_select_option_sets.values())

    async def get_rating_scale(self, scale_id):
        return self.rating_scales.get(scale_id)

    # -- sessions ------------------------------------------------------------
    async def get_survey_sessions(self, statuses=None):
        sessions = list(self.sessions.values())
        if statuses is not None:
            sessions = [s for s in sessions if s.status in statuses]
        return sessions

    async def get_survey_session(self, session_id):
        return self.sessions.get(session_id)

    async def add_survey_session(self, data):
        if data.survey_instance_id not in self.instances:
            raise EntityNotFoundError("Survey instance", data.survey_instance_id)
        session = make_session(data.survey_instance_id, status="started", last_activity_at=FROZEN_NOW,
                               started_at=FROZEN_NOW)
        self.sessions[session.id] = session
        return session

    async def update_survey_session(self, session_id, data):
        self.update_calls.append((session_id, data))
        if session_id in self.fail_session_updates:
            raise RuntimeError("write refused")
        current = self.sessions.get(session_id)
        if current is None:
            raise EntityNotFoundError("Survey session", session_id)
        changes = data.model_dump(exclude_unset=True)
        supplied = changes.pop("metadata", None)
        changes["metadata"] = Metadata.model_validate(
            merge_metadata(current.metadata.model_dump(exclude_none=True), supplied)
        )
        updated = current.model_copy(update=changes)
        self.sessions[session_id] = updated
        return updated

    # -- audit -----------------------------------------------------------------
    async def add_instance_status_change(self, data):
        if self.fail_status_changes:
            raise RuntimeError("audit table unavailable")
        change = InstanceStatusChangeOut(id=new_id(), changed_at=FROZEN_NOW, **data.model_dump())
        self.status_changes.append(change)
        return change

    async def get_instance_status_changes(self, instance_id):
        return [c for c in self.status_changes if c.instance_id == instance_id]


# ── Builders ─────────────────────────────────────────────────────────────


def make_field(label: str = "Question", type: Optional[str] = "text", **kwargs) -> dict:
    return {"id": kwargs.pop("id", label.lower().replace(" ", "_")), "label": label, "type": type, **kwargs}


def make_config(title: str = "Customer Feedback", sections: Optional[list] = None, **kwargs) -> SurveyConfigOut:
    if sections is None:
        sections = [{"id": "s1", "title": "About you", "fields": [make_field("Name")]}]
    return SurveyConfigOut(id=kwargs.pop("id", new_id()), title=title, sections=sections, **kwargs)


def make_instance(config_id: str, title: str = "Spring wave", **kwargs) -> SurveyInstanceOut:
    return SurveyInstanceOut(id=kwargs.pop("id", new_id()), config_id=config_id, title=title, **kwargs)


def make_session(instance_id: str, status: str = "in_progress", **kwargs) -> SurveySessionOut:
    return SurveySessionOut(id=kwargs.pop("id", new_id()), survey_instance_id=instance_id, status=status,
                            metadata=kwargs.pop("metadata", Metadata(created_by="respondent")), **kwargs)


def make_option_set(name: str = "Agreement", **kwargs) -> OptionSetOut:
    options = kwargs.pop("options", [{"label": "Yes", "value": "yes"}, {"label": "No", "value": "no"}])
    return OptionSetOut(id=kwargs.pop("id", new_id()), name=name, options=options, **kwargs)


def window(start: datetime, end: datetime) -> dict:
    return {"start_date": start, "end_date": end}


# ── Fixtures ─────────────────────────────────────────────────────────────


@pytest.fixture
def fake_helpers():
    return FakeHelpers()


@pytest.fixture
def frozen_now():
    return FROZEN_NOW


@pytest.fixture
def clock():
    return lambda: FROZEN_NOW


@pytest.fixture
def ready_initializer():
    return SimpleNamespace(is_initialized=True, last_error=None)


@pytest.fixture
def idle_initializer():
    return SimpleNamespace(is_initialized=False, last_error=None)
