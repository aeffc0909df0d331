"""
SQLAlchemy helpers against a temporary sqlite file (aiosqlite driver).

Test blocks:
  1. DatabaseService initialization (schema bootstrap, missing tables)
  2. CRUD and metadata envelope
  3. End-to-end reconciliation through the real container wiring
"""

from datetime import timedelta

import pytest

from surveyhub.core.config import DatabaseConfig, Settings
from surveyhub.core.container import build_container
from surveyhub.core.errors import DatabaseSchemaError, EntityNotFoundError, HelpersNotAvailableError
from surveyhub.core.timeutils import now_utc
from surveyhub.schemas.option_set import OptionSetCreate
from surveyhub.schemas.survey import (
    InstanceStatusChangeCreate,
    SurveyConfigCreate,
    SurveyConfigUpdate,
    SurveyInstanceCreate,
    SurveyInstanceUpdate,
    SurveySessionCreate,
    SurveySessionUpdate,
)
from surveyhub.services.database_service import DatabaseService


def _sqlite_config(tmp_path, name="surveys.db", create_schema=True):
    return DatabaseConfig(provider="sqlite", url=f"sqlite+aiosqlite:///{tmp_path / name}",
                          create_schema=create_schema)


@pytest.fixture
async def helpers(tmp_path):
    service = DatabaseService()
    await service.initialize(_sqlite_config(tmp_path))
    yield service.database_helpers
    await service.dispose()


def _config_body(**kwargs):
    sections = kwargs.pop("sections", [{"id": "s1", "title": "About", "fields": [{"id": "name", "label": "Name",
                                                                                  "type": "text"}]}])
    return SurveyConfigCreate(title=kwargs.pop("title", "Feedback"), sections=sections,
                              metadata={"created_by": "alice"}, **kwargs)


# ── 1. Initialization ───────────────────────────────────────────────────────

async def test_missing_tables_are_reported_as_schema_error(tmp_path):
    service = DatabaseService()

    with pytest.raises(DatabaseSchemaError, match="Database tables not found"):
        await service.initialize(_sqlite_config(tmp_path, create_schema=False))

    assert service.is_initialized() is False
    with pytest.raises(HelpersNotAvailableError):
        service.database_helpers


async def test_initialize_bootstraps_sqlite_schema_and_reuses_engine(tmp_path):
    service = DatabaseService()
    config = _sqlite_config(tmp_path)

    await service.initialize(config)
    helpers = service.database_helpers
    await service.initialize(config)

    assert service.is_initialized() is True
    assert service.get_current_provider() == "sqlite"
    assert service.database_helpers is helpers
    await service.dispose()
    assert service.is_initialized() is False


# ── 2. CRUD ─────────────────────────────────────────────────────────────────

async def test_config_roundtrip_preserves_creation_metadata(helpers):
    created = await helpers.add_survey_config(_config_body())

    updated = await helpers.update_survey_config(created.id, SurveyConfigUpdate(title="Renamed",
                                                                                metadata={"note": "x"}))

    assert updated.title == "Renamed"
    assert updated.sections[0].fields[0].label == "Name"
    assert updated.metadata.created_by == "alice"
    assert updated.metadata.created_at == created.metadata.created_at
    assert updated.metadata.model_extra["note"] == "x"
    assert updated.metadata.updated_at >= created.metadata.updated_at


async def test_missing_rows(helpers):
    assert await helpers.get_survey_config("nope") is None
    with pytest.raises(EntityNotFoundError):
        await helpers.update_survey_config("nope", {"title": "x"})
    with pytest.raises(EntityNotFoundError):
        await helpers.delete_survey_instance("nope")
    with pytest.raises(EntityNotFoundError):
        await helpers.add_survey_instance(SurveyInstanceCreate(config_id="nope", title="Orphan"))


async def test_instances_by_config_and_date_window(helpers):
    config = await helpers.add_survey_config(_config_body())
    start = now_utc() - timedelta(days=1)
    instance = await helpers.add_survey_instance(SurveyInstanceCreate(
        config_id=config.id, title="Wave 1", slug="wave-1",
        active_date_range={"start_date": start, "end_date": start + timedelta(days=7)},
    ))
    other = await helpers.add_survey_config(_config_body(title="Other"))
    await helpers.add_survey_instance(SurveyInstanceCreate(config_id=other.id, title="Wave X"))

    listed = await helpers.get_survey_instances_by_config(config.id)

    assert [i.id for i in listed] == [instance.id]
    assert listed[0].config_valid is True
    assert listed[0].active_date_range.contains(now_utc())


async def test_clear_validation_locks_counts_rows(helpers):
    config = await helpers.add_survey_config(_config_body())
    first = await helpers.add_survey_instance(SurveyInstanceCreate(config_id=config.id, title="A"))
    await helpers.add_survey_instance(SurveyInstanceCreate(config_id=config.id, title="B"))
    await helpers.update_survey_instance(first.id, SurveyInstanceUpdate(validation_in_progress=True))

    assert await helpers.clear_validation_locks() == 1
    assert (await helpers.get_survey_instance(first.id)).validation_in_progress is False


async def test_option_set_catalogs(helpers):
    scale = await helpers.add_rating_scale(OptionSetCreate(name="1-5", options=[{"label": str(i)} for i in range(1, 6)]))
    multi = await helpers.add_multi_select_option_set(OptionSetCreate(name="Toppings", options=[{"label": "Ham"}],
                                                                      min_selections=1, max_selections=3))

    assert [s.id for s in await helpers.get_rating_scales()] == [scale.id]
    assert (await helpers.get_multi_select_option_set(multi.id)).max_selections == 3
    assert await helpers.get_radio_option_sets() == []

    await helpers.delete_rating_scale(scale.id)
    assert await helpers.get_rating_scale(scale.id) is None


async def test_sessions_and_status_filter(helpers):
    config = await helpers.add_survey_config(_config_body())
    instance = await helpers.add_survey_instance(SurveyInstanceCreate(config_id=config.id, title="Wave"))
    session = await helpers.add_survey_session(SurveySessionCreate(survey_instance_id=instance.id))

    await helpers.update_survey_session(session.id, SurveySessionUpdate(
        status="expired", metadata={"reason": "inactivity_timeout"},
    ))

    assert session.status == "started"
    assert await helpers.get_survey_sessions(statuses=["started"]) == []
    expired = await helpers.get_survey_sessions(statuses=["expired"])
    assert expired[0].metadata.model_extra["reason"] == "inactivity_timeout"


async def test_status_change_audit_trail(helpers):
    config = await helpers.add_survey_config(_config_body())
    instance = await helpers.add_survey_instance(SurveyInstanceCreate(config_id=config.id, title="Wave"))

    await helpers.add_instance_status_change(InstanceStatusChangeCreate(
        instance_id=instance.id, old_status=True, new_status=False, reason="config_invalid",
        changed_by="config-validator",
    ))

    changes = await helpers.get_instance_status_changes(instance.id)
    assert [(c.reason, c.new_status) for c in changes] == [("config_invalid", False)]


# ── 3. Container wiring ─────────────────────────────────────────────────────

async def test_container_initializes_and_reconciles(tmp_path):
    container = build_container(Settings(
        database_provider="sqlite", database_url=str(tmp_path / "engine.db"),
        database_max_retries=1, database_retry_delay_seconds=0, validation_settle_seconds=0,
    ))
    try:
        await container.connection_initializer.retry_initialization()
        helpers = container.helpers

        config = await helpers.add_survey_config(_config_body(sections=[{
            "id": "s1", "title": "About",
            "fields": [{"id": "colour", "label": "Colour", "type": "radio", "radio_option_set_id": "missing"}],
        }]))
        instance = await helpers.add_survey_instance(SurveyInstanceCreate(config_id=config.id, title="Wave"))

        summary = await container.config_validator.verify_config(silent=True)

        stored = await helpers.get_survey_instance(instance.id)
        assert summary.invalid_configs == 1
        assert summary.deactivated_instances == 1
        assert stored.is_active is False
        assert stored.config_valid is False
        assert stored.metadata.model_extra["updated_by"] == "config-validator"
    finally:
        await container.database_service.dispose()
