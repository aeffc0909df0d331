"""
Backend helper surface: CRUD over survey configs, instances, option-set
catalogs, sessions and responses, plus the connectivity probe.

Every method opens its own short transaction, so helpers can be called
concurrently from the reconciliation sweeps. Callers are expected to go
through ValidatingHelpersProxy rather than holding this object directly.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Type, Union

from pydantic import BaseModel
from pydantic_core import to_jsonable_python
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from surveyhub.core.errors import EntityNotFoundError
from surveyhub.core.timeutils import ensure_aware, isoformat, now_utc, parse_datetime
from surveyhub.models.option_set import MultiSelectOptionSet, RadioOptionSet, RatingScale, SelectOptionSet
from surveyhub.models.survey import (
    SurveyConfig,
    SurveyInstance,
    SurveyInstanceStatusChange,
    SurveyResponse,
    SurveySession,
)
from surveyhub.schemas.option_set import OptionSetCreate, OptionSetOut, OptionSetUpdate
from surveyhub.schemas.survey import (
    InstanceStatusChangeCreate,
    InstanceStatusChangeOut,
    Metadata,
    SurveyConfigCreate,
    SurveyConfigOut,
    SurveyConfigUpdate,
    SurveyInstanceCreate,
    SurveyInstanceOut,
    SurveyInstanceUpdate,
    SurveyResponseCreate,
    SurveyResponseOut,
    SurveySessionCreate,
    SurveySessionOut,
    SurveySessionUpdate,
)

logger = logging.getLogger(__name__)

Changes = Union[BaseModel, Dict[str, Any]]
OptionSetModel = Type[Union[RatingScale, RadioOptionSet, SelectOptionSet, MultiSelectOptionSet]]

# Columns persisted as JSON documents
JSON_FIELDS = ("sections", "options", "active_date_range", "responses", "details", "metadata")
DATETIME_FIELDS = ("started_at", "last_activity_at")


# ============================================================================
# Metadata envelope
# ============================================================================

def new_metadata(supplied: Optional[Dict[str, Any]] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or now_utc()
    envelope = dict(supplied or {})
    envelope["created_at"] = isoformat(now)
    envelope["updated_at"] = isoformat(now)
    envelope.setdefault("created_by", "system")
    return envelope


def merge_metadata(existing: Optional[Dict[str, Any]], supplied: Optional[Dict[str, Any]] = None,
                   now: Optional[datetime] = None) -> Dict[str, Any]:
    """Update the envelope in place semantics: creation keys survive, updated_at always moves."""
    now = now or now_utc()
    existing = dict(existing or {})
    merged = {**existing, **(supplied or {})}
    for key in ("created_at", "created_by"):
        if key in existing:
            merged[key] = existing[key]
    merged["updated_at"] = isoformat(now)
    return merged


def _split_changes(data: Changes) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        raw = data.model_dump(exclude_unset=True)
    else:
        raw = dict(data)
    for key in JSON_FIELDS:
        if key in raw and raw[key] is not None:
            raw[key] = to_jsonable_python(raw[key])
    for key in DATETIME_FIELDS:
        if key in raw:
            raw[key] = parse_datetime(raw[key])
    return raw


def _apply_changes(row: Any, data: Changes, now: datetime) -> None:
    changes = _split_changes(data)
    supplied_metadata = changes.pop("metadata", None)
    for key, value in changes.items():
        if not hasattr(row, key):
            continue
        setattr(row, key, value)
    # Always assign a new dict so the JSON column registers the change
    row.meta = merge_metadata(row.meta, supplied_metadata, now)
    if hasattr(row, "updated_at"):
        row.updated_at = now


def _metadata(row: Any) -> Metadata:
    data = dict(row.meta or {})
    if getattr(row, "created_at", None) is not None:
        data.setdefault("created_at", ensure_aware(row.created_at))
    if getattr(row, "updated_at", None) is not None:
        data.setdefault("updated_at", ensure_aware(row.updated_at))
    return Metadata.model_validate(data)


# ============================================================================
# Row -> schema mappers
# ============================================================================

def config_out(row: SurveyConfig) -> SurveyConfigOut:
    return SurveyConfigOut(
        id=row.id,
        title=row.title,
        description=row.description,
        sections=row.sections or [],
        version=row.version or "1.0.0",
        is_active=bool(row.is_active),
        metadata=_metadata(row),
    )


def instance_out(row: SurveyInstance) -> SurveyInstanceOut:
    return SurveyInstanceOut(
        id=row.id,
        config_id=row.config_id,
        title=row.title,
        description=row.description,
        slug=row.slug,
        is_active=bool(row.is_active),
        # Rows written before the flag existed count as valid / unlocked
        config_valid=True if row.config_valid is None else bool(row.config_valid),
        validation_in_progress=bool(row.validation_in_progress),
        active_date_range=row.active_date_range or None,
        metadata=_metadata(row),
    )


def option_set_out(row: Any) -> OptionSetOut:
    return OptionSetOut(
        id=row.id,
        name=row.name,
        description=row.description,
        options=row.options or [],
        is_active=bool(row.is_active),
        allow_multiple=getattr(row, "allow_multiple", None),
        min_selections=getattr(row, "min_selections", None),
        max_selections=getattr(row, "max_selections", None),
        metadata=_metadata(row),
    )


def session_out(row: SurveySession) -> SurveySessionOut:
    return SurveySessionOut(
        id=row.id,
        survey_instance_id=row.survey_instance_id,
        session_token=row.session_token,
        status=row.status,
        current_section=row.current_section or 0,
        total_sections=row.total_sections,
        started_at=ensure_aware(row.started_at),
        last_activity_at=ensure_aware(row.last_activity_at),
        created_at=ensure_aware(row.created_at),
        metadata=_metadata(row),
    )


def response_out(row: SurveyResponse) -> SurveyResponseOut:
    return SurveyResponseOut(
        id=row.id,
        survey_instance_id=row.survey_instance_id,
        session_id=row.session_id,
        config_version=row.config_version,
        responses=row.responses or {},
        completion_status=row.completion_status,
        submitted_at=ensure_aware(row.submitted_at),
        metadata=_metadata(row),
    )


def status_change_out(row: SurveyInstanceStatusChange) -> InstanceStatusChangeOut:
    return InstanceStatusChangeOut(
        id=row.id,
        instance_id=row.instance_id,
        old_status=row.old_status,
        new_status=row.new_status,
        reason=row.reason,
        changed_by=row.changed_by,
        details=row.details or {},
        changed_at=ensure_aware(row.changed_at),
    )


class DatabaseHelpers:
    """SQLAlchemy implementation of the backend helper contract."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], provider: str):
        self._session_factory = session_factory
        self.provider = provider

    async def probe(self) -> None:
        async with self._session_factory() as session:
            await session.execute(select(SurveyConfig.id).limit(1))

    # ------------------------------------------------------------------
    # Generic row access
    # ------------------------------------------------------------------
    async def _list(self, model, mapper, *criteria, order_by=None) -> List[Any]:
        stmt = select(model).where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [mapper(row) for row in rows]

    async def _get(self, model, mapper, entity_id: str):
        async with self._session_factory() as session:
            row = await session.get(model, entity_id)
            return mapper(row) if row is not None else None

    async def _update(self, model, mapper, label: str, entity_id: str, data: Changes):
        async with self._session_factory.begin() as session:
            row = await session.get(model, entity_id)
            if row is None:
                raise EntityNotFoundError(label, entity_id)
            _apply_changes(row, data, now_utc())
            await session.flush()
            return mapper(row)

    async def _delete(self, model, label: str, entity_id: str) -> None:
        async with self._session_factory.begin() as session:
            row = await session.get(model, entity_id)
            if row is None:
                raise EntityNotFoundError(label, entity_id)
            await session.delete(row)

    async def _add(self, row, mapper):
        async with self._session_factory.begin() as session:
            session.add(row)
            await session.flush()
            return mapper(row)

    # ------------------------------------------------------------------
    # Survey configs
    # ------------------------------------------------------------------
    async def get_survey_configs(self) -> List[SurveyConfigOut]:
        return await self._list(SurveyConfig, config_out, order_by=SurveyConfig.created_at)

    async def get_survey_config(self, config_id: str) -> Optional[SurveyConfigOut]:
        return await self._get(SurveyConfig, config_out, config_id)

    async def add_survey_config(self, data: SurveyConfigCreate) -> SurveyConfigOut:
        row = SurveyConfig(
            title=data.title,
            description=data.description,
            sections=to_jsonable_python(data.sections),
            version=data.version,
            is_active=data.is_active,
            meta=new_metadata(data.metadata),
        )
        return await self._add(row, config_out)

    async def update_survey_config(self, config_id: str, data: Union[SurveyConfigUpdate, Dict[str, Any]]) -> SurveyConfigOut:
        return await self._update(SurveyConfig, config_out, "Survey config", config_id, data)

    async def delete_survey_config(self, config_id: str) -> None:
        await self._delete(SurveyConfig, "Survey config", config_id)

    # ------------------------------------------------------------------
    # Survey instances
    # ------------------------------------------------------------------
    async def get_survey_instances(self) -> List[SurveyInstanceOut]:
        return await self._list(SurveyInstance, instance_out, order_by=SurveyInstance.created_at)

    async def get_survey_instances_by_config(self, config_id: str) -> List[SurveyInstanceOut]:
        return await self._list(SurveyInstance, instance_out, SurveyInstance.config_id == config_id,
                                order_by=SurveyInstance.created_at)

    async def get_survey_instance(self, instance_id: str) -> Optional[SurveyInstanceOut]:
        return await self._get(SurveyInstance, instance_out, instance_id)

    async def add_survey_instance(self, data: SurveyInstanceCreate) -> SurveyInstanceOut:
        async with self._session_factory.begin() as session:
            if await session.get(SurveyConfig, data.config_id) is None:
                raise EntityNotFoundError("Survey config", data.config_id)
            row = SurveyInstance(
                config_id=data.config_id,
                title=data.title,
                description=data.description,
                slug=data.slug,
                is_active=data.is_active,
                config_valid=True,
                validation_in_progress=False,
                active_date_range=to_jsonable_python(data.active_date_range) if data.active_date_range else None,
                meta=new_metadata(data.metadata),
            )
            session.add(row)
            await session.flush()
            return instance_out(row)

    async def update_survey_instance(self, instance_id: str,
                                     data: Union[SurveyInstanceUpdate, Dict[str, Any]]) -> SurveyInstanceOut:
        return await self._update(SurveyInstance, instance_out, "Survey instance", instance_id, data)

    async def delete_survey_instance(self, instance_id: str) -> None:
        await self._delete(SurveyInstance, "Survey instance", instance_id)

    async def clear_validation_locks(self) -> int:
        async with self._session_factory.begin() as session:
            result = await session.execute(
                update(SurveyInstance)
                .where(SurveyInstance.validation_in_progress.is_(True))
                .values(validation_in_progress=False)
            )
            return result.rowcount or 0

    # ------------------------------------------------------------------
    # Option-set catalogs
    # ------------------------------------------------------------------
    async def _list_option_sets(self, model: OptionSetModel) -> List[OptionSetOut]:
        return await self._list(model, option_set_out, order_by=model.name)

    async def _add_option_set(self, model: OptionSetModel, data: OptionSetCreate) -> OptionSetOut:
        row = model(
            name=data.name,
            description=data.description,
            options=to_jsonable_python(data.options),
            is_active=data.is_active,
            meta=new_metadata(data.metadata),
        )
        if model is SelectOptionSet:
            row.allow_multiple = bool(data.allow_multiple)
        if model is MultiSelectOptionSet:
            row.min_selections = data.min_selections
            row.max_selections = data.max_selections
        return await self._add(row, option_set_out)

    async def get_rating_scales(self) -> List[OptionSetOut]:
        return await self._list_option_sets(RatingScale)

    async def get_rating_scale(self, scale_id: str) -> Optional[OptionSetOut]:
        return await self._get(RatingScale, option_set_out, scale_id)

    async def add_rating_scale(self, data: OptionSetCreate) -> OptionSetOut:
        return await self._add_option_set(RatingScale, data)

    async def update_rating_scale(self, scale_id: str, data: Union[OptionSetUpdate, Dict[str, Any]]) -> OptionSetOut:
        return await self._update(RatingScale, option_set_out, "Rating scale", scale_id, data)

    async def delete_rating_scale(self, scale_id: str) -> None:
        await self._delete(RatingScale, "Rating scale", scale_id)

    async def get_radio_option_sets(self) -> List[OptionSetOut]:
        return await self._list_option_sets(RadioOptionSet)

    async def get_radio_option_set(self, set_id: str) -> Optional[OptionSetOut]:
        return await self._get(RadioOptionSet, option_set_out, set_id)

    async def add_radio_option_set(self, data: OptionSetCreate) -> OptionSetOut:
        return await self._add_option_set(RadioOptionSet, data)

    async def update_radio_option_set(self, set_id: str, data: Union[OptionSetUpdate, Dict[str, Any]]) -> OptionSetOut:
        return await self._update(RadioOptionSet, option_set_out, "Radio option set", set_id, data)

    async def delete_radio_option_set(self, set_id: str) -> None:
        await self._delete(RadioOptionSet, "Radio option set", set_id)

    async def get_select_option_sets(self) -> List[OptionSetOut]:
        return await self._list_option_sets(SelectOptionSet)

    async def get_select_option_set(self, set_id: str) -> Optional[OptionSetOut]:
        return await self._get(SelectOptionSet, option_set_out, set_id)

    async def add_select_option_set(self, data: OptionSetCreate) -> OptionSetOut:
        return await self._add_option_set(SelectOptionSet, data)

    async def update_select_option_set(self, set_id: str, data: Union[OptionSetUpdate, Dict[str, Any]]) -> OptionSetOut:
        return await self._update(SelectOptionSet, option_set_out, "Select option set", set_id, data)

    async def delete_select_option_set(self, set_id: str) -> None:
        await self._delete(SelectOptionSet, "Select option set", set_id)

    async def get_multi_select_option_sets(self) -> List[OptionSetOut]:
        return await self._list_option_sets(MultiSelectOptionSet)

    async def get_multi_select_option_set(self, set_id: str) -> Optional[OptionSetOut]:
        return await self._get(MultiSelectOptionSet, option_set_out, set_id)

    async def add_multi_select_option_set(self, data: OptionSetCreate) -> OptionSetOut:
        return await self._add_option_set(MultiSelectOptionSet, data)

    async def update_multi_select_option_set(self, set_id: str,
                                             data: Union[OptionSetUpdate, Dict[str, Any]]) -> OptionSetOut:
        return await self._update(MultiSelectOptionSet, option_set_out, "Multi-select option set", set_id, data)

    async def delete_multi_select_option_set(self, set_id: str) -> None:
        await self._delete(MultiSelectOptionSet, "Multi-select option set", set_id)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------
    async def get_survey_sessions(self, statuses: Optional[Iterable[str]] = None) -> List[SurveySessionOut]:
        criteria = []
        if statuses is not None:
            criteria.append(SurveySession.status.in_(list(statuses)))
        return await self._list(SurveySession, session_out, *criteria, order_by=SurveySession.created_at)

    async def get_survey_session(self, session_id: str) -> Optional[SurveySessionOut]:
        return await self._get(SurveySession, session_out, session_id)

    async def add_survey_session(self, data: SurveySessionCreate) -> SurveySessionOut:
        now = now_utc()
        async with self._session_factory.begin() as session:
            if await session.get(SurveyInstance, data.survey_instance_id) is None:
                raise EntityNotFoundError("Survey instance", data.survey_instance_id)
            row = SurveySession(
                survey_instance_id=data.survey_instance_id,
                status="started",
                total_sections=data.total_sections,
                user_agent=data.user_agent,
                started_at=now,
                last_activity_at=now,
                meta=new_metadata(data.metadata, now),
            )
            session.add(row)
            await session.flush()
            return session_out(row)

    async def update_survey_session(self, session_id: str,
                                    data: Union[SurveySessionUpdate, Dict[str, Any]]) -> SurveySessionOut:
        return await self._update(SurveySession, session_out, "Survey session", session_id, data)

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------
    async def add_survey_response(self, data: SurveyResponseCreate) -> SurveyResponseOut:
        row = SurveyResponse(
            survey_instance_id=data.survey_instance_id,
            session_id=data.session_id,
            config_version=data.config_version,
            responses=to_jsonable_python(data.responses),
            completion_status=data.completion_status,
            meta=new_metadata(data.metadata),
        )
        return await self._add(row, response_out)

    async def get_survey_responses(self, instance_id: str) -> List[SurveyResponseOut]:
        return await self._list(SurveyResponse, response_out, SurveyResponse.survey_instance_id == instance_id,
                                order_by=SurveyResponse.submitted_at)

    # ------------------------------------------------------------------
    # Instance activation audit trail
    # ------------------------------------------------------------------
    async def add_instance_status_change(self, data: InstanceStatusChangeCreate) -> InstanceStatusChangeOut:
        row = SurveyInstanceStatusChange(
            instance_id=data.instance_id,
            old_status=data.old_status,
            new_status=data.new_status,
            reason=data.reason,
            changed_by=data.changed_by,
            details=to_jsonable_python(data.details),
        )
        return await self._add(row, status_change_out)

    async def get_instance_status_changes(self, instance_id: str) -> List[InstanceStatusChangeOut]:
        return await self._list(SurveyInstanceStatusChange, status_change_out,
                                SurveyInstanceStatusChange.instance_id == instance_id,
                                order_by=SurveyInstanceStatusChange.changed_at)
