from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from pydantic import BaseModel, Field

from surveyhub.api.deps import get_helpers, not_found
from surveyhub.core.errors import EntityNotFoundError
from surveyhub.core.timeutils import now_utc
from surveyhub.schemas.survey import (
    TERMINAL_SESSION_STATUSES,
    SessionStatus,
    SurveySessionCreate,
    SurveySessionOut,
    SurveySessionUpdate,
)
from surveyhub.services.database_proxy import ValidatingHelpersProxy

router = APIRouter(prefix="/sessions", tags=["sessions"])


class SessionActivity(BaseModel):
    current_section: Optional[int] = Field(None, ge=0, description="Section the respondent is on")


async def _open_session(helpers: ValidatingHelpersProxy, session_id: str) -> SurveySessionOut:
    session = await helpers.get_survey_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Survey session not found")
    if session.status in TERMINAL_SESSION_STATUSES:
        raise HTTPException(status_code=409, detail=f"Survey session is already {session.status}")
    return session


@router.post("", response_model=SurveySessionOut, status_code=status.HTTP_201_CREATED)
async def start_session(body: SurveySessionCreate, helpers: ValidatingHelpersProxy = Depends(get_helpers)):
    instance = await helpers.get_survey_instance(body.survey_instance_id)
    if instance is None:
        raise HTTPException(status_code=404, detail="Survey instance not found")
    if not instance.is_active:
        raise HTTPException(status_code=409, detail="Survey instance is not accepting responses")
    try:
        return await helpers.add_survey_session(body)
    except EntityNotFoundError as e:
        raise not_found(e)


@router.get("", response_model=List[SurveySessionOut])
async def list_sessions(
    status_filter: Optional[List[SessionStatus]] = Query(None, alias="status"),
    helpers: ValidatingHelpersProxy = Depends(get_helpers),
):
    return await helpers.get_survey_sessions(statuses=status_filter)


@router.get("/{session_id}", response_model=SurveySessionOut)
async def get_session(session_id: str, helpers: ValidatingHelpersProxy = Depends(get_helpers)):
    session = await helpers.get_survey_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Survey session not found")
    return session


@router.post("/{session_id}/activity", response_model=SurveySessionOut)
async def record_activity(
    session_id: str,
    body: Optional[SessionActivity] = None,
    helpers: ValidatingHelpersProxy = Depends(get_helpers),
):
    """Refresh the inactivity clock (and optionally the current section)."""
    await _open_session(helpers, session_id)
    changes = SurveySessionUpdate(status="in_progress", last_activity_at=now_utc())
    if body is not None and body.current_section is not None:
        changes.current_section = body.current_section
    try:
        return await helpers.update_survey_session(session_id, changes)
    except EntityNotFoundError as e:
        raise not_found(e)


@router.post("/{session_id}/complete", response_model=SurveySessionOut)
async def complete_session(session_id: str, helpers: ValidatingHelpersProxy = Depends(get_helpers)):
    await _open_session(helpers, session_id)
    try:
        return await helpers.update_survey_session(
            session_id, SurveySessionUpdate(status="completed", last_activity_at=now_utc())
        )
    except EntityNotFoundError as e:
        raise not_found(e)
