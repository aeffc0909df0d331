import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query

from surveyhub.api.deps import get_helpers, not_found
from surveyhub.core.errors import EntityNotFoundError
from surveyhub.core.timeutils import now_utc
from surveyhub.schemas.survey import (
    InstanceStatusChangeOut,
    SurveyConfigCreate,
    SurveyConfigOut,
    SurveyConfigUpdate,
    SurveyInstanceCreate,
    SurveyInstanceOut,
    SurveyInstanceUpdate,
    SurveyResponseCreate,
    SurveyResponseOut,
)
from surveyhub.services.database_proxy import ValidatingHelpersProxy
from surveyhub.services.instance_status_service import inside_active_window

logger = logging.getLogger(__name__)

router = APIRouter(tags=["surveys"])


# ============================================================================
# Survey configs
# ============================================================================

@router.get("/survey-configs", response_model=List[SurveyConfigOut])
async def list_survey_configs(helpers: ValidatingHelpersProxy = Depends(get_helpers)):
    return await helpers.get_survey_configs()


@router.post("/survey-configs", response_model=SurveyConfigOut, status_code=status.HTTP_201_CREATED)
async def create_survey_config(body: SurveyConfigCreate, helpers: ValidatingHelpersProxy = Depends(get_helpers)):
    return await helpers.add_survey_config(body)


@router.get("/survey-configs/{config_id}", response_model=SurveyConfigOut)
async def get_survey_config(config_id: str, helpers: ValidatingHelpersProxy = Depends(get_helpers)):
    config = await helpers.get_survey_config(config_id)
    if config is None:
        raise HTTPException(status_code=404, detail="Survey config not found")
    return config


@router.patch("/survey-configs/{config_id}", response_model=SurveyConfigOut)
async def update_survey_config(
    config_id: str,
    body: SurveyConfigUpdate,
    helpers: ValidatingHelpersProxy = Depends(get_helpers),
):
    try:
        return await helpers.update_survey_config(config_id, body)
    except EntityNotFoundError as e:
        raise not_found(e)


@router.delete("/survey-configs/{config_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_survey_config(config_id: str, helpers: ValidatingHelpersProxy = Depends(get_helpers)):
    try:
        await helpers.delete_survey_config(config_id)
    except EntityNotFoundError as e:
        raise not_found(e)


# ============================================================================
# Survey instances
# ============================================================================

@router.get("/survey-instances", response_model=List[SurveyInstanceOut])
async def list_survey_instances(
    config_id: Optional[str] = Query(None, description="Only instances of this config"),
    helpers: ValidatingHelpersProxy = Depends(get_helpers),
):
    if config_id:
        return await helpers.get_survey_instances_by_config(config_id)
    return await helpers.get_survey_instances()


@router.post("/survey-instances", response_model=SurveyInstanceOut, status_code=status.HTTP_201_CREATED)
async def create_survey_instance(body: SurveyInstanceCreate, helpers: ValidatingHelpersProxy = Depends(get_helpers)):
    try:
        return await helpers.add_survey_instance(body)
    except EntityNotFoundError as e:
        raise not_found(e)


@router.get("/survey-instances/{instance_id}", response_model=SurveyInstanceOut)
async def get_survey_instance(instance_id: str, helpers: ValidatingHelpersProxy = Depends(get_helpers)):
    instance = await helpers.get_survey_instance(instance_id)
    if instance is None:
        raise HTTPException(status_code=404, detail="Survey instance not found")
    return instance


@router.patch("/survey-instances/{instance_id}", response_model=SurveyInstanceOut)
async def update_survey_instance(
    instance_id: str,
    body: SurveyInstanceUpdate,
    helpers: ValidatingHelpersProxy = Depends(get_helpers),
):
    if body.is_active is False and body.config_valid is None:
        current = await helpers.get_survey_instance(instance_id)
        if current is None:
            raise HTTPException(status_code=404, detail="Survey instance not found")
        if inside_active_window(current, now_utc()):
            logger.info(f"Deactivating instance {instance_id} inside its date window, setting config_valid=False")
            body.config_valid = False

    try:
        return await helpers.update_survey_instance(instance_id, body)
    except EntityNotFoundError as e:
        raise not_found(e)


@router.delete("/survey-instances/{instance_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_survey_instance(instance_id: str, helpers: ValidatingHelpersProxy = Depends(get_helpers)):
    try:
        await helpers.delete_survey_instance(instance_id)
    except EntityNotFoundError as e:
        raise not_found(e)


@router.get("/survey-instances/{instance_id}/status-changes", response_model=List[InstanceStatusChangeOut])
async def list_instance_status_changes(instance_id: str, helpers: ValidatingHelpersProxy = Depends(get_helpers)):
    return await helpers.get_instance_status_changes(instance_id)


# ============================================================================
# Responses
# ============================================================================

@router.get("/survey-instances/{instance_id}/responses", response_model=List[SurveyResponseOut])
async def list_survey_responses(instance_id: str, helpers: ValidatingHelpersProxy = Depends(get_helpers)):
    return await helpers.get_survey_responses(instance_id)


@router.post("/survey-instances/{instance_id}/responses", response_model=SurveyResponseOut,
             status_code=status.HTTP_201_CREATED)
async def submit_survey_response(
    instance_id: str,
    body: SurveyResponseCreate,
    helpers: ValidatingHelpersProxy = Depends(get_helpers),
):
    if body.survey_instance_id != instance_id:
        raise HTTPException(status_code=400, detail="survey_instance_id does not match the URL")
    instance = await helpers.get_survey_instance(instance_id)
    if instance is None:
        raise HTTPException(status_code=404, detail="Survey instance not found")
    if not instance.is_active:
        raise HTTPException(status_code=409, detail="Survey instance is not accepting responses")
    return await helpers.add_survey_response(body)
