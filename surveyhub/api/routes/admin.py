from fastapi import APIRouter, Depends, Query

from surveyhub.api.deps import get_container, get_helpers
from surveyhub.core.container import AppContainer
from surveyhub.schemas.validation import (
    CleanupStats,
    StatusAutomationResult,
    UpcomingStatusChanges,
    ValidationSummary,
)
from surveyhub.services.database_proxy import ValidatingHelpersProxy

router = APIRouter(prefix="/admin", tags=["admin"])


# ============================================================================
# Config validation
# ============================================================================

@router.post(
    "/verify-config",
    response_model=ValidationSummary,
    summary="Validate every survey config and reconcile its instances",
    description="""
    Checks each survey config against the option-set catalogs.

    Instances of an invalid config are deactivated (or locked, if already
    inactive). Instances of a valid config are unlocked and reactivated when
    they were switched off by validation or their date window is open.

    `silent=true` skips the short settling delay after deactivations.
    """,
)
async def verify_config(
    silent: bool = Query(False, description="Skip the post-deactivation settling delay"),
    container: AppContainer = Depends(get_container),
    _: ValidatingHelpersProxy = Depends(get_helpers),
):
    return await container.config_validator.verify_config(silent=silent)


# ============================================================================
# Instance status automation
# ============================================================================

@router.post("/instances/update-statuses", response_model=StatusAutomationResult)
async def update_instance_statuses(
    container: AppContainer = Depends(get_container),
    _: ValidatingHelpersProxy = Depends(get_helpers),
):
    """Run the date-window activation sweep now."""
    return await container.instance_status.update_instance_statuses()


@router.get("/instances/upcoming-status-changes", response_model=UpcomingStatusChanges)
async def upcoming_status_changes(
    hours_ahead: float = Query(24, gt=0, le=24 * 31),
    container: AppContainer = Depends(get_container),
    _: ValidatingHelpersProxy = Depends(get_helpers),
):
    return await container.instance_status.get_upcoming_status_changes(hours_ahead=hours_ahead)


@router.post("/instances/clear-validation-locks")
async def clear_validation_locks(
    container: AppContainer = Depends(get_container),
    _: ValidatingHelpersProxy = Depends(get_helpers),
):
    cleared = await container.instance_status.clear_validation_locks()
    return {"cleared": cleared}


# ============================================================================
# Session cleanup
# ============================================================================

@router.get("/sessions/cleanup/stats", response_model=CleanupStats)
def session_cleanup_stats(container: AppContainer = Depends(get_container)):
    return container.session_cleanup.get_stats()


@router.post("/sessions/cleanup")
async def run_session_cleanup(
    container: AppContainer = Depends(get_container),
    _: ValidatingHelpersProxy = Depends(get_helpers),
):
    """Expire inactive sessions now instead of waiting for the next sweep."""
    expired = await container.session_cleanup.manual_cleanup()
    return {"expired": expired}
