from fastapi import Depends, HTTPException, Request

from surveyhub.core.container import AppContainer
from surveyhub.core.errors import EntityNotFoundError
from surveyhub.services.database_proxy import ValidatingHelpersProxy


def get_container(request: Request) -> AppContainer:
    return request.app.state.container


def get_helpers(container: AppContainer = Depends(get_container)) -> ValidatingHelpersProxy:
    """
    Readiness-gated helpers for a request.
    Answers 503 instead of letting the proxy raise mid-handler.
    """
    if not container.connection_initializer.is_initialized:
        raise HTTPException(status_code=503, detail="Database service not initialized")
    return container.helpers


def not_found(e: EntityNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(e))
