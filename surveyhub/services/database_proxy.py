"""
Validating Access Proxy - readiness-gated view of DatabaseHelpers.

Every member listed in HELPER_MEMBERS becomes a method on
ValidatingHelpersProxy. Looking a method up (``get = proxy.get_survey_configs``)
is free; only calling it checks that the connection initializer has
succeeded, then resolves the live helper object and delegates. Resolved
callables are cached per name for as long as the service keeps the same
helpers object; the readiness check runs on every call.
"""
import logging
from typing import Any, Callable, Dict, Optional

from surveyhub.core.errors import DatabaseNotInitializedError, HelpersNotAvailableError, MethodNotAvailableError
from surveyhub.services.connection_initializer import ConnectionInitializer
from surveyhub.services.database_service import DatabaseService

logger = logging.getLogger(__name__)

OPTION_SET_KINDS = ("rating_scale", "radio_option_set", "select_option_set", "multi_select_option_set")


def _crud_names(kind: str) -> tuple:
    return (f"get_{kind}s", f"get_{kind}", f"add_{kind}", f"update_{kind}", f"delete_{kind}")


HELPER_MEMBERS = (
    # Survey configs
    "get_survey_configs", "get_survey_config", "add_survey_config", "update_survey_config", "delete_survey_config",
    # Survey instances
    "get_survey_instances", "get_survey_instances_by_config", "get_survey_instance",
    "add_survey_instance", "update_survey_instance", "delete_survey_instance", "clear_validation_locks",
    # Sessions + responses
    "get_survey_sessions", "get_survey_session", "add_survey_session", "update_survey_session",
    "add_survey_response", "get_survey_responses",
    # Activation audit trail
    "add_instance_status_change", "get_instance_status_changes",
    # Connectivity + provider info
    "probe", "provider",
) + tuple(name for kind in OPTION_SET_KINDS for name in _crud_names(kind))


class ValidatingHelpersProxy:
    def __init__(self, initializer: ConnectionInitializer, database_service: DatabaseService):
        self._initializer = initializer
        self._database_service = database_service
        self._resolved: Dict[str, Callable[..., Any]] = {}
        self._resolved_from: Optional[Any] = None

    def _invoke(self, name: str, args: tuple, kwargs: dict) -> Any:
        if not self._initializer.is_initialized:
            raise DatabaseNotInitializedError(
                f"Database service not initialized. Call initialize() before {name}()."
            )

        try:
            helpers = self._database_service.database_helpers
        except HelpersNotAvailableError:
            self._forget()
            raise
        except Exception as e:
            self._forget()
            raise HelpersNotAvailableError(f"Database helpers not available: {e}") from e
        if helpers is None:
            self._forget()
            raise HelpersNotAvailableError()

        # Cached methods are bound to one helpers object; a re-initialize replaces it
        if helpers is not self._resolved_from:
            self._forget()
            self._resolved_from = helpers

        func = self._resolved.get(name)
        if func is not None:
            return func(*args, **kwargs)

        try:
            member = getattr(helpers, name)
        except AttributeError:
            raise MethodNotAvailableError(name) from None

        if not callable(member):
            return member

        self._resolved[name] = member
        return member(*args, **kwargs)

    def _forget(self) -> None:
        self._resolved.clear()
        self._resolved_from = None


def _gated(name: str) -> Callable[..., Any]:
    def method(self: ValidatingHelpersProxy, *args: Any, **kwargs: Any) -> Any:
        return self._invoke(name, args, kwargs)

    method.__name__ = name
    method.__qualname__ = f"ValidatingHelpersProxy.{name}"
    method.__doc__ = f"Readiness-gated call to DatabaseHelpers.{name}."
    return method


for _name in HELPER_MEMBERS:
    setattr(ValidatingHelpersProxy, _name, _gated(_name))
del _name
