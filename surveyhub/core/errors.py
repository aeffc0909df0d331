from __future__ import annotations


# Message fragments that mark an initialization failure as permanent.
NON_RETRYABLE_MARKERS = (
    "Database tables not found",
    "Unknown database provider",
    "configuration is required",
)


class DatabaseError(Exception):
    # Base class for backend store failures.
    pass


class DatabaseConfigurationError(DatabaseError):
    # Missing or invalid provider selection / credentials. Never retried.
    pass


class DatabaseSchemaError(DatabaseError):
    # Expected tables are absent; a setup step was skipped. Never retried.
    pass


class DatabaseConnectionError(DatabaseError):
    # Timeouts and network failures. Retried with backoff.
    pass


class DatabaseNotInitializedError(DatabaseError):
    # A helper was invoked before the connection initializer succeeded.
    def __init__(self, message: str | None = None):
        super().__init__(message or "Database service not initialized. Call initialize() first.")


class HelpersNotAvailableError(DatabaseError):
    # The helper object could not be resolved even though initialization reported success.
    def __init__(self, message: str | None = None):
        super().__init__(message or "Database helpers not available")


class MethodNotAvailableError(DatabaseError):
    def __init__(self, name: str):
        super().__init__(f"Database helper method not available: {name}")
        self.name = name


class EntityNotFoundError(DatabaseError):
    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


def is_retryable_error(exc: BaseException) -> bool:
    if isinstance(exc, (DatabaseConfigurationError, DatabaseSchemaError)):
        return False
    message = str(exc)
    return not any(marker in message for marker in NON_RETRYABLE_MARKERS)


def describe_initialization_error(exc: BaseException) -> str:
    """Map an initialization failure to a short cause an operator can act on."""
    message = str(exc)
    if isinstance(exc, DatabaseSchemaError) or "Database tables not found" in message:
        return "Database not set up. Run the migrations (alembic upgrade head) before starting the service."
    if isinstance(exc, DatabaseConfigurationError) or "Unknown database provider" in message \
            or "configuration is required" in message:
        return "Database configuration is invalid. Check DATABASE_PROVIDER and DATABASE_URL in your .env file."
    if isinstance(exc, (TimeoutError, DatabaseConnectionError)) or "timeout" in message.lower():
        return "Connection timeout. The database did not respond in time."
    return "Database unavailable."
