from typing import Any, List, Optional


class ConfigurationError(Exception):
    """Exception raised when an entity type is missing its collection or database binding."""

    def __init__(self, message: str = "Entity type is not configured."):
        super().__init__(message)


class InvalidStateError(Exception):
    """Exception raised when an operation is not valid for the entity's current state."""

    def __init__(self, message: str = "Entity is in an invalid state for this operation."):
        super().__init__(message)


class ValidationError(Exception):
    """Exception raised when an entity fails validation before being persisted."""

    def __init__(
        self,
        message: str = "Entity validation failed",
        errors: Optional[List[Any]] = None,
    ):
        super().__init__(message)
        self.errors = errors or []


class BatchNotAcknowledgedError(Exception):
    """Exception raised when the database does not acknowledge a delete batch."""

    def __init__(self, message: str = "Delete batch was not acknowledged."):
        super().__init__(message)
