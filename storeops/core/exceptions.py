"""
Platform-wide exception hierarchy.

Services raise these types; a single app-level handler registered against
``ServiceError`` turns them into JSON responses with consistent status codes.
Blueprints never need to catch them individually.

Usage:
    from storeops.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Assignment", resource_id=assignment_id)
    raise ValidationError("缺少必要欄位", details={"year_month": "required"})
"""


class ServiceError(Exception):
    """Base class for errors raised by the service layer."""

    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message}


class NotFoundError(ServiceError):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Template", "Store").
        resource_id: The key that was looked up. Logged, not returned.
        message: Optional user-facing message overriding the default.
    """

    status_code = 404

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        if message is None:
            message = f"{resource} not found"
        super().__init__(message)


class ValidationError(ServiceError):
    """Raised when input fails validation or a business rule precondition.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    status_code = 400

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.details:
            body["details"] = self.details
        return body


class PermissionDeniedError(ServiceError):
    """Raised when the principal is not allowed to perform an operation.

    Maps to HTTP 403. ``required`` carries the violated permission key when
    the decision came from the RBAC evaluator.
    """

    status_code = 403

    def __init__(self, message: str = "權限不足", required: str | None = None) -> None:
        self.required = required
        super().__init__(message)

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.required:
            body["required"] = self.required
        return body


class ConflictError(ServiceError):
    """Raised when an operation would duplicate a unique key.

    Maps to HTTP 409.
    """

    status_code = 409

    def __init__(self, resource: str, field: str, value: str | None = None,
                 message: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        if message is None:
            message = f"{resource} with {field}={value!r} already exists"
        super().__init__(message)


class StateError(ServiceError):
    """Raised for lifecycle transitions the current state does not allow.

    Maps to HTTP 409.
    """

    status_code = 409
