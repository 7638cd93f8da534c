"""Errors raised by the federated tables registry."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class EngineError(Exception):
    """Error reported by the federation engine itself.

    Messages follow the Postgres convention (``ERROR:  <text>``) so the
    classifier handles them the same way as errors coming from a remote
    server.
    """

    def __init__(self, message: str):
        super().__init__(f"ERROR:  {message}")
        self.engine_message = message


class FederationError(Exception):
    """Base class for registry errors with a stable taxonomy identifier."""

    status_code = 500
    error_code = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error_code": self.error_code, "message": self.message}


class ValidationError(FederationError):
    """Malformed, missing or unexpected request attributes."""

    status_code = 422
    error_code = "invalid_parameter_format"

    def __init__(self, message: str, *, error_code: Optional[str] = None):
        super().__init__(message)
        if error_code:
            self.error_code = error_code


class MissingParametersError(ValidationError):
    def __init__(self, missing: Sequence[str]):
        self.parameters = list(missing)
        super().__init__(
            f"Missing required parameters: {', '.join(self.parameters)}",
            error_code="missing_parameters",
        )


class UnexpectedParametersError(ValidationError):
    def __init__(self, unexpected: Sequence[str]):
        self.parameters = list(unexpected)
        super().__init__(
            f"Unexpected parameters: {', '.join(self.parameters)}",
            error_code="unexpected_parameters",
        )


class InvalidParameterFormatError(ValidationError):
    def __init__(self, parameter: str, reason: str):
        self.parameter = parameter
        super().__init__(
            f"Invalid format for parameter '{parameter}': {reason}",
            error_code="invalid_parameter_format",
        )


class InvalidAccessModeError(ValidationError):
    def __init__(self, mode: Any, accepted: str):
        self.mode = mode
        super().__init__(
            f"Invalid access mode: '{mode}'. Only '{accepted}' accepted",
            error_code="invalid_access_mode",
        )


class NotFoundError(FederationError):
    status_code = 404
    error_code = "not_found"


class UnauthorizedError(FederationError):
    status_code = 401
    error_code = "unauthorized"


class UnprocessableError(FederationError):
    """Well-formed input the engine rejected (wrong column type, duplicate name...)."""

    status_code = 422
    error_code = "unprocessable_entity"


class PartialFailureError(FederationError):
    """A multi-step operation failed after some of its steps took effect.

    Nothing is rolled back: ``completed_steps`` tells operators what has to be
    reconciled by hand.
    """

    error_code = "partial_failure"

    def __init__(
        self,
        operation: str,
        *,
        completed_steps: List[str],
        failed_step: str,
        cause: Exception,
    ):
        self.operation = operation
        self.completed_steps = list(completed_steps)
        self.failed_step = failed_step
        self.cause = cause
        cause_message = cause.message if isinstance(cause, FederationError) else str(cause)
        super().__init__(
            f"{operation} partially failed: step '{failed_step}' failed after "
            f"{', '.join(self.completed_steps)} succeeded: {cause_message}"
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["completed_steps"] = self.completed_steps
        payload["failed_step"] = self.failed_step
        return payload
