"""
Workflow error taxonomy.

Every error raised by the core carries an HTTP status and a stable machine
code so the API layer can surface the message verbatim.

| Error                  | Status | Retryable | Surfaced to user |
|------------------------|--------|-----------|------------------|
| InvalidTransition      | 409    | no        | yes              |
| Unauthorized           | 403    | no        | yes              |
| InsufficientStock      | 409    | no        | yes              |
| WorkloadLimitExceeded  | 409    | no        | yes              |
| NotFound               | 404    | no        | yes              |
| ValidationFailed       | 422    | no        | yes              |
| DeliveryFailure        | 502    | next scan | logged only      |
| ConfigurationMissing   | 503    | no        | yes              |
"""
from typing import Optional


class WorkflowError(Exception):
    """Base class for all errors raised by the workflow core."""

    status_code: int = 400
    code: str = "WORKFLOW_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class InvalidTransition(WorkflowError):
    """Requested action is illegal from the entity's current state."""

    status_code = 409
    code = "INVALID_TRANSITION"

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        requested_status: Optional[str] = None,
    ):
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status


class Unauthorized(WorkflowError):
    """Actor lacks the capability required for the action."""

    status_code = 403
    code = "UNAUTHORIZED"


class InsufficientStock(WorkflowError):
    """A debit would drive a part's on-hand ledger sum below zero."""

    status_code = 409
    code = "INSUFFICIENT_STOCK"

    def __init__(self, message: str, part_code: Optional[str] = None,
                 available: int = 0, requested: int = 0):
        super().__init__(message)
        self.part_code = part_code
        self.available = available
        self.requested = requested


class WorkloadLimitExceeded(WorkflowError):
    """Engineer already holds the maximum number of active repairs."""

    status_code = 409
    code = "WORKLOAD_LIMIT_EXCEEDED"


class NotFound(WorkflowError):
    status_code = 404
    code = "NOT_FOUND"


class ValidationFailed(WorkflowError):
    status_code = 422
    code = "VALIDATION_FAILED"


class DeliveryFailure(WorkflowError):
    """Notification channel could not confirm delivery."""

    status_code = 502
    code = "DELIVERY_FAILURE"

    def __init__(self, message: str, recipient: Optional[str] = None):
        super().__init__(message)
        self.recipient = recipient


class ConfigurationMissing(WorkflowError):
    """Required external configuration (recipient, secret, ...) is absent."""

    status_code = 503
    code = "CONFIGURATION_MISSING"
