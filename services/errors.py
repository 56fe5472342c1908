"""
Domain exceptions raised by services and mapped to HTTP statuses by the API.
"""

from typing import Any, Optional


class CRMError(Exception):
    """Base class for domain errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(CRMError):
    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found", {"id": entity_id})
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(CRMError):
    status_code = 400


class InvalidStageTransitionError(ValidationError):
    def __init__(self, current_stage: str, target_stage: str, allowed):
        super().__init__(
            f"Invalid stage transition from {current_stage} to {target_stage}",
            {"current_stage": current_stage, "target_stage": target_stage, "allowed": list(allowed)}
        )


class ConflictError(CRMError):
    status_code = 409
