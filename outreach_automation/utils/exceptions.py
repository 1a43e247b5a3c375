"""
Error taxonomy for the sequence engine, compiler and deployment adapter.

- ValidationError: malformed sequence or step, rejected before activation
- PersonalizationError: unresolved tokens when strict personalization is on
- NotFoundError: unknown sequence/contact/context at execution time
- DeliveryError: a channel send or webhook call failed for one contact
- DeploymentError: the automation runtime rejected a graph or activation
"""

from typing import Any, Dict, List, Optional


class OutreachError(Exception):
    """Base class for all engine errors."""


class ValidationError(OutreachError):
    """A sequence definition is invalid."""

    def __init__(self, message: str, step_id: Optional[str] = None, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.step_id = step_id
        self.errors = errors or [message]

    def to_dict(self) -> Dict[str, Any]:
        return {'message': self.message, 'step_id': self.step_id, 'errors': self.errors}


class PersonalizationError(ValidationError):
    """Template tokens could not be resolved in strict mode."""

    def __init__(self, message: str, tokens: List[str], step_id: Optional[str] = None):
        super().__init__(message, step_id=step_id)
        self.tokens = tokens


class NotFoundError(OutreachError):
    def __init__(self, resource: str, resource_id: Optional[str] = None):
        message = f"{resource} not found"
        if resource_id:
            message += f" with id: {resource_id}"
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class DeliveryError(OutreachError):
    """A channel send failed. Scoped to a single contact."""

    def __init__(self, message: str, contact_id: Optional[str] = None, step_id: Optional[str] = None,
                 channel: Optional[str] = None):
        super().__init__(message)
        self.contact_id = contact_id
        self.step_id = step_id
        self.channel = channel


class DeploymentError(OutreachError):
    def __init__(self, message: str, status_code: Optional[int] = None, response_data: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data
