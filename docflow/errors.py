"""
Workflow Error Types

Every failure the engine reports to its callers is a WorkflowError subclass,
so transports can map them to status codes without inspecting messages.
"""

from typing import Optional


class WorkflowError(Exception):
    """Base class for all workflow engine errors"""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        self.entity_id = entity_id
        super().__init__(message)


class NotFoundError(WorkflowError):
    """Workflow, stage or document id does not resolve"""
    pass


class InvalidStateError(WorkflowError):
    """Operation is not legal in the record's current status"""

    def __init__(self, message: str, entity_id: Optional[str] = None,
                 current_status: Optional[str] = None):
        self.current_status = current_status
        super().__init__(message, entity_id)


class ForbiddenError(WorkflowError):
    """A workflow policy flag disallows the requested action"""
    pass


class ConflictError(WorkflowError):
    """Record changed between read and write (optimistic concurrency check failed)"""

    def __init__(self, message: str, entity_id: Optional[str] = None,
                 expected_version: Optional[int] = None,
                 actual_version: Optional[int] = None):
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(message, entity_id)


class CollaboratorUnavailableError(WorkflowError):
    """Persistence store or document registry call failed"""

    def __init__(self, message: str, entity_id: Optional[str] = None,
                 collaborator: Optional[str] = None):
        self.collaborator = collaborator
        super().__init__(message, entity_id)
