"""
Shared API dependencies: the workflow system container and error mapping
"""

from typing import Optional

from fastapi import HTTPException, status

from ..config import DocflowConfig, get_config
from ..engine import WorkflowEngine
from ..errors import (
    WorkflowError, NotFoundError, InvalidStateError, ConflictError,
    ForbiddenError, CollaboratorUnavailableError
)
from ..events import EventDispatcher
from ..logging_config import get_logger
from ..registry import StorageDocumentRegistry
from ..storage import StorageInterface, create_storage


logger = get_logger("docflow.api")


class WorkflowSystem:
    """Workflow engine with its storage, registry and event dispatcher"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 config: Optional[DocflowConfig] = None):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.database_url)
        self.event_dispatcher = EventDispatcher()
        self.registry = StorageDocumentRegistry(self.storage)
        self.workflow_engine = WorkflowEngine(
            self.storage, self.registry, self.event_dispatcher, self.config
        )


_workflow_system: Optional[WorkflowSystem] = None


def get_workflow_system() -> WorkflowSystem:
    global _workflow_system
    if _workflow_system is None:
        _workflow_system = WorkflowSystem()
    return _workflow_system


_ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (CollaboratorUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def to_http_exception(error: Exception) -> HTTPException:
    """Map an engine error onto an HTTP status"""
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    if isinstance(error, (ValueError, WorkflowError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    logger.error(f"Unhandled API error: {error}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error")
