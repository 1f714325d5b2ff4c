"""
Event System Module

Publish/subscribe dispatcher for workflow domain events. Notification delivery
(email, chat, push) lives outside the engine and subscribes here.
"""

from enum import Enum
from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid
import logging
from threading import RLock


class DomainEvent(Enum):
    """Domain events raised by the workflow engine"""

    WORKFLOW_CREATED = "workflow.created"
    WORKFLOW_STARTED = "workflow.started"
    WORKFLOW_APPROVED = "workflow.approved"
    WORKFLOW_REJECTED = "workflow.rejected"
    WORKFLOW_COMPLETED = "workflow.completed"
    WORKFLOW_CANCELLED = "workflow.cancelled"
    WORKFLOW_HELD = "workflow.held"
    WORKFLOW_RESUMED = "workflow.resumed"
    WORKFLOW_ESCALATED = "workflow.escalated"
    WORKFLOW_REMINDER = "workflow.reminder"

    STAGE_ACTIVATED = "stage.activated"
    STAGE_COMPLETED = "stage.completed"
    STAGE_SKIPPED = "stage.skipped"
    STAGE_DELEGATED = "stage.delegated"


@dataclass
class EventPayload:
    """Payload for domain events"""
    event_type: DomainEvent
    entity_type: str
    entity_id: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'data': self.data,
            'timestamp': self.timestamp.isoformat(),
            'event_id': self.event_id
        }


class EventDispatcher:
    """Central event dispatcher - publish/subscribe pattern"""

    def __init__(self):
        self._handlers: Dict[DomainEvent, List[Callable]] = {}
        self._global_handlers: List[Callable] = []  # catch-all handlers
        self._lock = RLock()
        self.logger = logging.getLogger("docflow.events")

    @staticmethod
    def _name(handler: Callable) -> str:
        return getattr(handler, '__name__', repr(handler))

    def subscribe(self, event_type: DomainEvent, handler: Callable) -> None:
        """Subscribe to a specific event type"""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            self.logger.debug(f"Subscribed handler {self._name(handler)} to {event_type.value}")

    def subscribe_all(self, handler: Callable) -> None:
        """Subscribe to ALL events"""
        with self._lock:
            self._global_handlers.append(handler)
            self.logger.debug(f"Subscribed global handler {self._name(handler)}")

    def unsubscribe(self, event_type: DomainEvent, handler: Callable) -> None:
        """Unsubscribe from a specific event type"""
        with self._lock:
            if event_type in self._handlers:
                try:
                    self._handlers[event_type].remove(handler)
                except ValueError:
                    self.logger.warning(f"Handler {self._name(handler)} was not subscribed to {event_type.value}")

    def publish(self, event: EventPayload) -> None:
        """Publish event to all subscribers; handler failures are logged only"""
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, [])) + list(self._global_handlers)

        self.logger.debug(f"Publishing event {event.event_type.value} for {event.entity_type}:{event.entity_id}")
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                self.logger.error(f"Error in event handler {self._name(handler)} for {event.event_type.value}: {e}")

    def clear(self) -> None:
        """Clear all handlers"""
        with self._lock:
            self._handlers.clear()
            self._global_handlers.clear()

    def get_handler_count(self, event_type: Optional[DomainEvent] = None) -> int:
        """Get count of handlers for a specific event type or all"""
        with self._lock:
            if event_type:
                return len(self._handlers.get(event_type, []))
            total = sum(len(handlers) for handlers in self._handlers.values())
            return total + len(self._global_handlers)


def create_workflow_event(event_type: DomainEvent, workflow, **extra: Any) -> EventPayload:
    """Create a workflow-related event"""
    data = {
        "document_id": workflow.document_id,
        "workflow_type": workflow.workflow_type.value,
        "status": workflow.status.value,
        "current_stage": workflow.current_stage,
        "current_assignees": list(workflow.current_assignees),
        "notify_on_completion": workflow.notify_on_completion,
    }
    data.update(extra)
    return EventPayload(
        event_type=event_type,
        entity_type="workflow",
        entity_id=workflow.id,
        data=data
    )


def create_stage_event(event_type: DomainEvent, workflow, stage, **extra: Any) -> EventPayload:
    """Create a stage-related event"""
    data = {
        "workflow_id": workflow.id,
        "document_id": workflow.document_id,
        "stage_number": stage.stage_number,
        "status": stage.status.value,
        "assignee_ids": list(stage.assignee_ids),
        "action_taken": stage.action_taken.value if stage.action_taken else None,
    }
    data.update(extra)
    return EventPayload(
        event_type=event_type,
        entity_type="stage",
        entity_id=stage.id,
        data=data
    )
