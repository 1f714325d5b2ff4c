"""
Tests for the domain event dispatcher
"""

import pytest
from datetime import datetime, timezone

from docflow.events import (
    EventDispatcher, EventPayload, DomainEvent, create_workflow_event, create_stage_event
)
from docflow.models import (
    WorkflowRecord, StageRecord, WorkflowType, WorkflowStatus, StageStatus, StageAction
)


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def workflow():
    stage = StageRecord(
        id="s1", created_at=NOW, updated_at=NOW, workflow_id="w1", stage_number=1,
        title="Review", assignee_ids=["ann"], status=StageStatus.COMPLETED,
        action_taken=StageAction.APPROVED
    )
    return WorkflowRecord(
        id="w1", created_at=NOW, updated_at=NOW, document_id="d1", title="Review - Doc",
        workflow_type=WorkflowType.REVIEW, status=WorkflowStatus.APPROVED,
        total_stages=1, stages=[stage]
    )


def make_event(event_type=DomainEvent.WORKFLOW_CREATED) -> EventPayload:
    return EventPayload(event_type=event_type, entity_type="workflow", entity_id="w1", data={})


class TestEventPayload:

    def test_serialization(self):
        event = make_event()

        data = event.to_dict()

        assert data["event_type"] == "workflow.created"
        assert data["entity_id"] == "w1"
        assert data["event_id"] == event.event_id
        assert event.timestamp.tzinfo is not None


class TestEventDispatcher:

    def test_subscribe_and_publish(self, dispatcher):
        received = []
        dispatcher.subscribe(DomainEvent.WORKFLOW_CREATED, received.append)

        dispatcher.publish(make_event())
        dispatcher.publish(make_event(DomainEvent.WORKFLOW_CANCELLED))

        assert [e.event_type for e in received] == [DomainEvent.WORKFLOW_CREATED]

    def test_global_handler_receives_all_events(self, dispatcher):
        received = []
        dispatcher.subscribe_all(received.append)

        dispatcher.publish(make_event())
        dispatcher.publish(make_event(DomainEvent.STAGE_SKIPPED))

        assert len(received) == 2

    def test_unsubscribe(self, dispatcher):
        received = []
        dispatcher.subscribe(DomainEvent.WORKFLOW_CREATED, received.append)
        dispatcher.unsubscribe(DomainEvent.WORKFLOW_CREATED, received.append)

        dispatcher.publish(make_event())

        assert received == []

    def test_handler_exceptions_dont_break_publisher(self, dispatcher):
        received = []

        def broken(event):
            raise RuntimeError("boom")

        dispatcher.subscribe(DomainEvent.WORKFLOW_CREATED, broken)
        dispatcher.subscribe(DomainEvent.WORKFLOW_CREATED, received.append)

        dispatcher.publish(make_event())

        assert len(received) == 1

    def test_handler_counts_and_clear(self, dispatcher):
        dispatcher.subscribe(DomainEvent.WORKFLOW_CREATED, lambda e: None)
        dispatcher.subscribe(DomainEvent.STAGE_DELEGATED, lambda e: None)
        dispatcher.subscribe_all(lambda e: None)

        assert dispatcher.get_handler_count(DomainEvent.WORKFLOW_CREATED) == 1
        assert dispatcher.get_handler_count() == 3

        dispatcher.clear()
        assert dispatcher.get_handler_count() == 0


class TestEventFactoryFunctions:

    def test_create_workflow_event(self, workflow):
        event = create_workflow_event(DomainEvent.WORKFLOW_APPROVED, workflow, reason="done")

        assert event.entity_type == "workflow"
        assert event.data["status"] == "approved"
        assert event.data["workflow_type"] == "review"
        assert event.data["reason"] == "done"

    def test_create_stage_event(self, workflow):
        event = create_stage_event(DomainEvent.STAGE_COMPLETED, workflow, workflow.stages[0])

        assert event.entity_id == "s1"
        assert event.data["workflow_id"] == "w1"
        assert event.data["action_taken"] == "approved"
