"""
Tests for the storage-backed document registry
"""

import pytest

from docflow.registry import (
    StorageDocumentRegistry, ActivityEntry, ActivityType, ActivitySeverity
)
from docflow.storage import InMemoryStorage


@pytest.fixture
def registry():
    return StorageDocumentRegistry(InMemoryStorage())


class TestDocuments:

    def test_register_and_get(self, registry):
        document = registry.register_document("  Safety Policy ", document_number="SP-7", owner_id="olga")

        loaded = registry.get_document(document.id)

        assert loaded.title == "Safety Policy"
        assert loaded.document_number == "SP-7"
        assert loaded.owner_id == "olga"

    def test_explicit_id(self, registry):
        registry.register_document("Handbook", document_id="doc-42")

        assert registry.get_document("doc-42").title == "Handbook"

    def test_missing_document(self, registry):
        assert registry.get_document("nope") is None

    def test_title_required(self, registry):
        with pytest.raises(ValueError):
            registry.register_document("   ")

    def test_list_documents_sorted_by_title(self, registry):
        registry.register_document("Zeta")
        registry.register_document("Alpha")

        assert [d.title for d in registry.list_documents()] == ["Alpha", "Zeta"]


class TestActivityLog:

    def test_log_and_read(self, registry):
        entry = ActivityEntry.create(
            document_id="doc-1", activity_type=ActivityType.WORKFLOW_REJECTED,
            actor_id="bob", workflow_id="wf-1", severity=ActivitySeverity.WARNING,
            details={"comments": "Missing annex"}
        )

        registry.log_activity(entry)
        activities = registry.get_activities("doc-1")

        assert len(activities) == 1
        assert activities[0].activity_type == ActivityType.WORKFLOW_REJECTED
        assert activities[0].severity == ActivitySeverity.WARNING
        assert activities[0].details == {"comments": "Missing annex"}
        assert [a.id for a in registry.get_workflow_activities("wf-1")] == [entry.id]

    def test_limit_keeps_most_recent(self, registry):
        for activity_type in (ActivityType.WORKFLOW_STARTED, ActivityType.WORKFLOW_APPROVED):
            registry.log_activity(ActivityEntry.create("doc-1", activity_type, "u"))

        activities = registry.get_activities("doc-1", limit=1)

        assert [a.activity_type for a in activities] == [ActivityType.WORKFLOW_APPROVED]
