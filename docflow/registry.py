"""
Document Registry Module

The engine's view of the document registry: document lookup by id and an
append-only activity log per document. DocumentRegistry is the contract the
engine depends on; StorageDocumentRegistry is a storage-backed implementation
used for tests, the HTTP API and single-process deployments.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum
import threading
import uuid

from .storage import StorageInterface, StorageRecord


class ActivityType(Enum):
    """Workflow activity types written to a document's activity log"""
    WORKFLOW_STARTED = "workflow_started"
    WORKFLOW_APPROVED = "workflow_approved"
    WORKFLOW_REJECTED = "workflow_rejected"
    WORKFLOW_COMPLETED = "workflow_completed"


class ActivitySeverity(Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class DocumentInfo(StorageRecord):
    """Registry metadata for one document"""
    title: str
    document_number: Optional[str] = None
    owner_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ActivityEntry(StorageRecord):
    """One entry of a document's activity log"""
    document_id: str
    activity_type: ActivityType
    actor_id: Optional[str]
    timestamp: datetime
    workflow_id: Optional[str] = None
    document_title: Optional[str] = None
    severity: ActivitySeverity = ActivitySeverity.INFO
    is_system_action: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, document_id: str, activity_type: ActivityType, actor_id: Optional[str],
               workflow_id: Optional[str] = None, document_title: Optional[str] = None,
               severity: ActivitySeverity = ActivitySeverity.INFO,
               is_system_action: bool = False,
               details: Optional[Dict[str, Any]] = None) -> 'ActivityEntry':
        now = datetime.now(timezone.utc)
        return cls(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            document_id=document_id,
            activity_type=activity_type,
            actor_id=actor_id,
            timestamp=now,
            workflow_id=workflow_id,
            document_title=document_title,
            severity=severity,
            is_system_action=is_system_action,
            details=details or {}
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage with proper enum serialization"""
        result = super().to_dict()
        result['activity_type'] = self.activity_type.value
        result['severity'] = self.severity.value
        result['timestamp'] = self.timestamp.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ActivityEntry':
        data = dict(data)
        data['activity_type'] = ActivityType(data['activity_type'])
        data['severity'] = ActivitySeverity(data['severity'])
        if isinstance(data['timestamp'], str):
            data['timestamp'] = datetime.fromisoformat(data['timestamp'])
        return super().from_dict(data)


class DocumentRegistry(ABC):
    """Contract the workflow engine needs from the document registry"""

    @abstractmethod
    def get_document(self, document_id: str) -> Optional[DocumentInfo]:
        """Return the document, or None if it does not exist"""
        pass

    @abstractmethod
    def log_activity(self, entry: ActivityEntry) -> None:
        """Record an activity entry (fire-and-forget from the engine's side)"""
        pass


class StorageDocumentRegistry(DocumentRegistry):
    """Document registry kept in the same storage backend as the workflows"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.documents_table = "documents"
        self.activities_table = "document_activities"
        self._lock = threading.Lock()

    def register_document(self, title: str, document_id: Optional[str] = None,
                          document_number: Optional[str] = None,
                          owner_id: Optional[str] = None,
                          metadata: Optional[Dict[str, Any]] = None) -> DocumentInfo:
        """
        Add a document to the registry

        Args:
            title: Document title
            document_id: Registry id, generated if omitted
            document_number: Human-facing document number
            owner_id: Owning user
            metadata: Free-form document metadata

        Returns:
            Created DocumentInfo
        """
        if not title or not title.strip():
            raise ValueError("Document title is required")

        now = datetime.now(timezone.utc)
        document = DocumentInfo(
            id=document_id or str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            title=title.strip(),
            document_number=document_number,
            owner_id=owner_id,
            metadata=metadata or {}
        )
        self.storage.save(self.documents_table, document.id, document.to_dict())
        return document

    def get_document(self, document_id: str) -> Optional[DocumentInfo]:
        data = self.storage.load(self.documents_table, document_id)
        if data:
            return DocumentInfo.from_dict(data)
        return None

    def list_documents(self) -> List[DocumentInfo]:
        documents = [DocumentInfo.from_dict(data) for data in self.storage.load_all(self.documents_table)]
        return sorted(documents, key=lambda d: d.title)

    def log_activity(self, entry: ActivityEntry) -> None:
        with self._lock:
            self.storage.save(self.activities_table, entry.id, entry.to_dict())

    def get_activities(self, document_id: str, limit: Optional[int] = None) -> List[ActivityEntry]:
        """
        Get the activity log of a document

        Args:
            document_id: Document to read
            limit: Return only the most recent N entries

        Returns:
            ActivityEntry objects sorted oldest first
        """
        data = self.storage.find(self.activities_table, {'document_id': document_id})
        entries = [ActivityEntry.from_dict(item) for item in data]
        entries.sort(key=lambda e: e.timestamp)

        if limit:
            entries = entries[-limit:]

        return entries

    def get_workflow_activities(self, workflow_id: str) -> List[ActivityEntry]:
        data = self.storage.find(self.activities_table, {'workflow_id': workflow_id})
        entries = [ActivityEntry.from_dict(item) for item in data]
        entries.sort(key=lambda e: e.timestamp)
        return entries
