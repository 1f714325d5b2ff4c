"""
Workflow Data Model

Workflow and stage records for multi-stage document approval. A workflow owns
its stages exclusively: they are created with it, stored inside its record in
stage-number order, and never added, removed or renumbered afterwards.
"""

from datetime import datetime
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum

from .storage import StorageRecord


class WorkflowType(Enum):
    """Kinds of document workflow (labelling and filtering only)"""
    APPROVAL = "approval"
    REVIEW = "review"
    SIGNATURE = "signature"
    PUBLICATION = "publication"
    DISPOSITION = "disposition"
    RETIREMENT = "retirement"
    CUSTOM = "custom"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class WorkflowStatus(Enum):
    """Status of an entire workflow"""
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"


class StageStatus(Enum):
    """Status of an individual stage"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    SKIPPED = "skipped"


class StageType(Enum):
    """Kind of work a stage asks for"""
    REVIEW = "review"
    APPROVAL = "approval"
    SIGN = "sign"
    ACKNOWLEDGE = "acknowledge"
    EDIT = "edit"
    CUSTOM = "custom"


class AssigneeType(Enum):
    """How a stage addresses its assignees"""
    USER = "user"
    ROLE = "role"


class StageAction(Enum):
    """Action recorded on a stage when it reaches a terminal status"""
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class WorkflowOutcome(Enum):
    """Terminal result of a workflow"""
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Priority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


TERMINAL_WORKFLOW_STATUSES = frozenset({
    WorkflowStatus.APPROVED,
    WorkflowStatus.REJECTED,
    WorkflowStatus.COMPLETED,
    WorkflowStatus.CANCELLED,
})

ACTIVE_WORKFLOW_STATUSES = frozenset({
    WorkflowStatus.IN_PROGRESS,
    WorkflowStatus.PENDING_APPROVAL,
})

TERMINAL_STAGE_STATUSES = frozenset({
    StageStatus.COMPLETED,
    StageStatus.REJECTED,
    StageStatus.SKIPPED,
})


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def unique_ids(ids: Optional[List[Any]]) -> List[str]:
    """Normalise a user id collection into an ordered list without duplicates"""
    result: List[str] = []
    for user_id in ids or []:
        user_id = str(user_id)
        if user_id not in result:
            result.append(user_id)
    return result


@dataclass
class StageDefinition:
    """Caller-supplied description of one stage, used at workflow creation"""
    title: Optional[str] = None
    stage_type: StageType = StageType.APPROVAL
    required_action: str = "Approve"
    assignee_type: AssigneeType = AssigneeType.USER
    assignee_ids: List[str] = field(default_factory=list)
    assignee_role: Optional[str] = None
    due_days: Optional[int] = 5


@dataclass
class WorkflowOptions:
    """Optional settings for a new workflow"""
    initiated_by_id: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    due_date: Optional[datetime] = None
    title: Optional[str] = None
    notify_on_completion: bool = True
    allow_delegation: bool = True
    allow_reassignment: bool = True
    require_comments: bool = False


_STAGE_DATETIME_FIELDS = ('stage_due_date', 'started_date', 'completed_date', 'delegated_date',
                          'last_reminder_date')

_WORKFLOW_DATETIME_FIELDS = ('due_date', 'started_date', 'completed_date', 'last_reminder_date')


@dataclass
class StageRecord(StorageRecord):
    """One approval step of a workflow"""
    workflow_id: str
    stage_number: int
    title: str
    stage_type: StageType = StageType.APPROVAL
    required_action: str = "Approve"
    assignee_type: AssigneeType = AssigneeType.USER
    assignee_ids: List[str] = field(default_factory=list)
    assignee_role: Optional[str] = None
    status: StageStatus = StageStatus.PENDING
    due_days: int = 5
    stage_due_date: Optional[datetime] = None
    started_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    action_taken: Optional[StageAction] = None
    completed_by_id: Optional[str] = None
    comments: Optional[str] = None
    delegated_to_id: Optional[str] = None
    delegated_from_id: Optional[str] = None
    delegated_date: Optional[datetime] = None
    delegation_reason: Optional[str] = None
    reminders_sent: int = 0
    last_reminder_date: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STAGE_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage with enum values"""
        data = super().to_dict()
        data['stage_type'] = self.stage_type.value
        data['assignee_type'] = self.assignee_type.value
        data['status'] = self.status.value
        data['action_taken'] = self.action_taken.value if self.action_taken else None
        for name in _STAGE_DATETIME_FIELDS:
            data[name] = _to_iso(getattr(self, name))
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StageRecord':
        data = dict(data)
        data['stage_type'] = StageType(data['stage_type'])
        data['assignee_type'] = AssigneeType(data['assignee_type'])
        data['status'] = StageStatus(data['status'])
        if data.get('action_taken'):
            data['action_taken'] = StageAction(data['action_taken'])
        for name in _STAGE_DATETIME_FIELDS:
            data[name] = _from_iso(data.get(name))
        return super().from_dict(data)


@dataclass
class WorkflowRecord(StorageRecord):
    """
    One approval process instance attached to a document.

    The stage list is fixed at creation; current_stage is the 1-based number
    of the active stage and current_assignees mirrors that stage's assignees.
    """
    document_id: str
    title: str
    workflow_type: WorkflowType
    status: WorkflowStatus
    total_stages: int
    current_stage: int = 1
    document_title: str = ""
    current_assignees: List[str] = field(default_factory=list)
    due_date: Optional[datetime] = None
    started_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    priority: Priority = Priority.MEDIUM
    escalation_level: int = 0
    outcome: Optional[WorkflowOutcome] = None
    outcome_comments: Optional[str] = None
    final_approver_ids: List[str] = field(default_factory=list)
    initiated_by_id: Optional[str] = None
    reminders_sent: int = 0
    last_reminder_date: Optional[datetime] = None
    notify_on_completion: bool = True
    allow_delegation: bool = True
    allow_reassignment: bool = True
    require_comments: bool = False
    version: int = 0
    stages: List[StageRecord] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_WORKFLOW_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_WORKFLOW_STATUSES

    def is_overdue(self, now: datetime) -> bool:
        """Past its due date while still active"""
        return self.is_active and self.due_date is not None and self.due_date < now

    def stage_by_number(self, stage_number: int) -> Optional[StageRecord]:
        if 1 <= stage_number <= len(self.stages):
            return self.stages[stage_number - 1]
        return None

    def stage_by_id(self, stage_id: str) -> Optional[StageRecord]:
        for stage in self.stages:
            if stage.id == stage_id:
                return stage
        return None

    def active_stage(self) -> Optional[StageRecord]:
        """The stage currently in progress, if any"""
        stage = self.stage_by_number(self.current_stage)
        if stage and stage.status == StageStatus.IN_PROGRESS:
            return stage
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage, stages embedded in order"""
        data = super().to_dict()
        data['workflow_type'] = self.workflow_type.value
        data['status'] = self.status.value
        data['priority'] = self.priority.value
        data['outcome'] = self.outcome.value if self.outcome else None
        for name in _WORKFLOW_DATETIME_FIELDS:
            data[name] = _to_iso(getattr(self, name))
        data['stages'] = [stage.to_dict() for stage in self.stages]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WorkflowRecord':
        data = dict(data)
        data['workflow_type'] = WorkflowType(data['workflow_type'])
        data['status'] = WorkflowStatus(data['status'])
        data['priority'] = Priority(data.get('priority', Priority.MEDIUM.value))
        if data.get('outcome'):
            data['outcome'] = WorkflowOutcome(data['outcome'])
        for name in _WORKFLOW_DATETIME_FIELDS:
            data[name] = _from_iso(data.get(name))
        stages = [StageRecord.from_dict(stage) for stage in data.get('stages', [])]
        data['stages'] = sorted(stages, key=lambda s: s.stage_number)
        return super().from_dict(data)
