"""
Pydantic schemas for API requests
"""

from datetime import datetime
from typing import Dict, List, Optional, Any
from pydantic import BaseModel, Field

from ..models import StageDefinition, WorkflowOptions, StageType, AssigneeType, Priority


class StageDefinitionModel(BaseModel):
    title: Optional[str] = None
    stage_type: str = Field(StageType.APPROVAL.value, description="review, approval, sign, acknowledge, edit or custom")
    required_action: str = "Approve"
    assignee_type: str = Field(AssigneeType.USER.value, description="user or role")
    assignee_ids: List[str] = Field(default_factory=list)
    assignee_role: Optional[str] = None
    due_days: int = Field(5, ge=1)

    def to_definition(self) -> StageDefinition:
        return StageDefinition(
            title=self.title,
            stage_type=StageType(self.stage_type.lower()),
            required_action=self.required_action,
            assignee_type=AssigneeType(self.assignee_type.lower()),
            assignee_ids=list(self.assignee_ids),
            assignee_role=self.assignee_role,
            due_days=self.due_days
        )


# Workflow schemas
class CreateWorkflowRequest(BaseModel):
    document_id: str
    workflow_type: str = Field(..., description="approval, review, signature, publication, disposition, retirement or custom")
    stages: List[StageDefinitionModel] = Field(..., min_length=1)
    initiated_by_id: Optional[str] = None
    priority: str = Priority.MEDIUM.value
    due_date: Optional[datetime] = None
    title: Optional[str] = None
    notify_on_completion: bool = True
    allow_delegation: bool = True
    allow_reassignment: bool = True
    require_comments: bool = False

    def to_options(self) -> WorkflowOptions:
        return WorkflowOptions(
            initiated_by_id=self.initiated_by_id,
            priority=Priority(self.priority.lower()),
            due_date=self.due_date,
            title=self.title,
            notify_on_completion=self.notify_on_completion,
            allow_delegation=self.allow_delegation,
            allow_reassignment=self.allow_reassignment,
            require_comments=self.require_comments
        )


class CancelWorkflowRequest(BaseModel):
    user_id: str
    reason: str


# Stage schemas
class CompleteStageRequest(BaseModel):
    action: str = Field(..., description="approved, rejected or completed")
    user_id: str
    comments: Optional[str] = None


class DelegateStageRequest(BaseModel):
    to_user_id: str
    from_user_id: str
    reason: str


class SkipStageRequest(BaseModel):
    user_id: str
    reason: str


# Document schemas
class RegisterDocumentRequest(BaseModel):
    title: str
    document_id: Optional[str] = None
    document_number: Optional[str] = None
    owner_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
