"""
Stage and workflow state machines.

Pure transition functions over WorkflowRecord/StageRecord. Nothing here reads
or writes storage; the engine loads a record, applies one of these functions
and persists the result. Illegal transitions raise InvalidStateError.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from .errors import InvalidStateError, ForbiddenError
from .models import (
    WorkflowRecord, StageRecord, WorkflowStatus, StageStatus, StageAction,
    WorkflowOutcome, ACTIVE_WORKFLOW_STATUSES, unique_ids
)
from .scheduling import duration_minutes

logger = logging.getLogger("docflow.state_machine")


WORKFLOW_TRANSITIONS: Dict[WorkflowStatus, FrozenSet[WorkflowStatus]] = {
    WorkflowStatus.DRAFT: frozenset({WorkflowStatus.IN_PROGRESS, WorkflowStatus.CANCELLED}),
    WorkflowStatus.IN_PROGRESS: frozenset({
        WorkflowStatus.PENDING_APPROVAL, WorkflowStatus.APPROVED, WorkflowStatus.REJECTED,
        WorkflowStatus.COMPLETED, WorkflowStatus.CANCELLED, WorkflowStatus.ON_HOLD,
    }),
    WorkflowStatus.PENDING_APPROVAL: frozenset({
        WorkflowStatus.IN_PROGRESS, WorkflowStatus.APPROVED, WorkflowStatus.REJECTED,
        WorkflowStatus.COMPLETED, WorkflowStatus.CANCELLED, WorkflowStatus.ON_HOLD,
    }),
    WorkflowStatus.ON_HOLD: frozenset({WorkflowStatus.IN_PROGRESS, WorkflowStatus.CANCELLED}),
    WorkflowStatus.APPROVED: frozenset(),
    WorkflowStatus.REJECTED: frozenset(),
    WorkflowStatus.COMPLETED: frozenset(),
    WorkflowStatus.CANCELLED: frozenset(),
}

STAGE_TRANSITIONS: Dict[StageStatus, FrozenSet[StageStatus]] = {
    StageStatus.PENDING: frozenset({StageStatus.IN_PROGRESS}),
    StageStatus.IN_PROGRESS: frozenset({
        StageStatus.COMPLETED, StageStatus.REJECTED, StageStatus.SKIPPED,
    }),
    StageStatus.COMPLETED: frozenset(),
    StageStatus.REJECTED: frozenset(),
    StageStatus.SKIPPED: frozenset(),
}

COMPLETION_ACTIONS = frozenset({StageAction.APPROVED, StageAction.REJECTED, StageAction.COMPLETED})


class StageOutcome(Enum):
    """Which branch a stage completion took"""
    ADVANCED = "advanced"
    WORKFLOW_APPROVED = "workflow_approved"
    WORKFLOW_COMPLETED = "workflow_completed"
    WORKFLOW_REJECTED = "workflow_rejected"


def can_transition(current: WorkflowStatus, target: WorkflowStatus) -> bool:
    return target in WORKFLOW_TRANSITIONS[current]


def _set_workflow_status(workflow: WorkflowRecord, target: WorkflowStatus, now: datetime) -> None:
    if not can_transition(workflow.status, target):
        raise InvalidStateError(
            f"Workflow {workflow.id} cannot move from {workflow.status.value} to {target.value}",
            workflow.id, workflow.status.value
        )
    logger.debug(f"Workflow {workflow.id}: {workflow.status.value} -> {target.value}")
    workflow.status = target
    workflow.updated_at = now


def _set_stage_status(stage: StageRecord, target: StageStatus, now: datetime) -> None:
    if stage.is_terminal:
        raise InvalidStateError(
            f"Stage {stage.id} is already {stage.status.value}",
            stage.id, stage.status.value
        )
    if target not in STAGE_TRANSITIONS[stage.status]:
        raise InvalidStateError(
            f"Stage {stage.id} cannot move from {stage.status.value} to {target.value}",
            stage.id, stage.status.value
        )
    stage.status = target
    stage.updated_at = now


def _finish(workflow: WorkflowRecord, target: WorkflowStatus, outcome: WorkflowOutcome,
            comments: Optional[str], now: datetime) -> None:
    _set_workflow_status(workflow, target, now)
    workflow.completed_date = now
    workflow.duration_minutes = duration_minutes(workflow.started_date, now)
    workflow.outcome = outcome
    workflow.outcome_comments = comments


def activate_stage(workflow: WorkflowRecord, stage: StageRecord, now: datetime) -> None:
    """
    Make stage the active one. Re-activating the already active stage
    changes nothing, so a retried advancement is harmless.
    """
    if stage.status == StageStatus.IN_PROGRESS and workflow.current_stage == stage.stage_number:
        return
    _set_stage_status(stage, StageStatus.IN_PROGRESS, now)
    stage.started_date = now
    workflow.current_stage = stage.stage_number
    workflow.current_assignees = unique_ids(stage.assignee_ids)
    workflow.updated_at = now


def start(workflow: WorkflowRecord, now: datetime) -> StageRecord:
    """Draft -> InProgress, activating stage 1"""
    if workflow.status != WorkflowStatus.DRAFT:
        raise InvalidStateError(
            f"Workflow {workflow.id} is not in draft status",
            workflow.id, workflow.status.value
        )
    first_stage = workflow.stage_by_number(1)
    if first_stage is None:
        raise InvalidStateError(f"Workflow {workflow.id} has no stages", workflow.id, workflow.status.value)

    _set_workflow_status(workflow, WorkflowStatus.IN_PROGRESS, now)
    workflow.started_date = now
    activate_stage(workflow, first_stage, now)
    return first_stage


def ensure_stage_actionable(workflow: WorkflowRecord, stage: StageRecord) -> None:
    """The stage must be open and be the workflow's active stage"""
    if stage.is_terminal:
        raise InvalidStateError(
            f"Stage {stage.id} is already {stage.status.value}",
            stage.id, stage.status.value
        )
    if workflow.status not in ACTIVE_WORKFLOW_STATUSES:
        raise InvalidStateError(
            f"Workflow {workflow.id} is {workflow.status.value}, stages cannot be actioned",
            workflow.id, workflow.status.value
        )
    if stage.status != StageStatus.IN_PROGRESS or stage.stage_number != workflow.current_stage:
        raise InvalidStateError(
            f"Stage {stage.id} is not the active stage of workflow {workflow.id}",
            stage.id, stage.status.value
        )


def close_stage(stage: StageRecord, status: StageStatus, action: StageAction,
                user_id: str, comments: Optional[str], now: datetime) -> None:
    """Write a stage's terminal fields (set at most once)"""
    _set_stage_status(stage, status, now)
    stage.action_taken = action
    stage.completed_by_id = user_id
    stage.comments = comments
    stage.completed_date = now


def advance(workflow: WorkflowRecord, stage: StageRecord, action: StageAction,
            user_id: str, now: datetime) -> StageOutcome:
    """
    Move past a stage that finished without rejection: activate the next
    stage, or finish the workflow when none remains.
    """
    next_stage = workflow.stage_by_number(stage.stage_number + 1)
    if next_stage is not None:
        activate_stage(workflow, next_stage, now)
        return StageOutcome.ADVANCED

    if action == StageAction.APPROVED:
        _finish(workflow, WorkflowStatus.APPROVED, WorkflowOutcome.APPROVED, None, now)
        outcome = StageOutcome.WORKFLOW_APPROVED
    else:
        _finish(workflow, WorkflowStatus.COMPLETED, WorkflowOutcome.COMPLETED, None, now)
        outcome = StageOutcome.WORKFLOW_COMPLETED
    if user_id not in workflow.final_approver_ids:
        workflow.final_approver_ids.append(user_id)
    workflow.current_assignees = []
    return outcome


def complete_stage(workflow: WorkflowRecord, stage: StageRecord, action: StageAction,
                   user_id: str, comments: Optional[str], now: datetime) -> StageOutcome:
    """Apply an approve/reject/complete decision to the active stage"""
    if action not in COMPLETION_ACTIONS:
        raise ValueError(f"Unsupported completion action: {action.value}")
    ensure_stage_actionable(workflow, stage)

    status = StageStatus.REJECTED if action == StageAction.REJECTED else StageStatus.COMPLETED
    close_stage(stage, status, action, user_id, comments, now)

    if action == StageAction.REJECTED:
        # Rejection ends the whole workflow; later stages stay pending
        _finish(workflow, WorkflowStatus.REJECTED, WorkflowOutcome.REJECTED, comments, now)
        workflow.current_assignees = []
        return StageOutcome.WORKFLOW_REJECTED

    return advance(workflow, stage, action, user_id, now)


def skip_stage(workflow: WorkflowRecord, stage: StageRecord, user_id: str,
               reason: str, now: datetime) -> StageOutcome:
    """Skip the active stage; the workflow advances as for a completed stage"""
    ensure_stage_actionable(workflow, stage)
    close_stage(stage, StageStatus.SKIPPED, StageAction.SKIPPED, user_id, reason, now)
    return advance(workflow, stage, StageAction.COMPLETED, user_id, now)


def delegate_stage(workflow: WorkflowRecord, stage: StageRecord, to_user_id: str,
                   from_user_id: str, reason: str, now: datetime) -> bool:
    """
    Hand a stage to another user without touching its status.

    Returns:
        True if the delegated stage is the active one (workflow assignees changed)
    """
    if not workflow.allow_delegation:
        raise ForbiddenError(f"Delegation is not allowed for workflow {workflow.id}", workflow.id)
    if workflow.is_terminal:
        raise InvalidStateError(
            f"Workflow {workflow.id} is {workflow.status.value}",
            workflow.id, workflow.status.value
        )
    if stage.is_terminal:
        raise InvalidStateError(
            f"Stage {stage.id} is already {stage.status.value}",
            stage.id, stage.status.value
        )

    stage.assignee_ids = [to_user_id]
    stage.delegated_to_id = to_user_id
    stage.delegated_from_id = from_user_id
    stage.delegated_date = now
    stage.delegation_reason = reason
    stage.updated_at = now

    is_active = stage.status == StageStatus.IN_PROGRESS and stage.stage_number == workflow.current_stage
    if is_active:
        workflow.current_assignees = [to_user_id]
    workflow.updated_at = now
    return is_active


def cancel(workflow: WorkflowRecord, reason: Optional[str], now: datetime) -> None:
    """Cancel from any non-terminal status; stage records are left as they are"""
    _finish(workflow, WorkflowStatus.CANCELLED, WorkflowOutcome.CANCELLED, reason, now)


def hold(workflow: WorkflowRecord, now: datetime) -> None:
    if workflow.status not in ACTIVE_WORKFLOW_STATUSES:
        raise InvalidStateError(
            f"Only active workflows can be put on hold (workflow {workflow.id} is {workflow.status.value})",
            workflow.id, workflow.status.value
        )
    _set_workflow_status(workflow, WorkflowStatus.ON_HOLD, now)


def resume(workflow: WorkflowRecord, now: datetime) -> None:
    if workflow.status != WorkflowStatus.ON_HOLD:
        raise InvalidStateError(
            f"Workflow {workflow.id} is not on hold",
            workflow.id, workflow.status.value
        )
    _set_workflow_status(workflow, WorkflowStatus.IN_PROGRESS, now)


def remind(workflow: WorkflowRecord, now: datetime) -> None:
    """Count a reminder on the workflow and its active stage"""
    if not workflow.is_active:
        raise InvalidStateError(
            f"Reminders are only sent for active workflows (workflow {workflow.id} is {workflow.status.value})",
            workflow.id, workflow.status.value
        )
    workflow.reminders_sent += 1
    workflow.last_reminder_date = now
    workflow.updated_at = now
    stage = workflow.active_stage()
    if stage:
        stage.reminders_sent += 1
        stage.last_reminder_date = now
        stage.updated_at = now


def escalate(workflow: WorkflowRecord, now: datetime) -> int:
    """Raise the escalation level by one; it never goes down"""
    workflow.escalation_level += 1
    workflow.updated_at = now
    return workflow.escalation_level


def check_invariants(workflow: WorkflowRecord) -> List[str]:
    """
    Return a description of every structural invariant the workflow breaks.
    An empty list means the record is consistent.
    """
    problems = []

    numbers = [stage.stage_number for stage in workflow.stages]
    if numbers != list(range(1, workflow.total_stages + 1)):
        problems.append(f"stage numbers {numbers} are not contiguous 1..{workflow.total_stages}")

    for stage in workflow.stages:
        if stage.workflow_id != workflow.id:
            problems.append(f"stage {stage.id} belongs to workflow {stage.workflow_id}")

    in_progress = [stage for stage in workflow.stages if stage.status == StageStatus.IN_PROGRESS]
    if len(in_progress) > 1:
        problems.append(f"{len(in_progress)} stages are in progress")
    if in_progress and in_progress[0].stage_number != workflow.current_stage:
        problems.append(
            f"in-progress stage {in_progress[0].stage_number} != current stage {workflow.current_stage}"
        )
    if workflow.status == WorkflowStatus.IN_PROGRESS and not in_progress:
        problems.append("workflow is in progress but no stage is")
    if workflow.status == WorkflowStatus.DRAFT and in_progress:
        problems.append("draft workflow has an in-progress stage")

    return problems
