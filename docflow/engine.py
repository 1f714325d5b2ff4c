"""
Workflow Engine Module

Drives documents through ordered approval stages. The engine is a pure
coordination layer: each operation loads the workflow record from storage,
applies a state-machine transition, writes the record back with a version
check, and then reports the change to the document registry's activity log
and to event subscribers.

Write operations raise WorkflowError subclasses. Read operations never raise:
a failing collaborator yields an empty result and a logged warning.
"""

from datetime import datetime, timezone
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union
import uuid

from . import state_machine
from .config import DocflowConfig, get_config
from .errors import WorkflowError, NotFoundError, ConflictError, CollaboratorUnavailableError
from .events import DomainEvent, EventDispatcher, EventPayload, create_workflow_event, create_stage_event
from .logging_config import get_logger, log_action
from .models import (
    WorkflowRecord, StageRecord, StageDefinition, WorkflowOptions, WorkflowType,
    WorkflowStatus, StageStatus, StageType, StageAction, AssigneeType,
    ACTIVE_WORKFLOW_STATUSES, unique_ids
)
from .registry import DocumentRegistry, ActivityEntry, ActivityType, ActivitySeverity
from .scheduling import default_due_date, stage_due_date
from .state_machine import StageOutcome
from .storage import StorageInterface


_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class WorkflowEngine:
    """Orchestrates document workflows and their stages"""

    def __init__(
        self,
        storage: StorageInterface,
        registry: DocumentRegistry,
        event_dispatcher: Optional[EventDispatcher] = None,
        config: Optional[DocflowConfig] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.storage = storage
        self.registry = registry
        self.events = event_dispatcher
        self.config = config or get_config()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.workflows_table = "document_workflows"
        self.stage_index_table = "workflow_stage_index"
        self.logger = get_logger("docflow.engine")

    # Creation and start

    def create_workflow(
        self,
        document_id: str,
        workflow_type: Union[WorkflowType, str],
        stage_definitions: Sequence[Union[StageDefinition, Dict[str, Any]]],
        options: Optional[WorkflowOptions] = None
    ) -> WorkflowRecord:
        """
        Create a draft workflow with its full stage list

        Args:
            document_id: Registry id of the target document
            workflow_type: Kind of workflow
            stage_definitions: One definition per stage, in order
            options: Priority, due date, initiator and policy flags

        Returns:
            The persisted workflow (status draft, every stage pending)

        Raises:
            ValueError: Unknown workflow type or no stages
            NotFoundError: Document does not exist
        """
        workflow_type = self._parse_workflow_type(workflow_type)
        definitions = [self._coerce_definition(d) for d in stage_definitions or []]
        if not definitions:
            raise ValueError("Workflow must have at least one stage")
        options = options or WorkflowOptions()

        with self._write_guard("create_workflow", document_id):
            document = self.registry.get_document(document_id)
            if document is None:
                raise NotFoundError(f"Document {document_id} not found", document_id)

            now = self._now()
            total = len(definitions)
            if options.due_date:
                due_date = _as_utc(options.due_date)
            else:
                due_date = default_due_date(total, now, self.config.default_days_per_stage)
            workflow_id = str(uuid.uuid4())

            stages = []
            for index, definition in enumerate(definitions):
                stages.append(StageRecord(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    workflow_id=workflow_id,
                    stage_number=index + 1,
                    title=definition.title or f"Stage {index + 1}",
                    stage_type=definition.stage_type,
                    required_action=definition.required_action or "Approve",
                    assignee_type=definition.assignee_type,
                    assignee_ids=unique_ids(definition.assignee_ids),
                    assignee_role=definition.assignee_role,
                    status=StageStatus.PENDING,
                    due_days=(definition.due_days if definition.due_days is not None
                              else self.config.default_stage_due_days),
                    stage_due_date=stage_due_date(due_date, index, total, now)
                ))

            workflow = WorkflowRecord(
                id=workflow_id,
                created_at=now,
                updated_at=now,
                document_id=document_id,
                title=options.title or f"{workflow_type.label} - {document.title}",
                workflow_type=workflow_type,
                status=WorkflowStatus.DRAFT,
                total_stages=total,
                current_stage=1,
                document_title=document.title,
                due_date=due_date,
                priority=options.priority,
                initiated_by_id=options.initiated_by_id,
                notify_on_completion=options.notify_on_completion,
                allow_delegation=options.allow_delegation,
                allow_reassignment=options.allow_reassignment,
                require_comments=options.require_comments,
                stages=stages
            )

            with self.storage.atomic():
                self._save_workflow(workflow)
                for stage in stages:
                    self.storage.save(self.stage_index_table, stage.id, {
                        'id': stage.id,
                        'workflow_id': workflow_id,
                        'stage_number': stage.stage_number
                    })

        log_action(
            self.logger, "info", f"Workflow created: {workflow.title}",
            user_id=options.initiated_by_id, action="create_workflow",
            resource=f"workflow:{workflow.id}",
            extra={"document_id": document_id, "workflow_type": workflow_type.value, "total_stages": total}
        )
        self._log_activity(
            workflow, ActivityType.WORKFLOW_STARTED, options.initiated_by_id,
            ActivitySeverity.INFO, {"workflow_id": workflow.id, "workflow_type": workflow_type.value}
        )
        self._publish(create_workflow_event(DomainEvent.WORKFLOW_CREATED, workflow))
        return workflow

    def start_workflow(self, workflow_id: str) -> WorkflowRecord:
        """Move a draft workflow to in progress and activate stage 1"""
        now = self._now()
        with self._write_guard("start_workflow", workflow_id):
            with self.storage.atomic():
                workflow = self._load_workflow(workflow_id)
                first_stage = state_machine.start(workflow, now)
                self._save_workflow(workflow)

        log_action(
            self.logger, "info", f"Workflow started: {workflow.title}",
            action="start_workflow", resource=f"workflow:{workflow.id}",
            extra={"assignees": workflow.current_assignees}
        )
        self._publish(create_workflow_event(DomainEvent.WORKFLOW_STARTED, workflow))
        self._publish(create_stage_event(DomainEvent.STAGE_ACTIVATED, workflow, first_stage))
        return workflow

    # Stage actions

    def complete_stage(
        self,
        stage_id: str,
        action: Union[StageAction, str],
        user_id: str,
        comments: Optional[str] = None
    ) -> WorkflowRecord:
        """
        Approve, reject or complete the active stage

        Rejection ends the whole workflow. Otherwise the next stage becomes
        active, or the workflow finishes (approved if the last action was an
        approval, completed otherwise).

        Raises:
            NotFoundError: Stage or workflow does not exist
            InvalidStateError: Stage already terminal, not active, or workflow not running
            ConflictError: Workflow changed concurrently between read and write
        """
        action = self._parse_action(action)
        now = self._now()
        with self._write_guard("complete_stage", stage_id):
            with self.storage.atomic():
                workflow, stage = self._resolve_stage(stage_id)
                outcome = state_machine.complete_stage(workflow, stage, action, user_id, comments, now)
                self._save_workflow(workflow)

        log_action(
            self.logger, "info", f"Stage {stage.stage_number} {action.value}: {workflow.title}",
            user_id=user_id, action="complete_stage", resource=f"stage:{stage.id}",
            extra={"workflow_id": workflow.id, "outcome": outcome.value}
        )
        self._publish(create_stage_event(DomainEvent.STAGE_COMPLETED, workflow, stage))
        self._report_outcome(workflow, stage, outcome, user_id, comments)
        return workflow

    def skip_stage(self, stage_id: str, user_id: str, reason: str) -> WorkflowRecord:
        """Skip the active stage; the workflow advances as if it was completed"""
        now = self._now()
        with self._write_guard("skip_stage", stage_id):
            with self.storage.atomic():
                workflow, stage = self._resolve_stage(stage_id)
                outcome = state_machine.skip_stage(workflow, stage, user_id, reason, now)
                self._save_workflow(workflow)

        log_action(
            self.logger, "info", f"Stage {stage.stage_number} skipped: {workflow.title}",
            user_id=user_id, action="skip_stage", resource=f"stage:{stage.id}",
            extra={"workflow_id": workflow.id, "reason": reason, "outcome": outcome.value}
        )
        self._publish(create_stage_event(DomainEvent.STAGE_SKIPPED, workflow, stage, reason=reason))
        self._report_outcome(workflow, stage, outcome, user_id, reason)
        return workflow

    def delegate_stage(self, stage_id: str, to_user_id: str, from_user_id: str,
                       reason: str) -> WorkflowRecord:
        """
        Reassign a stage to another user. The stage keeps its status; the
        workflow's current assignees follow only if the stage is active.

        Raises:
            ForbiddenError: Workflow does not allow delegation
            InvalidStateError: Stage or workflow already finished
        """
        now = self._now()
        with self._write_guard("delegate_stage", stage_id):
            with self.storage.atomic():
                workflow, stage = self._resolve_stage(stage_id)
                is_active = state_machine.delegate_stage(workflow, stage, str(to_user_id),
                                                         str(from_user_id), reason, now)
                self._save_workflow(workflow)

        log_action(
            self.logger, "info", f"Stage {stage.stage_number} delegated to {to_user_id}",
            user_id=from_user_id, action="delegate_stage", resource=f"stage:{stage.id}",
            extra={"workflow_id": workflow.id, "reason": reason, "active_stage": is_active}
        )
        self._publish(create_stage_event(
            DomainEvent.STAGE_DELEGATED, workflow, stage,
            delegated_to_id=stage.delegated_to_id, delegated_from_id=stage.delegated_from_id
        ))
        return workflow

    # Workflow control

    def cancel_workflow(self, workflow_id: str, user_id: str, reason: str) -> WorkflowRecord:
        """Cancel a workflow that has not finished; stage records stay as they are"""
        now = self._now()
        with self._write_guard("cancel_workflow", workflow_id):
            with self.storage.atomic():
                workflow = self._load_workflow(workflow_id)
                state_machine.cancel(workflow, reason, now)
                self._save_workflow(workflow)

        log_action(
            self.logger, "info", f"Workflow cancelled: {workflow.title}",
            user_id=user_id, action="cancel_workflow", resource=f"workflow:{workflow.id}",
            extra={"reason": reason}
        )
        self._log_activity(
            workflow, ActivityType.WORKFLOW_COMPLETED, user_id, ActivitySeverity.WARNING,
            {"workflow_id": workflow.id, "action": "cancelled", "reason": reason}
        )
        self._publish(create_workflow_event(DomainEvent.WORKFLOW_CANCELLED, workflow, reason=reason))
        return workflow

    def put_on_hold(self, workflow_id: str) -> WorkflowRecord:
        """Pause an active workflow"""
        now = self._now()
        with self._write_guard("put_on_hold", workflow_id):
            with self.storage.atomic():
                workflow = self._load_workflow(workflow_id)
                state_machine.hold(workflow, now)
                self._save_workflow(workflow)

        log_action(self.logger, "info", f"Workflow on hold: {workflow.title}",
                   action="put_on_hold", resource=f"workflow:{workflow.id}")
        self._publish(create_workflow_event(DomainEvent.WORKFLOW_HELD, workflow))
        return workflow

    def resume_workflow(self, workflow_id: str) -> WorkflowRecord:
        """Resume a workflow that is on hold"""
        now = self._now()
        with self._write_guard("resume_workflow", workflow_id):
            with self.storage.atomic():
                workflow = self._load_workflow(workflow_id)
                state_machine.resume(workflow, now)
                self._save_workflow(workflow)

        log_action(self.logger, "info", f"Workflow resumed: {workflow.title}",
                   action="resume_workflow", resource=f"workflow:{workflow.id}")
        self._publish(create_workflow_event(DomainEvent.WORKFLOW_RESUMED, workflow))
        return workflow

    def record_reminder(self, workflow_id: str) -> WorkflowRecord:
        """
        Count a reminder sent to the current assignees

        Raises:
            InvalidStateError: Workflow is not in progress or pending approval
        """
        now = self._now()
        with self._write_guard("record_reminder", workflow_id):
            with self.storage.atomic():
                workflow = self._load_workflow(workflow_id)
                state_machine.remind(workflow, now)
                self._save_workflow(workflow)

        self._publish(create_workflow_event(
            DomainEvent.WORKFLOW_REMINDER, workflow, reminders_sent=workflow.reminders_sent
        ))
        return workflow

    def escalate_overdue_workflows(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Raise the escalation level of every overdue active workflow by one

        Returns:
            One breach record per escalated workflow
        """
        now = _as_utc(now) if now is not None else self._now()
        breaches = []

        for candidate in self.get_overdue_workflows(now):
            try:
                with self._write_guard("escalate_workflow", candidate.id):
                    with self.storage.atomic():
                        workflow = self._load_workflow(candidate.id)
                        if not workflow.is_overdue(now):
                            continue
                        level = state_machine.escalate(workflow, now)
                        self._save_workflow(workflow)
            except ConflictError as e:
                self.logger.warning(f"Skipped escalation of workflow {candidate.id}: {e}")
                continue

            breaches.append({
                'workflow_id': workflow.id,
                'document_id': workflow.document_id,
                'current_stage': workflow.current_stage,
                'due_date': workflow.due_date,
                'escalation_level': level,
                'assignees': list(workflow.current_assignees),
                'breach_time': now
            })
            self._publish(create_workflow_event(
                DomainEvent.WORKFLOW_ESCALATED, workflow, escalation_level=level
            ))

        if breaches:
            log_action(self.logger, "warning", f"Escalated {len(breaches)} overdue workflows",
                       action="escalate_overdue_workflows")
        return breaches

    # Read operations

    def get_workflow(self, workflow_id: str) -> Optional[WorkflowRecord]:
        """Get a workflow by ID"""
        def read():
            data = self.storage.load(self.workflows_table, workflow_id)
            return WorkflowRecord.from_dict(data) if data else None
        return self._safe_read(f"workflow {workflow_id}", read, None)

    def get_by_document(self, document_id: str) -> List[WorkflowRecord]:
        """All workflows of a document, newest first"""
        def read():
            workflows = [
                WorkflowRecord.from_dict(data)
                for data in self.storage.find(self.workflows_table, {'document_id': document_id})
            ]
            return sorted(workflows, key=lambda w: w.created_at, reverse=True)
        return self._safe_read(f"workflows for document {document_id}", read, [])

    def get_user_pending_workflows(self, user_id: str) -> List[WorkflowRecord]:
        """Active workflows waiting on the given user, earliest due first"""
        user_id = str(user_id)
        def read():
            workflows = [
                w for w in self._load_all_workflows()
                if w.status in ACTIVE_WORKFLOW_STATUSES and user_id in w.current_assignees
            ]
            return sorted(workflows, key=self._due_sort_key)
        return self._safe_read(f"pending workflows for user {user_id}", read, [])

    def get_overdue_workflows(self, now: Optional[datetime] = None) -> List[WorkflowRecord]:
        """Active workflows past their due date, most overdue first"""
        now = _as_utc(now) if now is not None else self._now()
        def read():
            workflows = [w for w in self._load_all_workflows() if w.is_overdue(now)]
            return sorted(workflows, key=self._due_sort_key)
        return self._safe_read("overdue workflows", read, [])

    def get_active_workflows(self, limit: Optional[int] = None) -> List[WorkflowRecord]:
        """In-progress and pending-approval workflows, earliest due first"""
        if limit is None:
            limit = self.config.active_workflows_limit
        def read():
            workflows = [w for w in self._load_all_workflows() if w.status in ACTIVE_WORKFLOW_STATUSES]
            return sorted(workflows, key=self._due_sort_key)[:limit]
        return self._safe_read("active workflows", read, [])

    def get_workflow_stages(self, workflow_id: str) -> List[StageRecord]:
        """Stages of a workflow in stage-number order"""
        workflow = self.get_workflow(workflow_id)
        return list(workflow.stages) if workflow else []

    def get_current_stage(self, workflow_id: str) -> Optional[StageRecord]:
        workflow = self.get_workflow(workflow_id)
        if workflow is None:
            return None
        return workflow.stage_by_number(workflow.current_stage)

    def get_stage(self, stage_id: str) -> Optional[StageRecord]:
        def read():
            try:
                _, stage = self._resolve_stage(stage_id)
            except NotFoundError:
                return None
            return stage
        return self._safe_read(f"stage {stage_id}", read, None)

    def check_invariants(self, workflow_id: str) -> List[str]:
        """Structural problems of a stored workflow (empty when consistent)"""
        workflow = self._load_workflow(workflow_id)
        return state_machine.check_invariants(workflow)

    # Private helper methods

    def _now(self) -> datetime:
        return self._clock()

    @staticmethod
    def _due_sort_key(workflow: WorkflowRecord) -> datetime:
        return workflow.due_date or _FAR_FUTURE

    @staticmethod
    def _parse_workflow_type(workflow_type: Union[WorkflowType, str]) -> WorkflowType:
        if isinstance(workflow_type, WorkflowType):
            return workflow_type
        try:
            return WorkflowType(str(workflow_type).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown workflow type: {workflow_type}")

    @staticmethod
    def _parse_action(action: Union[StageAction, str]) -> StageAction:
        if isinstance(action, StageAction):
            return action
        try:
            return StageAction(str(action).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown stage action: {action}")

    @staticmethod
    def _coerce_definition(definition: Union[StageDefinition, Dict[str, Any]]) -> StageDefinition:
        if isinstance(definition, StageDefinition):
            return definition
        values = dict(definition)
        if 'stage_type' in values and not isinstance(values['stage_type'], StageType):
            values['stage_type'] = StageType(str(values['stage_type']).lower())
        if 'assignee_type' in values and not isinstance(values['assignee_type'], AssigneeType):
            values['assignee_type'] = AssigneeType(str(values['assignee_type']).lower())
        return StageDefinition(**values)

    def _load_workflow(self, workflow_id: str) -> WorkflowRecord:
        data = self.storage.load(self.workflows_table, workflow_id)
        if not data:
            raise NotFoundError(f"Workflow {workflow_id} not found", workflow_id)
        return WorkflowRecord.from_dict(data)

    def _load_all_workflows(self) -> List[WorkflowRecord]:
        return [WorkflowRecord.from_dict(data) for data in self.storage.load_all(self.workflows_table)]

    def _resolve_stage(self, stage_id: str) -> Tuple[WorkflowRecord, StageRecord]:
        index = self.storage.load(self.stage_index_table, stage_id)
        if not index:
            raise NotFoundError(f"Stage {stage_id} not found", stage_id)
        workflow = self._load_workflow(index['workflow_id'])
        stage = workflow.stage_by_id(stage_id)
        if stage is None:
            raise NotFoundError(f"Stage {stage_id} not found in workflow {workflow.id}", stage_id)
        return workflow, stage

    def _save_workflow(self, workflow: WorkflowRecord) -> None:
        """Compare-and-swap write; bumps workflow.version on success"""
        workflow.version = self.storage.save_versioned(
            self.workflows_table, workflow.id, workflow.to_dict(), workflow.version
        )

    @contextmanager
    def _write_guard(self, operation: str, entity_id: str):
        """Propagate workflow errors as-is, wrap collaborator failures"""
        try:
            yield
        except (WorkflowError, ValueError):
            raise
        except Exception as e:
            self.logger.error(f"{operation} failed for {entity_id}: {e}")
            raise CollaboratorUnavailableError(
                f"{operation} failed: {e}", entity_id, type(e).__name__
            ) from e

    def _safe_read(self, description: str, read: Callable[[], Any], default: Any) -> Any:
        try:
            return read()
        except Exception as e:
            self.logger.warning(f"Failed to read {description}: {e}")
            return default

    def _report_outcome(self, workflow: WorkflowRecord, stage: StageRecord, outcome: StageOutcome,
                        user_id: str, comments: Optional[str]) -> None:
        if outcome == StageOutcome.ADVANCED:
            next_stage = workflow.stage_by_number(workflow.current_stage)
            self._publish(create_stage_event(DomainEvent.STAGE_ACTIVATED, workflow, next_stage))
        elif outcome == StageOutcome.WORKFLOW_REJECTED:
            self._log_activity(
                workflow, ActivityType.WORKFLOW_REJECTED, user_id, ActivitySeverity.WARNING,
                {"workflow_id": workflow.id, "stage_id": stage.id, "comments": comments}
            )
            self._publish(create_workflow_event(DomainEvent.WORKFLOW_REJECTED, workflow))
        elif outcome == StageOutcome.WORKFLOW_APPROVED:
            self._log_activity(workflow, ActivityType.WORKFLOW_APPROVED, user_id,
                               ActivitySeverity.INFO, {"workflow_id": workflow.id})
            self._publish(create_workflow_event(DomainEvent.WORKFLOW_APPROVED, workflow))
        else:
            self._log_activity(workflow, ActivityType.WORKFLOW_COMPLETED, user_id,
                               ActivitySeverity.INFO, {"workflow_id": workflow.id})
            self._publish(create_workflow_event(DomainEvent.WORKFLOW_COMPLETED, workflow))

    def _log_activity(self, workflow: WorkflowRecord, activity_type: ActivityType,
                      actor_id: Optional[str], severity: ActivitySeverity,
                      details: Dict[str, Any]) -> None:
        """Best effort: a failing activity log never fails the transition"""
        try:
            entry = ActivityEntry.create(
                document_id=workflow.document_id,
                activity_type=activity_type,
                actor_id=actor_id,
                workflow_id=workflow.id,
                document_title=workflow.document_title,
                severity=severity,
                details=details
            )
            self.registry.log_activity(entry)
        except Exception as e:
            self.logger.error(f"Failed to log {activity_type.value} for workflow {workflow.id}: {e}")

    def _publish(self, event: EventPayload) -> None:
        if self.events is None:
            return
        try:
            self.events.publish(event)
        except Exception as e:
            self.logger.error(f"Error publishing event {event.event_type.value}: {e}")
