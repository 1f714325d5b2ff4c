"""
Workflow endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query, status

from .deps import WorkflowSystem, get_workflow_system, to_http_exception
from .schemas import CreateWorkflowRequest, CancelWorkflowRequest


router = APIRouter()


def workflow_response(workflow) -> dict:
    return workflow.to_dict()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_workflow(
    request: CreateWorkflowRequest,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    """Create a draft workflow for a document"""
    try:
        workflow = system.workflow_engine.create_workflow(
            document_id=request.document_id,
            workflow_type=request.workflow_type,
            stage_definitions=[stage.to_definition() for stage in request.stages],
            options=request.to_options()
        )
    except Exception as e:
        raise to_http_exception(e)

    return {
        "workflow_id": workflow.id,
        "stage_ids": [stage.id for stage in workflow.stages],
        "message": "Workflow created successfully"
    }


@router.get("/active")
async def list_active_workflows(
    limit: Optional[int] = Query(None, ge=1),
    system: WorkflowSystem = Depends(get_workflow_system)
):
    """In-progress and pending-approval workflows, earliest due first"""
    workflows = system.workflow_engine.get_active_workflows(limit)
    return {"workflows": [workflow_response(w) for w in workflows], "count": len(workflows)}


@router.get("/overdue")
async def list_overdue_workflows(system: WorkflowSystem = Depends(get_workflow_system)):
    workflows = system.workflow_engine.get_overdue_workflows()
    return {"workflows": [workflow_response(w) for w in workflows], "count": len(workflows)}


@router.get("/pending/{user_id}")
async def list_user_pending_workflows(
    user_id: str,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    """Active workflows waiting on a user"""
    workflows = system.workflow_engine.get_user_pending_workflows(user_id)
    return {"workflows": [workflow_response(w) for w in workflows], "count": len(workflows)}


@router.post("/escalations")
async def escalate_overdue_workflows(system: WorkflowSystem = Depends(get_workflow_system)):
    """Raise the escalation level of every overdue workflow"""
    try:
        breaches = system.workflow_engine.escalate_overdue_workflows()
    except Exception as e:
        raise to_http_exception(e)

    return {
        "escalated": [
            {
                "workflow_id": breach["workflow_id"],
                "document_id": breach["document_id"],
                "escalation_level": breach["escalation_level"],
                "due_date": breach["due_date"].isoformat() if breach["due_date"] else None
            }
            for breach in breaches
        ],
        "count": len(breaches)
    }


@router.get("/{workflow_id}")
async def get_workflow(
    workflow_id: str,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    """Get workflow by ID"""
    workflow = system.workflow_engine.get_workflow(workflow_id)
    if not workflow:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return workflow_response(workflow)


@router.post("/{workflow_id}/start")
async def start_workflow(
    workflow_id: str,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    try:
        workflow = system.workflow_engine.start_workflow(workflow_id)
    except Exception as e:
        raise to_http_exception(e)
    return workflow_response(workflow)


@router.post("/{workflow_id}/cancel")
async def cancel_workflow(
    workflow_id: str,
    request: CancelWorkflowRequest,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    try:
        workflow = system.workflow_engine.cancel_workflow(workflow_id, request.user_id, request.reason)
    except Exception as e:
        raise to_http_exception(e)
    return workflow_response(workflow)


@router.post("/{workflow_id}/hold")
async def put_workflow_on_hold(
    workflow_id: str,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    try:
        workflow = system.workflow_engine.put_on_hold(workflow_id)
    except Exception as e:
        raise to_http_exception(e)
    return workflow_response(workflow)


@router.post("/{workflow_id}/resume")
async def resume_workflow(
    workflow_id: str,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    try:
        workflow = system.workflow_engine.resume_workflow(workflow_id)
    except Exception as e:
        raise to_http_exception(e)
    return workflow_response(workflow)


@router.post("/{workflow_id}/reminders")
async def record_reminder(
    workflow_id: str,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    """Record that the current assignees were reminded"""
    try:
        workflow = system.workflow_engine.record_reminder(workflow_id)
    except Exception as e:
        raise to_http_exception(e)
    return {"workflow_id": workflow.id, "reminders_sent": workflow.reminders_sent}


@router.get("/{workflow_id}/stages")
async def get_workflow_stages(
    workflow_id: str,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    stages = system.workflow_engine.get_workflow_stages(workflow_id)
    return {"stages": [stage.to_dict() for stage in stages], "count": len(stages)}


@router.get("/{workflow_id}/current-stage")
async def get_current_stage(
    workflow_id: str,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    stage = system.workflow_engine.get_current_stage(workflow_id)
    if not stage:
        raise HTTPException(status_code=404, detail="Current stage not found")
    return stage.to_dict()


@router.get("/{workflow_id}/invariants")
async def check_workflow_invariants(
    workflow_id: str,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    """Structural consistency report for a stored workflow"""
    try:
        problems = system.workflow_engine.check_invariants(workflow_id)
    except Exception as e:
        raise to_http_exception(e)
    return {"workflow_id": workflow_id, "consistent": not problems, "problems": problems}


@router.get("/{workflow_id}/activities")
async def get_workflow_activities(
    workflow_id: str,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    entries = system.registry.get_workflow_activities(workflow_id)
    return {"activities": [entry.to_dict() for entry in entries], "count": len(entries)}
