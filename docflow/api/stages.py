"""
Stage endpoints
"""

from fastapi import APIRouter, HTTPException, Depends

from .deps import WorkflowSystem, get_workflow_system, to_http_exception
from .schemas import CompleteStageRequest, DelegateStageRequest, SkipStageRequest


router = APIRouter()


@router.get("/{stage_id}")
async def get_stage(
    stage_id: str,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    stage = system.workflow_engine.get_stage(stage_id)
    if not stage:
        raise HTTPException(status_code=404, detail="Stage not found")
    return stage.to_dict()


@router.post("/{stage_id}/complete")
async def complete_stage(
    stage_id: str,
    request: CompleteStageRequest,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    """Approve, reject or complete the active stage"""
    try:
        workflow = system.workflow_engine.complete_stage(
            stage_id, request.action, request.user_id, request.comments
        )
    except Exception as e:
        raise to_http_exception(e)

    return {
        "workflow_id": workflow.id,
        "status": workflow.status.value,
        "current_stage": workflow.current_stage,
        "current_assignees": workflow.current_assignees
    }


@router.post("/{stage_id}/delegate")
async def delegate_stage(
    stage_id: str,
    request: DelegateStageRequest,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    try:
        workflow = system.workflow_engine.delegate_stage(
            stage_id, request.to_user_id, request.from_user_id, request.reason
        )
    except Exception as e:
        raise to_http_exception(e)

    return {
        "workflow_id": workflow.id,
        "current_assignees": workflow.current_assignees,
        "message": "Stage delegated successfully"
    }


@router.post("/{stage_id}/skip")
async def skip_stage(
    stage_id: str,
    request: SkipStageRequest,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    try:
        workflow = system.workflow_engine.skip_stage(stage_id, request.user_id, request.reason)
    except Exception as e:
        raise to_http_exception(e)

    return {
        "workflow_id": workflow.id,
        "status": workflow.status.value,
        "current_stage": workflow.current_stage,
        "current_assignees": workflow.current_assignees
    }
