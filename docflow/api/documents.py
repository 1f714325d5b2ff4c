"""
Document registry endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query, status

from .deps import WorkflowSystem, get_workflow_system, to_http_exception
from .schemas import RegisterDocumentRequest


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_document(
    request: RegisterDocumentRequest,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    """Add a document to the registry"""
    try:
        document = system.registry.register_document(
            title=request.title,
            document_id=request.document_id,
            document_number=request.document_number,
            owner_id=request.owner_id,
            metadata=request.metadata
        )
    except Exception as e:
        raise to_http_exception(e)

    return {"document_id": document.id, "message": "Document registered successfully"}


@router.get("/{document_id}")
async def get_document(
    document_id: str,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    document = system.registry.get_document(document_id)
    if not document:
        raise HTTPException(status_code=404, detail="Document not found")
    return document.to_dict()


@router.get("/{document_id}/workflows")
async def get_document_workflows(
    document_id: str,
    system: WorkflowSystem = Depends(get_workflow_system)
):
    """Workflows of a document, newest first"""
    workflows = system.workflow_engine.get_by_document(document_id)
    return {"workflows": [w.to_dict() for w in workflows], "count": len(workflows)}


@router.get("/{document_id}/activities")
async def get_document_activities(
    document_id: str,
    limit: Optional[int] = Query(None, ge=1),
    system: WorkflowSystem = Depends(get_workflow_system)
):
    entries = system.registry.get_activities(document_id, limit)
    return {"activities": [entry.to_dict() for entry in entries], "count": len(entries)}
