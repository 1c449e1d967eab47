"""
Workspace API routes.

- POST /api/workspace: Caller user's workspace, created on first call
- GET  /api/workspace: Caller workspace
- GET  /api/workspace/usage: Usage counters for the caller workspace
- GET  /api/workspace/{workspace_id}: Caller workspace by id (403 for others)
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from wordsmith.api.billing import get_plan_catalog
from wordsmith.core.auth import get_current_user_id, get_current_workspace_id
from wordsmith.features.plans.catalog import PlanCatalog
from wordsmith.features.workspaces.service import (
    ensure_workspace_for_user,
    get_usage_stats,
    get_workspace,
    get_workspace_for_caller,
)
from wordsmith.models.workspace import UsageStats, Workspace


router = APIRouter(prefix="/workspace", tags=["workspace"])


class CreateWorkspaceRequest(BaseModel):
    name: Optional[str] = None


@router.post("", response_model=Workspace)
def create_workspace(
    request: Optional[CreateWorkspaceRequest] = None,
    user_id: str = Depends(get_current_user_id),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    """
    Provision the caller's workspace on the free plan.

    Idempotent: later calls return the existing workspace unchanged.

    Errors:
        401: No caller user
    """
    return ensure_workspace_for_user(user_id, request.name if request else None, catalog)


@router.get("", response_model=Workspace)
def get_current_workspace(workspace_id: str = Depends(get_current_workspace_id)):
    return get_workspace(workspace_id)


@router.get("/usage", response_model=UsageStats)
def get_usage(workspace_id: str = Depends(get_current_workspace_id)):
    """
    Usage this period.

    Returns:
        {"usage_count", "usage_limit", "remaining", "percentage_used"}
    """
    return get_usage_stats(workspace_id)


@router.get("/{workspace_id}", response_model=Workspace)
def get_workspace_by_id(workspace_id: str, caller_workspace_id: str = Depends(get_current_workspace_id)):
    """
    Errors:
        403: Not the caller's workspace
        404: Workspace not found
    """
    return get_workspace_for_caller(workspace_id, caller_workspace_id)
