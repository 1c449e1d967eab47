"""
wordsmith/features/entitlements/service.py

Entitlement updater: derives a workspace's usage_limit from its plan.

Runs inside the reconciler's transaction when a subscription's plan changes,
so plan and quota commit (or roll back) together. usage_count is never
touched here.
"""

import logging
from typing import Optional, Union

from sqlalchemy import update
from sqlalchemy.orm import Session

from wordsmith.core.database import unit_of_work, workspaces
from wordsmith.core.errors import NotFoundError
from wordsmith.features.plans.catalog import PlanCatalog
from wordsmith.models.plan import PlanId


logger = logging.getLogger("wordsmith")


def sync_quota(
    workspace_id: str,
    plan_id: Union[str, PlanId],
    catalog: PlanCatalog,
    session: Optional[Session] = None,
) -> int:
    """
    Set workspaces.usage_limit to the plan's quota.

    Args:
        workspace_id: Workspace to update
        plan_id: Plan the workspace is now on
        catalog: Plan catalog to resolve the quota from
        session: Join this transaction instead of opening one

    Returns:
        The new usage_limit

    Raises:
        KeyError: Plan is not in the catalog
        NotFoundError: Workspace does not exist
    """
    limit = catalog.quota_of(plan_id)

    with unit_of_work(session) as s:
        result = s.execute(
            update(workspaces)
            .where(workspaces.c.id == workspace_id)
            .values(usage_limit=limit)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Workspace not found: {workspace_id}")

    logger.info(
        "entitlements.quota.synced",
        extra={"workspace_id": workspace_id, "plan_id": str(PlanId(plan_id).value), "usage_limit": limit},
    )
    return limit
