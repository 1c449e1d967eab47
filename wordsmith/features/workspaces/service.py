"""
Workspace store.

A workspace is created once per owning user with the free-plan quota, on
the first POST /api/workspace. The usage counters live on the workspace
row: usage_limit is owned by the entitlement updater, usage_count by the
usage gate.
"""
import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wordsmith.core.database import as_utc, get_db_session, unit_of_work, workspaces
from wordsmith.core.errors import ForbiddenError, NotFoundError
from wordsmith.features.plans.catalog import PlanCatalog
from wordsmith.models.plan import PlanId
from wordsmith.models.workspace import UsageStats, Workspace

logger = logging.getLogger("wordsmith")


def _row_to_workspace(row) -> Workspace:
    return Workspace(
        id=row.id,
        owner_user_id=row.owner_user_id,
        name=row.name,
        usage_count=row.usage_count,
        usage_limit=row.usage_limit,
        created_at=as_utc(row.created_at),
    )


def _find_by_owner(session: Session, user_id: str):
    return session.execute(
        select(workspaces).where(workspaces.c.owner_user_id == user_id)
    ).fetchone()


def ensure_workspace_for_user(user_id: str, name: Optional[str], catalog: PlanCatalog) -> Workspace:
    """
    Return the user's workspace, creating it on first call.

    New workspaces start on the free plan quota with no usage.
    """
    with get_db_session() as session:
        existing = _find_by_owner(session, user_id)
        if existing:
            return _row_to_workspace(existing)

    workspace_id = str(uuid.uuid4())
    try:
        with get_db_session() as session:
            session.execute(
                workspaces.insert().values(
                    id=workspace_id,
                    owner_user_id=user_id,
                    name=name or "My Workspace",
                    usage_count=0,
                    usage_limit=catalog.quota_of(PlanId.FREE),
                )
            )
    except IntegrityError:
        # Concurrent first call for the same user already created it
        logger.info("workspace.create.race", extra={"workspace_id": workspace_id})

    with get_db_session() as session:
        row = _find_by_owner(session, user_id)
        logger.info("workspace.ready", extra={"workspace_id": row.id})
        return _row_to_workspace(row)


def get_workspace(workspace_id: str, session: Optional[Session] = None) -> Workspace:
    """
    Load a workspace.

    Raises:
        NotFoundError: Unknown workspace id
    """
    with unit_of_work(session) as s:
        row = s.execute(
            select(workspaces).where(workspaces.c.id == workspace_id)
        ).fetchone()
    if row is None:
        raise NotFoundError(f"Workspace not found: {workspace_id}")
    return _row_to_workspace(row)


def workspace_exists(workspace_id: str, session: Optional[Session] = None) -> bool:
    with unit_of_work(session) as s:
        row = s.execute(
            select(workspaces.c.id).where(workspaces.c.id == workspace_id)
        ).fetchone()
    return row is not None


def usage_stats_for(workspace: Workspace) -> UsageStats:
    limit = workspace.usage_limit
    count = workspace.usage_count
    percentage = round(count / limit * 100) if limit > 0 else 0
    return UsageStats(
        usage_count=count,
        usage_limit=limit,
        remaining=max(0, limit - count),
        percentage_used=percentage,
    )


def get_usage_stats(workspace_id: str) -> UsageStats:
    """Usage counters plus remaining and percentage used for a workspace."""
    return usage_stats_for(get_workspace(workspace_id))


def get_workspace_for_caller(workspace_id: str, caller_workspace_id: str) -> Workspace:
    """
    Load a workspace on behalf of a caller, who may only read their own.

    Raises:
        ForbiddenError: workspace_id is not the caller's workspace
        NotFoundError: Unknown workspace id
    """
    if workspace_id != caller_workspace_id:
        logger.warning(
            "workspace.access.denied",
            extra={"workspace_id": caller_workspace_id, "requested_workspace_id": workspace_id},
        )
        raise ForbiddenError("Access denied")
    return get_workspace(workspace_id)
