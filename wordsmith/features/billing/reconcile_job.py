"""
Quota drift job.

Finds workspaces whose usage_limit disagrees with the quota of their
subscription's plan (or the free quota when they have no subscription), and
optionally corrects them through the entitlement updater.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
from sqlalchemy import select

from wordsmith.core.database import (
    get_db_session,
    subscriptions,
    workspaces,
)
from wordsmith.features.entitlements.service import sync_quota
from wordsmith.features.plans.catalog import PlanCatalog
from wordsmith.models.plan import PlanId


logger = logging.getLogger("wordsmith")


def _snapshot() -> List[Any]:
    with get_db_session() as session:
        return session.execute(
            select(
                workspaces.c.id,
                workspaces.c.usage_limit,
                subscriptions.c.plan_id,
            ).select_from(
                workspaces.outerjoin(subscriptions, subscriptions.c.workspace_id == workspaces.c.id)
            )
        ).fetchall()


def _repair(workspace_id: str, catalog: PlanCatalog) -> bool:
    """
    Re-derive the quota under the workspace row lock and write it if it still drifts.

    The lock is the one reconcile takes, so a plan change committed after the
    snapshot is seen here instead of being overwritten.
    """
    with get_db_session() as session:
        locked = session.execute(
            select(workspaces.c.usage_limit)
            .where(workspaces.c.id == workspace_id)
            .with_for_update()
        ).fetchone()
        if locked is None:
            return False
        plan_id = session.execute(
            select(subscriptions.c.plan_id).where(subscriptions.c.workspace_id == workspace_id)
        ).scalar() or PlanId.FREE.value
        if plan_id not in catalog or locked.usage_limit == catalog.quota_of(plan_id):
            return False
        sync_quota(workspace_id, plan_id, catalog, session=session)
        return True


def run_quota_drift_check(
    catalog: PlanCatalog,
    fix: bool = False,
    limit: int = 100,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Report (and with fix=True, repair up to `limit`) quota drift.

    Each repair runs in its own transaction under the workspace row lock.

    Returns:
        {"issues_found", "corrections_applied", "issues", "timestamp"}
    """
    now = now or datetime.now(timezone.utc)
    issues = []
    corrections = 0

    for row in _snapshot():
        plan_id = row.plan_id or PlanId.FREE.value
        if plan_id not in catalog:
            issues.append({
                "type": "unknown_plan",
                "workspace_id": row.id,
                "plan_id": plan_id,
            })
            continue

        expected = catalog.quota_of(plan_id)
        if row.usage_limit == expected:
            continue

        issues.append({
            "type": "quota_drift",
            "workspace_id": row.id,
            "plan_id": plan_id,
            "usage_limit": row.usage_limit,
            "expected_limit": expected,
        })
        if fix and corrections < limit and _repair(row.id, catalog):
            corrections += 1

    logger.info(
        "billing.quota_drift.checked",
        extra={"issues_found": len(issues), "corrections_applied": corrections, "fix": fix},
    )
    return {
        "issues_found": len(issues),
        "corrections_applied": corrections,
        "issues": issues,
        "timestamp": now.isoformat(),
    }
