"""
wordsmith/features/usage/gate.py

Usage gate for the metered feature (content generation).

The generation pipeline asks before an attempt and records after a
successful one. Failed attempts are never counted and the counter never
goes down.
"""

from contextlib import contextmanager
from typing import Iterator
import logging

from sqlalchemy import update

from wordsmith.core.database import get_db_session, workspaces
from wordsmith.core.errors import QuotaExceededError
from wordsmith.core.metrics import usage_gate_decisions_total
from wordsmith.features.workspaces.service import get_workspace
from wordsmith.models.workspace import Workspace


logger = logging.getLogger("wordsmith")

QUOTA_EXCEEDED_MESSAGE = "Usage limit reached. Please upgrade your plan to continue generating content."


def can_consume(workspace: Workspace) -> bool:
    return workspace.usage_count < workspace.usage_limit


def ensure_can_consume(workspace_id: str) -> Workspace:
    """
    Raise QuotaExceededError when the workspace has no quota left.

    Returns the loaded workspace when the gate is open.
    """
    workspace = get_workspace(workspace_id)
    if not can_consume(workspace):
        usage_gate_decisions_total.inc({"decision": "blocked"})
        logger.warning(
            "usage.gate.blocked",
            extra={
                "workspace_id": workspace_id,
                "usage_count": workspace.usage_count,
                "usage_limit": workspace.usage_limit,
            },
        )
        raise QuotaExceededError(QUOTA_EXCEEDED_MESSAGE)
    usage_gate_decisions_total.inc({"decision": "allowed"})
    return workspace


def record_success(workspace_id: str) -> bool:
    """
    Count one successful use.

    A single conditional increment, so concurrent callers can never push
    usage_count past usage_limit. Returns False when nothing was counted
    (quota already exhausted, or unknown workspace).
    """
    with get_db_session() as session:
        result = session.execute(
            update(workspaces)
            .where(workspaces.c.id == workspace_id)
            .where(workspaces.c.usage_count < workspaces.c.usage_limit)
            .values(usage_count=workspaces.c.usage_count + 1)
        )
        counted = result.rowcount == 1

    if counted:
        usage_gate_decisions_total.inc({"decision": "recorded"})
    else:
        usage_gate_decisions_total.inc({"decision": "not_recorded"})
        logger.warning("usage.record.skipped", extra={"workspace_id": workspace_id})
    return counted


@contextmanager
def metered(workspace_id: str) -> Iterator[Workspace]:
    """
    Wrap one generation attempt.

    Usage:
        with metered(workspace_id):
            generate(...)

    Raises QuotaExceededError before the block runs when the gate is closed.
    Usage is recorded only when the block exits without an exception.

    The gate check and the increment are separate statements with no lock
    held while the block runs. Concurrent attempts that all pass the check at
    usage_limit - 1 all run, but only one is counted: usage_count never
    exceeds usage_limit, and the rest succeed unmetered (logged as
    usage.metered.unrecorded).
    """
    workspace = ensure_can_consume(workspace_id)
    yield workspace
    if not record_success(workspace_id):
        logger.warning(
            "usage.metered.unrecorded",
            extra={"workspace_id": workspace_id, "usage_limit": workspace.usage_limit},
        )
