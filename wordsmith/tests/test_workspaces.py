"""Tests for the workspace store."""
import pytest

from wordsmith.core.errors import ForbiddenError, NotFoundError
from wordsmith.features.workspaces.service import (
    ensure_workspace_for_user,
    get_usage_stats,
    get_workspace,
    get_workspace_for_caller,
)


def test_new_workspace_starts_on_free_quota(catalog):
    workspace = ensure_workspace_for_user("user_alice", "Alice's Workspace", catalog)

    assert workspace.owner_user_id == "user_alice"
    assert workspace.name == "Alice's Workspace"
    assert workspace.usage_count == 0
    assert workspace.usage_limit == 100
    assert workspace.created_at is not None
    assert workspace.created_at.tzinfo is not None


def test_ensure_workspace_is_idempotent(catalog):
    first = ensure_workspace_for_user("user_bob", None, catalog)
    second = ensure_workspace_for_user("user_bob", "Other name", catalog)

    assert first.id == second.id
    assert second.name == "My Workspace"


def test_get_workspace_missing_raises():
    with pytest.raises(NotFoundError):
        get_workspace("ws_missing")


def test_usage_stats(make_workspace):
    ws = make_workspace(usage_count=25, usage_limit=100)
    stats = get_usage_stats(ws)

    assert stats.usage_count == 25
    assert stats.usage_limit == 100
    assert stats.remaining == 75
    assert stats.percentage_used == 25


def test_usage_stats_over_limit_clamps_remaining(make_workspace):
    ws = make_workspace(usage_count=120, usage_limit=100)
    stats = get_usage_stats(ws)

    assert stats.remaining == 0
    assert stats.percentage_used == 120


def test_usage_stats_zero_limit(make_workspace):
    ws = make_workspace(usage_count=0, usage_limit=0)
    assert get_usage_stats(ws).percentage_used == 0


def test_caller_may_only_read_own_workspace(make_workspace):
    mine = make_workspace()
    theirs = make_workspace()

    assert get_workspace_for_caller(mine, mine).id == mine
    with pytest.raises(ForbiddenError):
        get_workspace_for_caller(theirs, mine)
