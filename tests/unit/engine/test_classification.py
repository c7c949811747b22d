import pytest

from share_guard.engine.classification import (
    ActionKind,
    Classification,
    ban_reason,
    classify,
    plan_identity,
)


def test_banned_takes_precedence_over_activity(activity_of):
    act = activity_of("user@x", *(f"198.51.100.{i}" for i in range(10)))
    assert classify(True, act, 3) is Classification.BANNED


@pytest.mark.parametrize(
    "count, expected",
    [
        (0, Classification.INACTIVE),
        (1, Classification.NORMAL),
        (3, Classification.NORMAL),
        (4, Classification.SUSPICIOUS),
    ],
)
def test_threshold_is_strictly_greater(activity_of, count, expected):
    act = activity_of("user@x", *(f"198.51.100.{i}" for i in range(count)))
    assert classify(False, act, 3) is expected


def test_no_activity_is_inactive():
    assert classify(False, None, 3) is Classification.INACTIVE


def test_banned_enabled_gets_reset_only():
    plan = plan_identity(
        "user@x", is_banned=True, enabled=True, activity=None, max_addresses=3
    )
    assert [a.kind for a in plan.actions] == [ActionKind.AGGRESSIVE_RESET]


def test_banned_disabled_needs_nothing():
    plan = plan_identity(
        "user@x", is_banned=True, enabled=False, activity=None, max_addresses=3
    )
    assert plan.actions == ()


def test_suspicious_plans_ban_then_reset(activity_of):
    act = activity_of("user@x", "203.0.113.5", "198.51.100.2", "198.51.100.1", "203.0.113.1", "10.0.0.1")
    plan = plan_identity(
        "user@x", is_banned=False, enabled=False, activity=act, max_addresses=3
    )
    ban, reset = plan.actions
    assert ban.kind is ActionKind.BAN
    assert ban.reason == ban_reason(5, 3) == "exceeded address limit: 5 (max 3)"
    assert list(ban.addresses) == sorted(ban.addresses)
    assert reset.kind is ActionKind.AGGRESSIVE_RESET


def test_normal_enabled_has_no_actions(activity_of):
    plan = plan_identity(
        "user@y",
        is_banned=False,
        enabled=True,
        activity=activity_of("user@y", "198.51.100.1", "198.51.100.2"),
        max_addresses=3,
    )
    assert plan.state is Classification.NORMAL
    assert plan.actions == ()


def test_normal_after_lapsed_ban_unblocks_then_enables(activity_of):
    plan = plan_identity(
        "user@x",
        is_banned=False,
        enabled=False,
        activity=activity_of("user@x", "198.51.100.2", "198.51.100.1"),
        max_addresses=3,
        ban_lapsed=True,
    )
    assert [(a.kind, a.addresses) for a in plan.actions] == [
        (ActionKind.UNBLOCK, ("198.51.100.1",)),
        (ActionKind.UNBLOCK, ("198.51.100.2",)),
        (ActionKind.ENABLE, ()),
    ]


def test_inactive_disabled_is_enabled():
    plan = plan_identity(
        "idle@x", is_banned=False, enabled=False, activity=None, max_addresses=3
    )
    assert plan.state is Classification.INACTIVE
    assert [a.kind for a in plan.actions] == [ActionKind.ENABLE]


def test_planning_is_deterministic(activity_of):
    act = activity_of("user@x", *(f"198.51.100.{i}" for i in range(6)))
    first = plan_identity("user@x", is_banned=False, enabled=True, activity=act, max_addresses=3)
    second = plan_identity("user@x", is_banned=False, enabled=True, activity=act, max_addresses=3)
    assert first == second
