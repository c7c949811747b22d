"""
Per-identity classification and the corrective actions it implies.

Both functions are pure: the same inputs always give the same state and the
same ordered action list. The reconciler gathers the inputs, calls these and
executes the result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from share_guard.activity.models import IdentityActivity


class Classification(str, Enum):
    BANNED = "banned"
    SUSPICIOUS = "suspicious"
    NORMAL = "normal"
    INACTIVE = "inactive"


class ActionKind(str, Enum):
    BAN = "ban"
    AGGRESSIVE_RESET = "aggressive_reset"
    ENABLE = "enable"
    UNBLOCK = "unblock"


@dataclass(frozen=True)
class Action:
    kind: ActionKind
    identity: str
    addresses: tuple[str, ...] = ()
    reason: str = ""


@dataclass(frozen=True)
class IdentityPlan:
    identity: str
    state: Classification
    actions: tuple[Action, ...] = field(default_factory=tuple)


def ban_reason(distinct: int, max_addresses: int) -> str:
    return f"exceeded address limit: {distinct} (max {max_addresses})"


def classify(
    is_banned: bool, activity: IdentityActivity | None, max_addresses: int
) -> Classification:
    """Precedence: Banned, then Suspicious, then Normal, else Inactive."""
    if is_banned:
        return Classification.BANNED
    if activity is None or activity.distinct_address_count == 0:
        return Classification.INACTIVE
    if activity.distinct_address_count > max_addresses:
        return Classification.SUSPICIOUS
    return Classification.NORMAL


def plan_actions(
    identity: str,
    state: Classification,
    *,
    enabled: bool,
    activity: IdentityActivity | None,
    max_addresses: int,
    ban_lapsed: bool = False,
) -> tuple[Action, ...]:
    """Corrective actions for one classified identity, in execution order.

    ``ban_lapsed`` marks an identity whose ban expired since the previous
    cycle, whether the sweep or a read noticed it; only such identities get
    their observed addresses unblocked.
    """
    addresses = tuple(activity.address_list()) if activity is not None else ()

    if state is Classification.BANNED:
        if enabled:
            return (Action(ActionKind.AGGRESSIVE_RESET, identity),)
        return ()

    if state is Classification.SUSPICIOUS:
        reason = ban_reason(len(addresses), max_addresses)
        return (
            Action(ActionKind.BAN, identity, addresses=addresses, reason=reason),
            Action(ActionKind.AGGRESSIVE_RESET, identity),
        )

    actions: list[Action] = []
    if state is Classification.NORMAL and ban_lapsed:
        actions.extend(
            Action(ActionKind.UNBLOCK, identity, addresses=(address,))
            for address in addresses
        )
    if not enabled:
        actions.append(Action(ActionKind.ENABLE, identity))
    return tuple(actions)


def plan_identity(
    identity: str,
    *,
    is_banned: bool,
    enabled: bool,
    activity: IdentityActivity | None,
    max_addresses: int,
    ban_lapsed: bool = False,
) -> IdentityPlan:
    state = classify(is_banned, activity, max_addresses)
    return IdentityPlan(
        identity=identity,
        state=state,
        actions=plan_actions(
            identity,
            state,
            enabled=enabled,
            activity=activity,
            max_addresses=max_addresses,
            ban_lapsed=ban_lapsed,
        ),
    )
