"""Reconciliation engine: classification and the periodic cycle."""

from .classification import (
    Action,
    ActionKind,
    Classification,
    IdentityPlan,
    classify,
    plan_actions,
    plan_identity,
)
from .reconciler import CycleSummary, ReconciliationEngine, activity_breakdown

__all__ = [
    "Action",
    "ActionKind",
    "Classification",
    "CycleSummary",
    "IdentityPlan",
    "ReconciliationEngine",
    "activity_breakdown",
    "classify",
    "plan_actions",
    "plan_identity",
]
