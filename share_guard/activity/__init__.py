"""Connection activity: log accumulation and per-identity aggregation."""

from .accumulator import LogAccumulator
from .aggregator import ActivityAggregator
from .models import AddressActivity, IdentityActivity

__all__ = [
    "ActivityAggregator",
    "AddressActivity",
    "IdentityActivity",
    "LogAccumulator",
]
