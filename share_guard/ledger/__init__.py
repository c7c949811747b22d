"""Ban ledger: persistent record of banned identities."""

from .models import BanRecord
from .store import BanLedger

__all__ = ["BanLedger", "BanRecord"]
