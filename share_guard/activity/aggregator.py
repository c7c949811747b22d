"""Aggregate the accumulated access log into per-identity activity."""

from __future__ import annotations

from pathlib import Path

from share_guard.exceptions import ActivityLogError
from share_guard.utils.logger import get_logger

from .models import IdentityActivity
from .parser import parse_line

logger = get_logger(__name__)


class ActivityAggregator:
    """Builds a fresh activity snapshot from the accumulated log on demand."""

    def __init__(self, accumulated_path: Path | str) -> None:
        self.accumulated_path = Path(accumulated_path)

    def analyze_log(self) -> dict[str, IdentityActivity]:
        """Return identity -> activity for every identity seen in the log.

        A log that does not exist yet means nothing has been accumulated and
        yields an empty snapshot. Undecodable bytes only spoil their own line;
        read failures raise ActivityLogError.
        """
        snapshot: dict[str, IdentityActivity] = {}
        matched = skipped = 0
        try:
            # Undecodable bytes become U+FFFD and the line fails to parse
            with self.accumulated_path.open(
                "r", encoding="utf-8", errors="replace"
            ) as fh:
                for line in fh:
                    event = parse_line(line)
                    if event is None:
                        skipped += 1
                        continue
                    matched += 1
                    activity = snapshot.get(event.identity)
                    if activity is None:
                        activity = snapshot[event.identity] = IdentityActivity(
                            event.identity
                        )
                    activity.record(event.address, event.timestamp)
        except FileNotFoundError:
            logger.debug(
                "Accumulated log not present yet",
                event="share_guard.activity.missing",
                path=str(self.accumulated_path),
            )
            return {}
        except OSError as exc:
            raise ActivityLogError(
                f"Cannot read accumulated log {self.accumulated_path}: {exc}",
                {"path": str(self.accumulated_path)},
            ) from exc

        logger.debug(
            "Accumulated log analyzed",
            event="share_guard.activity.analyzed",
            identities=len(snapshot),
            lines_matched=matched,
            lines_skipped=skipped,
        )
        return snapshot

    def suspicious_identities(self, max_addresses: int) -> list[str]:
        return sorted(
            identity
            for identity, act in self.analyze_log().items()
            if act.distinct_address_count > max_addresses
        )

    def normal_identities(self, max_addresses: int) -> list[str]:
        return sorted(
            identity
            for identity, act in self.analyze_log().items()
            if act.distinct_address_count <= max_addresses
        )
