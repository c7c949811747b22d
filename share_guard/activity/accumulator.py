"""
Log accumulator

Copies new lines from the proxy's access log into a service-owned
accumulated log, remembering how far it has read in a checkpoint file so a
restart does not re-read or skip lines. A second timer trims accumulated
lines older than the retention window.
"""

from __future__ import annotations

import os
import tempfile
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from share_guard.exceptions import ShareGuardError
from share_guard.utils.logger import get_logger

from .parser import parse_timestamp

logger = get_logger(__name__)


class LogAccumulator:
    """Tails ``source_path`` into ``accumulated_path`` on a timer."""

    def __init__(
        self,
        source_path: Path | str,
        accumulated_path: Path | str,
        *,
        save_interval: float = 60.0,
        retention_minutes: float = 60.0,
        cleanup_interval: float = 3600.0,
        cleanup_initial_delay: float = 3600.0,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.source_path = Path(source_path)
        self.accumulated_path = Path(accumulated_path)
        self.position_path = Path(f"{self.accumulated_path}.pos")
        self.save_interval = save_interval
        self.retention_minutes = retention_minutes
        self.cleanup_interval = cleanup_interval
        self.cleanup_initial_delay = cleanup_initial_delay
        self._clock = clock
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self.last_read_pos = 0
        self.running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self.running:
            raise ShareGuardError("Log accumulator is already running")
        self.accumulated_path.parent.mkdir(parents=True, exist_ok=True)
        self._restore_position()
        self._stop_event.clear()
        self.running = True
        self._threads = [
            threading.Thread(
                target=self._accumulation_loop, name="log-accumulator", daemon=True
            ),
            threading.Thread(
                target=self._cleanup_loop, name="log-retention", daemon=True
            ),
        ]
        for thread in self._threads:
            thread.start()
        logger.info(
            "Log accumulator started",
            event="share_guard.accumulator.started",
            source=str(self.source_path),
            accumulated=str(self.accumulated_path),
            save_interval=self.save_interval,
            retention_minutes=self.retention_minutes,
        )

    def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout=10)
        self._threads = []
        logger.info("Log accumulator stopped", event="share_guard.accumulator.stopped")

    def _accumulation_loop(self) -> None:
        while not self._stop_event.wait(self.save_interval):
            try:
                self.accumulate_new_lines()
            except Exception:
                logger.exception(
                    "Accumulation pass failed",
                    event="share_guard.accumulator.error",
                )

    def _cleanup_loop(self) -> None:
        delay = self.cleanup_initial_delay
        while not self._stop_event.wait(delay):
            try:
                self.cleanup_old_lines()
            except Exception:
                logger.exception(
                    "Retention pass failed",
                    event="share_guard.accumulator.cleanup_error",
                )
            delay = self.cleanup_interval

    # ------------------------------------------------------------------
    # Checkpoint
    # ------------------------------------------------------------------
    def _restore_position(self) -> None:
        try:
            raw = self.position_path.read_text(encoding="utf-8").strip()
            pos = int(raw)
        except FileNotFoundError:
            logger.info(
                "No read checkpoint, starting from the beginning",
                event="share_guard.accumulator.position.missing",
            )
            pos = 0
        except (OSError, ValueError) as exc:
            logger.warning(
                "Read checkpoint unusable, starting from the beginning",
                event="share_guard.accumulator.position.invalid",
                error=str(exc),
            )
            pos = 0
        with self._lock:
            self.last_read_pos = max(0, pos)

    def _save_position(self) -> None:
        with self._lock:
            pos = self.last_read_pos
        try:
            self.position_path.write_text(str(pos), encoding="utf-8")
        except OSError as exc:
            logger.error(
                "Failed to save read checkpoint",
                event="share_guard.accumulator.position.save_error",
                error=str(exc),
            )

    # ------------------------------------------------------------------
    # Work
    # ------------------------------------------------------------------
    def accumulate_new_lines(self) -> int:
        """Append complete new source lines; return how many were written."""
        with self._lock:
            try:
                size = self.source_path.stat().st_size
            except OSError as exc:
                logger.warning(
                    "Access log not readable",
                    event="share_guard.accumulator.source_error",
                    source=str(self.source_path),
                    error=str(exc),
                )
                return 0

            if size < self.last_read_pos:
                logger.info(
                    "Access log rotated, rewinding",
                    event="share_guard.accumulator.rotated",
                    previous_pos=self.last_read_pos,
                    size=size,
                )
                self.last_read_pos = 0
            if self.last_read_pos >= size:
                return 0

            with self.source_path.open("rb") as src:
                src.seek(self.last_read_pos)
                chunk = src.read(size - self.last_read_pos)

            # A trailing partial line is left for the next pass
            end = chunk.rfind(b"\n")
            if end < 0:
                return 0
            complete = chunk[: end + 1]
            lines = [ln for ln in complete.split(b"\n") if ln.strip()]
            if lines:
                with self.accumulated_path.open("ab") as dst:
                    dst.write(b"\n".join(lines) + b"\n")
            self.last_read_pos += len(complete)
            position = self.last_read_pos

        self._save_position()
        logger.debug(
            "Accumulated new access-log lines",
            event="share_guard.accumulator.accumulated",
            lines=len(lines),
            position=position,
        )
        return len(lines)

    def cleanup_old_lines(self) -> tuple[int, int]:
        """Drop accumulated lines older than the retention window.

        Lines without a parseable timestamp are kept. Returns (kept, removed).
        """
        if self.retention_minutes <= 0:
            return (0, 0)
        cutoff = self._clock() - timedelta(minutes=self.retention_minutes)
        kept = removed = 0
        with self._lock:
            if not self.accumulated_path.exists():
                return (0, 0)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.accumulated_path.name}.",
                dir=str(self.accumulated_path.parent),
            )
            try:
                with (
                    self.accumulated_path.open("r", encoding="utf-8", errors="replace") as src,
                    os.fdopen(fd, "w", encoding="utf-8") as dst,
                ):
                    for line in src:
                        ts = parse_timestamp(line)
                        if ts is not None and ts <= cutoff:
                            removed += 1
                            continue
                        dst.write(line if line.endswith("\n") else line + "\n")
                        kept += 1
                os.replace(tmp_name, self.accumulated_path)
            except OSError:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
                raise
        logger.info(
            "Accumulated log trimmed",
            event="share_guard.accumulator.trimmed",
            kept=kept,
            removed=removed,
            retention_minutes=self.retention_minutes,
        )
        return (kept, removed)
