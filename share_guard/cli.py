"""Console entrypoint for the ``share-guard`` service."""

from __future__ import annotations

from share_guard.exceptions import ShareGuardError
from share_guard.utils.logger import configure, get_logger

logger = get_logger(__name__)


def main(argv: list[str] | None = None) -> int:
    configure()
    from share_guard import main as pkg_main

    try:
        return pkg_main.main(argv)
    except ShareGuardError as exc:
        logger.error("Failed to start share-guard", error=str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
