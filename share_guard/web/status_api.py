"""
Status and administration API.

Read-only views of the engine and the ban ledger, an administrative unban
and the Prometheus scrape endpoint. Served by uvicorn in a daemon thread.
While the service runs these are the only live views of its ledger;
share-guard-admin routes its ledger commands here.
"""

from __future__ import annotations

import asyncio
import threading
import time
from datetime import UTC, datetime
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from share_guard.engine.reconciler import ReconciliationEngine
from share_guard.exceptions import ShareGuardError
from share_guard.ledger.store import BanLedger
from share_guard.utils.logger import get_logger

logger = get_logger(__name__)


def install_exception_handlers(app: FastAPI) -> None:
    """Translate ShareGuardError into JSON error responses."""

    @app.exception_handler(ShareGuardError)
    async def _handle_share_guard_error(request: Request, exc: ShareGuardError):
        payload: dict[str, Any] = {
            "error": exc.error_code,
            "message": exc.message,
            "details": exc.details,
            "timestamp": datetime.now(UTC).isoformat(),
            "path": str(request.url.path),
        }
        return JSONResponse(status_code=exc.status_code, content=payload)


def create_app(engine: ReconciliationEngine, ledger: BanLedger) -> FastAPI:
    app = FastAPI(title="share-guard status", docs_url=None, redoc_url=None)
    install_exception_handlers(app)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"status": "ok", "running": engine.running}

    @app.get("/status")
    def status() -> dict[str, Any]:
        return engine.status()

    @app.get("/stats")
    def stats() -> dict[str, Any]:
        return engine.current_stats()

    @app.get("/bans")
    def list_bans() -> dict[str, Any]:
        bans = ledger.active_bans()
        return {
            "stats": ledger.stats(),
            "bans": [bans[identity].to_dict() for identity in sorted(bans)],
        }

    @app.get("/bans/{identity}")
    def get_ban(identity: str) -> dict[str, Any]:
        record = ledger.get_ban_info(identity)
        if record is None:
            raise HTTPException(status_code=404, detail=f"No active ban for {identity}")
        return record.to_dict()

    @app.delete("/bans/{identity}")
    def delete_ban(identity: str) -> dict[str, Any]:
        if not ledger.unban(identity):
            raise HTTPException(status_code=404, detail=f"No active ban for {identity}")
        logger.info(
            "Identity unbanned through status API",
            event="share_guard.web.unban",
            identity=identity,
        )
        return {"identity": identity, "unbanned": True}

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


class StatusServer:
    """Runs the status app under uvicorn in a background thread."""

    def __init__(self, app: FastAPI, host: str = "127.0.0.1", port: int = 8088):
        self.app = app
        self.host = host
        self.port = port
        self.server: uvicorn.Server | None = None
        self.server_thread: threading.Thread | None = None

    def start(self) -> bool:
        if self.server_thread and self.server_thread.is_alive():
            logger.warning("Status API is already running")
            return True

        def run_server():
            try:
                config = uvicorn.Config(
                    self.app,
                    host=self.host,
                    port=self.port,
                    log_level="warning",
                    access_log=False,
                    server_header=False,
                )
                self.server = uvicorn.Server(config)
                asyncio.set_event_loop(asyncio.new_event_loop())
                self.server.run()
            except Exception:
                logger.exception(
                    "Status API server error", event="share_guard.web.server_error"
                )

        self.server_thread = threading.Thread(
            target=run_server, name="status-api", daemon=True
        )
        self.server_thread.start()
        # short wait to allow uvicorn to bind
        time.sleep(0.2)
        if not self.server_thread.is_alive():
            logger.error("Status API thread did not start", event="share_guard.web.failed")
            return False
        logger.info(
            "Status API started",
            event="share_guard.web.started",
            url=f"http://{self.host}:{self.port}",
        )
        return True

    def stop(self) -> None:
        if self.server is not None:
            self.server.should_exit = True
        if self.server_thread is not None:
            self.server_thread.join(timeout=2.0)
        logger.info("Status API stopped", event="share_guard.web.stopped")
