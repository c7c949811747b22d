"""
3x-ui panel gateway proxy.

All identities live as ``clients`` inside the JSON ``settings`` string of a
single inbound. Every change is a read-modify-write of that inbound:

    GET  {url}panel/api/inbounds/get/{inbound_id}
    POST {url}panel/api/inbounds/update/{inbound_id}

The panel's proxy core only drops live sessions when it notices the inbound
changed, so writes are followed by a remark "hard reset" (rename the inbound
to ``<remark>-reset`` and back).
"""

from __future__ import annotations

import json
import threading
import time
import uuid
from collections.abc import Callable
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from share_guard.exceptions import IdentityNotFoundError, PanelAuthError, PanelError
from share_guard.utils.logger import get_logger
from share_guard.utils.retry import retry

from .base import GatewayProxy
from .models import RemoteIdentity

logger = get_logger(__name__)

SESSION_COOKIE = "3x-ui"
RESET_SUFFIX = "-reset"
_BODY_PREVIEW = 400


def _base_identity(email: str) -> str:
    # A reset interrupted between its phases leaves "<email>-reset" behind
    return email[: -len(RESET_SUFFIX)] if email.endswith(RESET_SUFFIX) else email


class PanelGatewayProxy(GatewayProxy):
    """
    Gateway proxy backed by a 3x-ui panel.

    Config options (cfg dict):
      url                  - panel base url, e.g. https://panel.example:2053/path/ (required)
      username / password  - panel credentials (required)
      inbound_id           - inbound holding the managed clients (required)
      timeout              - request timeout seconds (default 30)
      verify_tls           - verify panel certificate (default True)
      max_retries          - retries for GETs and login (default 3)
      phase_delay_seconds  - pause between aggressive-reset phases (default 1.0)
      remark_delay_seconds - pause inside the remark hard reset (default 0.5)
    """

    def __init__(
        self,
        cfg: dict[str, Any],
        *,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__("3x-ui")
        url = str(cfg.get("url") or "").strip()
        if not url:
            raise ValueError("Panel url must be provided in config (url)")
        self.url = url if url.endswith("/") else url + "/"
        self.username = str(cfg.get("username") or "")
        self.password = str(cfg.get("password") or "")
        self.inbound_id = int(cfg.get("inbound_id") or 0)
        self.timeout = float(cfg.get("timeout", 30))
        self.verify_tls = bool(cfg.get("verify_tls", True))
        self.max_retries = int(cfg.get("max_retries", 3))
        self.phase_delay = float(cfg.get("phase_delay_seconds", 1.0))
        self.remark_delay = float(cfg.get("remark_delay_seconds", 0.5))
        self._sleep = sleep
        # Serializes read-modify-write cycles on the shared inbound
        self._lock = threading.RLock()
        self._logged_in = False

        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(
                max_retries=Retry(
                    total=self.max_retries,
                    backoff_factor=0.3,
                    status_forcelist=(429, 500, 502, 503, 504),
                    allowed_methods=frozenset({"GET"}),
                    raise_on_status=False,
                )
            )
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self._session = session

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def login(self) -> None:
        """Open a panel session (stores the session cookie on the HTTP session)."""
        login_with_retry = retry(
            max_retries=self.max_retries,
            initial_delay=0.5,
            exceptions=(requests.ConnectionError, requests.Timeout),
            sleep=self._sleep,
        )(self._login_once)
        try:
            login_with_retry()
        except requests.RequestException as exc:
            raise PanelAuthError(f"Panel login request failed: {exc}") from exc

    def _login_once(self) -> None:
        resp = self._session.post(
            f"{self.url}login",
            json={"username": self.username, "password": self.password},
            timeout=self.timeout,
            verify=self.verify_tls,
        )
        if resp.status_code != 200:
            raise PanelAuthError(
                f"Panel login returned HTTP {resp.status_code}",
                {"body": resp.text[:_BODY_PREVIEW]},
            )
        try:
            body = resp.json()
        except ValueError as exc:
            raise PanelAuthError("Panel login returned invalid JSON") from exc
        if not body.get("success"):
            raise PanelAuthError(f"Panel login rejected: {body.get('msg', '')}")
        if SESSION_COOKIE not in self._session.cookies:
            raise PanelAuthError("Panel login returned no session cookie")
        self._logged_in = True
        logger.info(
            "Logged in to panel",
            event="share_guard.panel.login",
            panel_url=self.url,
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Issue an authenticated request and return the response ``obj``."""
        if not self._logged_in:
            self.login()
        kwargs.setdefault("timeout", self.timeout)
        kwargs.setdefault("verify", self.verify_tls)
        url = f"{self.url}{path}"
        try:
            resp = self._session.request(method, url, **kwargs)
            if resp.status_code == 401:
                logger.info(
                    "Panel session expired, logging in again",
                    event="share_guard.panel.relogin",
                )
                self._logged_in = False
                self.login()
                resp = self._session.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise PanelError(f"Panel request {method} {path} failed: {exc}") from exc

        if resp.status_code != 200:
            raise PanelError(
                f"Panel request {method} {path} returned HTTP {resp.status_code}",
                {"body": resp.text[:_BODY_PREVIEW]},
            )
        try:
            body = resp.json()
        except ValueError as exc:
            raise PanelError(f"Panel request {method} {path} returned invalid JSON") from exc
        if not body.get("success"):
            raise PanelError(
                f"Panel request {method} {path} unsuccessful: {body.get('msg', '')}"
            )
        return body.get("obj")

    # ------------------------------------------------------------------
    # Inbound helpers
    # ------------------------------------------------------------------
    def _get_inbound(self) -> dict[str, Any]:
        inbound = self._request("GET", f"panel/api/inbounds/get/{self.inbound_id}")
        if not isinstance(inbound, dict):
            raise PanelError("Panel returned no inbound object")
        return inbound

    @staticmethod
    def _settings(inbound: dict[str, Any]) -> dict[str, Any]:
        raw = inbound.get("settings") or "{}"
        try:
            settings = json.loads(raw)
        except ValueError as exc:
            logger.error(
                "Cannot parse inbound client settings",
                event="share_guard.panel.settings_invalid",
                size=len(raw),
                preview=raw[:_BODY_PREVIEW],
                error=str(exc),
            )
            raise PanelError(f"Inbound settings are not valid JSON: {exc}") from exc
        if not isinstance(settings, dict) or not isinstance(
            settings.setdefault("clients", []), list
        ):
            raise PanelError("Inbound settings have no clients list")
        return settings

    @staticmethod
    def _find_client(settings: dict[str, Any], identity: str) -> dict[str, Any]:
        wanted = identity.lower()
        stranded = None
        for client in settings["clients"]:
            email = str(client.get("email") or "").lower()
            if email == wanted:
                return client
            if email == wanted + RESET_SUFFIX:
                stranded = client
        if stranded is not None:
            return stranded
        raise IdentityNotFoundError(
            f"Identity {identity} not found on panel", {"identity": identity}
        )

    def _write_settings(self, inbound: dict[str, Any], settings: dict[str, Any]) -> None:
        if settings.get("decryption") != "none":
            settings["decryption"] = "none"
        inbound["settings"] = json.dumps(settings)
        self._request(
            "POST", f"panel/api/inbounds/update/{self.inbound_id}", json=inbound
        )

    def _hard_reset_remark(self) -> None:
        inbound = self._get_inbound()
        base = str(inbound.get("remark") or "").removesuffix(RESET_SUFFIX)
        for remark, pause in ((base + RESET_SUFFIX, True), (base, False)):
            inbound["remark"] = remark
            self._request(
                "POST", f"panel/api/inbounds/update/{self.inbound_id}", json=inbound
            )
            if pause:
                self._sleep(self.remark_delay)

    # ------------------------------------------------------------------
    # GatewayProxy
    # ------------------------------------------------------------------
    def list_identities(self) -> list[RemoteIdentity]:
        settings = self._settings(self._get_inbound())
        roster = []
        for client in settings["clients"]:
            remote = RemoteIdentity.from_client(client)
            if not remote.identity:
                continue
            roster.append(
                RemoteIdentity(
                    identity=_base_identity(remote.identity),
                    enabled=remote.enabled,
                    client_id=remote.client_id,
                )
            )
        return roster

    def lookup_by_email(self, identity: str) -> RemoteIdentity:
        client = self._find_client(self._settings(self._get_inbound()), identity)
        return RemoteIdentity.from_client(client)

    def enable(self, identity: str) -> None:
        self._set_enabled(identity, True)

    def disable(self, identity: str) -> None:
        self._set_enabled(identity, False)

    def _set_enabled(self, identity: str, enabled: bool) -> None:
        with self._lock:
            inbound = self._get_inbound()
            settings = self._settings(inbound)
            client = self._find_client(settings, identity)
            client["enable"] = enabled
            self._write_settings(inbound, settings)
            self._hard_reset_remark()
        logger.info(
            "Identity %s on panel",
            "enabled" if enabled else "disabled",
            event="share_guard.panel.set_enabled",
            identity=identity,
            enabled=enabled,
        )

    def aggressive_reset(self, identity: str) -> str:
        """Cut every live session of ``identity``.

        Phases:
          A. disable, mark depleted/exhausted, rename to ``<email>-reset`` and
             rotate the client id (the proxy core sees a different user)
          B. after ``phase_delay_seconds`` restore the email, keep the flags
          C. remark hard reset so the core reloads the inbound

        A failure in any phase raises PanelError. Re-running the whole
        operation converges: a client stranded as ``<email>-reset`` by an
        interrupted run is found and repaired.
        """
        with self._lock:
            inbound = self._get_inbound()
            settings = self._settings(inbound)
            client = self._find_client(settings, identity)
            email = _base_identity(str(client.get("email") or identity))
            new_id = str(uuid.uuid4())

            client.update(
                enable=False,
                depleted=True,
                exhausted=True,
                email=email + RESET_SUFFIX,
                id=new_id,
            )
            self._write_settings(inbound, settings)
            self._sleep(self.phase_delay)

            client.update(enable=False, depleted=True, exhausted=True, email=email)
            self._write_settings(inbound, settings)

            self._hard_reset_remark()

        logger.info(
            "Aggressive reset applied",
            event="share_guard.panel.aggressive_reset",
            identity=identity,
        )
        return new_id

    def close(self) -> None:
        self._session.close()
