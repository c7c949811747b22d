"""Panel gateway proxy against an in-memory 3x-ui inbound.

The fake session answers the three endpoints the proxy uses and records
every settings/remark write so the reset phases can be checked in order.
"""

import copy
import json

import pytest
import requests

from share_guard.exceptions import IdentityNotFoundError, PanelAuthError, PanelError
from share_guard.panel.client import PanelGatewayProxy


class _Response:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakePanelSession:
    def __init__(self, clients, remark="main"):
        self.inbound = {
            "id": 7,
            "remark": remark,
            "settings": json.dumps({"clients": clients, "decryption": "none"}),
        }
        self.cookies: dict[str, str] = {}
        self.writes: list[dict] = []
        self.logins = 0
        self.login_failures: list[Exception] = []
        self.reject_login = False
        self.expire_next = False
        self.fail_writes = False
        self.closed = False

    def mount(self, prefix, adapter):
        pass

    def close(self):
        self.closed = True

    def post(self, url, json=None, **kwargs):
        assert url.endswith("/login")
        self.logins += 1
        if self.login_failures:
            raise self.login_failures.pop(0)
        if self.reject_login:
            return _Response(payload={"success": False, "msg": "wrong password"})
        self.cookies["3x-ui"] = "session"
        return _Response(payload={"success": True})

    def request(self, method, url, json=None, **kwargs):
        if self.expire_next:
            self.expire_next = False
            return _Response(status_code=401, text="unauthorized")
        if "/inbounds/get/7" in url:
            return _Response(payload={"success": True, "obj": copy.deepcopy(self.inbound)})
        if "/inbounds/update/7" in url:
            if self.fail_writes:
                return _Response(payload={"success": False, "msg": "db locked"})
            self.inbound = copy.deepcopy(json)
            self.writes.append(copy.deepcopy(json))
            return _Response(payload={"success": True, "obj": None})
        return _Response(status_code=404, text="not found")

    def clients(self):
        return {c["email"]: c for c in json.loads(self.inbound["settings"])["clients"]}


CFG = {
    "url": "https://panel.example:2053/base",
    "username": "admin",
    "password": "secret",
    "inbound_id": 7,
}


@pytest.fixture
def session():
    return FakePanelSession(
        [
            {"id": "id-x", "email": "user@x", "enable": True},
            {"id": "id-y", "email": "User@Y", "enable": False},
        ]
    )


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def proxy(session, sleeps):
    return PanelGatewayProxy(CFG, session=session, sleep=sleeps.append)


def test_url_gets_trailing_slash(proxy):
    assert proxy.url == "https://panel.example:2053/base/"


def test_missing_url_is_rejected(session):
    with pytest.raises(ValueError):
        PanelGatewayProxy({"username": "a"}, session=session)


def test_list_identities_logs_in_once(proxy, session):
    roster = proxy.list_identities()
    proxy.list_identities()

    assert session.logins == 1
    assert [(r.identity, r.enabled) for r in roster] == [("user@x", True), ("User@Y", False)]


def test_lookup_is_case_insensitive(proxy):
    remote = proxy.lookup_by_email("user@y")
    assert remote.identity == "User@Y"
    assert remote.client_id == "id-y"
    assert proxy.status("user@x") is True


def test_lookup_unknown_identity(proxy):
    with pytest.raises(IdentityNotFoundError):
        proxy.lookup_by_email("ghost@x")


def test_enable_writes_flag_and_hard_resets_remark(proxy, session, sleeps):
    proxy.enable("user@y")

    assert session.clients()["User@Y"]["enable"] is True
    remarks = [w["remark"] for w in session.writes]
    assert remarks == ["main", "main-reset", "main"]
    assert sleeps == [0.5]


def test_disable(proxy, session):
    proxy.disable("user@x")
    assert session.clients()["user@x"]["enable"] is False


def test_aggressive_reset_phases(proxy, session, sleeps):
    new_id = proxy.aggressive_reset("user@x")

    phase_a = json.loads(session.writes[0]["settings"])["clients"][0]
    assert phase_a["email"] == "user@x-reset"
    assert phase_a["id"] == new_id != "id-x"
    assert phase_a["enable"] is False

    client = session.clients()["user@x"]
    assert client["id"] == new_id
    assert client["enable"] is False
    assert client["depleted"] is True
    assert client["exhausted"] is True
    assert session.inbound["remark"] == "main"
    assert sleeps == [1.0, 0.5]


def test_stranded_reset_client_is_repaired(session, sleeps):
    session.inbound["settings"] = json.dumps(
        {"clients": [{"id": "old", "email": "user@x-reset", "enable": False}]}
    )
    proxy = PanelGatewayProxy(CFG, session=session, sleep=sleeps.append)

    assert [r.identity for r in proxy.list_identities()] == ["user@x"]
    proxy.aggressive_reset("user@x")
    assert set(session.clients()) == {"user@x"}


def test_writes_force_decryption_none(proxy, session):
    session.inbound["settings"] = json.dumps(
        {"clients": [{"id": "a", "email": "user@x", "enable": True}]}
    )
    proxy.disable("user@x")
    assert json.loads(session.writes[0]["settings"])["decryption"] == "none"


def test_expired_session_relogs_in(proxy, session):
    proxy.list_identities()
    session.expire_next = True
    proxy.list_identities()
    assert session.logins == 2


def test_rejected_login_raises_auth_error(proxy, session):
    session.reject_login = True
    with pytest.raises(PanelAuthError):
        proxy.list_identities()


def test_login_retries_connection_errors(proxy, session, sleeps):
    session.login_failures = [requests.ConnectionError("refused")]
    proxy.list_identities()
    assert session.logins == 2
    assert sleeps == [0.5]


def test_login_gives_up_after_max_retries(proxy, session):
    session.login_failures = [requests.ConnectionError("refused")] * 4
    with pytest.raises(PanelAuthError):
        proxy.login()


def test_unsuccessful_write_raises_panel_error(proxy, session):
    session.fail_writes = True
    with pytest.raises(PanelError):
        proxy.enable("user@y")


def test_invalid_settings_json(proxy, session):
    session.inbound["settings"] = "{broken"
    with pytest.raises(PanelError):
        proxy.list_identities()


def test_close_closes_session(proxy, session):
    proxy.close()
    assert session.closed
