import operator
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from salescrm.auth.models import RefreshToken, User
from salescrm.auth.router import login, refresh
from salescrm.auth.schemas import LoginRequest, RefreshRequest
from salescrm.auth.security import decode_token
from salescrm.tenants.directory import TenantRecord
from salescrm.tenants.models import Tenant
from salescrm.tenants.resolver import TenantResolution


class _Query:
    """Applies the ``column == value`` clauses of a filter; other clauses are ignored."""

    def __init__(self, rows):
        self.rows = list(rows)

    def filter(self, *clauses):
        rows = self.rows
        for clause in clauses:
            if getattr(clause, "operator", None) is operator.eq and hasattr(clause.right, "value"):
                key, value = clause.left.key, clause.right.value
                rows = [r for r in rows if getattr(r, key) == value]
        return _Query(rows)

    def order_by(self, *_args):
        return self

    def first(self):
        return self.rows[0] if self.rows else None

    def all(self):
        return list(self.rows)


class _FakeDB:
    def __init__(self, tenants, users):
        self.tenants = {t.id: t for t in tenants}
        self.users = {u.id: u for u in users}
        self.tokens = []
        self.commits = 0

    def get(self, model, key):
        if model is Tenant:
            return self.tenants.get(key)
        if model is User:
            return self.users.get(key)
        return None

    def query(self, model):
        if model is User:
            return _Query(self.users.values())
        if model is RefreshToken:
            return _Query(self.tokens)
        return _Query([])

    def add(self, obj):
        if isinstance(obj, RefreshToken) and obj not in self.tokens:
            self.tokens.append(obj)

    def commit(self):
        self.commits += 1


ACME = SimpleNamespace(id="c_acme", slug="acme", is_active=True)
GLOBEX = SimpleNamespace(id="c_globex", slug="globex", is_active=True)
ACME_REP = User(id="u_acme", tenant_id="c_acme", email="rep@shared.io", password_hash="acme-pw", role="bde")
GLOBEX_REP = User(id="u_globex", tenant_id="c_globex", email="rep@shared.io", password_hash="globex-pw", role="bde")


@pytest.fixture(autouse=True)
def _plain_passwords(monkeypatch):
    monkeypatch.setattr("salescrm.auth.router.verify_password", lambda pw, pw_hash: pw_hash == f"{pw}-pw")


def _db(*tenants):
    return _FakeDB(tenants or (ACME, GLOBEX), [ACME_REP, GLOBEX_REP])


def _request(resolution):
    return SimpleNamespace(state=SimpleNamespace(tenant_resolution=resolution), headers={})


def _on_workspace(tenant_id, slug):
    return _request(
        TenantResolution(
            host=f"{slug}.fastestcrm.com",
            host_class="subdomain",
            status="resolved",
            subdomain=slug,
            tenant=TenantRecord(id=tenant_id, name=slug, slug=slug, is_active=True),
            tenant_id=tenant_id,
        )
    )


def _on_main_domain():
    return _request(TenantResolution(host="fastestcrm.com", host_class="main_domain", status="no_tenant"))


def test_workspace_host_wins_over_tenant_id_in_body():
    db = _db()

    out = login(
        LoginRequest(tenant_id="c_globex", email="rep@shared.io", password="acme"),
        _on_workspace("c_acme", "acme"),
        db=db,
    )

    claims = decode_token(out.access_token)
    assert claims["tenant_id"] == "c_acme"
    assert claims["sub"] == "u_acme"
    assert [t.tenant_id for t in db.tokens] == ["c_acme"]


def test_other_tenants_password_does_not_work_on_workspace_host():
    with pytest.raises(HTTPException) as exc_info:
        login(
            LoginRequest(tenant_id="c_globex", email="rep@shared.io", password="globex"),
            _on_workspace("c_acme", "acme"),
            db=_db(),
        )

    assert exc_info.value.status_code == 401


def test_main_domain_login_uses_body_tenant_and_requires_it():
    out = login(LoginRequest(tenant_id="c_globex", email="rep@shared.io", password="globex"), _on_main_domain(), db=_db())
    assert decode_token(out.access_token)["tenant_id"] == "c_globex"

    with pytest.raises(HTTPException) as exc_info:
        login(LoginRequest(email="rep@shared.io", password="globex"), _on_main_domain(), db=_db())
    assert exc_info.value.status_code == 422


def test_inactive_tenant_cannot_log_in():
    db = _db(SimpleNamespace(id="c_acme", slug="acme", is_active=False), GLOBEX)

    with pytest.raises(HTTPException) as exc_info:
        login(LoginRequest(tenant_id="c_acme", email="rep@shared.io", password="acme"), _on_main_domain(), db=db)

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Invalid credentials"
    assert db.tokens == []


def test_refresh_rotates_and_revokes_the_old_token():
    db = _db()
    first = login(LoginRequest(email="rep@shared.io", password="acme"), _on_workspace("c_acme", "acme"), db=db)

    second = refresh(RefreshRequest(refresh_token=first.refresh_token), db=db)

    assert second.refresh_token != first.refresh_token
    assert decode_token(second.refresh_token)["typ"] == "refresh"
    old_row, new_row = db.tokens
    assert old_row.revoked_at is not None
    assert new_row.revoked_at is None

    with pytest.raises(HTTPException) as exc_info:
        refresh(RefreshRequest(refresh_token=first.refresh_token), db=db)
    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Refresh token revoked"


def test_refresh_fails_once_the_member_is_removed():
    db = _db()
    tokens = login(LoginRequest(email="rep@shared.io", password="acme"), _on_workspace("c_acme", "acme"), db=db)
    del db.users["u_acme"]

    with pytest.raises(HTTPException) as exc_info:
        refresh(RefreshRequest(refresh_token=tokens.refresh_token), db=db)

    assert exc_info.value.status_code == 401


def test_access_token_is_not_accepted_as_refresh_token():
    db = _db()
    tokens = login(LoginRequest(email="rep@shared.io", password="acme"), _on_workspace("c_acme", "acme"), db=db)

    with pytest.raises(HTTPException) as exc_info:
        refresh(RefreshRequest(refresh_token=tokens.access_token), db=db)

    assert exc_info.value.detail == "Invalid token type"
