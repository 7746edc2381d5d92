from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from salescrm.auth.deps import enforce_workspace
from salescrm.auth.models import User
from salescrm.tenants.directory import TenantRecord
from salescrm.tenants.resolver import TenantResolution


class _FakeDB:
    def __init__(self, tenants):
        self.tenants = {t.id: t for t in tenants}

    def get(self, _model, key):
        return self.tenants.get(key)


USER = User(id="u1", tenant_id="c_acme", email="rep@acme.com", password_hash="x", role="bde")
DB = _FakeDB([SimpleNamespace(id="c_acme", slug="acme"), SimpleNamespace(id="c_globex", slug="globex")])


def _request(resolution):
    return SimpleNamespace(state=SimpleNamespace(tenant_resolution=resolution), headers={})


def _resolved(tenant_id, slug):
    return TenantResolution(
        host=f"{slug}.fastestcrm.com",
        host_class="subdomain",
        status="resolved",
        subdomain=slug,
        tenant=TenantRecord(id=tenant_id, name=slug, slug=slug, is_active=True),
        tenant_id=tenant_id,
    )


def test_member_on_own_workspace_passes():
    enforce_workspace(_request(_resolved("c_acme", "acme")), USER, DB)


def test_member_on_main_domain_passes():
    main = TenantResolution(host="fastestcrm.com", host_class="main_domain", status="no_tenant")

    enforce_workspace(_request(main), USER, DB)


def test_member_on_other_workspace_is_redirected_home():
    with pytest.raises(HTTPException) as exc_info:
        enforce_workspace(_request(_resolved("c_globex", "globex")), USER, DB)

    assert exc_info.value.status_code == 403
    assert exc_info.value.detail["code"] == "cross_tenant"
    assert exc_info.value.detail["redirect_to"] == "https://acme.fastestcrm.com"


def test_no_redirect_back_to_the_host_being_rejected():
    # acme.fastestcrm.com still maps to another tenant, e.g. right after a slug change
    stale = TenantResolution(
        host="acme.fastestcrm.com",
        host_class="subdomain",
        status="resolved",
        subdomain="acme",
        tenant=TenantRecord(id="c_globex", name="globex", slug="acme", is_active=True),
        tenant_id="c_globex",
    )

    with pytest.raises(HTTPException) as exc_info:
        enforce_workspace(_request(stale), USER, DB)

    assert exc_info.value.status_code == 403
    assert exc_info.value.detail["redirect_to"] is None
