from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import httpx
import jwt
import pytest

from loanspur import create_app
from tests.fake_supabase import FakeSupabase

JWT_SECRET = "test-jwt-secret"

TENANT = {
    "id": "tenant-1",
    "name": "Umoja Magharibi",
    "slug": "umoja-magharibi",
    "subdomain": "umoja",
    "domain": None,
    "status": "active",
    "currency_code": "KES",
    "currency_decimal_places": 2,
}

PROFILES = [
    {"id": "profile-admin", "user_id": "user-admin", "tenant_id": "tenant-1", "role": "tenant_admin",
     "email": "admin@umoja.test", "is_active": True},
    {"id": "profile-officer", "user_id": "user-officer", "tenant_id": "tenant-1", "role": "loan_officer",
     "email": "officer@umoja.test", "is_active": True},
    {"id": "profile-inactive", "user_id": "user-inactive", "tenant_id": "tenant-1", "role": "loan_officer",
     "email": "gone@umoja.test", "is_active": False},
]


@pytest.fixture
def fake_db():
    return FakeSupabase({
        "tenants": [dict(TENANT), {**TENANT, "id": "tenant-2", "name": "Dormant", "subdomain": "dormant",
                                   "status": "suspended"}],
        "profiles": [dict(p) for p in PROFILES],
    })


@pytest.fixture
def app(fake_db):
    app = create_app({
        "TESTING": True,
        "SUPABASE_JWT_SECRET": JWT_SECRET,
        "RESEND_API_KEY": "re_test_key",
        "RESEND_EMAIL_FROM": "noreply@loanspurcbs.com",
        "ENABLE_SAVINGS": True,
        "ENABLE_GROUPS": True,
        "ENABLE_ADVANCED_REPORTING": True,
        "ENABLE_MIFOS_INTEGRATION": False,
        "ENABLE_DEBUG_LOGGING": False,
        "ENABLE_PERFORMANCE_MONITORING": False,
    }, supabase_client=fake_db)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def make_token(user_id, expires_in=3600, secret=JWT_SECRET):
    claims = {
        "sub": user_id,
        "aud": "authenticated",
        "role": "authenticated",
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token('user-admin')}"}


@pytest.fixture
def officer_headers():
    return {"Authorization": f"Bearer {make_token('user-officer')}"}


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outbound Resend calls instead of sending them."""
    sent = []

    def fake_post(url, json=None, headers=None, timeout=None, **kwargs):
        sent.append(SimpleNamespace(url=url, json=json, headers=headers))
        return httpx.Response(200, json={"id": f"email-{len(sent)}"}, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx, "post", fake_post)
    return sent
