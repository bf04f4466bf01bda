"""Shared test fixtures for the provisioner test suite.

Provides:
- identity: in-memory stand-in for the identity admin API
- app: Flask app configured for testing, wired to the fake identity client
- client: Flask test client
- gated: turns on price allow-list gating for the current app
- make_event: builds checkout.session.completed event dicts
"""

import dataclasses

import pytest

from provisioner import create_app
from provisioner.services.identity_service import (
    IdentityLookupError,
    IdentityResponse,
)


class FakeIdentityClient:
    """Records every call and keeps users in a dict keyed by email.

    Set invite_status / update_status to a non-2xx code to simulate an
    upstream rejection, or lookup_error to make the lookup raise.
    """

    def __init__(self):
        self.users = {}
        self.calls = []
        self.invite_status = 200
        self.update_status = 200
        self.lookup_error = None
        self._next_id = 1

    def add_user(self, email, roles=None, **extra):
        user = {"id": f"user-{self._next_id}", "email": email, **extra}
        if roles is not None:
            user["app_metadata"] = {"roles": list(roles)}
        self._next_id += 1
        self.users[email] = user
        return user

    def find_user_by_email(self, email):
        self.calls.append(("find", email))
        if self.lookup_error is not None:
            raise self.lookup_error
        user = self.users.get(email)
        return dict(user) if user else None

    def invite_user(self, email, roles):
        self.calls.append(("invite", email, list(roles)))
        if self.invite_status >= 300:
            return IdentityResponse(self.invite_status, {"code": self.invite_status, "msg": "rejected"})
        user = self.add_user(email, roles=roles)
        return IdentityResponse(self.invite_status, dict(user))

    def update_user_roles(self, user_id, roles):
        self.calls.append(("update", user_id, list(roles)))
        if self.update_status >= 300:
            return IdentityResponse(self.update_status, {"code": self.update_status, "msg": "rejected"})
        for user in self.users.values():
            if user["id"] == user_id:
                user["app_metadata"] = {"roles": list(roles)}
                return IdentityResponse(self.update_status, dict(user))
        return IdentityResponse(404, {"code": 404, "msg": "User not found"})

    @property
    def write_calls(self):
        return [c for c in self.calls if c[0] in ("invite", "update")]


@pytest.fixture
def identity():
    return FakeIdentityClient()


@pytest.fixture
def app(identity):
    """Create the Flask application configured for testing."""
    app = create_app("testing", identity_client=identity)
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def gated(app):
    """Enable allow-list gating with a single allowed price."""
    settings = app.extensions["provisioning_settings"]
    app.extensions["provisioning_settings"] = dataclasses.replace(
        settings,
        allowed_price_ids=("price_member_monthly",),
        stripe_secret_key="sk_test_fake",
    )
    return app.extensions["provisioning_settings"]


@pytest.fixture
def make_event():
    """Build a verified-event dict as stripe.Webhook.construct_event returns it."""

    def _make(session=None, event_type="checkout.session.completed", event_id="evt_test_001"):
        obj = {"id": "cs_test_123", "object": "checkout.session"}
        obj.update(session or {})
        return {"id": event_id, "type": event_type, "data": {"object": obj}}

    return _make


@pytest.fixture
def lookup_failure():
    return IdentityLookupError("User lookup returned 503", status_code=503)
