"""Tests for the identity admin API client.

The requests session is a MagicMock, so these check the exact requests
sent and how responses map to results.
"""

from unittest.mock import MagicMock

import pytest
import requests

from provisioner.config import ProvisioningSettings
from provisioner.services.identity_service import (
    IdentityClient,
    IdentityLookupError,
    IdentityServiceError,
)

BASE = "https://example.com/.netlify/identity"


def _response(status_code=200, json_body=None, json_error=False):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 400
    if json_error:
        resp.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        resp.json.return_value = json_body
    return resp


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(session):
    return IdentityClient(BASE + "/", "admin-token", session=session, timeout=7)


class TestFindUser:

    def test_sends_authenticated_email_query(self, client, session):
        session.get.return_value = _response(200, [])

        client.find_user_by_email("a+b@example.com")

        session.get.assert_called_once_with(
            f"{BASE}/admin/users",
            params={"email": "a+b@example.com"},
            headers={"Authorization": "Bearer admin-token"},
            timeout=7,
        )

    def test_returns_first_match(self, client, session):
        session.get.return_value = _response(200, [
            {"id": "u1", "email": "a@example.com"},
            {"id": "u2", "email": "a@example.com"},
        ])
        assert client.find_user_by_email("a@example.com")["id"] == "u1"

    def test_users_envelope(self, client, session):
        session.get.return_value = _response(200, {"users": [{"id": "u1"}]})
        assert client.find_user_by_email("a@example.com") == {"id": "u1"}

    def test_empty_list_is_not_found(self, client, session):
        session.get.return_value = _response(200, [])
        assert client.find_user_by_email("a@example.com") is None

    def test_non_json_is_not_found(self, client, session):
        session.get.return_value = _response(200, json_error=True)
        assert client.find_user_by_email("a@example.com") is None

    def test_error_status_raises(self, client, session):
        session.get.return_value = _response(401, {"msg": "unauthorized"})

        with pytest.raises(IdentityLookupError) as exc:
            client.find_user_by_email("a@example.com")
        assert exc.value.status_code == 401

    def test_transport_error_raises(self, client, session):
        session.get.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(IdentityLookupError) as exc:
            client.find_user_by_email("a@example.com")
        assert exc.value.status_code == 0


class TestInviteUser:

    def test_posts_invite_payload(self, client, session):
        session.post.return_value = _response(200, {"id": "u1"})

        result = client.invite_user("a@example.com", ("member", "subscriber"))

        session.post.assert_called_once_with(
            f"{BASE}/admin/users",
            json={
                "email": "a@example.com",
                "invite": True,
                "app_metadata": {"roles": ["member", "subscriber"]},
            },
            headers={
                "Authorization": "Bearer admin-token",
                "Content-Type": "application/json",
            },
            timeout=7,
        )
        assert result.ok
        assert result.body == {"id": "u1"}

    def test_error_status_returned_not_raised(self, client, session):
        session.post.return_value = _response(422, {"msg": "Email already registered"})

        result = client.invite_user("a@example.com", ["member"])
        assert not result.ok
        assert result.status_code == 422
        assert result.body == {"msg": "Email already registered"}

    def test_transport_error_raises(self, client, session):
        session.post.side_effect = requests.Timeout("read timed out")

        with pytest.raises(IdentityServiceError):
            client.invite_user("a@example.com", ["member"])


class TestUpdateUserRoles:

    def test_puts_roles_by_user_id(self, client, session):
        session.put.return_value = _response(200, {"app_metadata": {"roles": ["member"]}})

        result = client.update_user_roles("u1", ["member"])

        session.put.assert_called_once_with(
            f"{BASE}/admin/users/u1",
            json={"app_metadata": {"roles": ["member"]}},
            headers={
                "Authorization": "Bearer admin-token",
                "Content-Type": "application/json",
            },
            timeout=7,
        )
        assert result.ok

    def test_non_json_body_is_none(self, client, session):
        session.put.return_value = _response(502, json_error=True)

        result = client.update_user_roles("u1", ["member"])
        assert result.status_code == 502
        assert result.body is None


def test_from_settings():
    settings = ProvisioningSettings(
        webhook_secret="whsec",
        stripe_secret_key="",
        allowed_price_ids=(),
        identity_base_url=BASE,
        identity_admin_token="tok",
        identity_timeout=3.0,
    )
    client = IdentityClient.from_settings(settings)
    assert client.base_url == BASE
    assert client.admin_token == "tok"
    assert client.timeout == 3.0
    assert isinstance(client.session, requests.Session)
