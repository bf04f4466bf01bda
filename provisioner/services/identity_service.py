"""Identity service — Netlify Identity admin API calls.

Responsible for:
- Looking up a user by email (GET /admin/users?email=...)
- Inviting a new user with role metadata (POST /admin/users)
- Replacing a user's roles (PUT /admin/users/<id>)

Every call is authenticated with the admin bearer token. No retries;
each call uses the configured timeout.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)


class IdentityServiceError(Exception):
    """The identity service could not be reached or answered unusably."""

    def __init__(self, message, status_code=0):
        super().__init__(message)
        self.status_code = status_code


class IdentityLookupError(IdentityServiceError):
    """User lookup failed. Not the same as "no such user"."""


@dataclass
class IdentityResponse:
    """Status and decoded JSON body of an invite/update call."""

    status_code: int
    body: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def _decode_json(resp):
    """Return the JSON body, or None when the body is empty or not JSON."""
    try:
        return resp.json()
    except ValueError:
        logger.warning(
            f"Identity API returned non-JSON body (status {resp.status_code})"
        )
        return None


class IdentityClient:
    """Thin client over the identity admin REST API.

    Args:
        base_url: e.g. https://example.com/.netlify/identity
        admin_token: Identity admin API bearer token
        session: optional requests.Session (injected in tests)
        timeout: seconds per request
    """

    def __init__(self, base_url, admin_token, session=None, timeout=10):
        self.base_url = (base_url or "").rstrip("/")
        self.admin_token = admin_token
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings, session=None):
        return cls(
            base_url=settings.identity_base_url,
            admin_token=settings.identity_admin_token,
            session=session,
            timeout=settings.identity_timeout,
        )

    def _headers(self, json_body=False):
        headers = {"Authorization": f"Bearer {self.admin_token}"}
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def find_user_by_email(self, email) -> Optional[dict]:
        """Return the first user matching email, or None if there is none.

        Raises IdentityLookupError on a non-2xx answer or transport error,
        so a failed lookup is never mistaken for a missing user.
        """
        url = f"{self.base_url}/admin/users"
        try:
            resp = self.session.get(
                url,
                params={"email": email},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise IdentityLookupError(f"User lookup failed: {e}") from e

        if not resp.ok:
            raise IdentityLookupError(
                f"User lookup returned {resp.status_code}",
                status_code=resp.status_code,
            )

        users = _decode_json(resp)
        # GoTrue answers either a bare list or {"users": [...]}
        if isinstance(users, dict):
            users = users.get("users")
        if isinstance(users, list) and users:
            return users[0]
        return None

    def invite_user(self, email, roles) -> IdentityResponse:
        """Create the user via invite, with exactly the given roles."""
        payload = {
            "email": email,
            "invite": True,
            "app_metadata": {"roles": list(roles)},
        }
        try:
            resp = self.session.post(
                f"{self.base_url}/admin/users",
                json=payload,
                headers=self._headers(json_body=True),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise IdentityServiceError(f"Invite request failed: {e}") from e

        return IdentityResponse(resp.status_code, _decode_json(resp))

    def update_user_roles(self, user_id, roles) -> IdentityResponse:
        """Replace the user's app_metadata.roles with roles."""
        try:
            resp = self.session.put(
                f"{self.base_url}/admin/users/{user_id}",
                json={"app_metadata": {"roles": list(roles)}},
                headers=self._headers(json_body=True),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise IdentityServiceError(f"Update request failed: {e}") from e

        return IdentityResponse(resp.status_code, _decode_json(resp))
