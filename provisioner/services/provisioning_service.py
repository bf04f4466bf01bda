"""Provisioning service — make sure a paying customer has member roles.

Two paths, chosen by whether the identity service already knows the email:
- no account: invite it with exactly MEMBER_ROLES
- account exists: union its roles with MEMBER_ROLES and save them

Upstream failures on either path are reported in the result body, not
raised.

Known race: two deliveries for the same email arriving together can both
see "no account" and both invite, or both read stale roles and overwrite
each other's update. Nothing here serialises per email.
"""

import json
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

MEMBER_ROLES = ("member", "subscriber")


@dataclass
class ProvisionResult:
    outcome: str  # invited | invite_error | updated | update_error
    body: str

    @property
    def ok(self) -> bool:
        return not self.outcome.endswith("_error")


def _compact(value):
    # No spaces after separators
    return json.dumps(value, separators=(",", ":"))


def merge_roles(existing):
    """Union existing roles with MEMBER_ROLES, keeping first-seen order.

    Anything that isn't a list is treated as no roles.
    """
    roles = list(existing) if isinstance(existing, list) else []
    merged = []
    for role in roles + list(MEMBER_ROLES):
        if role not in merged:
            merged.append(role)
    return merged


def current_roles(user):
    """Roles stored on an identity user record (may be missing)."""
    app_metadata = user.get("app_metadata") or {}
    roles = app_metadata.get("roles")
    return roles if isinstance(roles, list) else []


def plan_provisioning(user):
    """Describe what provision_member would do for a looked-up user.

    Returns (action, roles) where action is "invite", "update" or "none".
    """
    if user is None:
        return "invite", list(MEMBER_ROLES)
    roles = merge_roles(current_roles(user))
    if roles == current_roles(user):
        return "none", roles
    return "update", roles


def invite_member(email, client):
    """NO_ACCOUNT path: invite with exactly MEMBER_ROLES (nothing to merge)."""
    resp = client.invite_user(email, MEMBER_ROLES)
    outcome = "invited" if resp.ok else "invite_error"
    label = outcome if resp.ok else f"{outcome}:{resp.status_code}"

    if resp.ok:
        logger.info(f"Invited {email} with roles {list(MEMBER_ROLES)}")
    else:
        logger.error(f"Invite for {email} failed with status {resp.status_code}")

    return ProvisionResult(outcome, f"{label}:{email} {_compact(resp.body)}")


def update_member(email, user, client):
    """ACCOUNT_EXISTS path: save the union of current and member roles."""
    roles = merge_roles(current_roles(user))
    resp = client.update_user_roles(user["id"], roles)
    outcome = "updated" if resp.ok else "update_error"
    label = outcome if resp.ok else f"{outcome}:{resp.status_code}"

    if resp.ok:
        logger.info(f"Updated roles for {email} (user {user['id']}): {roles}")
    else:
        logger.error(
            f"Role update for {email} (user {user['id']}) failed "
            f"with status {resp.status_code}"
        )

    # Echo only the roles the identity service reports back
    echoed = {}
    body = resp.body if isinstance(resp.body, dict) else {}
    saved_roles = (body.get("app_metadata") or {}).get("roles")
    if saved_roles is not None:
        echoed["roles"] = saved_roles

    return ProvisionResult(outcome, f"{label}:{email} {_compact(echoed)}")


def provision_member(email, client):
    """Look up email and invite or update it.

    Raises IdentityLookupError if the lookup fails, IdentityServiceError
    if the invite/update request can't be sent at all.
    """
    user = client.find_user_by_email(email)
    if user is None:
        return invite_member(email, client)
    return update_member(email, user, client)
