"""Stripe service — webhook verification and checkout session inspection.

Responsible for:
- Verifying the Stripe-Signature header against the raw request body
- Resolving the customer email from a checkout session
- Checking a session's line items against the price allow-list
"""

import logging

import stripe

logger = logging.getLogger(__name__)

HANDLED_EVENT_TYPE = "checkout.session.completed"

# Stripe returns at most this many line items per page. We don't paginate.
LINE_ITEM_LIMIT = 10


def verify_webhook_signature(payload, sig_header, webhook_secret):
    """Verify Stripe webhook signature and construct the event.

    payload must be the raw, unparsed request body.

    Returns the verified Stripe event object.
    Raises stripe.SignatureVerificationError on invalid signature,
    ValueError on a malformed payload.
    """
    return stripe.Webhook.construct_event(payload, sig_header, webhook_secret)


def resolve_customer_email(session):
    """Pick the customer email from a checkout session.

    Checks, in order: customer_details.email, customer_email,
    metadata.email. Returns None when none of them is set.
    """
    customer_details = session.get("customer_details") or {}
    metadata = session.get("metadata") or {}
    return (
        customer_details.get("email")
        or session.get("customer_email")
        or metadata.get("email")
        or None
    )


def session_has_allowed_price(session_id, allowed_price_ids, api_key):
    """True if any of the session's first LINE_ITEM_LIMIT line items
    carries an allow-listed price id.

    Raises stripe.StripeError on API failures.
    """
    line_items = stripe.checkout.Session.list_line_items(
        session_id, limit=LINE_ITEM_LIMIT, api_key=api_key
    )

    if line_items.get("has_more"):
        logger.warning(
            f"Session {session_id} has more than {LINE_ITEM_LIMIT} line items; "
            f"only the first {LINE_ITEM_LIMIT} were checked"
        )

    allowed = set(allowed_price_ids)
    for item in line_items.get("data") or []:
        price = item.get("price") or {}
        if price.get("id") and price["id"] in allowed:
            return True
    return False
