"""Webhooks blueprint — /stripe/webhooks

Receives Stripe checkout events and provisions identity roles. CSRF-free,
plain-text responses. Raw body is required for signature verification.
"""

import logging

import stripe
from flask import Blueprint, Response, current_app, request

from provisioner.services.identity_service import (
    IdentityLookupError,
    IdentityServiceError,
)
from provisioner.services.provisioning_service import provision_member
from provisioner.services.stripe_service import (
    HANDLED_EVENT_TYPE,
    resolve_customer_email,
    session_has_allowed_price,
    verify_webhook_signature,
)

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__)


def _text(body, status=200):
    return Response(body, status=status, mimetype="text/plain")


@webhooks_bp.route("/stripe/webhooks", methods=["POST"])
@webhooks_bp.route("/.netlify/functions/stripe-webhook", methods=["POST"])
def stripe_webhook():
    """Receive a Stripe event and provision the customer's roles.

    1. Verify signature against the raw body
    2. Ignore everything but checkout.session.completed
    3. Resolve the customer email (skip if none)
    4. Optional: require an allow-listed price among the line items
    5. Invite or update the identity user

    Provisioning outcomes, good or bad, answer 200 so Stripe stops
    redelivering. Only failures before any provisioning call answer
    non-2xx.
    """
    settings = current_app.extensions["provisioning_settings"]
    identity = current_app.extensions["identity_client"]

    payload = request.get_data(as_text=True)
    sig_header = request.headers.get("Stripe-Signature")

    if not settings.webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured; rejecting webhook")
        return _text("Webhook error: STRIPE_WEBHOOK_SECRET is not configured", 500)

    if not sig_header:
        logger.warning("Webhook received without Stripe-Signature header")
        return _text("Webhook error: Missing Stripe-Signature header", 400)

    # --- Verify signature ---
    try:
        event = verify_webhook_signature(payload, sig_header, settings.webhook_secret)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        return _text(f"Webhook error: {e}", 400)

    if event["type"] != HANDLED_EVENT_TYPE:
        logger.info(f"Ignoring {event['type']} event {event.get('id')}")
        return _text("ignored")

    session = event["data"]["object"]

    # --- Email ---
    email = resolve_customer_email(session)
    if not email:
        logger.info(f"Checkout session {session.get('id')} has no email; skipping")
        return _text("No email on session; skipping")

    # --- Product gate ---
    if settings.product_gate_enabled:
        try:
            allowed = session_has_allowed_price(
                session["id"],
                settings.allowed_price_ids,
                settings.stripe_secret_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Could not list line items for {session['id']}: {e}")
            return _text(f"Webhook error: could not list line items: {e}", 502)
        if not allowed:
            logger.info(f"Session {session['id']} ({email}) has no allowed price; ignoring")
            return _text("Not a subscriber product; ignoring")

    # --- Provision ---
    try:
        result = provision_member(email, identity)
    except IdentityLookupError as e:
        # Nothing written yet; a 502 makes Stripe redeliver
        logger.error(f"Identity lookup failed for {email}: {e}")
        return _text(f"lookup_error:{e.status_code}:{email} {e}", 502)
    except IdentityServiceError as e:
        logger.error(f"Identity service unreachable while provisioning {email}: {e}")
        return _text(f"identity_error:{email} {e}", 502)

    return _text(result.body)
