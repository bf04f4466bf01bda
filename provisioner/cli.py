"""Operator CLI commands (flask <command>)."""

import click
import stripe
from flask import current_app

from provisioner.config import config_by_name
from provisioner.services.identity_service import IdentityServiceError
from provisioner.services.provisioning_service import (
    plan_provisioning,
    provision_member,
)


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("check-config")
    def check_config():
        """Validate required env vars and print the derived settings.

        Secrets are masked to their first few characters.
        """
        import os

        config_name = os.environ.get("FLASK_ENV", "development")
        try:
            config_by_name[config_name].validate()
            click.echo("Required environment variables: OK")
        except RuntimeError as e:
            click.echo(f"ERROR: {e}")

        settings = current_app.extensions["provisioning_settings"]
        click.echo("")
        for key, value in settings.masked().items():
            click.echo(f"  {key:<22} {value}")

    @app.cli.command("verify-allowed-prices")
    def verify_allowed_prices():
        """Verify every ALLOWED_PRICE_IDS entry exists in the key's mode.

        Run with prod env vars to confirm Live prices; run with test vars
        for Test mode.
        """
        settings = current_app.extensions["provisioning_settings"]
        api_key = settings.stripe_secret_key

        if not api_key:
            click.echo("ERROR: STRIPE_SECRET_KEY is not set.")
            return
        if not settings.allowed_price_ids:
            click.echo("ALLOWED_PRICE_IDS is empty; every checkout is provisioned.")
            return

        key_mode = "Live" if api_key.startswith(("sk_live_", "rk_live_")) else "Test"
        click.echo(f"Stripe key mode: {key_mode}")
        click.echo("")

        for price_id in settings.allowed_price_ids:
            try:
                price = stripe.Price.retrieve(
                    price_id, expand=["product"], api_key=api_key
                )
            except stripe.InvalidRequestError as e:
                click.echo(f"  {price_id}")
                click.echo(f"    ERROR: {e}")
                continue

            product = price.get("product")
            product_active = product.get("active", "?") if hasattr(product, "get") else "?"
            livemode = price.get("livemode", "?")
            click.echo(f"  {price_id}")
            click.echo(f"    exists=True, livemode={livemode}, product_active={product_active}")
            if livemode is True and key_mode != "Live":
                click.echo("    WARNING: This price is Live but your key is Test.")
            elif livemode is False and key_mode == "Live":
                click.echo("    WARNING: This price is Test but your key is Live.")

    @app.cli.command("provision-member")
    @click.option("--email", required=True, help="Customer email to provision")
    @click.option("--dry-run", is_flag=True, help="Show what would happen without writing.")
    def provision_member_command(email, dry_run):
        """Invite or update one email without a Stripe event.

        Use this to re-drive a provisioning failure the webhook already
        acknowledged to Stripe.

        Usage:
            flask provision-member --email a@example.com
            flask provision-member --email a@example.com --dry-run
        """
        identity = current_app.extensions["identity_client"]
        email = email.strip()

        try:
            if dry_run:
                user = identity.find_user_by_email(email)
                action, roles = plan_provisioning(user)
                if action == "invite":
                    click.echo(f"Would invite {email} with roles {roles}")
                elif action == "update":
                    click.echo(f"Would update {email} (user {user['id']}) to roles {roles}")
                else:
                    click.echo(f"{email} already has roles {roles}; nothing to do")
                return

            result = provision_member(email, identity)
        except IdentityServiceError as e:
            raise click.ClickException(str(e))

        click.echo(result.body)
        if not result.ok:
            raise click.ClickException(f"Provisioning failed: {result.outcome}")
