import os
from dataclasses import dataclass


def parse_price_ids(raw):
    """Split a comma-separated allow-list, trimming entries and dropping blanks."""
    return tuple(p.strip() for p in (raw or "").split(",") if p.strip())


def _identity_url_from_env():
    # Explicit URL wins; otherwise derive from the site URL Netlify exposes.
    explicit = os.environ.get("NETLIFY_IDENTITY_URL")
    if explicit:
        return explicit
    site_url = os.environ.get("URL")
    if site_url:
        return f"{site_url.rstrip('/')}/.netlify/identity"
    return ""


class Config:
    """Base configuration. Shared across all environments."""

    # --- Stripe ---
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    # Optional: only needed when filtering purchases by price id
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    ALLOWED_PRICE_IDS = parse_price_ids(os.environ.get("ALLOWED_PRICE_IDS"))

    # --- Identity admin API ---
    NETLIFY_IDENTITY_URL = _identity_url_from_env()  # e.g. https://example.com/.netlify/identity
    NETLIFY_IDENTITY_ADMIN_TOKEN = os.environ.get("NETLIFY_IDENTITY_ADMIN_TOKEN")
    IDENTITY_TIMEOUT = float(os.environ.get("IDENTITY_TIMEOUT", 10))

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "STRIPE_WEBHOOK_SECRET",
            "NETLIFY_IDENTITY_ADMIN_TOKEN",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if not os.environ.get("NETLIFY_IDENTITY_URL") and not os.environ.get("URL"):
            missing.append("NETLIFY_IDENTITY_URL (or URL)")
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True


class TestConfig(Config):
    """Testing — fixed fake credentials, no product gating by default."""

    TESTING = True
    DEBUG = True
    STRIPE_WEBHOOK_SECRET = "whsec_test_fake"
    STRIPE_SECRET_KEY = ""
    ALLOWED_PRICE_IDS = ()
    NETLIFY_IDENTITY_URL = "https://identity.test/.netlify/identity"
    NETLIFY_IDENTITY_ADMIN_TOKEN = "identity_admin_test_token"
    IDENTITY_TIMEOUT = 5.0
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}


@dataclass(frozen=True)
class ProvisioningSettings:
    """Immutable settings handed to the webhook handler.

    Built once from the Flask config in create_app() so the handler never
    reads the environment itself.
    """

    webhook_secret: str
    stripe_secret_key: str
    allowed_price_ids: tuple
    identity_base_url: str
    identity_admin_token: str
    identity_timeout: float = 10.0

    @classmethod
    def from_mapping(cls, config):
        allowed = config.get("ALLOWED_PRICE_IDS") or ()
        if isinstance(allowed, str):
            allowed = parse_price_ids(allowed)
        return cls(
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET") or "",
            stripe_secret_key=config.get("STRIPE_SECRET_KEY") or "",
            allowed_price_ids=tuple(allowed),
            identity_base_url=(config.get("NETLIFY_IDENTITY_URL") or "").rstrip("/"),
            identity_admin_token=config.get("NETLIFY_IDENTITY_ADMIN_TOKEN") or "",
            identity_timeout=float(config.get("IDENTITY_TIMEOUT") or 10),
        )

    @property
    def product_gate_enabled(self) -> bool:
        """Gating needs both an allow-list and a key to list line items with."""
        return bool(self.allowed_price_ids and self.stripe_secret_key)

    def masked(self) -> dict:
        """Settings as a dict with secrets reduced to a short prefix."""

        def _mask(value):
            if not value:
                return "(not set)"
            return f"{value[:6]}…"

        return {
            "webhook_secret": _mask(self.webhook_secret),
            "stripe_secret_key": _mask(self.stripe_secret_key),
            "allowed_price_ids": ", ".join(self.allowed_price_ids) or "(none)",
            "identity_base_url": self.identity_base_url or "(not set)",
            "identity_admin_token": _mask(self.identity_admin_token),
            "identity_timeout": self.identity_timeout,
            "product_gate_enabled": self.product_gate_enabled,
        }
