"""Local development entry point.

Usage:
    python run.py

Stripe CLI can forward events here:
    stripe listen --forward-to localhost:5001/stripe/webhooks
"""

import os

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from provisioner import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=int(os.environ.get("PORT", 5001)))
