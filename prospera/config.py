"""
Runtime configuration for the Prospera backend.

Settings are read once from the process environment (optionally seeded from a
`.env` file) and handed explicitly to the services that need them.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Default Stripe price that maps a subscription onto the family plan
DEFAULT_FAMILY_PRICE_ID = "price_1Ri18dGlaiiCwjLcoXmjeH1N"


@dataclass(frozen=True)
class Settings:
    """
    Immutable configuration snapshot.

    Attributes
    ----------
    aurora_cluster_arn, aurora_secret_arn : str
        Location of the record store and the credential used to reach it.
    stripe_secret_key, stripe_webhook_secret : str
        Payment processor API key and webhook signing secret.
    clerk_jwks_url : str
        JWKS endpoint used to validate bearer tokens.
    cron_job_key : str
        Shared secret expected in ``x-admin-key`` by the email queue endpoint.
    """

    aurora_cluster_arn: str = ""
    aurora_secret_arn: str = ""
    aurora_database: str = "prospera"
    aws_region: str = "us-east-1"
    clerk_jwks_url: str = ""
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_family_price_id: str = DEFAULT_FAMILY_PRICE_ID
    email_sender: str = "alertas@prospera.ai"
    cron_job_key: str = ""
    app_base_url: str = "https://prospera.ai"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        # Load environment variables from .env, overriding existing values when present
        load_dotenv(override=True)

        return cls(
            aurora_cluster_arn=os.getenv("AURORA_CLUSTER_ARN", ""),
            aurora_secret_arn=os.getenv("AURORA_SECRET_ARN", ""),
            aurora_database=os.getenv("AURORA_DATABASE", "prospera"),
            aws_region=os.getenv("DEFAULT_AWS_REGION", "us-east-1"),
            clerk_jwks_url=os.getenv("CLERK_JWKS_URL", ""),
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
            stripe_family_price_id=os.getenv("STRIPE_FAMILY_PRICE_ID", DEFAULT_FAMILY_PRICE_ID),
            email_sender=os.getenv("EMAIL_SENDER", "alertas@prospera.ai"),
            cron_job_key=os.getenv("CRON_JOB_KEY", ""),
            app_base_url=os.getenv("APP_BASE_URL", "https://prospera.ai").rstrip("/"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
