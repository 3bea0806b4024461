#!/usr/bin/env python3
"""
Prospera – Database Migration Runner.

Creates the Aurora PostgreSQL schema used by the backend through the AWS RDS
Data API. Statements run one by one; "already exists" errors count as
success so the script can be re-run safely.

Typical usage
-------------
    python -m prospera.database.migrations

or, once installed, ``prospera-migrate``.

Environment requirements
------------------------
- AURORA_CLUSTER_ARN   – ARN of the Aurora Serverless cluster
- AURORA_SECRET_ARN    – ARN of the Secrets Manager entry for DB creds
- AURORA_DATABASE      – Database name (defaults to "prospera")
- DEFAULT_AWS_REGION   – AWS region (defaults to "us-east-1")
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

import boto3
from botocore.exceptions import ClientError

from ..config import Settings

ALERT_TYPES = ("bill", "employee", "expense", "achievement", "tax", "asset", "investment")

# Tables that carry an updated_at column maintained by trigger
_UPDATED_AT_TABLES = (
    "profiles",
    "bills",
    "employees",
    "alert_notification_settings",
    "stripe_customers",
    "stripe_subscriptions",
    "stripe_orders",
)


# ============================================================
# Migration Statement Builder
# ============================================================

def _alert_flag_columns() -> str:
    return ",\n".join(
        f"            {alert_type}_alerts_enabled BOOLEAN DEFAULT true" for alert_type in ALERT_TYPES
    )


def get_migration_statements() -> List[str]:
    """
    Return the ordered list of SQL statements creating the schema.

    Statements are kept inline rather than split out of one SQL file so the
    PL/pgSQL trigger function body is never cut at a semicolon.
    """
    statements = [
        'CREATE EXTENSION IF NOT EXISTS "uuid-ossp"',

        # Profiles: plan, contact details and phone verification state
        """
        CREATE TABLE IF NOT EXISTS profiles (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id VARCHAR(255) UNIQUE NOT NULL,
            email VARCHAR(255),
            full_name VARCHAR(255),
            plan VARCHAR(20) DEFAULT 'starter' CHECK (plan IN ('starter', 'family')),
            is_in_trial BOOLEAN DEFAULT false,
            phone VARCHAR(32),
            phone_verified BOOLEAN DEFAULT false,
            phone_verification_status VARCHAR(20),
            phone_verification_code VARCHAR(6),
            phone_verification_expires TIMESTAMP,
            phone_verification_attempts INTEGER DEFAULT 0,
            created_at TIMESTAMP DEFAULT NOW(),
            updated_at TIMESTAMP DEFAULT NOW()
        )
        """,

        """
        CREATE TABLE IF NOT EXISTS bills (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id VARCHAR(255) NOT NULL,
            name VARCHAR(255) NOT NULL,
            company VARCHAR(255) DEFAULT '',
            amount DECIMAL(12,2) NOT NULL DEFAULT 0,
            next_due DATE NOT NULL,
            is_active BOOLEAN DEFAULT true,
            created_at TIMESTAMP DEFAULT NOW(),
            updated_at TIMESTAMP DEFAULT NOW()
        )
        """,

        """
        CREATE TABLE IF NOT EXISTS employees (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id VARCHAR(255) NOT NULL,
            name VARCHAR(255) NOT NULL,
            salary DECIMAL(12,2) NOT NULL DEFAULT 0,
            fgts_percentage DECIMAL(5,2) DEFAULT 8
                CHECK (fgts_percentage >= 0 AND fgts_percentage <= 100),
            next_vacation DATE,
            status VARCHAR(20) DEFAULT 'active' CHECK (status IN ('active', 'inactive')),
            created_at TIMESTAMP DEFAULT NOW(),
            updated_at TIMESTAMP DEFAULT NOW()
        )
        """,

        # Alert ids are deterministic per user (bill-<id>, tax-filing-<year>)
        """
        CREATE TABLE IF NOT EXISTS alerts (
            id VARCHAR(255) NOT NULL,
            user_id VARCHAR(255) NOT NULL,
            type VARCHAR(20) NOT NULL,
            title VARCHAR(255) NOT NULL,
            description TEXT,
            date DATE NOT NULL,
            priority VARCHAR(10) NOT NULL CHECK (priority IN ('high', 'medium', 'low')),
            is_read BOOLEAN DEFAULT false,
            related_id VARCHAR(255),
            related_entity VARCHAR(50),
            action_path VARCHAR(255),
            action_label VARCHAR(100),
            email_sent BOOLEAN DEFAULT false,
            email_sent_at TIMESTAMP,
            created_at TIMESTAMP DEFAULT NOW(),
            PRIMARY KEY (user_id, id)
        )
        """,

        f"""
        CREATE TABLE IF NOT EXISTS alert_notification_settings (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id VARCHAR(255) UNIQUE NOT NULL,
            email_notifications_enabled BOOLEAN DEFAULT true,
            notification_email VARCHAR(255),
            notification_frequency VARCHAR(20) DEFAULT 'immediate'
                CHECK (notification_frequency IN ('immediate', 'daily', 'weekly')),
            notification_time TIME DEFAULT '08:00:00',
{_alert_flag_columns()},
            last_notification_sent TIMESTAMP,
            created_at TIMESTAMP DEFAULT NOW(),
            updated_at TIMESTAMP DEFAULT NOW()
        )
        """,

        """
        CREATE TABLE IF NOT EXISTS scheduled_email_notifications (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id VARCHAR(255) NOT NULL,
            alert_ids JSONB DEFAULT '[]',
            email_to VARCHAR(255) NOT NULL,
            email_subject VARCHAR(255) NOT NULL,
            email_body TEXT NOT NULL,
            status VARCHAR(20) DEFAULT 'pending' CHECK (status IN ('pending', 'sent', 'failed')),
            error_message TEXT,
            sent_at TIMESTAMP,
            created_at TIMESTAMP DEFAULT NOW()
        )
        """,

        """
        CREATE TABLE IF NOT EXISTS stripe_customers (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id VARCHAR(255) UNIQUE NOT NULL,
            customer_id VARCHAR(255) UNIQUE NOT NULL,
            created_at TIMESTAMP DEFAULT NOW(),
            updated_at TIMESTAMP DEFAULT NOW()
        )
        """,

        """
        CREATE TABLE IF NOT EXISTS stripe_subscriptions (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            customer_id VARCHAR(255) UNIQUE NOT NULL,
            subscription_id VARCHAR(255),
            price_id VARCHAR(255),
            current_period_start TIMESTAMP,
            current_period_end TIMESTAMP,
            cancel_at_period_end BOOLEAN DEFAULT false,
            payment_method_brand VARCHAR(50),
            payment_method_last4 VARCHAR(4),
            status VARCHAR(30) NOT NULL DEFAULT 'not_started',
            created_at TIMESTAMP DEFAULT NOW(),
            updated_at TIMESTAMP DEFAULT NOW()
        )
        """,

        """
        CREATE TABLE IF NOT EXISTS stripe_orders (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            checkout_session_id VARCHAR(255) NOT NULL,
            payment_intent_id VARCHAR(255),
            customer_id VARCHAR(255) NOT NULL,
            amount_subtotal BIGINT NOT NULL DEFAULT 0,
            amount_total BIGINT NOT NULL DEFAULT 0,
            currency VARCHAR(10) NOT NULL DEFAULT 'brl',
            payment_status VARCHAR(30) NOT NULL,
            status VARCHAR(30) NOT NULL DEFAULT 'pending',
            created_at TIMESTAMP DEFAULT NOW(),
            updated_at TIMESTAMP DEFAULT NOW()
        )
        """,

        """
        CREATE TABLE IF NOT EXISTS invites (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            owner_id VARCHAR(255) NOT NULL,
            email VARCHAR(255) NOT NULL,
            role VARCHAR(20) NOT NULL CHECK (role IN ('viewer', 'editor', 'admin')),
            token VARCHAR(255) UNIQUE NOT NULL,
            status VARCHAR(20) DEFAULT 'pending'
                CHECK (status IN ('pending', 'accepted', 'revoked')),
            expires_at TIMESTAMP NOT NULL,
            accepted_by VARCHAR(255),
            accepted_at TIMESTAMP,
            created_at TIMESTAMP DEFAULT NOW()
        )
        """,

        """
        CREATE TABLE IF NOT EXISTS shared_access (
            id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            owner_user_id VARCHAR(255) NOT NULL,
            user_id VARCHAR(255) NOT NULL,
            role VARCHAR(20) NOT NULL CHECK (role IN ('viewer', 'editor', 'admin')),
            invite_id UUID REFERENCES invites(id) ON DELETE SET NULL,
            granted_at TIMESTAMP DEFAULT NOW(),
            UNIQUE (owner_user_id, user_id)
        )
        """,

        # Indexes
        "CREATE INDEX IF NOT EXISTS idx_bills_user_due ON bills(user_id, next_due)",
        "CREATE INDEX IF NOT EXISTS idx_employees_user ON employees(user_id)",
        "CREATE INDEX IF NOT EXISTS idx_alerts_unsent ON alerts(user_id, email_sent, created_at)",
        "CREATE INDEX IF NOT EXISTS idx_scheduled_emails_status ON scheduled_email_notifications(status, created_at)",
        "CREATE INDEX IF NOT EXISTS idx_invites_owner ON invites(owner_id)",

        # Trigger function
        """
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
        """,
    ]

    statements.extend(
        f"""
        CREATE TRIGGER update_{table}_updated_at BEFORE UPDATE ON {table}
            FOR EACH ROW EXECUTE FUNCTION update_updated_at_column()
        """
        for table in _UPDATED_AT_TABLES
    )
    return statements


# ============================================================
# Migration Execution Logic
# ============================================================

def describe_statement(stmt: str) -> str:
    """Classify a statement as extension, table, index, trigger, function or statement."""
    upper_stmt = stmt.upper()

    if "CREATE TABLE" in upper_stmt:
        return "table"
    if "CREATE INDEX" in upper_stmt:
        return "index"
    if "CREATE TRIGGER" in upper_stmt:
        return "trigger"
    # CREATE [OR REPLACE] FUNCTION; trigger statements were matched above
    if "FUNCTION" in upper_stmt:
        return "function"
    if "CREATE EXTENSION" in upper_stmt:
        return "extension"
    return "statement"


def run_migrations(settings: Optional[Settings] = None, client: Any = None) -> Tuple[int, int]:
    """
    Run every migration statement and return ``(success_count, error_count)``.

    Raises
    ------
    ValueError
        If the cluster or secret ARN is not configured.
    """
    settings = settings or Settings.from_env()
    if not settings.aurora_cluster_arn or not settings.aurora_secret_arn:
        raise ValueError("Missing AURORA_CLUSTER_ARN or AURORA_SECRET_ARN in environment variables")

    client = client or boto3.client("rds-data", region_name=settings.aws_region)
    statements = get_migration_statements()

    print("🚀 Running database migrations...")
    print("=" * 50)

    success_count = 0
    error_count = 0

    for index, stmt in enumerate(statements, start=1):
        stmt_type = describe_statement(stmt)
        first_line = next((line.strip() for line in stmt.split("\n") if line.strip()), "")[:60]

        print(f"\n[{index}/{len(statements)}] Creating {stmt_type}...")
        print(f"    {first_line}...")

        try:
            client.execute_statement(
                resourceArn=settings.aurora_cluster_arn,
                secretArn=settings.aurora_secret_arn,
                database=settings.aurora_database,
                sql=stmt,
            )
            print("    ✅ Success")
            success_count += 1

        except ClientError as exc:
            error_msg = exc.response["Error"]["Message"]

            # "already exists" means a previous run got here: idempotent success
            if "already exists" in error_msg.lower():
                print("    ⚠️  Already exists (skipping)")
                success_count += 1
            else:
                print(f"    ❌ Error: {error_msg[:100]}")
                error_count += 1

    print("\n" + "=" * 50)
    print(f"Migration complete: {success_count} successful, {error_count} errors")

    if error_count == 0:
        print("\n✅ All migrations completed successfully!")
    else:
        print("\n⚠️  Some statements failed. Check errors above.")

    return success_count, error_count


def main() -> None:
    _, errors = run_migrations()
    if errors:
        raise SystemExit(1)


# ============================================================
# Script Entry Point
# ============================================================

if __name__ == "__main__":
    main()
