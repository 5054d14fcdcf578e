"""
Database schema for the alerting core.

Tables:
    devices                    Registry facts consumed by ingestion (status columns
                               are the only ones this service writes)
    alerts                     Alert records; a partial unique index allows at
                               most one Active alert per device/parameter/type
    alert_digests              Per-recipient, per-category, per-day digests
    notification_preferences   Recipient subscription filters
    alert_settings             JSON configuration documents (thresholds)
"""

import logging

from aquaguard.storage.database import Database

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS devices (
    device_id TEXT PRIMARY KEY,
    display_name TEXT,
    building TEXT,
    floor TEXT,
    status TEXT NOT NULL DEFAULT 'offline',
    last_seen TIMESTAMPTZ,
    offline_since TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_devices_status_last_seen
    ON devices (status, last_seen);

CREATE TABLE IF NOT EXISTS alerts (
    alert_id TEXT PRIMARY KEY,
    device_id TEXT NOT NULL,
    device_name TEXT NOT NULL,
    building TEXT,
    floor TEXT,
    parameter TEXT NOT NULL,
    alert_type TEXT NOT NULL,
    severity TEXT NOT NULL,
    value DOUBLE PRECISION NOT NULL,
    threshold_value DOUBLE PRECISION,
    trend_direction TEXT,
    previous_value DOUBLE PRECISION,
    change_rate DOUBLE PRECISION,
    message TEXT NOT NULL,
    recommended_action TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'Active',
    notified_recipients TEXT[] NOT NULL DEFAULT '{}',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    acknowledged_at TIMESTAMPTZ,
    acknowledged_by TEXT,
    resolved_at TIMESTAMPTZ,
    resolved_by TEXT,
    resolution_notes TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_alerts_one_active
    ON alerts (device_id, parameter, alert_type)
    WHERE status = 'Active';

CREATE INDEX IF NOT EXISTS idx_alerts_device_created
    ON alerts (device_id, created_at DESC);

CREATE TABLE IF NOT EXISTS alert_digests (
    digest_id TEXT PRIMARY KEY,
    recipient_id TEXT NOT NULL,
    recipient_email TEXT NOT NULL,
    category TEXT NOT NULL,
    items JSONB NOT NULL DEFAULT '[]',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    last_updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    last_sent_at TIMESTAMPTZ,
    cooldown_until TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    send_attempts INTEGER NOT NULL DEFAULT 0 CHECK (send_attempts >= 0),
    is_acknowledged BOOLEAN NOT NULL DEFAULT FALSE,
    acknowledged_at TIMESTAMPTZ,
    acknowledged_by TEXT,
    ack_token TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_alert_digests_eligible
    ON alert_digests (cooldown_until)
    WHERE is_acknowledged = FALSE;

CREATE TABLE IF NOT EXISTS notification_preferences (
    user_id TEXT PRIMARY KEY,
    email TEXT NOT NULL,
    notifications_enabled BOOLEAN NOT NULL DEFAULT TRUE,
    alert_severities TEXT[] NOT NULL DEFAULT '{Critical,Warning,Advisory}',
    parameters TEXT[] NOT NULL DEFAULT '{}',
    devices TEXT[] NOT NULL DEFAULT '{}',
    quiet_hours_enabled BOOLEAN NOT NULL DEFAULT FALSE,
    quiet_hours_start TEXT,
    quiet_hours_end TEXT,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS alert_settings (
    key TEXT PRIMARY KEY,
    config JSONB NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""


async def create_tables(database: Database) -> None:
    """
    Create database tables if they don't exist.

    Args:
        database: Connected Database instance
    """
    await database.execute(SCHEMA_SQL)
    logger.info("Database schema ensured")
