"""Create stays ledger tables

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-18 09:12:31.204117

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "3f1c2a9d7b10"
down_revision = None
branch_labels = None
depends_on = None

SCHEMA = "stays"


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "properties",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("workspace_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("timezone", sa.String(), nullable=False),
        *_timestamps(),
        schema=SCHEMA,
    )
    op.create_index("ix_stays_properties_workspace_id", "properties", ["workspace_id"], schema=SCHEMA)

    op.create_table(
        "ical_feeds",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "property_id",
            sa.String(36),
            sa.ForeignKey(f"{SCHEMA}.properties.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("ical_url", sa.Text(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("source_type", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sync_status", sa.String(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("last_http_status", sa.Integer(), nullable=True),
        sa.Column("last_event_count", sa.Integer(), nullable=True),
        sa.Column("last_booking_count", sa.Integer(), nullable=True),
        *_timestamps(),
        schema=SCHEMA,
    )
    op.create_index("ix_stays_ical_feeds_property_id", "ical_feeds", ["property_id"], schema=SCHEMA)

    op.create_table(
        "connection_properties",
        sa.Column("connection_id", sa.String(36), primary_key=True),
        sa.Column(
            "property_id",
            sa.String(36),
            sa.ForeignKey(f"{SCHEMA}.properties.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_stays_connection_properties_property_id",
        "connection_properties",
        ["property_id"],
        schema=SCHEMA,
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "property_id",
            sa.String(36),
            sa.ForeignKey(f"{SCHEMA}.properties.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("external_uid", sa.String(), nullable=True),
        sa.Column("source_type", sa.String(), nullable=False),
        sa.Column(
            "source_feed_id",
            sa.String(36),
            sa.ForeignKey(f"{SCHEMA}.ical_feeds.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("check_in", sa.DateTime(timezone=True), nullable=False),
        sa.Column("check_out", sa.DateTime(timezone=True), nullable=False),
        sa.Column("guest_name", sa.String(), nullable=True),
        sa.Column("guest_count", sa.Integer(), nullable=True),
        sa.Column("reservation_code", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("manual_guest_name", sa.String(), nullable=True),
        sa.Column("manual_connection_id", sa.String(36), nullable=True),
        sa.Column("enriched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("enrichment_fact_id", sa.String(36), nullable=True),
        sa.Column("enrichment_match", sa.String(), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        schema=SCHEMA,
    )
    op.create_index("ix_stays_bookings_property_id", "bookings", ["property_id"], schema=SCHEMA)
    op.create_index(
        "ix_bookings_feed_uid", "bookings", ["source_feed_id", "external_uid"], schema=SCHEMA
    )
    op.create_index(
        "ix_bookings_property_stay",
        "bookings",
        ["property_id", "check_in", "check_out"],
        schema=SCHEMA,
    )

    op.create_table(
        "mail_messages",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("connection_id", sa.String(36), nullable=False),
        sa.Column("message_id", sa.String(), nullable=False),
        sa.Column("sender", sa.String(), nullable=True),
        sa.Column("subject", sa.Text(), nullable=True),
        sa.Column("body_text", sa.Text(), nullable=True),
        sa.Column("body_html", sa.Text(), nullable=True),
        sa.Column("content_hash", sa.String(64), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("connection_id", "message_id", name="uq_mail_connection_message"),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_stays_mail_messages_connection_id", "mail_messages", ["connection_id"], schema=SCHEMA
    )

    op.create_table(
        "reservation_facts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("connection_id", sa.String(36), nullable=False),
        sa.Column("property_id", sa.String(36), nullable=True),
        sa.Column("source_message_id", sa.String(), nullable=False),
        sa.Column("platform", sa.String(), nullable=True),
        sa.Column("check_in", sa.Date(), nullable=True),
        sa.Column("check_out", sa.Date(), nullable=True),
        sa.Column("guest_name", sa.String(), nullable=True),
        sa.Column("guest_count", sa.Integer(), nullable=True),
        sa.Column("confirmation_code", sa.String(), nullable=True),
        sa.Column("field_sources", postgresql.JSONB(), nullable=False),
        sa.Column("extracted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "connection_id", "source_message_id", name="uq_facts_connection_message"
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_stays_reservation_facts_connection_id",
        "reservation_facts",
        ["connection_id"],
        schema=SCHEMA,
    )
    op.create_index(
        "ix_stays_reservation_facts_property_id",
        "reservation_facts",
        ["property_id"],
        schema=SCHEMA,
    )

    op.create_table(
        "sync_runs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("run_type", sa.String(), nullable=False),
        sa.Column("scope_type", sa.String(), nullable=False),
        sa.Column("scope_id", sa.String(36), nullable=False),
        sa.Column("trigger", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("events_found", sa.Integer(), nullable=False),
        sa.Column("processed", sa.Integer(), nullable=False),
        sa.Column("matched", sa.Integer(), nullable=False),
        sa.Column("errors", sa.Integer(), nullable=False),
        sa.Column("detail", postgresql.JSONB(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=False),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_sync_runs_scope",
        "sync_runs",
        ["run_type", "scope_id", "status", "finished_at"],
        schema=SCHEMA,
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("sync_runs", schema=SCHEMA)
    op.drop_table("reservation_facts", schema=SCHEMA)
    op.drop_table("mail_messages", schema=SCHEMA)
    op.drop_table("bookings", schema=SCHEMA)
    op.drop_table("connection_properties", schema=SCHEMA)
    op.drop_table("ical_feeds", schema=SCHEMA)
    op.drop_table("properties", schema=SCHEMA)
