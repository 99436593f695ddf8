"""Initial schema: shipments, transport legs, notifications, audit events

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SHIPMENT_STATUSES = (
    "planning",
    "delayed",
    "sailed",
    "awaiting_clearance",
    "pending_transport",
    "loaded_to_final",
    "arrived",
    "delivered",
    "received",
    "quality_issue",
)


def upgrade() -> None:
    shipment_status = postgresql.ENUM(*SHIPMENT_STATUSES, name="shipment_status")
    shipment_status.create(op.get_bind(), checkfirst=True)
    # Both status columns share the one type created above.
    status_column_type = postgresql.ENUM(*SHIPMENT_STATUSES, name="shipment_status", create_type=False)

    op.create_table(
        "shipments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("sn", sa.String(100), nullable=False, unique=True),
        sa.Column(
            "direction",
            sa.Enum("incoming", "outgoing", name="shipment_direction"),
            nullable=False,
            server_default="incoming",
        ),
        sa.Column("product_text", sa.Text, nullable=True),
        sa.Column("counterparty_name", sa.String(300), nullable=True),
        sa.Column("agreed_shipping_date", sa.Date, nullable=True),
        sa.Column("ship_date", sa.Date, nullable=True),
        sa.Column("eta", sa.Date, nullable=True),
        sa.Column("customs_clearance_date", sa.Date, nullable=True),
        sa.Column("delivery_date", sa.Date, nullable=True),
        sa.Column("free_time_days", sa.Integer, nullable=True),
        sa.Column("booking_reference", sa.String(200), nullable=True),
        sa.Column("docs_draft_approved", sa.Boolean, server_default=sa.false()),
        sa.Column("original_docs_sent", sa.Boolean, server_default=sa.false()),
        sa.Column("total_value_usd", sa.Float, nullable=True),
        sa.Column("paid_value_usd", sa.Float, nullable=True),
        sa.Column("quality_feedback_requested", sa.Boolean, server_default=sa.false()),
        sa.Column("warehouse_receipt_confirmed", sa.Boolean, server_default=sa.false()),
        sa.Column("warehouse_receipt_has_issues", sa.Boolean, server_default=sa.false()),
        sa.Column("warehouse_receipt_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("warehouse_receipt_confirmed_by", sa.String(200), nullable=True),
        sa.Column("warehouse_receipt_notes", sa.Text, nullable=True),
        sa.Column("status", status_column_type, nullable=False, server_default="planning"),
        sa.Column("status_reason", sa.Text, nullable=True),
        sa.Column("status_calculated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status_override", status_column_type, nullable=True),
        sa.Column("status_override_reason", sa.Text, nullable=True),
        sa.Column("status_override_by", sa.String(200), nullable=True),
        sa.Column("status_override_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "transport_legs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("shipment_id", UUID(as_uuid=True), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("truck_plate_number", sa.String(50), nullable=True),
        sa.Column("driver_name", sa.String(200), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.Date, nullable=True),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_transport_legs_shipment_id", "transport_legs", ["shipment_id"])

    op.create_table(
        "notifications",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("shipment_id", UUID(as_uuid=True), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("rule_id", sa.String(100), nullable=False),
        sa.Column(
            "severity",
            sa.Enum("info", "warning", "critical", name="notification_severity"),
            nullable=False,
            server_default="info",
        ),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("due_date", sa.Date, nullable=True),
        sa.Column("details", sa.JSON, nullable=True),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_dismissed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("dismissed_by", sa.String(200), nullable=True),
        sa.Column("dismissed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_notifications_shipment_id", "notifications", ["shipment_id"])
    # At most one undismissed notification per shipment + rule
    op.create_index(
        "uq_notifications_active_shipment_rule",
        "notifications",
        ["shipment_id", "rule_id"],
        unique=True,
        postgresql_where=sa.text("is_dismissed = false"),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=True),
        sa.Column("event_data", sa.JSON, nullable=True),
        sa.Column("entity_type", sa.String(100), nullable=True),
        sa.Column("entity_id", UUID(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(100), nullable=True),
        sa.Column("actor", sa.String(200), nullable=True),
        sa.Column("actor_type", sa.String(50), nullable=True, server_default="system"),
        sa.Column("previous_state", sa.JSON, nullable=True),
        sa.Column("new_state", sa.JSON, nullable=True),
        sa.Column("rationale", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("notifications")
    op.drop_table("transport_legs")
    op.drop_table("shipments")
    op.execute("DROP TYPE IF EXISTS notification_severity")
    op.execute("DROP TYPE IF EXISTS shipment_direction")
    op.execute("DROP TYPE IF EXISTS shipment_status")
