"""baseline: keys, loans, receipts, events and logs

Revision ID: 3a7c1e9b2d40
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3a7c1e9b2d40"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("key_systems"):
        op.create_table(
            "key_systems",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("system_code", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=True),
            sa.Column("manufacturer", sa.String(length=120), nullable=True),
            sa.Column("managing_supplier", sa.String(length=120), nullable=True),
            sa.Column("type", sa.String(length=20), nullable=False, server_default="MECHANICAL"),
            sa.Column("property_ids", sa.JSON(), nullable=True),
            sa.Column("installation_date", sa.DateTime(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("schema_file_id", sa.String(length=255), nullable=True),
            *_timestamps(),
            sa.Column("created_by", sa.String(length=120), nullable=True),
            sa.Column("updated_by", sa.String(length=120), nullable=True),
        )
        op.create_index("ix_key_systems_system_code", "key_systems", ["system_code"], unique=True)

    if not inspector.has_table("keys"):
        op.create_table(
            "keys",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("key_name", sa.String(length=120), nullable=False),
            sa.Column("key_sequence_number", sa.Integer(), nullable=True),
            sa.Column("flex_number", sa.Integer(), nullable=True),
            sa.Column("rental_object_code", sa.String(length=50), nullable=True),
            sa.Column("key_type", sa.String(length=10), nullable=False),
            sa.Column("key_system_id", sa.String(length=36), sa.ForeignKey("key_systems.id"), nullable=True),
            sa.Column("disposed", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
        )
        op.create_index("ix_keys_rental_object_code", "keys", ["rental_object_code"])
        op.create_index("ix_keys_key_system_id", "keys", ["key_system_id"])

    if not inspector.has_table("key_loans"):
        op.create_table(
            "key_loans",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("loan_type", sa.String(length=20), nullable=False, server_default="TENANT"),
            sa.Column("contact", sa.String(length=120), nullable=True),
            sa.Column("contact2", sa.String(length=120), nullable=True),
            sa.Column("contact_person", sa.String(length=120), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("picked_up_at", sa.DateTime(), nullable=True),
            sa.Column("returned_at", sa.DateTime(), nullable=True),
            sa.Column("available_to_next_tenant_from", sa.DateTime(), nullable=True),
            *_timestamps(),
            sa.Column("created_by", sa.String(length=120), nullable=True),
            sa.Column("updated_by", sa.String(length=120), nullable=True),
        )
        op.create_index("ix_key_loans_contact", "key_loans", ["contact"])
        op.create_index("ix_key_loans_returned_at", "key_loans", ["returned_at"])

    if not inspector.has_table("key_loan_keys"):
        op.create_table(
            "key_loan_keys",
            sa.Column("key_loan_id", sa.String(length=36),
                      sa.ForeignKey("key_loans.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("key_id", sa.String(length=36),
                      sa.ForeignKey("keys.id", ondelete="CASCADE"), primary_key=True),
        )

    if not inspector.has_table("key_bundles"):
        op.create_table(
            "key_bundles",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("keys", sa.JSON(), nullable=False),
            *_timestamps(),
        )

    if not inspector.has_table("receipts"):
        op.create_table(
            "receipts",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("key_loan_id", sa.String(length=36),
                      sa.ForeignKey("key_loans.id", ondelete="CASCADE"), nullable=False),
            sa.Column("receipt_type", sa.String(length=10), nullable=False),
            sa.Column("type", sa.String(length=10), nullable=False, server_default="PHYSICAL"),
            sa.Column("file_id", sa.String(length=255), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_receipts_key_loan_id", "receipts", ["key_loan_id"])

    if not inspector.has_table("key_events"):
        op.create_table(
            "key_events",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("keys", sa.JSON(), nullable=False),
            sa.Column("type", sa.String(length=10), nullable=False),
            sa.Column("status", sa.String(length=10), nullable=False),
            sa.Column("work_order_id", sa.String(length=120), nullable=True),
            *_timestamps(),
        )

    if not inspector.has_table("logs"):
        op.create_table(
            "logs",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("user_name", sa.String(length=120), nullable=False),
            sa.Column("event_type", sa.String(length=20), nullable=False),
            sa.Column("object_type", sa.String(length=20), nullable=False),
            sa.Column("object_id", sa.String(length=36), nullable=True),
            sa.Column("event_time", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("description", sa.String(length=255), nullable=True),
        )
        op.create_index("ix_logs_object_type", "logs", ["object_type"])
        op.create_index("ix_logs_object_id", "logs", ["object_id"])
        op.create_index("ix_logs_event_time", "logs", ["event_time"])


def downgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    for table in ("logs", "key_events", "receipts", "key_bundles", "key_loan_keys", "key_loans", "keys", "key_systems"):
        if inspector.has_table(table):
            op.drop_table(table)
