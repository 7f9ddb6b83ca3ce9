"""signatures and key notes

Revision ID: 7d2f4b8c1e63
Revises: 3a7c1e9b2d40
Create Date: 2026-10-17 14:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "7d2f4b8c1e63"
down_revision = "3a7c1e9b2d40"
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("key_notes"):
        op.create_table(
            "key_notes",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("rental_object_code", sa.String(length=50), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        )
        op.create_index("ix_key_notes_rental_object_code", "key_notes", ["rental_object_code"])

    if not inspector.has_table("signatures"):
        op.create_table(
            "signatures",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("resource_type", sa.String(length=30), nullable=False),
            sa.Column("resource_id", sa.String(length=36), nullable=False),
            sa.Column("simple_sign_document_id", sa.Integer(), nullable=False),
            sa.Column("recipient_email", sa.String(length=255), nullable=False),
            sa.Column("recipient_name", sa.String(length=255), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="sent"),
            sa.Column("sent_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.Column("last_synced_at", sa.DateTime(), nullable=True),
        )
        op.create_index("ix_signatures_simple_sign_document_id", "signatures", ["simple_sign_document_id"],
                        unique=True)
        op.create_index("ix_signatures_resource", "signatures", ["resource_type", "resource_id"])


def downgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    for table in ("signatures", "key_notes"):
        if inspector.has_table(table):
            op.drop_table(table)
