"""devices + location_history

Revision ID: 20251019_devices_location_history
Revises:
Create Date: 2025-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20251019_devices_location_history"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "devices",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("accessory_id", sa.String(255), nullable=False),
        sa.Column("hashed_adv_key", sa.Text, nullable=True),
        sa.Column("private_key", sa.Text, nullable=True),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_devices_owner_id", "devices", ["owner_id"])

    # append-only; read newest first per device
    op.create_table(
        "location_history",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("device_id", sa.Uuid(), sa.ForeignKey("devices.id", ondelete="CASCADE"), nullable=False),
        sa.Column("latitude", sa.Float, nullable=False),
        sa.Column("longitude", sa.Float, nullable=False),
        sa.Column("confidence", sa.Float, nullable=True),
        sa.Column("status_code", sa.Integer, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_location_history_device_ts", "location_history", ["device_id", "timestamp"])

def downgrade():
    op.drop_index("ix_location_history_device_ts", table_name="location_history")
    op.drop_table("location_history")
    op.drop_index("ix_devices_owner_id", table_name="devices")
    op.drop_table("devices")
