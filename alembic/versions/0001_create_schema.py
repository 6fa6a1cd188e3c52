from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect
from sqlalchemy.dialects import postgresql


revision = "0001_create_schema"
down_revision = None
branch_labels = None
depends_on = None


def _json_type(bind):
    if bind.dialect.name == "sqlite":
        return sa.JSON()
    return postgresql.JSONB(astext_type=sa.Text())


def upgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)
    json_type = _json_type(bind)
    tables = set(inspector.get_table_names())

    if "orders" not in tables:
        op.create_table(
            "orders",
            sa.Column("id", sa.String(length=32), primary_key=True),
            sa.Column("order_number", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=32), nullable=False, server_default="new"),
            sa.Column("customer_name", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("customer_phone", sa.String(length=20), nullable=False),
            sa.Column("delivery_address", json_type, nullable=False),
            sa.Column("items", json_type, nullable=False),
            sa.Column("total_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("delivery_fee_cents", sa.Integer(), nullable=True),
            sa.Column("payment_method", sa.String(length=40), nullable=False, server_default=""),
            sa.Column("payment_link", sa.Text(), nullable=True),
            sa.Column("delivery_date", sa.String(length=10), nullable=False),
            sa.Column("idempotency_key", sa.String(length=64), nullable=True),
            sa.Column("client_synced", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.UniqueConstraint("idempotency_key", name="uq_orders_idempotency_key"),
        )
        op.create_index("ix_orders_order_number", "orders", ["order_number"], unique=True)
        op.create_index("ix_orders_status", "orders", ["status"], unique=False)
        op.create_index("ix_orders_customer_phone", "orders", ["customer_phone"], unique=False)
        op.create_index("ix_orders_client_synced", "orders", ["client_synced"], unique=False)
        op.create_index("ix_orders_created_at", "orders", ["created_at"], unique=False)

    if "clients" not in tables:
        op.create_table(
            "clients",
            sa.Column("phone", sa.String(length=20), primary_key=True),
            sa.Column("name", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("first_order_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_order_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("total_orders", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("total_spent_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("addresses", json_type, nullable=False),
            sa.Column("order_ids", json_type, nullable=False),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index("ix_clients_name", "clients", ["name"], unique=False)

    if "counters" not in tables:
        op.create_table(
            "counters",
            sa.Column("name", sa.String(length=50), primary_key=True),
            sa.Column("value", sa.Integer(), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )

    if "daily_visits" not in tables:
        op.create_table(
            "daily_visits",
            sa.Column("date_key", sa.String(length=10), primary_key=True),
            sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
        )


def downgrade() -> None:
    bind = op.get_bind()
    tables = set(inspect(bind).get_table_names())
    for table_name in ("daily_visits", "counters", "clients", "orders"):
        if table_name in tables:
            op.drop_table(table_name)
