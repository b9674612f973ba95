"""add km, liters, invoice number and updated_at to expenses

Revision ID: 202602031500
Revises: 202601100900
Create Date: 2026-02-03 15:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202602031500"
down_revision = "202601100900"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("expenses") as batch:
        batch.add_column(
            sa.Column("km", sa.Numeric(12, 1), nullable=False, server_default="0")
        )
        batch.add_column(sa.Column("liters", sa.Numeric(10, 3)))
        batch.add_column(sa.Column("invoice_number", sa.String(length=60)))
        batch.add_column(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            )
        )
        batch.create_check_constraint("ck_expenses_km_non_negative", "km >= 0")
        batch.create_check_constraint(
            "ck_expenses_liters_positive", "liters IS NULL OR liters > 0"
        )

    # Liters only ever apply to fuel.
    op.execute("UPDATE expenses SET liters = NULL WHERE category <> 'fuel'")


def downgrade():
    with op.batch_alter_table("expenses") as batch:
        batch.drop_constraint("ck_expenses_liters_positive", type_="check")
        batch.drop_constraint("ck_expenses_km_non_negative", type_="check")
        batch.drop_column("updated_at")
        batch.drop_column("invoice_number")
        batch.drop_column("liters")
        batch.drop_column("km")
