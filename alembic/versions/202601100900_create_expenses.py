"""create expenses

Revision ID: 202601100900
Revises:
Create Date: 2026-01-10 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202601100900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "expenses",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("fleet_code", sa.String(length=100), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("truck_plate", sa.String(length=20), nullable=False),
        sa.Column(
            "category",
            sa.Enum(
                "fuel",
                "maintenance",
                name="expensecategory",
                native_enum=False,
                create_constraint=True,
            ),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )
    op.create_index("ix_expenses_fleet_code", "expenses", ["fleet_code"])
    op.create_index("ix_expenses_fleet_code_date", "expenses", ["fleet_code", "date"])
    op.create_index(
        "ix_expenses_fleet_code_truck", "expenses", ["fleet_code", "truck_plate"]
    )


def downgrade():
    op.drop_index("ix_expenses_fleet_code_truck", table_name="expenses")
    op.drop_index("ix_expenses_fleet_code_date", table_name="expenses")
    op.drop_index("ix_expenses_fleet_code", table_name="expenses")
    op.drop_table("expenses")
