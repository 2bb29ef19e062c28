from alembic import op
import sqlalchemy as sa


revision = "0001_cash_ledger"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(50), nullable=False, server_default="cashier"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("kind", sa.String(20), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("current_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        # cash box columns
        sa.Column("owner_user_id", sa.Integer(), nullable=True, index=True),
        sa.Column("status", sa.String(20), nullable=True, index=True),
        sa.Column("initial_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("opened_at", sa.DateTime(), nullable=True),
        sa.Column("opened_by", sa.Integer(), nullable=True),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("closed_by", sa.Integer(), nullable=True),
        sa.Column("close_reason", sa.Text(), nullable=True),
        sa.Column("closing_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("closing_variance", sa.Numeric(12, 2), nullable=True),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["owner_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["opened_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["closed_by"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "uq_accounts_open_cash_box_owner",
        "accounts",
        ["owner_user_id"],
        unique=True,
        postgresql_where=sa.text("status = 'open'"),
        sqlite_where=sa.text("status = 'open'"),
    )
    op.create_index(
        "uq_accounts_money_box_name",
        "accounts",
        ["name"],
        unique=True,
        postgresql_where=sa.text("kind = 'money_box'"),
        sqlite_where=sa.text("kind = 'money_box'"),
    )

    op.create_table(
        "ledger_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("account_id", sa.Integer(), nullable=False, index=True),
        sa.Column("transaction_type", sa.String(30), nullable=False, index=True),
        sa.Column("direction", sa.SmallInteger(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("balance_before", sa.Numeric(12, 2), nullable=False),
        sa.Column("balance_after", sa.Numeric(12, 2), nullable=False),
        sa.Column("reference_type", sa.String(30), nullable=False),
        sa.Column("reference_id", sa.String(64), nullable=True, index=True),
        sa.Column("counterparty_account_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now(), index=True),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["counterparty_account_id"], ["accounts.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("direction IN (1, -1)", name="ck_ledger_transactions_direction"),
        sa.CheckConstraint("amount >= 0", name="ck_ledger_transactions_amount"),
    )
    op.create_index(
        "ix_ledger_transactions_account_created",
        "ledger_transactions",
        ["account_id", "created_at"],
    )
    op.create_index(
        "ix_ledger_transactions_reference",
        "ledger_transactions",
        ["reference_type", "reference_id"],
    )

    op.create_table(
        "user_cash_box_settings",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("default_opening_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("allow_negative_balance", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("max_withdrawal_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("require_closing_count", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_user_cash_box_settings_user_id", "user_cash_box_settings", ["user_id"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_user_cash_box_settings_user_id", table_name="user_cash_box_settings")
    op.drop_table("user_cash_box_settings")
    op.drop_index("ix_ledger_transactions_reference", table_name="ledger_transactions")
    op.drop_index("ix_ledger_transactions_account_created", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
    op.drop_index("uq_accounts_money_box_name", table_name="accounts")
    op.drop_index("uq_accounts_open_cash_box_owner", table_name="accounts")
    op.drop_table("accounts")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
