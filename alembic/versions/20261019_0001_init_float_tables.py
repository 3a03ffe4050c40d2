"""init float tables

Revision ID: 20261019_0001
Revises: None
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_0001_init_float_tables"
down_revision = None
branch_labels = None
depends_on = None


def _enum(*values: str, name: str) -> sa.Enum:
    # Stored as VARCHAR on every backend, matching the models (native_enum=False).
    return sa.Enum(*values, name=name, native_enum=False, create_constraint=False)


def _timestamps(with_updated: bool = True) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())]
    if with_updated:
        cols.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now())
        )
    return cols


def _user_fk(name: str) -> sa.Column:
    return sa.Column(name, sa.Integer(), sa.ForeignKey("users.id"), nullable=True)


def _movement_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False
        ),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("cx_sessions.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "inbound_repository_id", sa.Integer(), sa.ForeignKey("repositories.id"), nullable=False
        ),
        sa.Column(
            "outbound_repository_id", sa.Integer(), sa.ForeignKey("repositories.id"), nullable=False
        ),
        sa.Column("inbound_ticker", sa.String(length=16), nullable=False),
        sa.Column("outbound_ticker", sa.String(length=16), nullable=False),
        sa.Column("inbound_sum", sa.String(length=64), nullable=False),
        sa.Column("outbound_sum", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="COMPLETED"),
    ]


def upgrade() -> None:
    session_status = _enum(
        "DORMANT",
        "FLOAT_OPEN_START",
        "FLOAT_OPEN_COMPLETE",
        "FLOAT_CLOSE_START",
        "FLOAT_CLOSE_COMPLETE",
        "CLOSED",
        name="sessionstatus",
    )
    currency_type = _enum("FIAT", "CRYPTO", "METAL", name="currencytype")
    breakable_type = _enum("CURRENCY_SWAP", "FLOAT_TRANSFER", "ORDER", name="breakabletype")
    direction = _enum("INBOUND", "OUTBOUND", name="breakdowndirection")
    breakdown_status = _enum("COMMITTED", "CANCELLED", name="breakdownstatus")
    order_status = _enum(
        "QUOTE",
        "ACCEPTED",
        "CONFIRMED",
        "COMPLETED",
        "CANCELLED",
        "SCHEDULED",
        "BLOCKED",
        name="orderstatus",
    )

    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=64), unique=True),
        *_timestamps(with_updated=False),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(with_updated=False),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "repositories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False
        ),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("currency_tickers", sa.JSON()),
        sa.Column("float_count_required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(with_updated=False),
    )
    op.create_index("ix_repositories_organization_id", "repositories", ["organization_id"])

    op.create_table(
        "currencies",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False
        ),
        sa.Column("ticker", sa.String(length=16), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("type_of", currency_type, nullable=False, server_default="FIAT"),
        sa.Column("rate", sa.Float()),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint("organization_id", "ticker", name="uq_currencies_org_ticker"),
    )
    op.create_index("ix_currencies_organization_id", "currencies", ["organization_id"])
    op.create_index("ix_currencies_ticker", "currencies", ["ticker"])

    op.create_table(
        "denominations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("currency_id", sa.Integer(), sa.ForeignKey("currencies.id"), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("name", sa.String(length=64)),
        sa.Column("accepted", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_denominations_currency_id", "denominations", ["currency_id"])

    op.create_table(
        "cx_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False
        ),
        sa.Column("status", session_status, nullable=False, server_default="DORMANT"),
        sa.Column("open_start_dt", sa.DateTime(timezone=True)),
        _user_fk("open_start_user_id"),
        sa.Column("open_confirm_dt", sa.DateTime(timezone=True)),
        _user_fk("open_confirm_user_id"),
        sa.Column("close_start_dt", sa.DateTime(timezone=True)),
        _user_fk("close_start_user_id"),
        sa.Column("close_confirm_dt", sa.DateTime(timezone=True)),
        _user_fk("close_confirm_user_id"),
        sa.Column("closed_dt", sa.DateTime(timezone=True)),
        _user_fk("closed_user_id"),
        sa.Column("authorized_user_ids", sa.JSON(), nullable=False),
        _user_fk("active_user_id"),
        _user_fk("created_by_user_id"),
        *_timestamps(),
    )
    op.create_index("ix_cx_sessions_organization_id", "cx_sessions", ["organization_id"])
    op.create_index("ix_cx_sessions_status", "cx_sessions", ["status"])

    op.create_table(
        "session_access_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "session_id", sa.Integer(), sa.ForeignKey("cx_sessions.id"), nullable=False, unique=True
        ),
        sa.Column("start_dt", sa.DateTime(timezone=True)),
        _user_fk("start_owner_id"),
        sa.Column("user_join_dt", sa.DateTime(timezone=True)),
        _user_fk("user_join_id"),
        sa.Column("authorized_users", sa.JSON(), nullable=False),
        *_timestamps(with_updated=False),
    )
    op.create_index("ix_session_access_logs_session_id", "session_access_logs", ["session_id"])

    op.create_table(
        "repository_access_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("cx_sessions.id"), nullable=False),
        sa.Column("repository_id", sa.Integer(), sa.ForeignKey("repositories.id"), nullable=False),
        sa.Column("open_start_dt", sa.DateTime(timezone=True)),
        _user_fk("open_start_user_id"),
        sa.Column("open_confirm_dt", sa.DateTime(timezone=True)),
        _user_fk("open_confirm_user_id"),
        sa.Column("close_start_dt", sa.DateTime(timezone=True)),
        _user_fk("close_start_user_id"),
        sa.Column("close_confirm_dt", sa.DateTime(timezone=True)),
        _user_fk("close_confirm_user_id"),
        sa.Column("release_dt", sa.DateTime(timezone=True)),
        sa.Column("authorized_users", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "session_id", "repository_id", name="uq_repository_access_logs_session_repo"
        ),
    )
    op.create_index(
        "ix_repository_access_logs_session_id", "repository_access_logs", ["session_id"]
    )
    op.create_index(
        "ix_repository_access_logs_repository_id", "repository_access_logs", ["repository_id"]
    )

    op.create_table(
        "float_stacks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False
        ),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("cx_sessions.id"), nullable=False),
        sa.Column("repository_id", sa.Integer(), sa.ForeignKey("repositories.id"), nullable=False),
        sa.Column(
            "denomination_id", sa.Integer(), sa.ForeignKey("denominations.id"), nullable=False
        ),
        sa.Column("ticker", sa.String(length=16), nullable=False),
        sa.Column("open_count", sa.Float(), nullable=False, server_default="0"),
        sa.Column("close_count", sa.Float(), nullable=False, server_default="0"),
        sa.Column("midday_count", sa.Float(), nullable=False, server_default="0"),
        sa.Column("last_session_count", sa.Float(), nullable=False, server_default="0"),
        sa.Column("spent_during_session", sa.String(length=64), nullable=False, server_default="0"),
        sa.Column("transferred_during_session", sa.Float(), nullable=False, server_default="0"),
        sa.Column("denominated_value", sa.Float(), nullable=False),
        sa.Column("open_spot", sa.Float()),
        sa.Column("close_spot", sa.Float()),
        sa.Column("average_spot", sa.Float()),
        sa.Column("open_confirmed_dt", sa.DateTime(timezone=True)),
        sa.Column("close_confirmed_dt", sa.DateTime(timezone=True)),
        sa.Column(
            "previous_session_float_stack_id", sa.Integer(), sa.ForeignKey("float_stacks.id")
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint(
            "session_id",
            "repository_id",
            "denomination_id",
            "ticker",
            name="uq_float_stacks_session_repo_denom_ticker",
        ),
    )
    for column in ("organization_id", "session_id", "repository_id", "denomination_id", "created_at"):
        op.create_index(f"ix_float_stacks_{column}", "float_stacks", [column])

    op.create_table(
        "breakdowns",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False
        ),
        sa.Column("breakable_type", breakable_type, nullable=False),
        sa.Column("breakable_id", sa.Integer(), nullable=False),
        sa.Column("float_stack_id", sa.Integer(), sa.ForeignKey("float_stacks.id"), nullable=False),
        sa.Column(
            "denomination_id", sa.Integer(), sa.ForeignKey("denominations.id"), nullable=False
        ),
        sa.Column("count", sa.String(length=64), nullable=False),
        sa.Column("direction", direction, nullable=False),
        sa.Column("status", breakdown_status, nullable=False, server_default="COMMITTED"),
        _user_fk("created_by_user_id"),
        *_timestamps(),
    )
    for column in ("organization_id", "breakable_type", "breakable_id", "float_stack_id"):
        op.create_index(f"ix_breakdowns_{column}", "breakdowns", [column])


    op.create_table(
        "currency_swaps",
        *_movement_columns(),
        sa.Column("currency_id", sa.Integer(), sa.ForeignKey("currencies.id"), nullable=False),
        sa.Column("swap_value", sa.String(length=64), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_currency_swaps_organization_id", "currency_swaps", ["organization_id"])
    op.create_index("ix_currency_swaps_session_id", "currency_swaps", ["session_id"])

    op.create_table(
        "float_transfers",
        *_movement_columns(),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
    )
    op.create_index("ix_float_transfers_organization_id", "float_transfers", ["organization_id"])
    op.create_index("ix_float_transfers_session_id", "float_transfers", ["session_id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False
        ),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("cx_sessions.id")),
        _user_fk("user_id"),
        sa.Column("status", order_status, nullable=False, server_default="QUOTE"),
        sa.Column("inbound_ticker", sa.String(length=16)),
        sa.Column("inbound_sum", sa.String(length=64)),
        sa.Column("inbound_repository_id", sa.Integer(), sa.ForeignKey("repositories.id")),
        sa.Column("outbound_ticker", sa.String(length=16)),
        sa.Column("outbound_sum", sa.String(length=64)),
        sa.Column("outbound_repository_id", sa.Integer(), sa.ForeignKey("repositories.id")),
        *_timestamps(),
    )
    op.create_index("ix_orders_organization_id", "orders", ["organization_id"])
    op.create_index("ix_orders_session_id", "orders", ["session_id"])
    op.create_index("ix_orders_status", "orders", ["status"])

    op.create_table(
        "activities",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False
        ),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("cx_sessions.id")),
        _user_fk("user_id"),
        sa.Column("event", sa.String(length=64), nullable=False),
        sa.Column("reference_id", sa.String(length=64)),
        sa.Column("comment", sa.Text()),
        sa.Column("meta", sa.JSON()),
        *_timestamps(with_updated=False),
    )
    for column in ("organization_id", "session_id", "user_id", "event", "created_at"):
        op.create_index(f"ix_activities_{column}", "activities", [column])


def downgrade() -> None:
    for table in (
        "activities",
        "orders",
        "float_transfers",
        "currency_swaps",
        "breakdowns",
        "float_stacks",
        "repository_access_logs",
        "session_access_logs",
        "cx_sessions",
        "denominations",
        "currencies",
        "repositories",
        "users",
        "organizations",
    ):
        op.drop_table(table)
