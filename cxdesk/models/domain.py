from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cxdesk.database import Base


class SessionStatus(PyEnum):
    DORMANT = "DORMANT"
    FLOAT_OPEN_START = "FLOAT_OPEN_START"
    FLOAT_OPEN_COMPLETE = "FLOAT_OPEN_COMPLETE"
    FLOAT_CLOSE_START = "FLOAT_CLOSE_START"
    FLOAT_CLOSE_COMPLETE = "FLOAT_CLOSE_COMPLETE"
    CLOSED = "CLOSED"


class CurrencyType(PyEnum):
    FIAT = "FIAT"
    CRYPTO = "CRYPTO"
    METAL = "METAL"


class BreakableType(PyEnum):
    CURRENCY_SWAP = "CURRENCY_SWAP"
    FLOAT_TRANSFER = "FLOAT_TRANSFER"
    ORDER = "ORDER"


class BreakdownDirection(PyEnum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"


class BreakdownStatus(PyEnum):
    COMMITTED = "COMMITTED"
    CANCELLED = "CANCELLED"


class OrderStatus(PyEnum):
    QUOTE = "QUOTE"
    ACCEPTED = "ACCEPTED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    SCHEDULED = "SCHEDULED"
    BLOCKED = "BLOCKED"


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Repository(Base):
    """A till, vault or wallet. Configured by admin CRUD; read-only here."""

    __tablename__ = "repositories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    currency_tickers: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    float_count_required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Currency(Base):
    __tablename__ = "currencies"
    __table_args__ = (UniqueConstraint("organization_id", "ticker", name="uq_currencies_org_ticker"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id"), nullable=False, index=True
    )
    ticker: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    type_of: Mapped[CurrencyType] = mapped_column(
        Enum(CurrencyType, native_enum=False), default=CurrencyType.FIAT, nullable=False
    )
    rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    denominations = relationship(
        "Denomination", back_populates="currency", order_by="Denomination.value.desc()"
    )


class Denomination(Base):
    __tablename__ = "denominations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    currency_id: Mapped[int] = mapped_column(ForeignKey("currencies.id"), nullable=False, index=True)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    accepted: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    currency = relationship("Currency", back_populates="denominations")


class CxSession(Base):
    __tablename__ = "cx_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id"), nullable=False, index=True
    )
    status: Mapped[SessionStatus] = mapped_column(
        Enum(SessionStatus, native_enum=False),
        default=SessionStatus.DORMANT,
        nullable=False,
        index=True,
    )

    open_start_dt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    open_start_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    open_confirm_dt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    open_confirm_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    close_start_dt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    close_start_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    close_confirm_dt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    close_confirm_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    closed_dt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closed_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))

    # User ids as strings; reassign the list on change so the JSON column is flagged dirty.
    authorized_user_ids: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    active_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class SessionAccessLog(Base):
    __tablename__ = "session_access_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        ForeignKey("cx_sessions.id"), unique=True, nullable=False, index=True
    )
    start_dt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    start_owner_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    user_join_dt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    user_join_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    authorized_users: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class RepositoryAccessLog(Base):
    __tablename__ = "repository_access_logs"
    __table_args__ = (
        UniqueConstraint("session_id", "repository_id", name="uq_repository_access_logs_session_repo"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(ForeignKey("cx_sessions.id"), nullable=False, index=True)
    repository_id: Mapped[int] = mapped_column(
        ForeignKey("repositories.id"), nullable=False, index=True
    )
    open_start_dt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    open_start_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    open_confirm_dt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    open_confirm_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    close_start_dt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    close_start_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    close_confirm_dt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    close_confirm_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    release_dt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    authorized_users: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class FloatStack(Base):
    """One denomination's count history in one repository for one session."""

    __tablename__ = "float_stacks"
    __table_args__ = (
        UniqueConstraint(
            "session_id",
            "repository_id",
            "denomination_id",
            "ticker",
            name="uq_float_stacks_session_repo_denom_ticker",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id"), nullable=False, index=True
    )
    session_id: Mapped[int] = mapped_column(ForeignKey("cx_sessions.id"), nullable=False, index=True)
    repository_id: Mapped[int] = mapped_column(
        ForeignKey("repositories.id"), nullable=False, index=True
    )
    denomination_id: Mapped[int] = mapped_column(
        ForeignKey("denominations.id"), nullable=False, index=True
    )
    ticker: Mapped[str] = mapped_column(String(16), nullable=False)

    open_count: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    close_count: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    midday_count: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    last_session_count: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    # Decimal as string; order debits accumulate here.
    spent_during_session: Mapped[str] = mapped_column(String(64), default="0", nullable=False)
    transferred_during_session: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    # Face value snapshot at provisioning time.
    denominated_value: Mapped[float] = mapped_column(Float, nullable=False)

    open_spot: Mapped[float | None] = mapped_column(Float)
    close_spot: Mapped[float | None] = mapped_column(Float)
    average_spot: Mapped[float | None] = mapped_column(Float)

    open_confirmed_dt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    close_confirmed_dt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    previous_session_float_stack_id: Mapped[int | None] = mapped_column(
        ForeignKey("float_stacks.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    denomination = relationship("Denomination", lazy="joined")


class Breakdown(Base):
    __tablename__ = "breakdowns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id"), nullable=False, index=True
    )
    breakable_type: Mapped[BreakableType] = mapped_column(
        Enum(BreakableType, native_enum=False), nullable=False, index=True
    )
    breakable_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    float_stack_id: Mapped[int] = mapped_column(
        ForeignKey("float_stacks.id"), nullable=False, index=True
    )
    denomination_id: Mapped[int] = mapped_column(ForeignKey("denominations.id"), nullable=False)
    count: Mapped[str] = mapped_column(String(64), nullable=False)
    direction: Mapped[BreakdownDirection] = mapped_column(
        Enum(BreakdownDirection, native_enum=False), nullable=False
    )
    status: Mapped[BreakdownStatus] = mapped_column(
        Enum(BreakdownStatus, native_enum=False), default=BreakdownStatus.COMMITTED, nullable=False
    )
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class CurrencySwap(Base):
    __tablename__ = "currency_swaps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id"), nullable=False, index=True
    )
    session_id: Mapped[int] = mapped_column(ForeignKey("cx_sessions.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    currency_id: Mapped[int] = mapped_column(ForeignKey("currencies.id"), nullable=False)
    inbound_repository_id: Mapped[int] = mapped_column(ForeignKey("repositories.id"), nullable=False)
    outbound_repository_id: Mapped[int] = mapped_column(
        ForeignKey("repositories.id"), nullable=False
    )
    inbound_ticker: Mapped[str] = mapped_column(String(16), nullable=False)
    outbound_ticker: Mapped[str] = mapped_column(String(16), nullable=False)
    inbound_sum: Mapped[str] = mapped_column(String(64), nullable=False)
    outbound_sum: Mapped[str] = mapped_column(String(64), nullable=False)
    swap_value: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="COMPLETED", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class FloatTransfer(Base):
    __tablename__ = "float_transfers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id"), nullable=False, index=True
    )
    session_id: Mapped[int] = mapped_column(ForeignKey("cx_sessions.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    inbound_repository_id: Mapped[int] = mapped_column(ForeignKey("repositories.id"), nullable=False)
    outbound_repository_id: Mapped[int] = mapped_column(
        ForeignKey("repositories.id"), nullable=False
    )
    inbound_ticker: Mapped[str] = mapped_column(String(16), nullable=False)
    outbound_ticker: Mapped[str] = mapped_column(String(16), nullable=False)
    inbound_sum: Mapped[str] = mapped_column(String(64), nullable=False)
    outbound_sum: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="COMPLETED", nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Order(Base):
    """Customer exchange order. Created by the order desk; breakdowns move its float."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id"), nullable=False, index=True
    )
    session_id: Mapped[int | None] = mapped_column(ForeignKey("cx_sessions.id"), index=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, native_enum=False), default=OrderStatus.QUOTE, nullable=False, index=True
    )
    inbound_ticker: Mapped[str | None] = mapped_column(String(16))
    inbound_sum: Mapped[str | None] = mapped_column(String(64))
    inbound_repository_id: Mapped[int | None] = mapped_column(ForeignKey("repositories.id"))
    outbound_ticker: Mapped[str | None] = mapped_column(String(16))
    outbound_sum: Mapped[str | None] = mapped_column(String(64))
    outbound_repository_id: Mapped[int | None] = mapped_column(ForeignKey("repositories.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Activity(Base):
    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id"), nullable=False, index=True
    )
    session_id: Mapped[int | None] = mapped_column(ForeignKey("cx_sessions.id"), index=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), index=True)
    event: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    reference_id: Mapped[str | None] = mapped_column(String(64))
    comment: Mapped[str | None] = mapped_column(Text)
    meta: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
