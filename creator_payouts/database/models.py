"""SQLAlchemy database models for creator payouts."""
import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only auto-increments INTEGER PRIMARY KEY columns
BigIntId = BigInteger().with_variant(Integer, "sqlite")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PayoutStatus(str, Enum):
    """Lifecycle of a payout record."""

    INITIALIZED = "initialized"
    SUBMITTED = "submitted"
    PENDING = "pending"
    SUCCESSFUL = "successful"
    FAILED = "failed"


class PayoutMode(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


IN_FLIGHT_STATUSES = (
    PayoutStatus.INITIALIZED.value,
    PayoutStatus.SUBMITTED.value,
    PayoutStatus.PENDING.value,
)

IN_FLIGHT_INDEX = "uq_payout_records_one_in_flight"
_IN_FLIGHT_PREDICATE = "status IN ('initialized', 'submitted', 'pending')"


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Balance(Base):
    """
    Creator balance, one row per profile.

    Decremented only by successful payout execution; credited by revenue
    flows outside this package.
    """

    __tablename__ = "balances"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    profile_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="non_negative_balance"),
        CheckConstraint("length(currency) = 3", name="valid_balance_currency"),
    )

    def __repr__(self) -> str:
        """String representation of Balance."""
        return f"<Balance(profile_id={self.profile_id}, amount={self.amount})>"


class PayoutSchedule(Base):
    """Creator-owned payout configuration. Amounts in cents."""

    __tablename__ = "payout_schedules"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    profile_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    mode: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PayoutMode.MANUAL.value
    )
    threshold: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    max_payout: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    __table_args__ = (
        CheckConstraint("mode IN ('automatic', 'manual')", name="valid_payout_mode"),
        CheckConstraint("threshold >= 0", name="non_negative_threshold"),
    )

    def __repr__(self) -> str:
        """String representation of PayoutSchedule."""
        return (
            f"<PayoutSchedule(profile_id={self.profile_id}, mode={self.mode}, "
            f"threshold={self.threshold})>"
        )


class PayoutPaymentMethod(Base):
    """Where a creator's payouts are sent."""

    __tablename__ = "payout_payment_methods"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    profile_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    provider: Mapped[str] = mapped_column(String(30), nullable=False)
    country: Mapped[str] = mapped_column(String(2), nullable=False)
    destination: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = (
        Index("idx_payout_methods_profile_provider", "profile_id", "provider"),
    )

    def __repr__(self) -> str:
        """String representation of PayoutPaymentMethod."""
        return (
            f"<PayoutPaymentMethod(id={self.id}, profile_id={self.profile_id}, "
            f"provider={self.provider}, country={self.country})>"
        )


class PayoutRecord(Base):
    """
    One payout attempt.

    The id is sent to the provider as the batch id and doubles as the
    idempotency key. At most one record per profile may be in flight
    (initialized, submitted or pending); the partial unique index enforces it.
    """

    __tablename__ = "payout_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    profile_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payout_payment_method_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("payout_payment_methods.id"), nullable=False
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    processing_fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    external_transaction_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="non_negative_payout_amount"),
        CheckConstraint("processing_fee >= 0", name="non_negative_processing_fee"),
        CheckConstraint(
            "status IN ('initialized', 'submitted', 'pending', 'successful', 'failed')",
            name="valid_payout_status",
        ),
        Index("idx_payout_records_profile_created", "profile_id", "created_at"),
        Index(
            IN_FLIGHT_INDEX,
            "profile_id",
            unique=True,
            postgresql_where=text(_IN_FLIGHT_PREDICATE),
            sqlite_where=text(_IN_FLIGHT_PREDICATE),
        ),
    )

    @property
    def gross_amount(self) -> int:
        """Amount reserved from the balance: payout plus provider fee."""
        return self.amount + self.processing_fee

    def __repr__(self) -> str:
        """String representation of PayoutRecord."""
        return (
            f"<PayoutRecord(id={self.id}, profile_id={self.profile_id}, "
            f"amount={self.amount}, status={self.status})>"
        )


class ProcessedWebhookEvent(Base):
    """
    Webhook dedup ledger.

    One row per provider event id, written once when the event is applied.
    Append-only.
    """

    __tablename__ = "processed_webhook_events"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        """String representation of ProcessedWebhookEvent."""
        return f"<ProcessedWebhookEvent(id={self.id})>"
