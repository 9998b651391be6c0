"""Base model with tenant isolation and audit fields."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column
from sqlalchemy.types import TypeDecorator

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")

# Tolerated clock skew when rejecting future dates
FUTURE_TOLERANCE = timedelta(minutes=5)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def is_future(value: datetime) -> bool:
    return as_utc(value) > utcnow() + FUTURE_TOLERANCE


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime stored in UTC.

    Naive values are assumed to be UTC on the way in; values read back from
    backends without timezone support are tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect: Dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models with common fields."""

    pass


class TenantMixin:
    """Mixin for tenant isolation - required on all multi-tenant tables."""

    @declared_attr
    def organization_id(cls) -> Mapped[UUID]:
        return mapped_column(
            Uuid,
            ForeignKey("organizations.id"),
            nullable=False,
            index=True,
            comment="Owning organization (tenant isolation key)",
        )


class TimestampMixin:
    """Mixin for timestamp fields - created_at and updated_at only."""

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
        comment="Timestamp when record was created",
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        comment="Timestamp when record was last updated",
    )


class AuditMixin(TimestampMixin):
    """Mixin for audit fields - who created/updated and when."""

    @declared_attr
    def created_by(cls) -> Mapped[Optional[UUID]]:
        return mapped_column(
            Uuid,
            ForeignKey("users.id"),
            nullable=True,
            comment="User ID who created this record",
        )

    @declared_attr
    def updated_by(cls) -> Mapped[Optional[UUID]]:
        return mapped_column(
            Uuid,
            ForeignKey("users.id"),
            nullable=True,
            comment="User ID who last updated this record",
        )


class SoftDeleteMixin:
    """Mixin for records retained after deletion for audit purposes."""

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        index=True,
        comment="Timestamp when record was deleted (NULL while live)",
    )

    @declared_attr
    def deleted_by(cls) -> Mapped[Optional[UUID]]:
        return mapped_column(
            Uuid,
            ForeignKey("users.id"),
            nullable=True,
            comment="User ID who deleted this record",
        )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class BaseModel(Base, TenantMixin, AuditMixin):
    """
    Base model for all multi-tenant tables.

    Includes:
    - id (primary key)
    - organization_id (tenant isolation key)
    - created_at, updated_at, created_by, updated_by (audit trail)
    """

    __abstract__ = True

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
        comment="Primary key (UUID)",
    )


def enum_type(enum_cls: type[Enum], name: str) -> SQLEnum:
    """String-backed enum column type storing member values, not names."""
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        values_callable=lambda members: [member.value for member in members],
    )
