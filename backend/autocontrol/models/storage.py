"""Storage models - Refrigeration units and their temperature logs."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, Float, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from autocontrol.models.base import BaseModel, SoftDeleteMixin, UTCDateTime, enum_type


class StorageUnitType(str, Enum):
    """Kinds of storage units."""

    COLD_ROOM = "Cámara Frigorífica"
    DISPLAY_CABINET = "Cámara Expositora"
    DRYING_ROOM = "Cámara de secado"


class StorageUnit(BaseModel):
    """Refrigerator, display cabinet or drying room (configuration entity)."""

    __tablename__ = "storage_units"
    __table_args__ = (
        Index("ix_storage_units_org_created", "organization_id", "created_at"),
        Index("ix_storage_units_org_type", "organization_id", "unit_type"),
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Unit name",
    )

    unit_type: Mapped[StorageUnitType] = mapped_column(
        enum_type(StorageUnitType, "storage_unit_type"),
        nullable=False,
        comment="Kind of unit",
    )

    min_temp: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment="Lowest acceptable temperature (Celsius)",
    )

    max_temp: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment="Highest acceptable temperature (Celsius)",
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<StorageUnit {self.name} ({self.unit_type.value})>"


class StorageRecord(BaseModel, SoftDeleteMixin):
    """Periodic temperature and hygiene check of a storage unit."""

    __tablename__ = "storage_records"
    __table_args__ = (
        Index("ix_storage_records_org_created", "organization_id", "created_at"),
        Index("ix_storage_records_org_recorded", "organization_id", "recorded_at"),
        Index("ix_storage_records_org_unit", "organization_id", "unit_id"),
    )

    unit_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("storage_units.id"),
        nullable=False,
        comment="Storage unit checked",
    )

    recorded_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        comment="When the check was performed",
    )

    temperature: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment="Measured temperature (Celsius)",
    )

    humidity: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment="Relative humidity (%)",
    )

    rotation_check: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Stock rotation (FIFO) verified",
    )

    mincing_check: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Minced product handling verified",
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<StorageRecord {self.id} unit={self.unit_id} temp={self.temperature}>"
