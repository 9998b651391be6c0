"""Delivery record model - Goods reception log."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Float, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from autocontrol.models.base import BaseModel, SoftDeleteMixin, UTCDateTime


class DeliveryRecord(BaseModel, SoftDeleteMixin):
    """
    Reception of goods from a supplier.

    Stores the temperature measured on arrival and whether the delivery
    documents were in order. Retained after deletion for audit.
    """

    __tablename__ = "delivery_records"
    __table_args__ = (
        Index("ix_delivery_records_org_created", "organization_id", "created_at"),
        Index("ix_delivery_records_org_reception", "organization_id", "reception_date"),
        Index("ix_delivery_records_org_created_by", "organization_id", "created_by"),
    )

    supplier_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Supplier reference",
    )

    product_type_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Product type reference",
    )

    temperature: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment="Temperature on reception (Celsius)",
    )

    reception_date: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        comment="When the goods were received",
    )

    docs_ok: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Delivery documentation checked and correct",
    )

    albaran_image: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Delivery note image (URL or data URI)",
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<DeliveryRecord {self.id} supplier={self.supplier_id}>"
