"""Technical sheet model - Product composition, allergens and shelf life."""

from typing import Any, Optional

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from autocontrol.models.base import BaseModel, JSONType


class TechnicalSheet(BaseModel):
    """Product sheet listing ingredients, allergens and handling."""

    __tablename__ = "technical_sheets"
    __table_args__ = (
        Index("ix_technical_sheets_org_created", "organization_id", "created_at"),
        Index("ix_technical_sheets_org_product", "organization_id", "product_name"),
    )

    product_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Product name",
    )

    ingredients: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="List of {name, lot, is_allergen}",
    )

    elaboration: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    presentation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shelf_life: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    labeling: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def allergens(self) -> list[str]:
        return [item["name"] for item in self.ingredients or [] if item.get("is_allergen")]

    def __repr__(self) -> str:
        """String representation."""
        return f"<TechnicalSheet {self.product_name}>"
