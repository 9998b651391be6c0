"""Pydantic schemas for delivery, storage and technical sheet records."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError

from autocontrol.models.storage import StorageUnitType
from autocontrol.schemas.common import CamelModel, check_not_in_future

TEMPERATURE_RANGE = {"ge": -60.0, "le": 150.0}


def check_temperature_range(min_temp: Optional[float], info: ValidationInfo) -> Optional[float]:
    """Validator body for `min_temp`; `max_temp` is declared first so it is already in `info.data`."""
    max_temp = info.data.get("max_temp")
    if min_temp is not None and max_temp is not None and min_temp > max_temp:
        raise PydanticCustomError(
            "temperature_range", "Minimum temperature cannot exceed maximum temperature"
        )
    return min_temp


class RecordResponse(CamelModel):
    """Fields shared by every business record."""

    id: UUID = Field(..., description="Record ID")
    organization_id: UUID = Field(..., description="Owning organization")
    created_by: Optional[UUID] = Field(None, description="User who registered the record")
    updated_by: Optional[UUID] = Field(None, description="User who last changed the record")
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Delivery records
# ============================================================================


class DeliveryRecordCreate(CamelModel):
    supplier_id: str = Field(..., min_length=1, max_length=100, description="Supplier reference")
    product_type_id: str = Field(..., min_length=1, max_length=100, description="Product type reference")
    temperature: float = Field(..., **TEMPERATURE_RANGE, description="Temperature on reception (Celsius)")
    reception_date: datetime = Field(..., description="When the goods were received (not in the future)")
    docs_ok: bool = Field(False, description="Delivery documents checked")
    albaran_image: Optional[str] = Field(None, description="Delivery note image")
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("reception_date")
    @classmethod
    def validate_reception_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return check_not_in_future(v)


class DeliveryRecordUpdate(CamelModel):
    supplier_id: Optional[str] = Field(None, min_length=1, max_length=100)
    product_type_id: Optional[str] = Field(None, min_length=1, max_length=100)
    temperature: Optional[float] = Field(None, **TEMPERATURE_RANGE)
    reception_date: Optional[datetime] = None
    docs_ok: Optional[bool] = None
    albaran_image: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("reception_date")
    @classmethod
    def validate_reception_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return check_not_in_future(v)


class DeliveryRecordResponse(RecordResponse):
    supplier_id: str
    product_type_id: str
    temperature: float
    reception_date: datetime
    docs_ok: bool
    albaran_image: Optional[str] = None
    notes: Optional[str] = None


# ============================================================================
# Storage units
# ============================================================================


class StorageUnitCreate(CamelModel):
    name: str = Field(..., min_length=2, max_length=100)
    unit_type: StorageUnitType = Field(..., description="Kind of unit")
    max_temp: Optional[float] = Field(None, **TEMPERATURE_RANGE)
    min_temp: Optional[float] = Field(None, **TEMPERATURE_RANGE)

    @field_validator("min_temp")
    @classmethod
    def validate_range(cls, v: Optional[float], info: ValidationInfo) -> Optional[float]:
        return check_temperature_range(v, info)


class StorageUnitUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    unit_type: Optional[StorageUnitType] = None
    max_temp: Optional[float] = Field(None, **TEMPERATURE_RANGE)
    min_temp: Optional[float] = Field(None, **TEMPERATURE_RANGE)

    @field_validator("min_temp")
    @classmethod
    def validate_range(cls, v: Optional[float], info: ValidationInfo) -> Optional[float]:
        return check_temperature_range(v, info)


class StorageUnitResponse(RecordResponse):
    name: str
    unit_type: StorageUnitType
    min_temp: Optional[float] = None
    max_temp: Optional[float] = None


# ============================================================================
# Storage records
# ============================================================================


class StorageRecordCreate(CamelModel):
    unit_id: UUID = Field(..., description="Storage unit checked")
    recorded_at: datetime = Field(..., description="When the check was done (not in the future)")
    temperature: float = Field(..., **TEMPERATURE_RANGE)
    humidity: Optional[float] = Field(None, ge=0, le=100, description="Relative humidity (%)")
    rotation_check: bool = Field(False)
    mincing_check: bool = Field(False)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("recorded_at")
    @classmethod
    def validate_recorded_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return check_not_in_future(v)


class StorageRecordUpdate(CamelModel):
    unit_id: Optional[UUID] = None
    recorded_at: Optional[datetime] = None
    temperature: Optional[float] = Field(None, **TEMPERATURE_RANGE)
    humidity: Optional[float] = Field(None, ge=0, le=100)
    rotation_check: Optional[bool] = None
    mincing_check: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("recorded_at")
    @classmethod
    def validate_recorded_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return check_not_in_future(v)


class StorageRecordResponse(RecordResponse):
    unit_id: UUID
    recorded_at: datetime
    temperature: float
    humidity: Optional[float] = None
    rotation_check: bool
    mincing_check: bool
    notes: Optional[str] = None


# ============================================================================
# Technical sheets
# ============================================================================


class Ingredient(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    lot: Optional[str] = Field(None, max_length=50)
    is_allergen: bool = Field(False)


class TechnicalSheetCreate(CamelModel):
    product_name: str = Field(..., min_length=2, max_length=100)
    ingredients: list[Ingredient] = Field(..., min_length=1)
    elaboration: Optional[str] = Field(None, max_length=5000)
    presentation: Optional[str] = Field(None, max_length=1000)
    shelf_life: Optional[str] = Field(None, max_length=200)
    labeling: Optional[str] = Field(None, max_length=1000)


class TechnicalSheetUpdate(CamelModel):
    product_name: Optional[str] = Field(None, min_length=2, max_length=100)
    ingredients: Optional[list[Ingredient]] = Field(None, min_length=1)
    elaboration: Optional[str] = Field(None, max_length=5000)
    presentation: Optional[str] = Field(None, max_length=1000)
    shelf_life: Optional[str] = Field(None, max_length=200)
    labeling: Optional[str] = Field(None, max_length=1000)


class TechnicalSheetResponse(RecordResponse):
    product_name: str
    ingredients: list[Ingredient]
    allergens: list[str]
    elaboration: Optional[str] = None
    presentation: Optional[str] = None
    shelf_life: Optional[str] = None
    labeling: Optional[str] = None
