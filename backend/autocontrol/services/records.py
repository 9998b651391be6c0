"""
Tenant-scoped record services.

`RecordService` implements list/get/create/update/delete for one model.
Every query starts from `_scoped()`, which pins the caller's organization,
so a record of another tenant behaves exactly like a missing one.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, ClassVar, Generic, Optional, TypeVar
from uuid import UUID

from pydantic.alias_generators import to_camel
from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from autocontrol.core.context import TenantContext
from autocontrol.core.exceptions import NotFoundError, ResourceInUseError, ValidationError
from autocontrol.models.audit import AuditResource
from autocontrol.models.base import BaseModel, is_future, utcnow
from autocontrol.models.delivery import DeliveryRecord
from autocontrol.models.storage import StorageRecord, StorageUnit, StorageUnitType
from autocontrol.models.technical_sheet import TechnicalSheet

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


# ============================================================================
# Filter parsing
# ============================================================================


def parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValueError(f"'{value}' is not a boolean")


def parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def enum_parser(enum_cls: type[Enum]) -> Callable[[str], Enum]:
    def parse(value: str) -> Enum:
        try:
            return enum_cls(value)
        except ValueError:
            allowed = ", ".join(member.value for member in enum_cls)
            raise ValueError(f"'{value}' is not one of: {allowed}") from None

    return parse


@dataclass(frozen=True)
class FilterSpec:
    """Query parameter accepted by `list`, mapped onto one model attribute."""

    attribute: str
    parse: Callable[[str], Any] = str


@dataclass
class Page(Generic[ModelT]):
    """One page of results plus offset-pagination metadata."""

    items: list[ModelT]
    total: int
    page: int
    limit: Optional[int]

    @property
    def pages(self) -> int:
        if not self.limit:
            return 1 if self.total else 0
        return math.ceil(self.total / self.limit)

    def pagination(self) -> dict[str, Any]:
        return {"current": self.page, "pages": self.pages, "total": self.total, "limit": self.limit}


@dataclass
class ErrorCollector:
    """Accumulates field errors so a request reports every violation at once."""

    errors: list[dict[str, str]] = field(default_factory=list)

    def add(self, attribute: str, message: str) -> None:
        self.errors.append({"field": to_camel(attribute), "message": message})

    def raise_if_any(self) -> None:
        if self.errors:
            raise ValidationError(errors=list(self.errors))


def not_in_future(values: dict[str, Any], attribute: str, errors: ErrorCollector) -> None:
    value = values.get(attribute)
    if isinstance(value, datetime) and is_future(value):
        errors.add(attribute, "Date cannot be in the future")


# ============================================================================
# Generic service
# ============================================================================


class RecordService(Generic[ModelT]):
    """
    CRUD over one tenant-scoped model.

    Subclasses declare the model, accepted filters, sortable fields and
    required attributes, and extend `validate()` with entity rules.
    """

    model: ClassVar[type[BaseModel]]
    label: ClassVar[str] = "Record"
    audit_resource: ClassVar[Optional[AuditResource]] = None
    filters: ClassVar[dict[str, FilterSpec]] = {}
    search_fields: ClassVar[tuple[str, ...]] = ()
    date_field: ClassVar[str] = "created_at"
    sort_fields: ClassVar[frozenset[str]] = frozenset({"created_at", "updated_at"})
    required_fields: ClassVar[frozenset[str]] = frozenset()
    soft_delete: ClassVar[bool] = False
    immutable_fields: ClassVar[frozenset[str]] = frozenset(
        {
            "id",
            "organization_id",
            "created_at",
            "created_by",
            "updated_at",
            "updated_by",
            "deleted_at",
            "deleted_by",
        }
    )

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _scoped(self, context: TenantContext) -> Select:
        stmt = select(self.model).where(self.model.organization_id == context.organization_id)
        if self.soft_delete:
            stmt = stmt.where(self.model.deleted_at.is_(None))
        return stmt

    def _apply_filters(self, stmt: Select, filters: dict[str, Any]) -> Select:
        errors = ErrorCollector()

        for name, raw in filters.items():
            if raw is None or raw == "":
                continue

            if name in ("dateFrom", "dateTo"):
                try:
                    bound = parse_datetime(str(raw))
                except ValueError:
                    errors.errors.append({"field": name, "message": "Invalid ISO 8601 date"})
                    continue
                column = getattr(self.model, self.date_field)
                stmt = stmt.where(column >= bound if name == "dateFrom" else column <= bound)
                continue

            if name == "search" and self.search_fields:
                pattern = f"%{raw}%"
                stmt = stmt.where(
                    or_(*(getattr(self.model, attr).ilike(pattern) for attr in self.search_fields))
                )
                continue

            spec = self.filters.get(name)
            if spec is None:
                continue
            try:
                value = spec.parse(raw) if isinstance(raw, str) else raw
            except ValueError as e:
                errors.errors.append({"field": name, "message": str(e)})
                continue
            stmt = stmt.where(getattr(self.model, spec.attribute) == value)

        errors.raise_if_any()
        return stmt

    def _apply_sort(self, stmt: Select, sort: Optional[str]) -> Select:
        if not sort:
            return stmt.order_by(self.model.created_at.desc(), self.model.id.desc())

        descending = sort.startswith("-")
        attribute = _snake(sort.lstrip("-+"))
        if attribute not in self.sort_fields:
            allowed = ", ".join(sorted(to_camel(name) for name in self.sort_fields))
            raise ValidationError.for_field("sort", f"Cannot sort by '{sort}'. Allowed: {allowed}")

        column = getattr(self.model, attribute)
        return stmt.order_by(column.desc() if descending else column.asc(), self.model.id.desc())

    async def list(
        self,
        context: TenantContext,
        filters: Optional[dict[str, Any]] = None,
        page: int = 1,
        limit: Optional[int] = None,
        sort: Optional[str] = None,
    ) -> Page[ModelT]:
        """
        List the caller's records.

        `limit=None` returns every matching record on one page.

        Raises:
            ValidationError: Malformed filter values, unknown sort field or
                non-positive page/limit
        """
        if page < 1:
            raise ValidationError.for_field("page", "Page must be 1 or greater")
        if limit is not None and limit < 1:
            raise ValidationError.for_field("limit", "Limit must be 1 or greater")

        stmt = self._apply_filters(self._scoped(context), filters or {})

        total = (
            await self.session.execute(select(func.count()).select_from(stmt.order_by(None).subquery()))
        ).scalar_one()

        stmt = self._apply_sort(stmt, sort)
        if limit is not None:
            stmt = stmt.offset((page - 1) * limit).limit(limit)

        result = await self.session.execute(stmt)
        return Page(items=list(result.scalars().all()), total=total, page=page, limit=limit)

    async def get(self, context: TenantContext, record_id: UUID) -> ModelT:
        """
        Fetch one of the caller's records.

        Raises:
            NotFoundError: Missing, deleted or owned by another organization
        """
        result = await self.session.execute(
            self._scoped(context).where(self.model.id == record_id)
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError(f"{self.label} not found")
        return record

    def _mutable(self, payload: dict[str, Any]) -> dict[str, Any]:
        columns = set(self.model.__table__.columns.keys())
        return {
            key: value
            for key, value in payload.items()
            if key in columns and key not in self.immutable_fields
        }

    async def validate(
        self,
        context: TenantContext,
        values: dict[str, Any],
        errors: ErrorCollector,
        existing: Optional[ModelT] = None,
    ) -> None:
        """Entity rules; subclasses add to `errors` and call super()."""
        for attribute in self.required_fields:
            if attribute in values and values[attribute] is None:
                errors.add(attribute, "Field is required")
            elif existing is None and attribute not in values:
                errors.add(attribute, "Field is required")

    def build(self, context: TenantContext, values: dict[str, Any]) -> ModelT:
        """Instantiate a new record owned by the caller."""
        return self.model(
            **values,
            organization_id=context.organization_id,
            created_by=context.user_id,
            updated_by=context.user_id,
        )

    async def create(self, context: TenantContext, payload: dict[str, Any]) -> ModelT:
        """
        Create a record owned by the caller's organization.

        Ownership and authorship come from the context; any organization_id
        in the payload is ignored.

        Raises:
            ValidationError: Listing every violated field
        """
        values = self._mutable(payload)
        errors = ErrorCollector()
        await self.validate(context, values, errors)
        errors.raise_if_any()

        record = self.build(context, values)
        self.session.add(record)
        await self.session.commit()

        logger.info(
            f"{self.label} created",
            extra={
                "record_id": str(record.id),
                "organization_id": str(context.organization_id),
                "user_id": str(context.user_id),
            },
        )
        return record

    async def update(self, context: TenantContext, record_id: UUID, patch: dict[str, Any]) -> ModelT:
        """
        Patch mutable fields of one of the caller's records.

        Raises:
            NotFoundError: Missing or owned by another organization
            ValidationError: Listing every violated field
        """
        record = await self.get(context, record_id)
        values = self._mutable(patch)

        errors = ErrorCollector()
        await self.validate(context, values, errors, existing=record)
        errors.raise_if_any()

        for key, value in values.items():
            setattr(record, key, value)
        record.updated_by = context.user_id
        record.updated_at = utcnow()
        await self.session.commit()

        logger.info(
            f"{self.label} updated",
            extra={
                "record_id": str(record.id),
                "organization_id": str(context.organization_id),
                "fields": sorted(values),
            },
        )
        return record

    async def before_delete(self, context: TenantContext, record: ModelT) -> None:
        """Hook for reference checks on hard-deleted entities."""

    async def delete(self, context: TenantContext, record_id: UUID, confirm: bool = False) -> None:
        """
        Delete one of the caller's records.

        Audit entities are soft-deleted and require `confirm=True`;
        configuration entities are removed.

        Raises:
            NotFoundError: Missing or owned by another organization
            ValidationError: Confirmation missing for an audit entity
        """
        record = await self.get(context, record_id)

        if self.soft_delete:
            if not confirm:
                raise ValidationError.for_field(
                    "confirm", f"Deleting a {self.label.lower()} requires confirm=true"
                )
            record.deleted_at = utcnow()
            record.deleted_by = context.user_id
        else:
            await self.before_delete(context, record)
            await self.session.delete(record)

        await self.session.commit()
        logger.info(
            f"{self.label} deleted",
            extra={
                "record_id": str(record_id),
                "organization_id": str(context.organization_id),
                "soft": self.soft_delete,
            },
        )


def _snake(name: str) -> str:
    return "".join(f"_{ch.lower()}" if ch.isupper() else ch for ch in name)


# ============================================================================
# Concrete services
# ============================================================================


class DeliveryRecordService(RecordService[DeliveryRecord]):
    model = DeliveryRecord
    label = "Delivery record"
    audit_resource = AuditResource.DELIVERY_RECORD
    filters = {
        "supplierId": FilterSpec("supplier_id"),
        "productTypeId": FilterSpec("product_type_id"),
        "docsOk": FilterSpec("docs_ok", parse_bool),
    }
    search_fields = ("supplier_id", "product_type_id", "notes")
    date_field = "reception_date"
    sort_fields = frozenset({"created_at", "updated_at", "reception_date", "temperature"})
    required_fields = frozenset({"supplier_id", "product_type_id", "temperature", "reception_date"})
    soft_delete = True

    async def validate(
        self,
        context: TenantContext,
        values: dict[str, Any],
        errors: ErrorCollector,
        existing: Optional[DeliveryRecord] = None,
    ) -> None:
        await super().validate(context, values, errors, existing)
        not_in_future(values, "reception_date", errors)


class StorageUnitService(RecordService[StorageUnit]):
    model = StorageUnit
    label = "Storage unit"
    audit_resource = AuditResource.STORAGE_UNIT
    filters = {"unitType": FilterSpec("unit_type", enum_parser(StorageUnitType))}
    search_fields = ("name",)
    sort_fields = frozenset({"created_at", "updated_at", "name"})
    required_fields = frozenset({"name", "unit_type"})

    async def validate(
        self,
        context: TenantContext,
        values: dict[str, Any],
        errors: ErrorCollector,
        existing: Optional[StorageUnit] = None,
    ) -> None:
        await super().validate(context, values, errors, existing)
        min_temp = values.get("min_temp", existing.min_temp if existing else None)
        max_temp = values.get("max_temp", existing.max_temp if existing else None)
        if min_temp is not None and max_temp is not None and min_temp > max_temp:
            errors.add("min_temp", "Minimum temperature cannot exceed maximum temperature")

    async def before_delete(self, context: TenantContext, record: StorageUnit) -> None:
        in_use = (
            await self.session.execute(
                select(func.count(StorageRecord.id)).where(
                    StorageRecord.organization_id == context.organization_id,
                    StorageRecord.unit_id == record.id,
                )
            )
        ).scalar_one()
        if in_use:
            raise ResourceInUseError(f"Storage unit has {in_use} temperature records")


class StorageRecordService(RecordService[StorageRecord]):
    model = StorageRecord
    label = "Storage record"
    audit_resource = AuditResource.STORAGE_RECORD
    filters = {"unitId": FilterSpec("unit_id", UUID)}
    search_fields = ("notes",)
    date_field = "recorded_at"
    sort_fields = frozenset({"created_at", "updated_at", "recorded_at", "temperature"})
    required_fields = frozenset({"unit_id", "recorded_at", "temperature"})
    soft_delete = True

    async def validate(
        self,
        context: TenantContext,
        values: dict[str, Any],
        errors: ErrorCollector,
        existing: Optional[StorageRecord] = None,
    ) -> None:
        await super().validate(context, values, errors, existing)
        not_in_future(values, "recorded_at", errors)

        unit_id = values.get("unit_id")
        if unit_id is not None:
            unit = (
                await self.session.execute(
                    select(StorageUnit.id).where(
                        StorageUnit.id == unit_id,
                        StorageUnit.organization_id == context.organization_id,
                    )
                )
            ).first()
            if unit is None:
                errors.add("unit_id", "Storage unit not found")


class TechnicalSheetService(RecordService[TechnicalSheet]):
    model = TechnicalSheet
    label = "Technical sheet"
    audit_resource = AuditResource.TECHNICAL_SHEET
    search_fields = ("product_name",)
    sort_fields = frozenset({"created_at", "updated_at", "product_name"})
    required_fields = frozenset({"product_name", "ingredients"})

    async def validate(
        self,
        context: TenantContext,
        values: dict[str, Any],
        errors: ErrorCollector,
        existing: Optional[TechnicalSheet] = None,
    ) -> None:
        await super().validate(context, values, errors, existing)
        if "ingredients" in values and not values["ingredients"]:
            errors.add("ingredients", "At least one ingredient is required")
