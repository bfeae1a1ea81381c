"""
Core API models for the School ERP backend.

Pydantic models for the response envelope, pagination and the school and
finance resources. Bodies are camelCase on the wire.
"""

import math
from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from schoolerp.db.models import InvoiceStatus, PaymentMethod, SchoolStatus

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# Envelope
# =============================================================================

class SuccessResponse(BaseModel, Generic[T]):
    """``{"success": true, "data": ...}``"""
    success: bool = True
    data: T


class ErrorBody(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    """``{"success": false, "error": {"code", "message"}}``"""
    success: bool = False
    error: ErrorBody


def ok(data: T) -> SuccessResponse[T]:
    # success is set explicitly so it survives response_model_exclude_unset
    return SuccessResponse(success=True, data=data)


# =============================================================================
# Pagination
# =============================================================================

class PaginationMeta(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "PaginationMeta":
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=max(1, math.ceil(total / limit)),
        )


class Page(CamelModel, Generic[T]):
    items: list[T]
    pagination: PaginationMeta


class PageParams(BaseModel):
    """Parsed ``page``/``limit`` query parameters."""
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)

    @field_validator("limit")
    @classmethod
    def clamp_limit(cls, v: int) -> int:
        return min(v, MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


# =============================================================================
# Schools
# =============================================================================

class SchoolCreate(CamelModel):
    code: str = Field(min_length=2, max_length=50)
    name: str = Field(min_length=2, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, min_length=3, max_length=50)
    timezone: str = Field(default="UTC", min_length=2, max_length=64)
    currency_code: str = Field(default="USD", min_length=3, max_length=3)
    status: SchoolStatus = SchoolStatus.ACTIVE

    @field_validator("code", "name", "phone", "timezone", mode="before")
    @classmethod
    def strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("currency_code")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class SchoolStatusUpdate(CamelModel):
    status: SchoolStatus


class SchoolResponse(CamelModel):
    id: UUID
    code: str
    name: str
    email: str | None
    phone: str | None
    status: SchoolStatus
    timezone: str
    currency_code: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


# =============================================================================
# Finance
# =============================================================================

class InvoiceCreate(CamelModel):
    school_id: UUID | None = None
    student_ref: str = Field(min_length=1, max_length=100)
    invoice_no: str | None = Field(default=None, min_length=1, max_length=100)
    issue_date: datetime | None = None
    due_date: datetime
    amount_due: float = Field(gt=0)
    notes: str | None = None


class InvoiceResponse(CamelModel):
    id: UUID
    school_id: UUID
    student_ref: str
    invoice_no: str
    issue_date: datetime
    due_date: datetime
    amount_due: float
    amount_paid: float
    status: InvoiceStatus
    notes: str | None
    created_at: datetime | None = None


class PaymentCreate(CamelModel):
    school_id: UUID | None = None
    student_ref: str = Field(min_length=1, max_length=100)
    invoice_id: UUID | None = None
    receipt_no: str | None = Field(default=None, min_length=1, max_length=100)
    amount: float = Field(gt=0)
    method: PaymentMethod
    transaction_ref: str | None = Field(default=None, min_length=1, max_length=255)
    paid_at: datetime | None = None
    notes: str | None = None


class PaymentResponse(CamelModel):
    id: UUID
    school_id: UUID
    invoice_id: UUID | None
    student_ref: str
    receipt_no: str
    amount: float
    method: PaymentMethod
    transaction_ref: str | None
    paid_at: datetime
    collected_by_id: UUID | None
    notes: str | None


class PaymentReceipt(CamelModel):
    """Payment together with the invoice it settled, if any."""
    payment: PaymentResponse
    invoice: InvoiceResponse | None = None


# =============================================================================
# Health
# =============================================================================

class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
    timestamp: datetime
    database: str = "unknown"
