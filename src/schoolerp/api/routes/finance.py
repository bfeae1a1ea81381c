"""
Finance API routes (invoices and payments).
"""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from schoolerp.auth.dependencies import FinanceReader, FinanceWriter, client_ip
from schoolerp.db import get_db
from schoolerp.db.models import InvoiceStatus
from schoolerp.models import (
    DEFAULT_PAGE_SIZE,
    InvoiceCreate,
    InvoiceResponse,
    Page,
    PageParams,
    PaginationMeta,
    PaymentCreate,
    PaymentReceipt,
    PaymentResponse,
    SuccessResponse,
    ok,
)
from schoolerp.services.finance import FinanceService

logger = structlog.get_logger()

router = APIRouter(prefix="/accountant", tags=["Finance"])


def get_finance_service(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> FinanceService:
    return FinanceService(db, clock=request.app.state.clock)


Finance = Annotated[FinanceService, Depends(get_finance_service)]


@router.get("/invoices", response_model=SuccessResponse[Page[InvoiceResponse]])
async def list_invoices(
    user: FinanceReader,
    finance: Finance,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = DEFAULT_PAGE_SIZE,
    school_id: Annotated[UUID | None, Query(alias="schoolId")] = None,
    invoice_status: Annotated[InvoiceStatus | None, Query(alias="status")] = None,
    student_ref: Annotated[str | None, Query(alias="studentRef", min_length=1)] = None,
    search: Annotated[str | None, Query(min_length=1)] = None,
) -> SuccessResponse[Page[InvoiceResponse]]:
    """List invoices of the caller's school (a SUPERADMIN names one with ``schoolId``)."""
    params = PageParams(page=page, limit=limit)
    invoices, total = await finance.list_invoices(
        user,
        params,
        school_id=school_id,
        status=invoice_status,
        student_ref=student_ref,
        search=search,
    )
    return ok(Page[InvoiceResponse](
        items=[InvoiceResponse.model_validate(i) for i in invoices],
        pagination=PaginationMeta.build(total, params.page, params.limit),
    ))


@router.post(
    "/invoices",
    response_model=SuccessResponse[InvoiceResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_invoice(
    body: InvoiceCreate,
    user: FinanceWriter,
    finance: Finance,
) -> SuccessResponse[InvoiceResponse]:
    invoice = await finance.create_invoice(user, body)
    return ok(InvoiceResponse.model_validate(invoice))


@router.get("/invoices/{invoice_id}", response_model=SuccessResponse[InvoiceResponse])
async def get_invoice(
    invoice_id: UUID,
    user: FinanceReader,
    finance: Finance,
    school_id: Annotated[UUID | None, Query(alias="schoolId")] = None,
) -> SuccessResponse[InvoiceResponse]:
    invoice = await finance.get_invoice(user, invoice_id, school_id)
    return ok(InvoiceResponse.model_validate(invoice))


@router.post(
    "/payments",
    response_model=SuccessResponse[PaymentReceipt],
    status_code=status.HTTP_201_CREATED,
)
async def create_payment(
    body: PaymentCreate,
    request: Request,
    user: FinanceWriter,
    finance: Finance,
) -> SuccessResponse[PaymentReceipt]:
    """
    Record a payment.

    When it references an invoice, the invoice's paid amount and status are
    updated in the same transaction.
    """
    payment, invoice = await finance.record_payment(user, body, ip_address=client_ip(request))
    return ok(PaymentReceipt(
        payment=PaymentResponse.model_validate(payment),
        invoice=InvoiceResponse.model_validate(invoice) if invoice else None,
    ))
