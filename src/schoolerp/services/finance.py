"""
Fee invoices and payments.

Every query is filtered by the school id resolved for the caller; a record
belonging to another school is reported as not found.
"""

import secrets
from uuid import UUID

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from schoolerp.auth.scope import CallerIdentity, resolve_school_id
from schoolerp.clock import SystemClock
from schoolerp.db import atomic
from schoolerp.db.models import Invoice, InvoiceStatus, Payment, School
from schoolerp.errors import BadRequestError, InvoiceNotFoundError, SchoolNotFoundError
from schoolerp.models import InvoiceCreate, PageParams, PaymentCreate
from schoolerp.services.audit import AuditService

logger = structlog.get_logger()


def compute_invoice_status(amount_due: float, amount_paid: float) -> InvoiceStatus:
    if amount_paid <= 0:
        return InvoiceStatus.ISSUED
    if amount_paid >= amount_due:
        return InvoiceStatus.PAID
    return InvoiceStatus.PARTIAL


class FinanceService:
    """Service for invoice and payment operations."""

    def __init__(self, db: AsyncSession, clock=None):
        self.db = db
        self.clock = clock or SystemClock()
        self.audit = AuditService(db)

    def _generate_code(self, prefix: str) -> str:
        millis = int(self.clock.now().timestamp() * 1000)
        return f"{prefix}-{millis}-{secrets.randbelow(1000):03d}"

    async def _scoped_school(self, caller: CallerIdentity, requested: UUID | None) -> UUID:
        school_id = resolve_school_id(caller, requested, require_for_privileged=True)
        if caller.is_privileged and await self.db.get(School, school_id) is None:
            raise SchoolNotFoundError()
        return school_id

    async def _scoped_invoice(self, invoice_id: UUID, school_id: UUID) -> Invoice:
        invoice = await self.db.get(Invoice, invoice_id)
        if invoice is None or invoice.school_id != school_id:
            raise InvoiceNotFoundError()
        return invoice

    # ==========================================================================
    # Invoices
    # ==========================================================================

    async def list_invoices(
        self,
        caller: CallerIdentity,
        params: PageParams,
        school_id: UUID | None = None,
        status: InvoiceStatus | None = None,
        student_ref: str | None = None,
        search: str | None = None,
    ) -> tuple[list[Invoice], int]:
        """
        List invoices of one school, newest first.

        Returns:
            Tuple of (page of invoices, total matching)
        """
        school_id = resolve_school_id(caller, school_id, require_for_privileged=True)

        query = select(Invoice).where(Invoice.school_id == school_id)
        if status is not None:
            query = query.where(Invoice.status == status)
        if student_ref:
            query = query.where(Invoice.student_ref == student_ref)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(or_(
                Invoice.invoice_no.ilike(pattern),
                Invoice.notes.ilike(pattern),
            ))

        total = await self.db.scalar(
            select(func.count()).select_from(query.order_by(None).subquery())
        )
        result = await self.db.execute(
            query.order_by(Invoice.issue_date.desc(), Invoice.invoice_no)
            .limit(params.limit)
            .offset(params.offset)
        )
        return list(result.scalars().all()), total or 0

    async def create_invoice(self, caller: CallerIdentity, payload: InvoiceCreate) -> Invoice:
        """
        Issue a new invoice with nothing paid.

        Raises:
            ConflictError: Invoice number already used in this school
        """
        school_id = await self._scoped_school(caller, payload.school_id)

        async with atomic(self.db):
            invoice = Invoice(
                school_id=school_id,
                student_ref=payload.student_ref,
                invoice_no=payload.invoice_no or self._generate_code("INV"),
                issue_date=payload.issue_date or self.clock.now(),
                due_date=payload.due_date,
                amount_due=payload.amount_due,
                amount_paid=0,
                status=InvoiceStatus.ISSUED,
                notes=payload.notes,
            )
            self.db.add(invoice)
            await self.db.flush()

        await self.db.refresh(invoice)
        logger.info(
            "Invoice created",
            invoice_id=str(invoice.id),
            school_id=str(school_id),
            amount_due=invoice.amount_due,
        )
        return invoice

    async def get_invoice(
        self,
        caller: CallerIdentity,
        invoice_id: UUID,
        school_id: UUID | None = None,
    ) -> Invoice:
        school_id = resolve_school_id(caller, school_id, require_for_privileged=True)
        return await self._scoped_invoice(invoice_id, school_id)

    # ==========================================================================
    # Payments
    # ==========================================================================

    async def record_payment(
        self,
        caller: CallerIdentity,
        payload: PaymentCreate,
        ip_address: str | None = None,
    ) -> tuple[Payment, Invoice | None]:
        """
        Record a payment and apply it to its invoice.

        The payment row, the invoice's ``amount_paid``/``status`` update and
        the audit entry are committed together.

        Returns:
            Tuple of (payment, updated invoice or None)

        Raises:
            InvoiceNotFoundError: Invoice missing or in another school
            BadRequestError: Invoice has been cancelled
        """
        school_id = await self._scoped_school(caller, payload.school_id)

        invoice = None
        if payload.invoice_id is not None:
            invoice = await self._scoped_invoice(payload.invoice_id, school_id)
            if invoice.status == InvoiceStatus.CANCELLED:
                raise BadRequestError("Cannot record a payment against a cancelled invoice")

        async with atomic(self.db):
            payment = Payment(
                school_id=school_id,
                student_ref=payload.student_ref,
                invoice_id=invoice.id if invoice else None,
                receipt_no=payload.receipt_no or self._generate_code("REC"),
                amount=payload.amount,
                method=payload.method,
                transaction_ref=payload.transaction_ref,
                paid_at=payload.paid_at or self.clock.now(),
                collected_by_id=caller.user_id,
                notes=payload.notes,
            )
            self.db.add(payment)

            if invoice is not None:
                # Increment in SQL; the row read above may already be stale
                await self.db.execute(
                    update(Invoice)
                    .where(Invoice.id == invoice.id)
                    .where(Invoice.school_id == school_id)
                    .values(amount_paid=Invoice.amount_paid + payload.amount)
                    .execution_options(synchronize_session=False)
                )
                await self.db.refresh(invoice, attribute_names=["amount_paid", "status"])
                invoice.status = compute_invoice_status(invoice.amount_due, invoice.amount_paid)

            await self.db.flush()
            await self.audit.record(
                "PAYMENT_RECORDED",
                "Payment",
                payment.id,
                actor_id=caller.user_id,
                school_id=school_id,
                meta={
                    "amount": payload.amount,
                    "invoiceId": str(invoice.id) if invoice else None,
                },
                ip_address=ip_address,
            )

        logger.info(
            "Payment recorded",
            payment_id=str(payment.id),
            school_id=str(school_id),
            invoice_id=str(invoice.id) if invoice else None,
        )
        return payment, invoice
