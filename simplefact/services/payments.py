"""Payments registered against invoices."""

from datetime import date
from typing import Any, List, Optional

from simplefact.client.errors import build_error
from simplefact.core.logging import get_logger
from simplefact.exceptions import ErrorCode
from simplefact.models import (
    PAYMENT_METHODS,
    InvoicePaymentStats,
    InvoicePaymentSummary,
    Payment,
    PaymentData,
    PaymentList,
    PaymentMethod,
    PaymentMethodStats,
    PaymentResult,
)
from simplefact.services.base import BaseService, Payload

logger = get_logger(__name__)

MAX_PAYMENT_AMOUNT = 999999.99


class PaymentsService(BaseService):
    """Operations on ``/invoices/{id}/payments``.

    A 404 whose body names INVOICE_NOT_FOUND keeps that code, any other
    404 becomes PAYMENT_NOT_FOUND.
    """

    not_found_code = ErrorCode.PAYMENT_NOT_FOUND
    conflict_codes = frozenset({ErrorCode.PAYMENT_EXCEEDS_REMAINING})

    async def list_by_invoice(self, invoice_id: int) -> PaymentList:
        response = await self._execute(
            "GET",
            f"/invoices/{invoice_id}/payments",
            error_message=f"Failed to list payments for invoice {invoice_id}",
        )
        data = response.data
        if isinstance(data, dict) and "payments" in data:
            return self._parse(PaymentList, data)

        payments = self._many(response, Payment)
        return PaymentList(payments=payments, invoice=_summarize(invoice_id, payments))

    async def create(self, data: Payload) -> PaymentResult:
        """Register a payment.

        Raises:
            SimpleFactError: INVALID_AMOUNT for a non-positive or oversized
                amount, PAYMENT_EXCEEDS_REMAINING when the API rejects it
        """
        payload = self._coerce(PaymentData, data)
        _validate_payment(payload.amount, payload.payment_date)
        response = await self._execute(
            "POST",
            f"/invoices/{payload.invoice_id}/payments",
            self._dump(payload),
            error_message=f"Failed to create payment for invoice {payload.invoice_id}",
        )
        if response.data is None:
            raise build_error(ErrorCode.API_ERROR, "Failed to create payment - no data returned")
        if isinstance(response.data, dict) and "payment" in response.data:
            return self._parse(PaymentResult, response.data)

        payment = self._parse(Payment, response.data)
        logger.info(f"Registered payment {payment.id} of {payment.amount} on invoice {payment.invoice_id}")
        return PaymentResult(
            payment=payment,
            invoice=InvoicePaymentSummary(
                id=payment.invoice_id,
                invoice_number=f"INV-{payment.invoice_id}",
                total=payment.amount,
                total_paid=payment.amount,
                payment_status="paid",
            ),
        )

    async def update(self, invoice_id: int, payment_id: int, updates: Payload) -> bool:
        body = self._dump(updates)
        if not body:
            raise build_error(ErrorCode.MISSING_FIELD, "No data provided for update")
        if "amount" in body or "payment_date" in body:
            _validate_payment(body.get("amount"), body.get("payment_date"))
        await self._execute(
            "PUT",
            f"/invoices/{invoice_id}/payments",
            {"payment_id": payment_id, **body},
            error_message=f"Failed to update payment {payment_id}",
        )
        return True

    async def delete(self, invoice_id: int, payment_id: int) -> bool:
        await self._execute(
            "DELETE",
            f"/invoices/{invoice_id}/payments",
            params={"payment_id": payment_id},
            error_message=f"Failed to delete payment {payment_id}",
        )
        return True

    async def get_invoice_payment_stats(self, invoice_id: int) -> InvoicePaymentStats:
        """Totals, last payment date and per-method breakdown for an invoice."""
        payments = (await self.list_by_invoice(invoice_id)).payments
        stats = InvoicePaymentStats(payment_count=len(payments))
        by_method: dict[str, PaymentMethodStats] = {}
        for payment in payments:
            stats.total_paid += payment.amount
            if payment.payment_date and (
                stats.last_payment_date is None or payment.payment_date > stats.last_payment_date
            ):
                stats.last_payment_date = payment.payment_date
            method = payment.payment_method or "other"
            entry = by_method.setdefault(method, PaymentMethodStats(method=method))
            entry.count += 1
            entry.amount += payment.amount

        stats.payment_methods = list(by_method.values())
        return stats

    async def pay_in_full(
        self,
        invoice_id: int,
        payment_method: PaymentMethod = "bank_transfer",
        reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> PaymentResult:
        """Register a payment for the invoice's whole remaining amount.

        Raises:
            SimpleFactError: INVALID_AMOUNT when nothing remains to be paid
        """
        invoice = await self._client.invoices.get(invoice_id)
        if invoice.remaining_amount <= 0:
            raise build_error(ErrorCode.INVALID_AMOUNT, "Invoice is already fully paid")

        return await self.create(
            PaymentData(
                invoice_id=invoice_id,
                amount=invoice.remaining_amount,
                payment_date=date.today().isoformat(),
                payment_method=payment_method,
                reference=reference,
                notes=notes or "Full payment",
            )
        )

    async def get_used_payment_methods(self) -> List[str]:
        """Payment methods accepted by the API.

        There is no endpoint for this, so the known methods are returned.
        """
        return list(PAYMENT_METHODS)


def _summarize(invoice_id: int, payments: List[Payment]) -> InvoicePaymentSummary:
    """Approximate invoice summary for APIs that return a bare payment list."""
    return InvoicePaymentSummary(
        id=payments[0].invoice_id if payments else invoice_id,
        invoice_number=f"INV-{invoice_id}",
        total=sum(p.amount for p in payments),
        total_paid=sum(p.amount for p in payments if p.status == "completed"),
    )


def _validate_payment(amount: Any, payment_date: Any) -> None:
    if amount is not None:
        if amount <= 0:
            raise build_error(ErrorCode.INVALID_AMOUNT, "Payment amount must be greater than 0")
        if amount > MAX_PAYMENT_AMOUNT:
            raise build_error(ErrorCode.INVALID_AMOUNT, "Payment amount is too large")
    if payment_date:
        try:
            paid_on = date.fromisoformat(str(payment_date)[:10])
        except ValueError as e:
            raise build_error(ErrorCode.INVALID_ITEM, "Invalid payment date format") from e
        if paid_on > date.today():
            raise build_error(ErrorCode.INVALID_ITEM, "Payment date cannot be in the future")
