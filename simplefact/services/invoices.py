"""Invoice management, including PDF and XML downloads."""

from typing import Any, List, Literal, Optional

from simplefact.client.errors import build_error
from simplefact.exceptions import ErrorCode
from simplefact.models import (
    ApiResponse,
    Invoice,
    InvoiceData,
    InvoiceStatistics,
    InvoiceStatus,
    PaymentStatus,
)
from simplefact.services.base import BaseService, Payload


class InvoicesService(BaseService):
    """Operations on ``/invoices``."""

    not_found_code = ErrorCode.INVOICE_NOT_FOUND

    async def list(
        self,
        *,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        search: Optional[str] = None,
        status: Optional[InvoiceStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        client_id: Optional[int] = None,
        **filters: Any,
    ) -> ApiResponse:
        """List invoices.

        Returns the envelope with ``data`` parsed into Invoice models and
        pagination metadata in ``meta``.
        """
        params = {
            "page": page,
            "limit": limit,
            "search": search,
            "status": status,
            "payment_status": payment_status,
            "client_id": client_id,
            **filters,
        }
        response = await self._execute(
            "GET", "/invoices", params=params, error_message="Failed to list invoices"
        )
        return response.model_copy(update={"data": self._many(response, Invoice)})

    async def get(self, invoice_id: int) -> Invoice:
        response = await self._execute(
            "GET", f"/invoices/{invoice_id}", error_message=f"Failed to get invoice {invoice_id}"
        )
        return self._one(response, Invoice, f"Invoice with ID {invoice_id} not found")

    async def create(self, data: Payload) -> Invoice:
        payload = self._coerce(InvoiceData, data)
        if payload.client_id <= 0:
            raise build_error(ErrorCode.INVALID_CLIENT_ID, "Valid client ID is required")
        if not payload.items:
            raise build_error(ErrorCode.NO_ITEMS, "At least one item is required")
        response = await self._execute(
            "POST", "/invoices", self._dump(payload), error_message="Failed to create invoice"
        )
        return self._one(response, Invoice, "Failed to create invoice - no data returned")

    async def update(self, invoice_id: int, updates: Payload) -> Invoice:
        body = self._dump(updates)
        if not body:
            raise build_error(ErrorCode.MISSING_FIELD, "No data provided for update")
        response = await self._execute(
            "PUT",
            f"/invoices/{invoice_id}",
            body,
            error_message=f"Failed to update invoice {invoice_id}",
        )
        return self._one(response, Invoice, f"Invoice with ID {invoice_id} not found")

    async def delete(self, invoice_id: int) -> bool:
        await self._execute(
            "DELETE",
            f"/invoices/{invoice_id}",
            error_message=f"Failed to delete invoice {invoice_id}",
        )
        return True

    async def update_status(
        self,
        invoice_id: int,
        status: InvoiceStatus,
        notes: Optional[str] = None,
    ) -> Invoice:
        response = await self._execute(
            "PUT",
            f"/invoices/{invoice_id}/status",
            self._dump({"status": status, "notes": notes}),
            error_message=f"Failed to update status of invoice {invoice_id}",
        )
        return self._one(response, Invoice, f"Invoice with ID {invoice_id} not found")

    async def download_pdf(self, invoice_id: int, **options: Any) -> bytes:
        """Download the invoice PDF as raw bytes."""
        return await self._download(invoice_id, "pdf", options)

    async def download_xml(self, invoice_id: int, **options: Any) -> bytes:
        """Download the electronic invoice XML as raw bytes."""
        return await self._download(invoice_id, "xml", options)

    async def _download(
        self,
        invoice_id: int,
        kind: Literal["pdf", "xml"],
        options: dict[str, Any],
    ) -> bytes:
        message = f"Failed to download {kind.upper()} for invoice {invoice_id}"
        response = await self._guard(
            self._client.request(
                "GET",
                f"/invoices/{invoice_id}/{kind}",
                params=options,
                headers={"Accept": "application/pdf" if kind == "pdf" else "application/xml"},
                context=message,
            ),
            message,
        )
        return response.content

    async def get_by_status(self, status: InvoiceStatus, limit: int = 50) -> List[Invoice]:
        return (await self.list(status=status, limit=limit)).data

    async def get_overdue(self, limit: int = 50) -> List[Invoice]:
        return await self.get_by_status("overdue", limit)

    async def get_paid(self, limit: int = 50) -> List[Invoice]:
        return (await self.list(payment_status="paid", limit=limit)).data

    async def get_pending(self, limit: int = 50) -> List[Invoice]:
        return (await self.list(payment_status="pending", limit=limit)).data

    async def get_by_date_range(
        self, date_from: str, date_to: str, limit: int = 100
    ) -> List[Invoice]:
        return (await self.list(start_date=date_from, end_date=date_to, limit=limit)).data

    async def get_by_client(self, client_id: int, limit: int = 50) -> List[Invoice]:
        return (await self.list(client_id=client_id, limit=limit)).data

    async def search(self, query: str, limit: int = 20) -> List[Invoice]:
        """Search by invoice number or client name."""
        return (await self.list(search=query, limit=limit)).data

    async def get_statistics(self) -> InvoiceStatistics:
        """Aggregate amounts over up to 1000 invoices.

        Pending and overdue amounts use the unpaid remainder, paid uses the
        invoice total.
        """
        invoices = (await self.list(limit=1000)).data
        stats = InvoiceStatistics(total_invoices=len(invoices))
        for invoice in invoices:
            stats.total_amount += invoice.total
            if invoice.status == "paid":
                stats.paid_amount += invoice.total
            elif invoice.status in ("sent", "viewed"):
                stats.pending_amount += invoice.remaining_amount
            elif invoice.status == "overdue":
                stats.overdue_amount += invoice.remaining_amount

        if invoices:
            stats.average_amount = stats.total_amount / len(invoices)
        return stats
