"""Client self-service portal.

Endpoints under ``/client`` act on behalf of the logged-in customer rather
than the account owner. Statistics are computed locally from the returned
documents.
"""

import asyncio
import math
from typing import Any, Literal, Optional

from simplefact.client.errors import build_error
from simplefact.exceptions import ErrorCode
from simplefact.models import (
    Budget,
    ClientProfile,
    ClientProfileUpdate,
    DashboardStatistics,
    DashboardSummary,
    Invoice,
    PasswordChangeData,
    PortalBudgets,
    PortalBudgetStatistics,
    PortalDocuments,
    PortalInvoices,
    PortalInvoiceStatistics,
    RecentBudgets,
)
from simplefact.services.base import BaseService, Payload

RECENT_BUDGETS = 5
MIN_PASSWORD_LENGTH = 8


class ClientPortalService(BaseService):
    """Operations on ``/client/...``.

    403 means portal access is not enabled for the customer and maps to
    INSUFFICIENT_PERMISSIONS.
    """

    not_found_code = ErrorCode.CLIENT_NOT_FOUND
    status_codes = {403: ErrorCode.INSUFFICIENT_PERMISSIONS}

    async def get_profile(self) -> ClientProfile:
        response = await self._execute(
            "GET", "/client/profile", error_message="Failed to get client profile"
        )
        return self._one(response, ClientProfile, "Client profile not found or access denied")

    async def update_profile(self, profile: Payload) -> bool:
        body = self._dump(self._coerce(ClientProfileUpdate, profile))
        if not body.get("name", "").strip():
            raise build_error(ErrorCode.MISSING_FIELD, "Name is required and cannot be empty")
        await self._execute(
            "PUT", "/client/profile", body, error_message="Failed to update client profile"
        )
        return True

    async def change_password(self, passwords: Payload) -> bool:
        """Change the portal password.

        Raises:
            SimpleFactError: VALIDATION_ERROR when the new password and its
                confirmation differ, is too short or equals the current one
        """
        data = self._coerce(PasswordChangeData, passwords)
        if not data.current_password:
            raise build_error(ErrorCode.MISSING_FIELD, "Current password is required")
        if not data.new_password:
            raise build_error(ErrorCode.MISSING_FIELD, "New password is required")
        if data.new_password != data.confirm_password:
            raise build_error(
                ErrorCode.VALIDATION_ERROR, "New password and confirmation do not match"
            )
        if len(data.new_password) < MIN_PASSWORD_LENGTH:
            raise build_error(
                ErrorCode.VALIDATION_ERROR,
                f"New password must be at least {MIN_PASSWORD_LENGTH} characters long",
            )
        if data.new_password == data.current_password:
            raise build_error(
                ErrorCode.VALIDATION_ERROR, "New password must be different from current password"
            )
        await self._execute(
            "POST",
            "/client/change-password",
            self._dump(data),
            error_message="Failed to change password",
        )
        return True

    async def get_invoices(self, **params: Any) -> PortalInvoices:
        """Customer invoices with counts by status and amount totals.

        Pending means sent or viewed.
        """
        response = await self._execute(
            "GET", "/client/invoices", params=params, error_message="Failed to get client invoices"
        )
        invoices = self._many(response, Invoice)
        total_amount = sum(inv.total for inv in invoices)
        return PortalInvoices(
            invoices=invoices,
            statistics=PortalInvoiceStatistics(
                total_invoices=len(invoices),
                total_paid=sum(1 for inv in invoices if inv.status == "paid"),
                total_pending=sum(1 for inv in invoices if inv.status in ("sent", "viewed")),
                total_overdue=sum(1 for inv in invoices if inv.status == "overdue"),
                total_amount=total_amount,
                average_amount=total_amount / len(invoices) if invoices else 0,
            ),
        )

    async def get_budgets(self, **params: Any) -> PortalBudgets:
        """Customer budgets with counts by status.

        ``recent`` covers the first five budgets of the page.
        """
        response = await self._execute(
            "GET", "/client/budgets", params=params, error_message="Failed to get client budgets"
        )
        budgets = self._many(response, Budget)
        recent = budgets[:RECENT_BUDGETS]

        def count(status: str) -> int:
            return sum(1 for b in budgets if b.status == status)

        return PortalBudgets(
            budgets=budgets,
            statistics=PortalBudgetStatistics(
                total_budgets=len(budgets),
                total_approved=count("approved"),
                total_pending=count("pending"),
                total_rejected=count("rejected"),
                total_converted=count("invoiced"),
                expired_budgets=count("expired"),
                recent=RecentBudgets(
                    count=len(recent),
                    total=sum(b.total or 0 for b in recent),
                ),
            ),
        )

    async def download_document(
        self, document_id: int, document_type: Literal["invoice", "budget"]
    ) -> bytes:
        """Download an invoice or budget PDF as raw bytes."""
        message = f"Failed to download {document_type} PDF"
        response = await self._guard(
            self._client.request(
                "GET",
                f"/client/documents/{document_id}/pdf",
                params={"type": document_type},
                headers={"Accept": "application/pdf"},
                context=message,
            ),
            message,
        )
        return response.content

    async def get_pending_invoices(self) -> list[Invoice]:
        return (await self.get_invoices(status="pending", limit=50)).invoices

    async def get_paid_invoices(self, limit: int = 20) -> list[Invoice]:
        return (await self.get_invoices(status="paid", limit=limit)).invoices

    async def get_overdue_invoices(self) -> list[Invoice]:
        return (await self.get_invoices(status="overdue", limit=50)).invoices

    async def get_recent_activity(self, limit: int = 10) -> PortalDocuments:
        """Latest invoices and budgets, half of ``limit`` each (rounded up)."""
        per_kind = math.ceil(limit / 2)
        recent = {"limit": per_kind, "sort_by": "created_at", "sort_direction": "desc"}
        invoices, budgets = await asyncio.gather(
            self.get_invoices(**recent),
            self.get_budgets(**recent),
        )
        return PortalDocuments(invoices=invoices.invoices, budgets=budgets.budgets)

    async def get_dashboard_summary(self) -> DashboardSummary:
        recent = {"limit": 5, "sort_by": "created_at", "sort_direction": "desc"}
        profile, invoices, budgets = await asyncio.gather(
            self.get_profile(),
            self.get_invoices(**recent),
            self.get_budgets(**recent),
        )
        return DashboardSummary(
            profile=profile,
            pending_invoices=[inv for inv in invoices.invoices if inv.status in ("sent", "viewed")],
            recent_budgets=budgets.budgets,
            statistics=DashboardStatistics(
                total_invoices=invoices.statistics.total_invoices,
                total_budgets=budgets.statistics.total_budgets,
                total_paid=invoices.statistics.total_paid,
                total_pending=invoices.statistics.total_pending,
            ),
        )

    async def search_documents(
        self,
        query: str,
        document_type: Optional[Literal["invoices", "budgets", "all"]] = None,
    ) -> PortalDocuments:
        params = {"search": query, "limit": 20}
        if document_type == "invoices":
            return PortalDocuments(invoices=(await self.get_invoices(**params)).invoices)
        if document_type == "budgets":
            return PortalDocuments(budgets=(await self.get_budgets(**params)).budgets)

        invoices, budgets = await asyncio.gather(
            self.get_invoices(**params),
            self.get_budgets(**params),
        )
        return PortalDocuments(invoices=invoices.invoices, budgets=budgets.budgets)
