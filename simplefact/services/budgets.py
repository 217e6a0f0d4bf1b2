"""Budget (quote) management.

Budgets move through pending -> approved/rejected/expired, and an approved
budget can be converted into an invoice exactly once.
"""

from datetime import date, timedelta
from typing import Any, List, Optional

from simplefact.client.errors import build_error
from simplefact.core.logging import get_logger
from simplefact.exceptions import ErrorCode
from simplefact.models import (
    Budget,
    BudgetConversion,
    BudgetData,
    BudgetStatistics,
    BudgetStatus,
    LineItem,
)
from simplefact.services.base import BaseService, Payload

logger = get_logger(__name__)

# Validity given to duplicated budgets
DUPLICATE_VALIDITY_DAYS = 30


class BudgetsService(BaseService):
    """Operations on ``/budgets``."""

    not_found_code = ErrorCode.BUDGET_NOT_FOUND
    conflict_codes = frozenset({ErrorCode.BUDGET_ALREADY_INVOICED})

    async def list(
        self,
        *,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        search: Optional[str] = None,
        status: Optional[BudgetStatus] = None,
        client_id: Optional[int] = None,
        expired_only: Optional[bool] = None,
        **filters: Any,
    ) -> List[Budget]:
        params = {
            "page": page,
            "limit": limit,
            "search": search,
            "status": status,
            "client_id": client_id,
            "expired_only": expired_only,
            **filters,
        }
        response = await self._execute(
            "GET", "/budgets", params=params, error_message="Failed to list budgets"
        )
        return self._many(response, Budget)

    async def get(self, budget_id: int) -> Budget:
        response = await self._execute(
            "GET", f"/budgets/{budget_id}", error_message=f"Failed to get budget {budget_id}"
        )
        return self._one(response, Budget, f"Budget with ID {budget_id} not found")

    async def create(self, data: Payload) -> Budget:
        """Create a budget.

        Raises:
            SimpleFactError: NO_ITEMS without line items, INVALID_CLIENT_ID
                for a non-positive client id
        """
        payload = self._coerce(BudgetData, data)
        _validate_budget(payload)
        response = await self._execute(
            "POST", "/budgets", self._dump(payload), error_message="Failed to create budget"
        )
        return self._one(response, Budget, "Failed to create budget - no data returned")

    async def update(self, budget_id: int, updates: Payload) -> Budget:
        body = self._dump(updates)
        if not body:
            raise build_error(ErrorCode.MISSING_FIELD, "No data provided for update")
        response = await self._execute(
            "PUT",
            f"/budgets/{budget_id}",
            body,
            error_message=f"Failed to update budget {budget_id}",
        )
        return self._one(response, Budget, f"Budget with ID {budget_id} not found")

    async def delete(self, budget_id: int) -> bool:
        await self._execute(
            "DELETE", f"/budgets/{budget_id}", error_message=f"Failed to delete budget {budget_id}"
        )
        return True

    async def approve(self, budget_id: int) -> Budget:
        return await self.update(budget_id, {"status": "approved"})

    async def reject(self, budget_id: int) -> Budget:
        return await self.update(budget_id, {"status": "rejected"})

    async def convert_to_invoice(self, budget_id: int) -> BudgetConversion:
        """Turn a budget into an invoice.

        Raises:
            SimpleFactError: BUDGET_ALREADY_INVOICED if it was converted before
        """
        response = await self._execute(
            "POST",
            f"/budgets/{budget_id}/convert",
            error_message=f"Failed to convert budget {budget_id} to invoice",
        )
        if response.data is None:
            raise build_error(ErrorCode.API_ERROR, "Failed to convert budget to invoice")
        conversion = self._parse(BudgetConversion, response.data)
        logger.info(f"Budget {budget_id} converted to invoice {conversion.invoice_number}")
        return conversion

    async def search(self, query: str, limit: int = 10) -> List[Budget]:
        return await self.list(search=query, limit=min(limit, 100))

    async def get_by_status(self, status: BudgetStatus, limit: int = 50) -> List[Budget]:
        return await self.list(status=status, limit=limit)

    async def get_pending(self, limit: int = 50) -> List[Budget]:
        return await self.get_by_status("pending", limit)

    async def get_approved(self, limit: int = 50) -> List[Budget]:
        return await self.get_by_status("approved", limit)

    async def get_expired(self, limit: int = 50) -> List[Budget]:
        return await self.list(expired_only=True, limit=limit)

    async def get_by_client(self, client_id: int, limit: int = 50) -> List[Budget]:
        return await self.list(client_id=client_id, limit=limit)

    async def get_by_date_range(
        self, date_from: str, date_to: str, limit: int = 50
    ) -> List[Budget]:
        return await self.list(start_date=date_from, end_date=date_to, limit=limit)

    async def get_statistics(self) -> BudgetStatistics:
        """Aggregate counts and amounts over up to 1000 budgets.

        conversion_rate is the percentage of converted budgets relative to
        approved ones, 0 when nothing is approved.
        """
        budgets = await self.list(limit=1000)
        stats = BudgetStatistics(total=len(budgets))
        for budget in budgets:
            amount = budget.total or 0
            stats.total_amount += amount
            if budget.status == "pending":
                stats.pending += 1
                stats.pending_amount += amount
            elif budget.status == "approved":
                stats.approved += 1
                stats.approved_amount += amount
            elif budget.status == "rejected":
                stats.rejected += 1
            elif budget.status == "invoiced":
                stats.converted += 1
            elif budget.status == "expired":
                stats.expired += 1

        if stats.approved > 0:
            stats.conversion_rate = stats.converted / stats.approved * 100
        return stats

    async def duplicate(self, budget_id: int, new_client_id: Optional[int] = None) -> Budget:
        """Copy a budget's lines into a new budget issued today."""
        original = await self.get(budget_id)
        today = date.today()
        note = f"Duplicated from budget {original.budget_number}"
        if original.notes:
            note = f"{note}. {original.notes}"

        client_id = new_client_id or (original.client.id if original.client else original.client_id)
        data = BudgetData(
            client_id=client_id or 0,
            issue_date=today.isoformat(),
            expiry_date=(today + timedelta(days=DUPLICATE_VALIDITY_DAYS)).isoformat(),
            notes=note,
            items=[
                LineItem(
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    tax_rate=item.tax_rate,
                )
                for item in original.items
            ],
        )
        return await self.create(data)


def _validate_budget(data: BudgetData) -> None:
    if data.client_id <= 0:
        raise build_error(ErrorCode.INVALID_CLIENT_ID, "Valid client ID is required")
    if not data.items:
        raise build_error(ErrorCode.NO_ITEMS, "At least one item is required")
    try:
        issue = date.fromisoformat(data.issue_date[:10])
        expiry = date.fromisoformat(data.expiry_date[:10])
    except ValueError as e:
        raise build_error(ErrorCode.INVALID_ITEM, f"Invalid budget date: {e}") from e
    if expiry <= issue:
        raise build_error(ErrorCode.INVALID_ITEM, "Expiry date must be after the issue date")
