"""Resource services attached to SimpleFactClient."""

from simplefact.services.base import BaseService
from simplefact.services.budgets import BudgetsService
from simplefact.services.clients import ClientsService
from simplefact.services.invoices import InvoicesService
from simplefact.services.payments import PaymentsService
from simplefact.services.portal import ClientPortalService
from simplefact.services.verification import VerificationService

__all__ = [
    "BaseService",
    "BudgetsService",
    "ClientPortalService",
    "ClientsService",
    "InvoicesService",
    "PaymentsService",
    "VerificationService",
]
