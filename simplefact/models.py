"""Pydantic models for SimpleFact API payloads.

Models accept unknown fields so that additions on the API side do not break
parsing.
"""

from typing import Any, Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

ClientStatus = Literal["active", "inactive", "suspended"]
BudgetStatus = Literal["pending", "approved", "rejected", "expired", "invoiced"]
InvoiceStatus = Literal["draft", "sent", "viewed", "paid", "overdue", "cancelled"]
PaymentStatus = Literal["pending", "partial", "paid", "overdue"]
PaymentMethod = Literal["bank_transfer", "cash", "credit_card", "check", "other"]

PAYMENT_METHODS: tuple[str, ...] = ("bank_transfer", "cash", "credit_card", "check", "other")


class ApiModel(BaseModel):
    """Base for API payload models."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class PaginationMeta(ApiModel):
    """Pagination metadata returned with list responses."""

    page: int = 1
    per_page: int = 0
    total: int = 0
    total_pages: int = 0
    has_next: bool = False
    has_prev: bool = False


class ApiResponse(ApiModel, Generic[T]):
    """Response envelope returned by SimpleFactClient.execute."""

    success: bool = True
    data: Optional[T] = None
    error: Any = None
    code: Optional[str] = None
    meta: Optional[PaginationMeta] = None
    details: Any = None


class HealthCheckResult(ApiModel):
    """API health check result."""

    status: Literal["healthy", "unhealthy"]
    timestamp: str
    services: Optional[dict[str, bool]] = None


# Clients

class Address(ApiModel):
    street: str
    city: str
    region: Optional[str] = None
    postal_code: Optional[str] = None
    country: str


class Client(ApiModel):
    """A customer of the account."""

    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    tax_id: Optional[str] = None
    status: Optional[ClientStatus] = None
    billing_address: Optional[Address] = None
    contact_person: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ClientData(ApiModel):
    """Fields accepted when creating a client."""

    name: str
    email: str
    address: str
    city: str
    country: str
    phone: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None
    tax_id: Optional[str] = None
    contact_person: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None


class ClientWebAccessData(ApiModel):
    enabled: bool
    password: Optional[str] = None
    send_credentials: bool = False


# Budgets

class LineItem(ApiModel):
    """A budget or invoice line."""

    id: Optional[int] = None
    description: str
    quantity: float
    unit_price: float
    tax_rate: float = 0
    total: Optional[float] = None


class Budget(ApiModel):
    """A quote that can be approved and converted into an invoice."""

    id: int
    budget_number: Optional[str] = None
    client_id: Optional[int] = None
    client: Optional[Client] = None
    issue_date: Optional[str] = None
    expiry_date: Optional[str] = None
    status: Optional[BudgetStatus] = None
    total: Optional[float] = None
    tax_amount: Optional[float] = None
    items: list[LineItem] = Field(default_factory=list)
    notes: Optional[str] = None
    pdf_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class BudgetData(ApiModel):
    """Fields accepted when creating a budget."""

    client_id: int
    issue_date: str
    expiry_date: str
    items: list[LineItem]
    notes: Optional[str] = None


class BudgetConversion(ApiModel):
    invoice_id: int
    invoice_number: str


class BudgetStatistics(ApiModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    expired: int = 0
    converted: int = 0
    total_amount: float = 0
    pending_amount: float = 0
    approved_amount: float = 0
    conversion_rate: float = 0


# Invoices

class Invoice(ApiModel):
    """An issued invoice."""

    id: int
    invoice_number: Optional[str] = None
    client_id: Optional[int] = None
    client: Optional[Client] = None
    budget_id: Optional[int] = None
    issue_date: Optional[str] = None
    due_date: Optional[str] = None
    status: Optional[InvoiceStatus] = None
    total: float = 0
    tax_amount: float = 0
    paid_amount: float = 0
    remaining_amount: float = 0
    items: list[LineItem] = Field(default_factory=list)
    notes: Optional[str] = None
    payment_terms: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    pdf_url: Optional[str] = None
    xml_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class InvoiceData(ApiModel):
    """Fields accepted when creating an invoice."""

    client_id: int
    issue_date: str
    due_date: str
    items: list[LineItem]
    budget_id: Optional[int] = None
    notes: Optional[str] = None
    payment_terms: Optional[str] = None


class InvoiceStatistics(ApiModel):
    total_invoices: int = 0
    total_amount: float = 0
    paid_amount: float = 0
    pending_amount: float = 0
    overdue_amount: float = 0
    average_amount: float = 0


# Payments

class Payment(ApiModel):
    """A payment registered against an invoice."""

    id: int
    invoice_id: int
    amount: float
    payment_date: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[Literal["pending", "completed", "failed"]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PaymentData(ApiModel):
    """Fields accepted when registering a payment."""

    invoice_id: int
    amount: float
    payment_date: str
    payment_method: PaymentMethod
    reference: Optional[str] = None
    notes: Optional[str] = None


class InvoicePaymentSummary(ApiModel):
    id: int
    invoice_number: str
    total: float = 0
    total_paid: float = 0
    remaining_amount: float = 0
    payment_status: str = "pending"


class PaymentList(ApiModel):
    payments: list[Payment] = Field(default_factory=list)
    invoice: InvoicePaymentSummary


class PaymentResult(ApiModel):
    payment: Payment
    invoice: InvoicePaymentSummary


class PaymentMethodStats(ApiModel):
    method: str
    count: int = 0
    amount: float = 0


class InvoicePaymentStats(ApiModel):
    total_paid: float = 0
    payment_count: int = 0
    last_payment_date: Optional[str] = None
    payment_methods: list[PaymentMethodStats] = Field(default_factory=list)


# Verification

class InvoiceVerification(ApiModel):
    """Public verification record for an invoice."""

    verified: bool = False
    invoice_number: Optional[str] = None
    total: Optional[float] = None
    date: Optional[str] = None
    client_tax_id: Optional[str] = None
    verification_code: Optional[str] = None
    public_url: Optional[str] = None
    verified_at: Optional[str] = None
    validation_errors: list[str] = Field(default_factory=list)


class VerificationData(ApiModel):
    """Expected values checked by a detailed verification."""

    invoice_number: Optional[str] = None
    total: Optional[float] = None
    client_tax_id: Optional[str] = None
    date: Optional[str] = None
    include_items: bool = False


class VerificationResult(ApiModel):
    verification: InvoiceVerification
    is_valid: bool
    validation_errors: list[str] = Field(default_factory=list)


# Client portal

class ClientProfile(ApiModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    tax_id: Optional[str] = None


class ClientProfileUpdate(ApiModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class PasswordChangeData(ApiModel):
    current_password: str
    new_password: str
    confirm_password: str


class PortalInvoiceStatistics(ApiModel):
    total_invoices: int = 0
    total_paid: int = 0
    total_pending: int = 0
    total_overdue: int = 0
    total_amount: float = 0
    average_amount: float = 0


class PortalInvoices(ApiModel):
    invoices: list[Invoice] = Field(default_factory=list)
    statistics: PortalInvoiceStatistics = Field(default_factory=PortalInvoiceStatistics)


class RecentBudgets(ApiModel):
    count: int = 0
    total: float = 0


class PortalBudgetStatistics(ApiModel):
    total_budgets: int = 0
    total_approved: int = 0
    total_pending: int = 0
    total_rejected: int = 0
    total_converted: int = 0
    expired_budgets: int = 0
    recent: RecentBudgets = Field(default_factory=RecentBudgets)


class PortalBudgets(ApiModel):
    budgets: list[Budget] = Field(default_factory=list)
    statistics: PortalBudgetStatistics = Field(default_factory=PortalBudgetStatistics)


class PortalDocuments(ApiModel):
    invoices: list[Invoice] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)


class DashboardStatistics(ApiModel):
    total_invoices: int = 0
    total_budgets: int = 0
    total_paid: int = 0
    total_pending: int = 0


class DashboardSummary(ApiModel):
    profile: ClientProfile
    pending_invoices: list[Invoice] = Field(default_factory=list)
    recent_budgets: list[Budget] = Field(default_factory=list)
    statistics: DashboardStatistics = Field(default_factory=DashboardStatistics)
