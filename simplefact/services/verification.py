"""Public invoice verification by QR hash.

These endpoints are public, so requests are sent without the
Authorization header.
"""

import re
from typing import Optional

from simplefact.client.errors import build_error
from simplefact.exceptions import ErrorCode
from simplefact.models import InvoiceVerification, VerificationData, VerificationResult
from simplefact.services.base import BaseService, Payload

HASH_FORMAT = re.compile(r"^[a-zA-Z0-9]{10,}$")

# Tried in order against a scanned QR payload
QR_HASH_PATTERNS = (
    re.compile(r"/verify/([a-zA-Z0-9]+)$"),
    re.compile(r"/api/v1/verify/([a-zA-Z0-9]+)$"),
    re.compile(r"hash=([a-zA-Z0-9]+)"),
    re.compile(r"verificar/([a-zA-Z0-9]+)$"),
)


class VerificationService(BaseService):
    """Operations on ``/verify/{hash}``."""

    not_found_code = ErrorCode.INVOICE_NOT_FOUND
    status_codes = {400: ErrorCode.INVALID_ITEM}

    async def verify_basic(self, hash_value: str) -> InvoiceVerification:
        _require_hash(hash_value)
        response = await self._execute(
            "GET",
            f"/verify/{hash_value.strip()}",
            authenticate=False,
            error_message="Failed to verify invoice",
        )
        return self._one(response, InvoiceVerification, "Invoice not found or verification failed")

    async def verify_detailed(
        self, hash_value: str, validation: Payload
    ) -> InvoiceVerification:
        """Verify and have the API compare the expected invoice fields."""
        _require_hash(hash_value)
        payload = self._coerce(VerificationData, validation)
        if payload.total is not None and payload.total < 0:
            raise build_error(ErrorCode.INVALID_AMOUNT, "Total amount cannot be negative")
        response = await self._execute(
            "POST",
            f"/verify/{hash_value.strip()}",
            self._dump(payload),
            authenticate=False,
            error_message="Failed to verify invoice with validation",
        )
        return self._one(response, InvoiceVerification, "Invoice not found or verification failed")

    async def verify_from_qr(
        self, qr_url: str, validation: Optional[Payload] = None
    ) -> InvoiceVerification:
        hash_value = self.extract_hash_from_qr(qr_url)
        if not hash_value:
            raise build_error(
                ErrorCode.INVALID_ITEM,
                "Invalid QR code URL - could not extract verification hash",
            )
        if validation is not None:
            return await self.verify_detailed(hash_value, validation)
        return await self.verify_basic(hash_value)

    def extract_hash_from_qr(self, qr_url: str) -> Optional[str]:
        """Pull the verification hash out of a QR payload.

        A bare alphanumeric string of at least 10 characters is taken as
        the hash itself.
        """
        if not qr_url:
            return None
        for pattern in QR_HASH_PATTERNS:
            match = pattern.search(qr_url)
            if match:
                return match.group(1)
        if self.is_valid_hash_format(qr_url):
            return qr_url
        return None

    def is_valid_hash_format(self, hash_value: str) -> bool:
        if not isinstance(hash_value, str):
            return False
        return bool(HASH_FORMAT.match(hash_value))

    def create_verification_url(self, base_url: str, hash_value: str) -> str:
        """Public URL where anyone can check an invoice."""
        if not self.is_valid_hash_format(hash_value):
            raise build_error(ErrorCode.INVALID_ITEM, "Invalid hash format")
        return f"{base_url.rstrip('/')}/verificar/{hash_value}"

    async def verify_and_validate(
        self,
        hash_value: str,
        expected_invoice_number: Optional[str] = None,
        expected_total: Optional[float] = None,
        expected_client_tax_id: Optional[str] = None,
        expected_date: Optional[str] = None,
    ) -> VerificationResult:
        verification = await self.verify_detailed(
            hash_value,
            VerificationData(
                invoice_number=expected_invoice_number,
                total=expected_total,
                client_tax_id=expected_client_tax_id,
                date=expected_date,
                include_items=True,
            ),
        )
        errors = list(verification.validation_errors)
        return VerificationResult(
            verification=verification,
            is_valid=verification.verified and not errors,
            validation_errors=errors,
        )


def _require_hash(hash_value: str) -> None:
    if not hash_value or not hash_value.strip():
        raise build_error(ErrorCode.MISSING_FIELD, "Verification hash is required")
