"""
Ledger-specific exceptions for financial operations.

Ledger errors are invariant violations: they indicate a caller bug, are
logged with full context, and are never shown raw to end users
(``expose = False``).

Exception Hierarchy:
    LedgerError (base)
    ├── UnbalancedPosting - Legs do not net to zero or mix bookings/types
    ├── IdempotencyConflict - Key reused with different legs
    └── LedgerImmutableError - Attempt to mutate a SETTLED entry

Usage:
    from payments.ledger.exceptions import IdempotencyConflict, UnbalancedPosting

    try:
        ledger.post(legs, idempotency_key=key)
    except UnbalancedPosting:
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from typing import Any


class LedgerError(BaseApplicationError):
    """
    Base exception for all ledger operations.

    Example:
        try:
            ledger.post(legs, idempotency_key=key)
        except LedgerError as e:
            logger.error(f"Ledger operation failed: {e}")
            raise
    """

    default_error_code: str = "LEDGER_ERROR"
    http_status: int = 500
    expose: bool = False


class UnbalancedPosting(LedgerError):
    """
    Raised when a posting's legs are not a valid balanced group.

    Use for:
    - Debits and credits differ for some currency
    - Legs reference different bookings or transaction types
    - Fewer than two legs
    """

    default_error_code: str = "UNBALANCED_POSTING"


class IdempotencyConflict(LedgerError):
    """
    Raised when an idempotency key is reused with different legs.

    Attributes:
        idempotency_key: The reused key
        existing_posting_id: Posting already stored under the key

    Example:
        if existing.fingerprint != fingerprint:
            raise IdempotencyConflict(key, existing.id)
    """

    default_error_code: str = "IDEMPOTENCY_CONFLICT"

    def __init__(
        self,
        idempotency_key: str,
        existing_posting_id: Any,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize with the conflicting key and stored posting.

        Args:
            idempotency_key: Key supplied by the caller
            existing_posting_id: ID of the posting already recorded for it
            error_code: Optional custom error code
            details: Optional additional error context
        """
        self.idempotency_key = idempotency_key
        self.existing_posting_id = existing_posting_id

        full_details = {
            "idempotency_key": idempotency_key,
            "existing_posting_id": str(existing_posting_id),
        }
        if details:
            full_details.update(details)

        super().__init__(
            message=(
                f"Idempotency key {idempotency_key!r} was already used "
                f"for a posting with different legs"
            ),
            error_code=error_code,
            details=full_details,
        )


class LedgerImmutableError(LedgerError):
    """
    Raised when code tries to edit or delete a SETTLED ledger entry.

    Corrections are made with new REVERSED-linked entries via
    ``LedgerService.reverse``.
    """

    default_error_code: str = "LEDGER_ENTRY_IMMUTABLE"
