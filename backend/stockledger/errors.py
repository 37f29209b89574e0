# Overview: Error taxonomy shared by services, routes and CLI commands.

"""
Stock Ledger error taxonomy.

Two families:
- BusinessRuleError: the request was rejected for a named business reason.
  Detected before any write; nothing was mutated. The caller must correct
  the request, retrying it unchanged will fail the same way.
- StoreUnavailableError: the database could not complete the operation.
  Writes are all-or-nothing, so the caller may re-run the read-then-decide
  step to learn whether the batch landed. Never blindly re-issue the write.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


class InventoryError(Exception):
    """Base class for every error raised by the stock ledger."""

    code = "inventory_error"
    http_status = 500


class BusinessRuleError(InventoryError):
    """Rejected for a named business reason (no partial mutation)."""

    code = "business_rule"
    http_status = 400


class ValidationError(BusinessRuleError):
    """400-level input problem."""

    code = "validation_error"
    http_status = 400


class NotFoundError(BusinessRuleError):
    """Unknown serial number, order number or entry number."""

    code = "not_found"
    http_status = 404


class DuplicateSerialError(BusinessRuleError):
    """Stock-in of a serial number that already exists."""

    code = "duplicate_serial"
    http_status = 409

    def __init__(self, serial_number: str):
        super().__init__(f"Item with serial number {serial_number} already exists in inventory.")
        self.serial_number = serial_number


class DuplicateOrderError(BusinessRuleError):
    code = "duplicate_order"
    http_status = 409

    def __init__(self, order_number: str):
        super().__init__(f"Order number {order_number} already exists.")
        self.order_number = order_number


class ItemUnavailableError(BusinessRuleError):
    """One or more items are not in the status required for reservation."""

    code = "item_unavailable"
    http_status = 409

    def __init__(self, serial_numbers: list[str]):
        self.serial_numbers = list(serial_numbers)
        joined = ", ".join(self.serial_numbers)
        super().__init__(f"Items not active or available: {joined}")


class InvalidStateError(BusinessRuleError):
    """A state machine precondition was violated."""

    code = "invalid_state"
    http_status = 409


class ImmutableRecordError(BusinessRuleError):
    """Attempt to update or delete an append-only record."""

    code = "immutable_record"
    http_status = 409


class StoreUnavailableError(InventoryError):
    """Transient infrastructure failure (locks, timeouts, lost connections)."""

    code = "store_unavailable"
    http_status = 503


class ReportCancelledError(InventoryError):
    """A long scan was abandoned because the caller lost interest."""

    code = "report_cancelled"
    http_status = 499


@dataclass(frozen=True)
class OperationOutcome:
    """
    Structured result of a mutating operation.

    ok=False with retryable=False: rejected for a business reason.
    ok=False with retryable=True: infrastructure fault, outcome unknown.
    """

    ok: bool
    value: Any = None
    error_code: str | None = None
    message: str | None = None
    retryable: bool = False

    @classmethod
    def success(cls, value: Any = None) -> "OperationOutcome":
        return cls(ok=True, value=value)

    @classmethod
    def rejected(cls, exc: BusinessRuleError) -> "OperationOutcome":
        return cls(ok=False, error_code=exc.code, message=str(exc), retryable=False)

    @classmethod
    def fault(cls, exc: StoreUnavailableError) -> "OperationOutcome":
        return cls(ok=False, error_code=exc.code, message=str(exc), retryable=True)

    @classmethod
    def capture(cls, func: Callable[..., Any], *args, **kwargs) -> "OperationOutcome":
        """Run func and fold the ledger's error families into an outcome."""
        try:
            return cls.success(func(*args, **kwargs))
        except BusinessRuleError as exc:
            return cls.rejected(exc)
        except StoreUnavailableError as exc:
            return cls.fault(exc)

    def to_dict(self) -> dict:
        if self.ok:
            return {"success": True}
        return {
            "success": False,
            "error": self.message,
            "code": self.error_code,
            "retryable": self.retryable,
        }
