# Overview: Service-layer operations for returns; swaps a returned unit for a replacement in one commit.

"""
Return / Replacement

A customer hands back unit A and receives unit B in its place.

RULES:
- A must be out of stock against an order (Reserved, Invoiced or Delivered).
- B must be Active. A and B must differ.
- Dealer, client, location, warranty and order are inherited from A's
  latest outbound transaction; the dealer argument is only a fallback for
  items with no outbound history.

EFFECT (single commit):
- Stock_Out/Returned transaction for A, A -> Returned
- Stock_Out/Reserved transaction for B, B -> Reserved
- both entry numbers appended to A's order when it exists
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..models import (
    Order,
    ItemStatus,
    TransactionType,
    POST_RESERVATION_STATUSES,
    normalize_serial,
)
from stockledger.time_utils import utcnow
from .concurrency import run_with_retry, lock_for_update, ensure_batch_size
from .sequence_service import allocate_entry_numbers
from .transaction_service import (
    record_transaction,
    latest_outbound_transaction,
    normalize_client,
    resolve_warranty,
)
from . import ledger_service


def _order_for(outbound) -> Order | None:
    if outbound is None:
        return None
    q = db.session.query(Order)
    if outbound.order_id is not None:
        q = q.filter(Order.id == outbound.order_id)
    elif outbound.order_number:
        q = q.filter(Order.order_number == outbound.order_number)
    else:
        return None
    return lock_for_update(q).first()


def process_return(
    *,
    returned_serial: str,
    replacement_serial: str,
    dealer: str | None = None,
    remarks: str | None = None,
    actor_uid: str | None = None,
    occurred_at: datetime | str | None = None,
) -> dict:
    """
    Record a return with replacement.

    Raises:
        ValidationError: blank or identical serials, no dealer to use
        NotFoundError: either serial is unknown
        InvalidStateError: A is not out against an order, or B is not Active
    """
    returned = normalize_serial(returned_serial)
    replacement = normalize_serial(replacement_serial)
    if not returned or not replacement:
        raise ValidationError("returned_serial and replacement_serial are required")
    if returned == replacement:
        raise ValidationError("Returned and replacement serial numbers must differ")
    when = ledger_service.parse_occurred_at(occurred_at)

    # two items, two transactions, the order, the entry counter
    ensure_batch_size(6)

    def _op() -> dict:
        items = ledger_service.get_items([returned, replacement], for_update=True)
        missing = [s for s in (returned, replacement) if s not in items]
        if missing:
            raise NotFoundError(f"Items not found: {', '.join(missing)}")

        returned_item = items[returned]
        replacement_item = items[replacement]
        if returned_item.status not in POST_RESERVATION_STATUSES:
            raise InvalidStateError(
                f"Item {returned} cannot be returned from status {returned_item.status}"
            )
        if replacement_item.status != ItemStatus.ACTIVE.value:
            raise InvalidStateError(
                f"Replacement item {replacement} is not available (status {replacement_item.status})"
            )

        outbound = latest_outbound_transaction(returned)
        if outbound is not None:
            dealer_name = outbound.dealer
            client_name = normalize_client(outbound.client)
            location = outbound.location
            warranty_type = outbound.warranty_type
            warranty_years = outbound.warranty_period_years
        else:
            dealer_name = (dealer or "").strip()
            client_name = normalize_client(None)
            location = None
            warranty_type, warranty_years = resolve_warranty(None)
        if not dealer_name:
            raise ValidationError("dealer is required when the returned item has no order history")

        order = _order_for(outbound)
        order_id = order.id if order is not None else None
        order_number = order.order_number if order is not None else (
            outbound.order_number if outbound is not None else None
        )

        returned_entry, replacement_entry = allocate_entry_numbers(2)

        returned_tx = record_transaction(
            entry_number=returned_entry,
            serial_number=returned,
            tx_type=TransactionType.STOCK_OUT.value,
            status=ItemStatus.RETURNED.value,
            occurred_at=when,
            equipment_category=returned_item.equipment_category,
            model=returned_item.model,
            size=returned_item.size,
            location=location,
            warranty_type=warranty_type,
            warranty_period_years=warranty_years,
            order_id=order_id,
            order_number=order_number,
            dealer=dealer_name,
            client=client_name,
            remarks=remarks,
            source="return",
            actor_uid=actor_uid,
        )
        replacement_tx = record_transaction(
            entry_number=replacement_entry,
            serial_number=replacement,
            tx_type=TransactionType.STOCK_OUT.value,
            status=ItemStatus.RESERVED.value,
            occurred_at=when,
            equipment_category=replacement_item.equipment_category,
            model=replacement_item.model,
            size=replacement_item.size,
            location=location,
            warranty_type=warranty_type,
            warranty_period_years=warranty_years,
            order_id=order_id,
            order_number=order_number,
            dealer=dealer_name,
            client=client_name,
            remarks=f"Replacement for {returned}" + (f": {remarks}" if remarks else ""),
            source="return",
            actor_uid=actor_uid,
        )

        returned_item.status = ItemStatus.RETURNED.value
        replacement_item.status = ItemStatus.RESERVED.value

        if order is not None:
            order.transaction_ids = list(order.transaction_ids or []) + [returned_entry, replacement_entry]
            order.updated_at = utcnow()

        db.session.commit()
        return {
            "returned_transaction": returned_tx.to_dict(),
            "replacement_transaction": replacement_tx.to_dict(),
            "order_number": order_number,
            "order_updated": order is not None,
        }

    result = run_with_retry(_op)
    current_app.logger.info(
        "Return recorded: %s replaced by %s (order %s)", returned, replacement, result["order_number"]
    )
    return result
