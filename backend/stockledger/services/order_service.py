# Overview: Service-layer operations for orders; encapsulates the invoice and delivery workflows and their documents.

"""
Order Workflow

DUAL STATUS:
- invoice_status:  Reserved -> Invoiced (remove_invoice reverts to Reserved)
- delivery_status: Pending -> Issued -> Delivered (remove_delivery_data
  reverts to Pending)
- The axes are independent: no operation on one axis writes the other.

DELIVERY:
- A delivery order can only be issued for an Invoiced order.
- Attaching the signed delivery order appends a Delivered transaction for
  every order item still Reserved/Invoiced and marks the items Delivered,
  in the same commit as the order update.

DOCUMENTS:
- Blobs are uploaded before the commit. If the commit fails, the new blob
  is removed again.
- Replaced or removed blobs are deleted after the commit. A failed delete
  is logged; the committed state stands.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..errors import (
    DuplicateOrderError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..models import (
    Order,
    InvoiceStatus,
    DeliveryStatus,
    ItemStatus,
    TransactionType,
)
from stockledger.time_utils import utcnow, parse_iso_datetime, to_utc_z
from .concurrency import run_with_retry, lock_for_update, ensure_batch_size
from .file_store import FileStore, StoredFile, get_file_store
from .sequence_service import allocate_entry_numbers
from .transaction_service import (
    record_transaction,
    get_transactions_by_entry_numbers,
    validate_location,
    normalize_client,
)
from . import ledger_service


DELIVERABLE_STATUSES = (ItemStatus.RESERVED.value, ItemStatus.INVOICED.value)


def _normalize_order_number(order_number: str | None) -> str:
    value = (order_number or "").strip()
    if not value:
        raise ValidationError("order_number is required")
    return value


def _parse_optional_datetime(value, field: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field} format")


def _require_document(data: bytes | None, filename: str | None) -> str:
    if not data:
        raise ValidationError("File content is required")
    name = (filename or "").strip()
    if not name:
        raise ValidationError("filename is required")
    return name


def _discard_blob(store: FileStore, path: str | None) -> None:
    if not path:
        return
    try:
        store.delete(path)
    except Exception:
        current_app.logger.exception("Failed to delete stored file %s", path)


def _load_order(order_number: str, *, for_update: bool = False) -> Order:
    q = db.session.query(Order).filter(Order.order_number == order_number)
    if for_update:
        q = lock_for_update(q)
    order = q.first()
    if order is None:
        raise NotFoundError(f"Order {order_number} not found")
    return order


def _with_uploaded_blob(store: FileStore, stored: StoredFile, func):
    """Run a unit of work that references `stored`; drop the blob if it fails."""
    try:
        return run_with_retry(func)
    except Exception:
        _discard_blob(store, stored.path)
        raise


# =============================================================================
# READS
# =============================================================================

def find_order(order_number: str) -> Order | None:
    number = (order_number or "").strip()
    if not number:
        return None
    return db.session.query(Order).filter_by(order_number=number).first()


def get_order(order_number: str) -> Order:
    return _load_order(_normalize_order_number(order_number))


def order_exists(order_number: str) -> bool:
    return find_order(order_number) is not None


def get_order_items(order: Order) -> list[dict]:
    """Order lines resolved from the transaction log and the ledger."""
    transactions = get_transactions_by_entry_numbers(order.transaction_ids or [])
    items = ledger_service.get_items(tx.serial_number for tx in transactions)

    rows = []
    for tx in transactions:
        item = items.get(tx.serial_number)
        rows.append({
            "entry_number": tx.entry_number,
            "serial_number": tx.serial_number,
            "transaction_status": tx.status,
            "item_status": item.status if item else None,
            "equipment_category": item.equipment_category if item else tx.equipment_category,
            "model": item.model if item else tx.model,
            "size": (item.size if item else tx.size) or "",
            "warranty_type": tx.warranty_type,
            "warranty_period_years": tx.warranty_period_years,
            "date": to_utc_z(tx.date),
        })
    return rows


def get_order_details(order_number: str) -> dict:
    order = get_order(order_number)
    payload = order.to_dict()
    payload["items"] = get_order_items(order)
    return payload


def list_orders(
    *,
    invoice_status: str | None = None,
    delivery_status: str | None = None,
    limit: int = 100,
) -> list[Order]:
    q = db.session.query(Order)
    if invoice_status:
        try:
            q = q.filter(Order.invoice_status == InvoiceStatus(invoice_status).value)
        except ValueError:
            raise ValidationError(f"Unknown invoice_status {invoice_status!r}")
    if delivery_status:
        try:
            q = q.filter(Order.delivery_status == DeliveryStatus(delivery_status).value)
        except ValueError:
            raise ValidationError(f"Unknown delivery_status {delivery_status!r}")
    limit = max(1, min(int(limit), 1000))
    return q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


def orders_for_invoicing() -> list[Order]:
    """Orders still waiting for an invoice."""
    return (
        db.session.query(Order)
        .filter(Order.invoice_status == InvoiceStatus.RESERVED.value)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def orders_for_delivery() -> list[Order]:
    """Invoiced orders whose delivery is not yet complete."""
    return (
        db.session.query(Order)
        .filter(
            Order.invoice_status == InvoiceStatus.INVOICED.value,
            Order.delivery_status != DeliveryStatus.DELIVERED.value,
        )
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def order_file_status(order_number: str) -> dict:
    return get_order(order_number).file_status()


# =============================================================================
# CREATE / RENAME
# =============================================================================

def create_order(
    *,
    order_number: str,
    dealer: str,
    location: str,
    items: list[dict],
    client: str | None = None,
    remarks: str | None = None,
    actor_uid: str | None = None,
    occurred_at: datetime | str | None = None,
) -> Order:
    """
    Reserve Active items under a new order number.

    Every item gets its own Stock_Out/Reserved transaction and entry number;
    items, transactions and the order are written in one commit.
    The order is dated with the reservation date.

    Raises:
        ValidationError: missing fields, bad location/warranty, repeated serials
        DuplicateOrderError: the order number is taken
        NotFoundError / ItemUnavailableError: see ledger_service.reserve_items
    """
    number = _normalize_order_number(order_number)
    dealer_name = (dealer or "").strip()
    if not dealer_name:
        raise ValidationError("dealer is required")
    location_code = validate_location(location)
    client_name = normalize_client(client)
    when = ledger_service.parse_occurred_at(occurred_at)

    # item row + transaction per item, plus the order and the entry counter
    ensure_batch_size(2 * len(items or []) + 2)

    def _op() -> Order:
        if find_order(number) is not None:
            raise DuplicateOrderError(number)

        now = utcnow()
        order = Order(
            order_number=number,
            dealer=dealer_name,
            client=client_name,
            location=location_code,
            transaction_ids=[],
            invoice_status=InvoiceStatus.RESERVED.value,
            delivery_status=DeliveryStatus.PENDING.value,
            created_by_uid=actor_uid,
            created_at=when,
            updated_at=now,
        )
        db.session.add(order)
        db.session.flush()

        transactions = ledger_service.reserve_items(
            lines=items,
            order_id=order.id,
            order_number=number,
            dealer=dealer_name,
            client=client_name,
            location=location_code,
            occurred_at=when,
            actor_uid=actor_uid,
            remarks=remarks,
        )
        order.transaction_ids = [tx.entry_number for tx in transactions]
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order %s reserved %d items", number, len(order.transaction_ids))
    return order


def rename_order(*, order_number: str, new_order_number: str) -> Order:
    """
    Change an order's number. Transactions keep the number they were
    written with; they stay linked through order_id and transaction_ids.
    """
    old = _normalize_order_number(order_number)
    new = _normalize_order_number(new_order_number)

    def _op() -> Order:
        order = _load_order(old, for_update=True)
        if new == old:
            return order
        if find_order(new) is not None:
            raise DuplicateOrderError(new)
        order.order_number = new
        order.updated_at = utcnow()
        db.session.commit()
        return order

    return run_with_retry(_op)


# =============================================================================
# INVOICE AXIS
# =============================================================================

def attach_invoice(
    *,
    order_number: str,
    data: bytes,
    filename: str,
    invoice_number: str | None = None,
    invoice_date: datetime | str | None = None,
    remarks: str | None = None,
) -> Order:
    """
    Store the invoice document and mark the order Invoiced.

    On an already Invoiced order the document is replaced and the status
    stays Invoiced. Delivery fields are never touched.
    """
    number = _normalize_order_number(order_number)
    name = _require_document(data, filename)
    parsed_date = _parse_optional_datetime(invoice_date, "invoice_date")
    get_order(number)

    store = get_file_store()
    stored = store.upload(data, {"order_number": number, "kind": "invoice", "filename": name})
    replaced: list[str | None] = []

    def _op() -> Order:
        replaced.clear()
        order = _load_order(number, for_update=True)
        replaced.append(order.invoice_file_path)
        now = utcnow()
        order.invoice_file_path = stored.path
        order.invoice_file_url = stored.url
        order.invoice_uploaded_at = now
        if invoice_number is not None:
            order.invoice_number = invoice_number.strip() or None
        if parsed_date is not None:
            order.invoice_date = parsed_date
        if remarks is not None:
            order.invoice_remarks = remarks
        order.invoice_status = InvoiceStatus.INVOICED.value
        order.updated_at = now
        db.session.commit()
        return order

    order = _with_uploaded_blob(store, stored, _op)
    for path in replaced:
        if path != stored.path:
            _discard_blob(store, path)
    return order


def remove_invoice(*, order_number: str) -> Order:
    """Drop the invoice document and metadata; the order returns to Reserved."""
    number = _normalize_order_number(order_number)
    removed: list[str | None] = []

    def _op() -> Order:
        removed.clear()
        order = _load_order(number, for_update=True)
        if order.invoice_status != InvoiceStatus.INVOICED.value and not order.invoice_file_path:
            raise InvalidStateError(f"Order {number} has no invoice to remove")
        removed.append(order.invoice_file_path)
        order.invoice_file_path = None
        order.invoice_file_url = None
        order.invoice_uploaded_at = None
        order.invoice_number = None
        order.invoice_date = None
        order.invoice_remarks = None
        order.invoice_status = InvoiceStatus.RESERVED.value
        order.updated_at = utcnow()
        db.session.commit()
        return order

    order = run_with_retry(_op)
    store = get_file_store()
    for path in removed:
        _discard_blob(store, path)
    return order


# =============================================================================
# DELIVERY AXIS
# =============================================================================

def attach_delivery_order(*, order_number: str, data: bytes, filename: str) -> Order:
    """
    Store the delivery order document: Pending -> Issued.

    Requires an Invoiced order. Re-attaching while Issued replaces the
    document; a Delivered order is final.
    """
    number = _normalize_order_number(order_number)
    name = _require_document(data, filename)
    _check_delivery_issuable(get_order(number))

    store = get_file_store()
    stored = store.upload(data, {"order_number": number, "kind": "delivery_order", "filename": name})
    replaced: list[str | None] = []

    def _op() -> Order:
        replaced.clear()
        order = _load_order(number, for_update=True)
        _check_delivery_issuable(order)
        replaced.append(order.delivery_file_path)
        now = utcnow()
        order.delivery_file_path = stored.path
        order.delivery_file_url = stored.url
        order.delivery_uploaded_at = now
        order.delivery_status = DeliveryStatus.ISSUED.value
        order.updated_at = now
        db.session.commit()
        return order

    order = _with_uploaded_blob(store, stored, _op)
    for path in replaced:
        if path != stored.path:
            _discard_blob(store, path)
    return order


def _check_delivery_issuable(order: Order) -> None:
    if order.delivery_status == DeliveryStatus.DELIVERED.value:
        raise InvalidStateError(f"Order {order.order_number} is already delivered")
    if order.invoice_status != InvoiceStatus.INVOICED.value:
        raise InvalidStateError(
            f"Order {order.order_number} must be invoiced before a delivery order is issued"
        )


def attach_signed_delivery_order(
    *,
    order_number: str,
    data: bytes,
    filename: str,
    delivery_date: datetime | str | None = None,
    actor_uid: str | None = None,
) -> Order:
    """
    Store the signed delivery order and complete delivery: Issued -> Delivered.

    In the same commit, every order item whose ledger status is Reserved or
    Invoiced gets a new Stock_Out/Delivered transaction (copying the fields
    of its reservation) and moves to Delivered. Items already Returned or
    Delivered are left alone.
    """
    number = _normalize_order_number(order_number)
    name = _require_document(data, filename)
    parsed_delivery = _parse_optional_datetime(delivery_date, "delivery_date")
    order = get_order(number)
    if order.delivery_status != DeliveryStatus.ISSUED.value:
        raise InvalidStateError(f"Order {number} must have an issued delivery order first")
    ensure_batch_size(2 * len(order.transaction_ids or []) + 2)

    store = get_file_store()
    stored = store.upload(data, {"order_number": number, "kind": "signed_delivery_order", "filename": name})
    replaced: list[str | None] = []

    def _op() -> Order:
        replaced.clear()
        order = _load_order(number, for_update=True)
        if order.delivery_status != DeliveryStatus.ISSUED.value:
            raise InvalidStateError(f"Order {number} must have an issued delivery order first")

        # Latest outbound record per serial within this order
        reservations = {}
        for tx in get_transactions_by_entry_numbers(order.transaction_ids or []):
            if tx.type == TransactionType.STOCK_OUT.value and tx.status in DELIVERABLE_STATUSES:
                reservations[tx.serial_number] = tx

        items = ledger_service.get_items(reservations.keys(), for_update=True)
        deliverable = [
            serial for serial in reservations
            if serial in items and items[serial].status in DELIVERABLE_STATUSES
        ]

        now = utcnow()
        when = parsed_delivery or now
        new_entries: list[int] = []
        if deliverable:
            entry_numbers = allocate_entry_numbers(len(deliverable))
            for serial, entry_number in zip(deliverable, entry_numbers):
                source_tx = reservations[serial]
                record_transaction(
                    entry_number=entry_number,
                    serial_number=serial,
                    tx_type=TransactionType.STOCK_OUT.value,
                    status=ItemStatus.DELIVERED.value,
                    occurred_at=when,
                    equipment_category=source_tx.equipment_category,
                    model=source_tx.model,
                    size=source_tx.size,
                    quantity=source_tx.quantity,
                    location=source_tx.location,
                    warranty_type=source_tx.warranty_type,
                    warranty_period_years=source_tx.warranty_period_years,
                    order_id=order.id,
                    order_number=order.order_number,
                    dealer=source_tx.dealer,
                    client=source_tx.client,
                    remarks=source_tx.remarks,
                    source="delivery",
                    actor_uid=actor_uid,
                )
                items[serial].status = ItemStatus.DELIVERED.value
                new_entries.append(entry_number)

        replaced.append(order.signed_delivery_file_path)
        order.signed_delivery_file_path = stored.path
        order.signed_delivery_file_url = stored.url
        order.signed_delivery_uploaded_at = now
        order.delivery_date = when
        order.delivery_status = DeliveryStatus.DELIVERED.value
        order.transaction_ids = list(order.transaction_ids or []) + new_entries
        order.updated_at = now
        db.session.commit()
        return order

    order = _with_uploaded_blob(store, stored, _op)
    for path in replaced:
        if path != stored.path:
            _discard_blob(store, path)
    current_app.logger.info("Order %s delivered", number)
    return order


def remove_delivery_data(*, order_number: str) -> Order:
    """
    Drop delivery and signed delivery documents; delivery_status -> Pending.

    Only order fields change. Delivered transactions and item statuses
    stay as recorded.
    """
    number = _normalize_order_number(order_number)
    removed: list[str | None] = []

    def _op() -> Order:
        removed.clear()
        order = _load_order(number, for_update=True)
        if (
            order.delivery_status == DeliveryStatus.PENDING.value
            and not order.delivery_file_path
            and not order.signed_delivery_file_path
        ):
            raise InvalidStateError(f"Order {number} has no delivery data to remove")
        removed.extend([order.delivery_file_path, order.signed_delivery_file_path])
        order.delivery_file_path = None
        order.delivery_file_url = None
        order.delivery_uploaded_at = None
        order.signed_delivery_file_path = None
        order.signed_delivery_file_url = None
        order.signed_delivery_uploaded_at = None
        order.delivery_date = None
        order.delivery_status = DeliveryStatus.PENDING.value
        order.updated_at = utcnow()
        db.session.commit()
        return order

    order = run_with_retry(_op)
    store = get_file_store()
    for path in removed:
        _discard_blob(store, path)
    return order
