# Overview: Service-layer operations for the stock transaction log; encapsulates append and lookup of immutable events.

"""
Transaction Log

APPEND-ONLY:
- record_transaction() is the only writer. Rows are never updated or
  deleted (enforced by ORM listeners on StockTransaction).
- Every row carries an entry number allocated by sequence_service; callers
  allocate a whole batch up front and pass the numbers in.

STATUS REPLAY:
- derive_status() folds an item's transactions into the status the ledger
  should hold: the status of the transaction with the highest entry number.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from ..extensions import db
from ..errors import ValidationError
from ..models import (
    StockTransaction,
    ItemStatus,
    TransactionType,
    LOCATION_CODES,
    WARRANTY_PERIODS,
    DEFAULT_CLIENT,
    POST_RESERVATION_STATUSES,
    normalize_serial,
)
from .concurrency import fetch_in_chunks


DEFAULT_WARRANTY = "No Warranty"


def resolve_warranty(warranty_type: str | None) -> tuple[str, int]:
    """Map a warranty type to (type, period in years); blank means no warranty."""
    value = (warranty_type or "").strip() or DEFAULT_WARRANTY
    if value not in WARRANTY_PERIODS:
        allowed = ", ".join(WARRANTY_PERIODS)
        raise ValidationError(f"Unknown warranty type {value!r}; expected one of: {allowed}")
    return value, WARRANTY_PERIODS[value]


def validate_location(location: str | None) -> str:
    value = (location or "").strip().upper()
    if value not in LOCATION_CODES:
        raise ValidationError(f"Unknown location {location!r}")
    return value


def normalize_client(client: str | None) -> str:
    value = (client or "").strip()
    return value or DEFAULT_CLIENT


def record_transaction(
    *,
    entry_number: int,
    serial_number: str,
    tx_type: str,
    status: str,
    occurred_at: datetime,
    equipment_category: str | None = None,
    model: str | None = None,
    size: str | None = None,
    quantity: int = 1,
    location: str | None = None,
    warranty_type: str | None = None,
    warranty_period_years: int | None = None,
    order_id: int | None = None,
    order_number: str | None = None,
    dealer: str | None = None,
    client: str | None = None,
    remarks: str | None = None,
    source: str | None = None,
    actor_uid: str | None = None,
) -> StockTransaction:
    """Add one transaction to the session. The caller commits."""
    if quantity < 1:
        raise ValidationError("quantity must be at least 1")

    tx = StockTransaction(
        entry_number=entry_number,
        serial_number=serial_number,
        type=TransactionType(tx_type).value,
        status=ItemStatus(status).value,
        equipment_category=equipment_category,
        model=model,
        size=size,
        quantity=quantity,
        location=location,
        warranty_type=warranty_type,
        warranty_period_years=warranty_period_years,
        order_id=order_id,
        order_number=order_number,
        dealer=dealer,
        client=client,
        remarks=remarks,
        source=source,
        date=occurred_at,
        created_by_uid=actor_uid,
    )
    db.session.add(tx)
    return tx


def get_transaction_history(serial_number: str) -> list[StockTransaction]:
    """All transactions of one item, oldest entry first."""
    serial = normalize_serial(serial_number)
    return (
        db.session.query(StockTransaction)
        .filter(StockTransaction.serial_number == serial)
        .order_by(StockTransaction.entry_number.asc())
        .all()
    )


def get_transactions_by_entry_numbers(entry_numbers: Iterable[int]) -> list[StockTransaction]:
    """Resolve entry numbers with bounded IN lookups, returned in entry order."""
    rows = fetch_in_chunks(
        lambda chunk: (
            db.session.query(StockTransaction)
            .filter(StockTransaction.entry_number.in_(chunk))
            .all()
        ),
        entry_numbers,
    )
    return sorted(rows, key=lambda tx: tx.entry_number)


def latest_outbound_transaction(serial_number: str) -> StockTransaction | None:
    """Most recent Stock_Out that moved the item to Reserved, Invoiced or Delivered."""
    serial = normalize_serial(serial_number)
    return (
        db.session.query(StockTransaction)
        .filter(
            StockTransaction.serial_number == serial,
            StockTransaction.type == TransactionType.STOCK_OUT.value,
            StockTransaction.status.in_(POST_RESERVATION_STATUSES),
        )
        .order_by(StockTransaction.entry_number.desc())
        .first()
    )


def derive_status(transactions: Iterable) -> str:
    """
    Status an item should hold given its transactions.

    Accepts ORM rows or (entry_number, type, status) tuples. The transaction
    with the greatest entry number wins; a Stock_In means Active. No
    transactions also means Active.
    """
    latest = None
    for tx in transactions:
        if isinstance(tx, StockTransaction):
            key = (tx.entry_number, tx.type, tx.status)
        else:
            key = tuple(tx)
        if latest is None or key[0] > latest[0]:
            latest = key

    if latest is None:
        return ItemStatus.ACTIVE.value
    _, tx_type, status = latest
    if tx_type == TransactionType.STOCK_IN.value:
        return ItemStatus.ACTIVE.value
    return status
