# Overview: Service-layer operations for the inventory ledger; encapsulates business logic and database work.

"""
Inventory Ledger

WHY: One row per physical serialized unit, holding its descriptive attributes
and its current status. The status column is a projection of the transaction
log, kept in step by every write in this package.

INVARIANTS:
- serial_number is unique and never changes. Items are never deleted.
- Every status change is accompanied, in the same commit, by a transaction
  whose status equals the new item status.
- verify_projection() replays the log and lists every item whose stored
  status disagrees with the replay.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import (
    DuplicateSerialError,
    ItemUnavailableError,
    NotFoundError,
    ValidationError,
)
from ..models import (
    InventoryItem,
    StockTransaction,
    ItemStatus,
    TransactionType,
    normalize_serial,
)
from stockledger.time_utils import normalize_datetime
from .concurrency import run_with_retry, lock_for_update, ensure_batch_size, fetch_in_chunks
from .sequence_service import allocate_entry_numbers
from .transaction_service import record_transaction, derive_status, resolve_warranty


UNKNOWN_LABEL = "Unknown"

_SEPARATORS = re.compile(r"[_\-]+")
_WHITESPACE = re.compile(r"\s+")


def normalize_category(value: str | None) -> str:
    """'LED_PANEL', 'led-panel' and ' Led  Panel ' all become 'Led Panel'."""
    text = _SEPARATORS.sub(" ", (value or "").lower())
    text = _WHITESPACE.sub(" ", text).strip()
    if not text:
        return UNKNOWN_LABEL
    return " ".join(word[:1].upper() + word[1:] for word in text.split(" "))


def normalize_size(value: str | None) -> str:
    text = (value or "").strip()
    return text or UNKNOWN_LABEL


def parse_occurred_at(value) -> datetime:
    try:
        return normalize_datetime(value)
    except ValueError:
        raise ValidationError("Invalid occurred_at format")


def _require(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    return text


# =============================================================================
# READS
# =============================================================================

def find_item(serial_number: str) -> InventoryItem | None:
    serial = normalize_serial(serial_number)
    if not serial:
        return None
    return db.session.query(InventoryItem).filter_by(serial_number=serial).first()


def item_exists(serial_number: str) -> bool:
    return find_item(serial_number) is not None


def get_item(serial_number: str) -> InventoryItem:
    item = find_item(serial_number)
    if item is None:
        raise NotFoundError(f"Item {normalize_serial(serial_number)} not found")
    return item


def get_items(serial_numbers: Iterable[str], *, for_update: bool = False) -> dict[str, InventoryItem]:
    """Bulk lookup keyed by canonical serial number (bounded IN chunks)."""
    def _query(chunk):
        q = db.session.query(InventoryItem).filter(InventoryItem.serial_number.in_(chunk))
        if for_update:
            q = lock_for_update(q)
        return q.all()

    serials = [normalize_serial(s) for s in serial_numbers]
    return {item.serial_number: item for item in fetch_in_chunks(_query, serials)}


def list_items(*, status: str | None = None, category: str | None = None, limit: int = 100) -> list[InventoryItem]:
    q = db.session.query(InventoryItem)
    if status:
        try:
            status = ItemStatus(status).value
        except ValueError:
            raise ValidationError(f"Unknown status {status!r}")
        q = q.filter(InventoryItem.status == status)
    if category:
        wanted = normalize_category(category)
        # Category is stored as entered; match on the normalized label
        names = [
            name for (name,) in db.session.query(InventoryItem.equipment_category).distinct()
            if normalize_category(name) == wanted
        ]
        if not names:
            return []
        q = q.filter(InventoryItem.equipment_category.in_(names))
    limit = max(1, min(int(limit), 1000))
    return q.order_by(InventoryItem.id.asc()).limit(limit).all()


def status_summary() -> dict:
    """Item counts per status and per normalized category."""
    by_status = {status.value: 0 for status in ItemStatus}
    for status, count in (
        db.session.query(InventoryItem.status, func.count(InventoryItem.id))
        .group_by(InventoryItem.status)
        .all()
    ):
        by_status[status] = by_status.get(status, 0) + count

    by_category: dict[str, dict[str, int]] = {}
    for category, status, count in (
        db.session.query(InventoryItem.equipment_category, InventoryItem.status, func.count(InventoryItem.id))
        .group_by(InventoryItem.equipment_category, InventoryItem.status)
        .all()
    ):
        bucket = by_category.setdefault(normalize_category(category), {"total": 0})
        bucket[status] = bucket.get(status, 0) + count
        bucket["total"] += count

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_category": dict(sorted(by_category.items())),
    }


# =============================================================================
# WRITES
# =============================================================================

def stock_in(
    *,
    serial_number: str,
    equipment_category: str,
    model: str,
    batch: str,
    size: str | None = None,
    remarks: str | None = None,
    actor_uid: str | None = None,
    occurred_at: datetime | str | None = None,
    source: str = "manual",
) -> InventoryItem:
    """
    Receive one new unit: creates the item (Active) and its Stock_In
    transaction in one commit.

    Raises:
        ValidationError: missing fields or bad timestamp
        DuplicateSerialError: the serial is already in the ledger
    """
    serial = normalize_serial(serial_number)
    if not serial:
        raise ValidationError("serial_number is required")
    category = _require(equipment_category, "equipment_category")
    model_name = _require(model, "model")
    batch_name = _require(batch, "batch")
    size_value = (size or "").strip() or None
    when = parse_occurred_at(occurred_at)
    location = current_app.config.get("DEFAULT_STOCK_IN_LOCATION", "HQ")

    ensure_batch_size(3)

    def _op() -> InventoryItem:
        if find_item(serial) is not None:
            raise DuplicateSerialError(serial)

        (entry_number,) = allocate_entry_numbers(1)

        item = InventoryItem(
            serial_number=serial,
            equipment_category=category,
            model=model_name,
            size=size_value,
            batch=batch_name,
            remarks=remarks,
            status=ItemStatus.ACTIVE.value,
            created_at=when,
            source=source,
            created_by_uid=actor_uid,
        )
        db.session.add(item)
        db.session.flush()

        record_transaction(
            entry_number=entry_number,
            serial_number=serial,
            tx_type=TransactionType.STOCK_IN.value,
            status=ItemStatus.ACTIVE.value,
            occurred_at=when,
            equipment_category=category,
            model=model_name,
            size=size_value,
            location=location,
            remarks=remarks,
            source=source,
            actor_uid=actor_uid,
        )
        db.session.commit()
        return item

    return run_with_retry(_op)


def reserve_items(
    *,
    lines: list[dict],
    order_id: int,
    order_number: str,
    dealer: str,
    client: str,
    location: str,
    occurred_at: datetime,
    actor_uid: str | None = None,
    remarks: str | None = None,
) -> list[StockTransaction]:
    """
    Move Active items to Reserved inside the caller's unit of work.

    `lines` are dicts with "serial_number" and optional "warranty_type".
    All serials are checked before anything is written; nothing is committed
    here.

    Raises:
        ValidationError: empty or duplicated serials, bad warranty
        NotFoundError: unknown serials (all listed)
        ItemUnavailableError: serials that are not Active (all listed)
    """
    if not lines:
        raise ValidationError("At least one item is required")

    serials: list[str] = []
    warranties: dict[str, tuple[str, int]] = {}
    for line in lines:
        serial = normalize_serial(line.get("serial_number"))
        if not serial:
            raise ValidationError("serial_number is required for every item")
        if serial in warranties:
            raise ValidationError(f"Serial number {serial} appears more than once")
        warranties[serial] = resolve_warranty(line.get("warranty_type"))
        serials.append(serial)

    items = get_items(serials, for_update=True)

    missing = [s for s in serials if s not in items]
    if missing:
        raise NotFoundError(f"Items not found: {', '.join(missing)}")

    unavailable = [s for s in serials if items[s].status != ItemStatus.ACTIVE.value]
    if unavailable:
        raise ItemUnavailableError(unavailable)

    entry_numbers = allocate_entry_numbers(len(serials))

    transactions = []
    for serial, entry_number in zip(serials, entry_numbers):
        item = items[serial]
        warranty_type, warranty_years = warranties[serial]
        transactions.append(record_transaction(
            entry_number=entry_number,
            serial_number=serial,
            tx_type=TransactionType.STOCK_OUT.value,
            status=ItemStatus.RESERVED.value,
            occurred_at=occurred_at,
            equipment_category=item.equipment_category,
            model=item.model,
            size=item.size,
            location=location,
            warranty_type=warranty_type,
            warranty_period_years=warranty_years,
            order_id=order_id,
            order_number=order_number,
            dealer=dealer,
            client=client,
            remarks=remarks,
            source="order",
            actor_uid=actor_uid,
        ))
        item.status = ItemStatus.RESERVED.value

    return transactions


# =============================================================================
# PROJECTION CHECK
# =============================================================================

def verify_projection(*, page_size: int | None = None) -> dict:
    """
    Replay the transaction log against every item's stored status.

    Items are scanned in keyset pages; each page's transactions are fetched
    with bounded IN lookups selecting only (serial, entry, type, status).
    """
    if page_size is None:
        page_size = current_app.config.get("REPORT_PAGE_SIZE", 500)

    checked = 0
    mismatches = []
    last_id = 0
    while True:
        page = (
            db.session.query(InventoryItem.id, InventoryItem.serial_number, InventoryItem.status)
            .filter(InventoryItem.id > last_id)
            .order_by(InventoryItem.id.asc())
            .limit(page_size)
            .all()
        )
        if not page:
            break
        last_id = page[-1].id

        history: dict[str, list[tuple]] = {}
        rows = fetch_in_chunks(
            lambda chunk: (
                db.session.query(
                    StockTransaction.serial_number,
                    StockTransaction.entry_number,
                    StockTransaction.type,
                    StockTransaction.status,
                )
                .filter(StockTransaction.serial_number.in_(chunk))
                .all()
            ),
            [row.serial_number for row in page],
        )
        for serial, entry_number, tx_type, status in rows:
            history.setdefault(serial, []).append((entry_number, tx_type, status))

        for row in page:
            checked += 1
            derived = derive_status(history.get(row.serial_number, []))
            if derived != row.status:
                mismatches.append({
                    "serial_number": row.serial_number,
                    "ledger_status": row.status,
                    "derived_status": derived,
                })

    if mismatches:
        current_app.logger.warning("Projection check found %d mismatched items", len(mismatches))
    return {"checked": checked, "mismatches": mismatches, "ok": not mismatches}
