# Overview: Inventory item and transaction log models, entry-number counter and append-only guards.

from __future__ import annotations

import enum

from sqlalchemy import event

from ..extensions import db
from ..errors import ImmutableRecordError
from stockledger.time_utils import to_utc_z


class ItemStatus(str, enum.Enum):
    """Ledger status of one serialized unit."""

    ACTIVE = "Active"
    RESERVED = "Reserved"
    INVOICED = "Invoiced"  # invoiced, pending delivery
    DELIVERED = "Delivered"
    RETURNED = "Returned"


class TransactionType(str, enum.Enum):
    STOCK_IN = "Stock_In"
    STOCK_OUT = "Stock_Out"


# Statuses an item holds once it has left available stock against an order.
POST_RESERVATION_STATUSES = (
    ItemStatus.RESERVED.value,
    ItemStatus.INVOICED.value,
    ItemStatus.DELIVERED.value,
)

# HQ plus Malaysian state abbreviations used for stock-out locations.
LOCATION_CODES = (
    "HQ",
    "JHR", "KDH", "KTN", "MLK", "NSN", "PHG", "PNG", "PRK",
    "PLS", "SGR", "TRG", "SBH", "SWK", "KUL", "LBN", "PJY",
)

# warranty_type -> warranty_period_years
WARRANTY_PERIODS = {
    "No Warranty": 0,
    "1 year": 1,
    "1+2 year": 3,
    "1+3 year": 4,
}

DEFAULT_CLIENT = "N/A"


def normalize_serial(value: str | None) -> str:
    """Serial numbers are case-insensitive; canonical form is trimmed upper-case."""
    return (value or "").strip().upper()


class InventoryItem(db.Model):
    """
    One physical serialized unit.

    STATUS IS A PROJECTION:
    `status` caches the outcome of the item's latest transaction (highest
    entry_number). Reports read it directly instead of replaying the log.
    ledger_service.verify_projection() replays the log and reports drift.

    Items are never deleted; Returned is the terminal status.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.Index("ix_inventory_items_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    # Surrogate key; only used as a stable cursor for paged scans
    id = db.Column(db.Integer, primary_key=True)

    serial_number = db.Column(db.String(128), nullable=False, unique=True, index=True)
    equipment_category = db.Column(db.String(128), nullable=False, index=True)
    model = db.Column(db.String(128), nullable=False)
    size = db.Column(db.String(32), nullable=True)
    batch = db.Column(db.String(64), nullable=False)
    remarks = db.Column(db.Text, nullable=True)

    status = db.Column(
        db.String(16),
        nullable=False,
        default=ItemStatus.ACTIVE.value,
        index=True,
    )

    # Business time of the stock-in; NULL for legacy rows with no usable date
    created_at = db.Column(db.DateTime, nullable=True, index=True)

    source = db.Column(db.String(64), nullable=True)
    created_by_uid = db.Column(db.String(128), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem serial={self.serial_number!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "serial_number": self.serial_number,
            "equipment_category": self.equipment_category,
            "model": self.model,
            "size": self.size or "",
            "batch": self.batch,
            "remarks": self.remarks or "",
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "source": self.source,
            "created_by_uid": self.created_by_uid,
        }


class StockTransaction(db.Model):
    """
    Append-only record of one lifecycle event on one item.

    Rows are never updated or deleted (see listeners below). A correction is
    a new row. Reserved -> Delivered is therefore two Stock_Out rows with
    distinct entry numbers, and the Reserved row stays as the audit point.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        db.Index("ix_stock_tx_type_date", "type", "date"),
        db.Index("ix_stock_tx_serial_entry", "serial_number", "entry_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Global, sequential; UNIQUE so a colliding allocation fails at commit
    entry_number = db.Column(db.Integer, nullable=False, unique=True, index=True)

    serial_number = db.Column(
        db.String(128),
        db.ForeignKey("inventory_items.serial_number"),
        nullable=False,
        index=True,
    )
    type = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, index=True)

    equipment_category = db.Column(db.String(128), nullable=True)
    model = db.Column(db.String(128), nullable=True)
    size = db.Column(db.String(32), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    location = db.Column(db.String(8), nullable=True)
    warranty_type = db.Column(db.String(32), nullable=True)
    warranty_period_years = db.Column(db.Integer, nullable=True)

    # order_id is stable across order renames; order_number is the number at write time
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    order_number = db.Column(db.String(64), nullable=True, index=True)
    dealer = db.Column(db.String(255), nullable=True)
    client = db.Column(db.String(255), nullable=True)

    remarks = db.Column(db.Text, nullable=True)
    source = db.Column(db.String(64), nullable=True)

    # Business time of the event
    date = db.Column(db.DateTime, nullable=True, index=True)

    created_by_uid = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return (
            f"<StockTransaction entry={self.entry_number} serial={self.serial_number!r} "
            f"type={self.type} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "entry_number": self.entry_number,
            "serial_number": self.serial_number,
            "type": self.type,
            "status": self.status,
            "equipment_category": self.equipment_category,
            "model": self.model,
            "size": self.size or "",
            "quantity": self.quantity,
            "location": self.location,
            "warranty_type": self.warranty_type,
            "warranty_period_years": self.warranty_period_years,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "dealer": self.dealer,
            "client": self.client,
            "remarks": self.remarks or "",
            "source": self.source,
            "date": to_utc_z(self.date),
            "created_by_uid": self.created_by_uid,
            "created_at": to_utc_z(self.created_at),
        }


class EntrySequence(db.Model):
    """
    Counter row for transaction entry numbers.

    Allocation is a single UPDATE ... SET next_number = next_number + n inside
    the caller's transaction, so two writers never read the same value.
    """
    __tablename__ = "entry_sequences"

    name = db.Column(db.String(32), primary_key=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }


@event.listens_for(StockTransaction, "before_update")
def _reject_transaction_update(mapper, connection, target):
    raise ImmutableRecordError(
        f"Transaction {target.entry_number} is immutable; record a new transaction instead."
    )


@event.listens_for(StockTransaction, "before_delete")
def _reject_transaction_delete(mapper, connection, target):
    raise ImmutableRecordError(
        f"Transaction {target.entry_number} is immutable and cannot be deleted."
    )
