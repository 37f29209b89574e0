# Overview: Order model with independent invoice and delivery status axes and attached documents.

from __future__ import annotations

import enum

from ..extensions import db
from stockledger.time_utils import to_utc_z


class InvoiceStatus(str, enum.Enum):
    RESERVED = "Reserved"
    INVOICED = "Invoiced"


class DeliveryStatus(str, enum.Enum):
    PENDING = "Pending"
    ISSUED = "Issued"
    DELIVERED = "Delivered"


class Order(db.Model):
    """
    Purchase / delivery order grouping one or more reservations.

    DUAL STATUS:
    invoice_status (Reserved -> Invoiced) and delivery_status
    (Pending -> Issued -> Delivered) are independent axes. No transition on
    one axis writes the other.

    ITEMS:
    transaction_ids is the ordered list of entry numbers that belong to the
    order. Item details are never copied here; they are resolved from the
    transaction log and the ledger on read.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_pair", "invoice_status", "delivery_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False, unique=True, index=True)

    dealer = db.Column(db.String(255), nullable=False)
    client = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(8), nullable=False)

    transaction_ids = db.Column(db.JSON, nullable=False, default=list)

    invoice_status = db.Column(db.String(16), nullable=False, default=InvoiceStatus.RESERVED.value, index=True)
    delivery_status = db.Column(db.String(16), nullable=False, default=DeliveryStatus.PENDING.value, index=True)

    # Invoice document (file reference only, never bytes)
    invoice_number = db.Column(db.String(64), nullable=True)
    invoice_date = db.Column(db.DateTime, nullable=True)
    invoice_remarks = db.Column(db.Text, nullable=True)
    invoice_file_path = db.Column(db.String(512), nullable=True)
    invoice_file_url = db.Column(db.String(1024), nullable=True)
    invoice_uploaded_at = db.Column(db.DateTime, nullable=True)

    # Delivery order (Issued) and signed delivery order (Delivered)
    delivery_file_path = db.Column(db.String(512), nullable=True)
    delivery_file_url = db.Column(db.String(1024), nullable=True)
    delivery_uploaded_at = db.Column(db.DateTime, nullable=True)
    signed_delivery_file_path = db.Column(db.String(512), nullable=True)
    signed_delivery_file_url = db.Column(db.String(1024), nullable=True)
    signed_delivery_uploaded_at = db.Column(db.DateTime, nullable=True)
    delivery_date = db.Column(db.DateTime, nullable=True)

    created_by_uid = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<Order {self.order_number!r} invoice={self.invoice_status} "
            f"delivery={self.delivery_status}>"
        )

    def to_dict(self) -> dict:
        return {
            "order_number": self.order_number,
            "dealer": self.dealer,
            "client": self.client,
            "location": self.location,
            "transaction_ids": list(self.transaction_ids or []),
            "invoice_status": self.invoice_status,
            "delivery_status": self.delivery_status,
            "invoice_number": self.invoice_number,
            "invoice_date": to_utc_z(self.invoice_date),
            "invoice_remarks": self.invoice_remarks,
            "invoice_file_url": self.invoice_file_url,
            "invoice_uploaded_at": to_utc_z(self.invoice_uploaded_at),
            "delivery_file_url": self.delivery_file_url,
            "delivery_uploaded_at": to_utc_z(self.delivery_uploaded_at),
            "signed_delivery_file_url": self.signed_delivery_file_url,
            "signed_delivery_uploaded_at": to_utc_z(self.signed_delivery_uploaded_at),
            "delivery_date": to_utc_z(self.delivery_date),
            "created_by_uid": self.created_by_uid,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def file_status(self) -> dict:
        return {
            "order_number": self.order_number,
            "invoice_status": self.invoice_status,
            "delivery_status": self.delivery_status,
            "has_invoice": self.invoice_file_path is not None,
            "has_delivery_order": self.delivery_file_path is not None,
            "has_signed_delivery_order": self.signed_delivery_file_path is not None,
            "invoice_uploaded_at": to_utc_z(self.invoice_uploaded_at),
            "delivery_uploaded_at": to_utc_z(self.delivery_uploaded_at),
            "signed_delivery_uploaded_at": to_utc_z(self.signed_delivery_uploaded_at),
            "is_complete": self.invoice_file_path is not None and (
                self.delivery_file_path is not None or self.signed_delivery_file_path is not None
            ),
        }
