# Overview: Service-layer operations for reporting; encapsulates monthly aggregation over the ledger and transaction log.

"""
Aggregation Engine

MONTHLY ACTIVITY (year, month):
- stockIn:   items whose created_at falls inside the month
- stockOut:  Stock_Out transactions with status Reserved inside the month,
             summed by quantity
- delivered: Delivered records inside the month (never added to stockOut)
- returned:  Returned records inside the month
- remaining: items currently Active with created_at <= end of month

Every breakdown row carries all five counters, so a category whose only
activity in the month is a delivery or a return still shows up.

ASSUMPTION:
"Remaining at a past cutoff" is computed from current status. It holds only
while no workflow moves an item back to Active.

SALES REPORT (start, end, dealer, location):
- orders dated inside the window, their Reserved entries counted as units
  by dealer, location, category and model

SCANS:
Every scan is keyset-paginated on the surrogate id, selects only the columns
it needs and checks the cancel event between pages. Rows without a usable
date are skipped.
"""

from __future__ import annotations

import calendar
import re
import threading
from collections import defaultdict
from datetime import datetime
from typing import Callable, Iterable, Iterator

from flask import current_app

from ..extensions import db
from ..errors import ReportCancelledError, ValidationError
from ..models import InventoryItem, StockTransaction, ItemStatus, TransactionType, Order, InvoiceStatus
from stockledger.time_utils import month_bounds, normalize_datetime, to_utc_z, utcnow
from .concurrency import fetch_in_chunks
from .ledger_service import normalize_category, normalize_size, UNKNOWN_LABEL
from .report_cache import ReportCache
from .transaction_service import get_transactions_by_entry_numbers, validate_location


DETAIL_KINDS = ("stock_in", "stock_out")

SALES_REPORT_EPOCH = datetime(2020, 1, 1)

# Stock_Out status -> (breakdown field, summary total)
_STOCK_OUT_FIELDS = {
    ItemStatus.RESERVED.value: ("stockOut", "totalStockOut"),
    ItemStatus.DELIVERED.value: ("delivered", "totalDelivered"),
    ItemStatus.RETURNED.value: ("returned", "totalReturned"),
}

_NUMERIC_PREFIX = re.compile(r"^\s*(\d+(?:\.\d+)?)")


def _size_sort_key(size: str):
    if size == UNKNOWN_LABEL:
        return (2, 0.0, size)
    match = _NUMERIC_PREFIX.match(size)
    if match:
        return (0, float(match.group(1)), size)
    return (1, 0.0, size.lower())


def _validate_period(year, month) -> tuple[int, int]:
    try:
        year = int(year)
        month = int(month)
    except (TypeError, ValueError):
        raise ValidationError("year and month must be integers")
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    if not 1900 <= year <= 9999:
        raise ValidationError("year is out of range")
    return year, month


def _parse_bound(value, name: str, *, end_of_day: bool = False) -> datetime | None:
    if value is None or value == "":
        return None
    try:
        parsed = normalize_datetime(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime")
    # A bare date as the upper bound covers that whole day
    if end_of_day and isinstance(value, str) and len(value.strip()) == 10:
        parsed = parsed.replace(hour=23, minute=59, second=59, microsecond=999999)
    return parsed


class _Tally:
    """stockIn / stockOut / delivered / returned / remaining counters keyed by a label."""

    FIELDS = ("stockIn", "stockOut", "delivered", "returned", "remaining")

    def __init__(self):
        self.counts = defaultdict(lambda: dict.fromkeys(self.FIELDS, 0))

    def add(self, label: str, field: str, amount: int = 1) -> None:
        self.counts[label][field] += amount

    def rows(self, label_field: str, sort_key=None) -> list[dict]:
        labels = sorted(self.counts, key=sort_key) if sort_key else sorted(self.counts)
        return [{label_field: label, **self.counts[label]} for label in labels]


class AggregationEngine:
    def __init__(
        self,
        *,
        cache: ReportCache,
        page_size: int = 500,
        sizeless_categories: Iterable[str] = ("Others",),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cache = cache
        self.page_size = max(1, int(page_size))
        self.sizeless_categories = frozenset(normalize_category(c) for c in sizeless_categories)
        self._clock = clock

    # -------------------------------------------------------------------------
    # scanning primitives
    # -------------------------------------------------------------------------

    def _pages(self, query, id_column, cancel_event: threading.Event | None) -> Iterator[list]:
        last_id = 0
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise ReportCancelledError("Report generation was cancelled")
            page = (
                query.filter(id_column > last_id)
                .order_by(id_column.asc())
                .limit(self.page_size)
                .all()
            )
            if not page:
                return
            last_id = page[-1].id
            yield page
            if len(page) < self.page_size:
                return

    def _rows(self, query, id_column, date_field: str, cancel_event) -> Iterator:
        for page in self._pages(query, id_column, cancel_event):
            for row in page:
                if isinstance(getattr(row, date_field), datetime):
                    yield row

    def _resolve_items(self, serials: Iterable[str], cache: dict) -> None:
        """Fill the per-scan serial cache with (category, size) from the ledger."""
        wanted = [s for s in dict.fromkeys(serials) if s and s not in cache]
        if not wanted:
            return
        rows = fetch_in_chunks(
            lambda chunk: (
                db.session.query(
                    InventoryItem.serial_number,
                    InventoryItem.equipment_category,
                    InventoryItem.size,
                )
                .filter(InventoryItem.serial_number.in_(chunk))
                .all()
            ),
            wanted,
        )
        for serial, category, size in rows:
            cache[serial] = (category, size)
        for serial in wanted:
            cache.setdefault(serial, None)

    def _stock_out_pages(self, start: datetime, end: datetime, cancel_event) -> Iterator[list]:
        """Stock_Out rows of the window, page by page, with item attributes resolved."""
        query = (
            db.session.query(
                StockTransaction.id,
                StockTransaction.entry_number,
                StockTransaction.serial_number,
                StockTransaction.status,
                StockTransaction.quantity,
                StockTransaction.equipment_category,
                StockTransaction.model,
                StockTransaction.size,
                StockTransaction.date,
                StockTransaction.dealer,
                StockTransaction.client,
                StockTransaction.location,
                StockTransaction.order_number,
            )
            .filter(
                StockTransaction.type == TransactionType.STOCK_OUT.value,
                StockTransaction.date >= start,
                StockTransaction.date <= end,
            )
        )
        serial_cache: dict = {}
        for page in self._pages(query, StockTransaction.id, cancel_event):
            rows = [row for row in page if isinstance(row.date, datetime)]
            self._resolve_items((row.serial_number for row in rows), serial_cache)
            yield [(row, serial_cache.get(row.serial_number)) for row in rows]

    def _classify(self, category: str | None, size: str | None) -> tuple[str, str | None]:
        """(normalized category, size label or None when the category is sizeless)."""
        label = normalize_category(category)
        if label in self.sizeless_categories:
            return label, None
        return label, normalize_size(size)

    # -------------------------------------------------------------------------
    # reports
    # -------------------------------------------------------------------------

    def monthly_activity(
        self,
        year: int,
        month: int,
        *,
        use_cache: bool = True,
        cancel_event: threading.Event | None = None,
    ) -> dict:
        year, month = _validate_period(year, month)
        key = ("monthly_activity", year, month)
        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                current_app.logger.debug("Monthly activity %04d-%02d served from cache", year, month)
                return cached

        report = self._compute_monthly_activity(year, month, cancel_event)
        self.cache.set(key, report)
        return report

    def _compute_monthly_activity(self, year: int, month: int, cancel_event) -> dict:
        start, end = month_bounds(year, month)
        sizes = _Tally()
        sizeless = _Tally()
        categories = _Tally()
        totals = {"totalStockIn": 0, "totalStockOut": 0, "totalDelivered": 0, "totalReturned": 0, "totalRemaining": 0}

        def _count(category, size, field, amount=1):
            label, size_label = self._classify(category, size)
            categories.add(label, field, amount)
            if size_label is None:
                sizeless.add(label, field, amount)
            else:
                sizes.add(size_label, field, amount)

        stock_in = db.session.query(
            InventoryItem.id, InventoryItem.equipment_category, InventoryItem.size, InventoryItem.created_at,
        ).filter(InventoryItem.created_at >= start, InventoryItem.created_at <= end)
        for row in self._rows(stock_in, InventoryItem.id, "created_at", cancel_event):
            _count(row.equipment_category, row.size, "stockIn")
            totals["totalStockIn"] += 1

        for page in self._stock_out_pages(start, end, cancel_event):
            for row, resolved in page:
                field = _STOCK_OUT_FIELDS.get(row.status)
                if field is None:
                    continue
                quantity = row.quantity or 1
                category, size = resolved if resolved else (row.equipment_category, row.size)
                _count(category, size, field[0], quantity)
                totals[field[1]] += quantity

        remaining = db.session.query(
            InventoryItem.id, InventoryItem.equipment_category, InventoryItem.size, InventoryItem.created_at,
        ).filter(InventoryItem.status == ItemStatus.ACTIVE.value, InventoryItem.created_at <= end)
        for row in self._rows(remaining, InventoryItem.id, "created_at", cancel_event):
            _count(row.equipment_category, row.size, "remaining")
            totals["totalRemaining"] += 1

        return {
            "year": year,
            "month": month,
            "monthName": calendar.month_name[month],
            "periodStart": to_utc_z(start),
            "periodEnd": to_utc_z(end),
            "sizeBreakdown": sizes.rows("size", sort_key=_size_sort_key),
            "sizelessBreakdown": sizeless.rows("category"),
            "categoryBreakdown": categories.rows("category"),
            "summary": totals,
        }

    def monthly_details(
        self,
        year: int,
        month: int,
        kind: str,
        *,
        cancel_event: threading.Event | None = None,
    ) -> list[dict]:
        """Row-level listing behind a monthly report, newest first."""
        year, month = _validate_period(year, month)
        if kind not in DETAIL_KINDS:
            raise ValidationError(f"kind must be one of: {', '.join(DETAIL_KINDS)}")
        start, end = month_bounds(year, month)

        rows: list[dict] = []
        if kind == "stock_in":
            query = db.session.query(
                InventoryItem.id,
                InventoryItem.serial_number,
                InventoryItem.equipment_category,
                InventoryItem.model,
                InventoryItem.size,
                InventoryItem.batch,
                InventoryItem.status,
                InventoryItem.remarks,
                InventoryItem.source,
                InventoryItem.created_at,
            ).filter(InventoryItem.created_at >= start, InventoryItem.created_at <= end)
            for row in self._rows(query, InventoryItem.id, "created_at", cancel_event):
                rows.append({
                    "serial_number": row.serial_number,
                    "equipment_category": normalize_category(row.equipment_category),
                    "model": row.model,
                    "size": normalize_size(row.size),
                    "batch": row.batch,
                    "status": row.status,
                    "remarks": row.remarks or "",
                    "source": row.source or "manual",
                    "date": row.created_at,
                })
        else:
            for page in self._stock_out_pages(start, end, cancel_event):
                for row, resolved in page:
                    category, size = resolved if resolved else (row.equipment_category, row.size)
                    rows.append({
                        "entry_number": row.entry_number,
                        "serial_number": row.serial_number,
                        "equipment_category": normalize_category(category),
                        "model": row.model,
                        "size": normalize_size(size),
                        "quantity": row.quantity or 1,
                        "status": row.status,
                        "dealer": row.dealer,
                        "client": row.client,
                        "location": row.location,
                        "order_number": row.order_number,
                        "date": row.date,
                    })

        rows.sort(key=lambda r: r["date"], reverse=True)
        for row in rows:
            row["date"] = to_utc_z(row["date"])
        return rows

    def sales_report(
        self,
        start: datetime | str | None = None,
        end: datetime | str | None = None,
        *,
        dealer: str | None = None,
        location: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> dict:
        """
        Orders dated inside [start, end] and the units they reserved.

        start defaults to 2020-01-01, end to now. Units are the Reserved
        Stock_Out entries of each order (a replacement counts as a unit,
        Delivered entries of the same units do not); Returned entries are
        counted separately. With a location filter only units reserved at
        that location are counted and orders without one are left out.
        """
        start = _parse_bound(start, "start") or SALES_REPORT_EPOCH
        end = _parse_bound(end, "end", end_of_day=True) or self._clock()
        if start > end:
            raise ValidationError("start must not be after end")
        dealer_name = (dealer or "").strip() or None
        location_code = validate_location(location) if location else None

        query = db.session.query(Order).filter(Order.created_at >= start, Order.created_at <= end)
        if dealer_name:
            query = query.filter(Order.dealer == dealer_name)
        orders = [order for page in self._pages(query, Order.id, cancel_event) for order in page]

        entries = [entry for order in orders for entry in (order.transaction_ids or [])]
        transactions = {
            tx.entry_number: tx
            for tx in get_transactions_by_entry_numbers(entries)
            if tx.type == TransactionType.STOCK_OUT.value
        }
        serial_cache: dict = {}
        self._resolve_items((tx.serial_number for tx in transactions.values()), serial_cache)

        dealers = defaultdict(lambda: {"orders": 0, "items": 0})
        locations: dict[str, int] = defaultdict(int)
        categories: dict[str, int] = defaultdict(int)
        models: dict[str, int] = defaultdict(int)
        daily: dict[str, int] = defaultdict(int)
        summary = {"totalOrders": 0, "invoicedOrders": 0, "pendingOrders": 0, "totalItems": 0, "totalReturned": 0}

        for order in orders:
            order_txs = [
                transactions[entry] for entry in (order.transaction_ids or []) if entry in transactions
            ]
            if location_code:
                order_txs = [tx for tx in order_txs if (tx.location or order.location) == location_code]
                if not order_txs:
                    continue

            summary["totalOrders"] += 1
            if order.invoice_status == InvoiceStatus.INVOICED.value:
                summary["invoicedOrders"] += 1
            else:
                summary["pendingOrders"] += 1
            dealers[order.dealer]["orders"] += 1
            daily[order.created_at.strftime("%Y-%m-%d")] += 1

            for tx in order_txs:
                quantity = tx.quantity or 1
                if tx.status == ItemStatus.RETURNED.value:
                    summary["totalReturned"] += quantity
                    continue
                if tx.status != ItemStatus.RESERVED.value:
                    continue
                resolved = serial_cache.get(tx.serial_number)
                category = resolved[0] if resolved else tx.equipment_category
                summary["totalItems"] += quantity
                dealers[order.dealer]["items"] += quantity
                locations[tx.location or order.location or UNKNOWN_LABEL] += quantity
                categories[normalize_category(category)] += quantity
                models[(tx.model or "").strip() or UNKNOWN_LABEL] += quantity

        return {
            "periodStart": to_utc_z(start),
            "periodEnd": to_utc_z(end),
            "filters": {"dealer": dealer_name, "location": location_code},
            "summary": summary,
            "dealerBreakdown": [{"dealer": name, **dealers[name]} for name in sorted(dealers)],
            "locationBreakdown": [{"location": code, "items": locations[code]} for code in sorted(locations)],
            "categoryBreakdown": [{"category": name, "items": categories[name]} for name in sorted(categories)],
            "modelBreakdown": [
                {"model": name, "items": count}
                for name, count in sorted(models.items(), key=lambda kv: (-kv[1], kv[0]))
            ],
            "dailySales": [{"date": day, "orders": daily[day]} for day in sorted(daily)],
        }

    def available_months(self) -> list[dict]:
        """Every month from the earliest recorded date to the current one, newest first."""
        now = self._clock()
        earliest_item = db.session.query(db.func.min(InventoryItem.created_at)).scalar()
        earliest_tx = db.session.query(db.func.min(StockTransaction.date)).scalar()
        candidates = [d for d in (earliest_item, earliest_tx) if isinstance(d, datetime)]
        earliest = min(candidates) if candidates else now

        year, month = earliest.year, earliest.month
        if (year, month) > (now.year, now.month):
            year, month = now.year, now.month

        months = []
        while (year, month) <= (now.year, now.month):
            months.append({
                "year": year,
                "month": month,
                "monthName": calendar.month_name[month],
                "displayName": f"{calendar.month_name[month]} {year}",
            })
            year, month = (year + 1, 1) if month == 12 else (year, month + 1)
        months.reverse()
        return months


def init_reporting(app) -> AggregationEngine:
    cache = ReportCache(ttl_seconds=app.config.get("REPORT_CACHE_TTL_SECONDS", 300))
    engine = AggregationEngine(
        cache=cache,
        page_size=app.config.get("REPORT_PAGE_SIZE", 500),
        sizeless_categories=app.config.get("SIZELESS_CATEGORIES", ("Others",)),
    )
    app.extensions["stockledger.reporting"] = engine
    return engine


def get_engine() -> AggregationEngine:
    return current_app.extensions["stockledger.reporting"]
