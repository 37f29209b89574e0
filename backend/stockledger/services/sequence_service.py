# Overview: Service-layer operations for entry number allocation; encapsulates the counter row and its seeding.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import ValidationError
from ..models import EntrySequence, StockTransaction


ENTRY_SEQUENCE = "stock_transactions"


def _seed_value() -> int:
    """First entry number for a fresh counter: continue after the existing log."""
    try:
        current_max = db.session.query(func.max(StockTransaction.entry_number)).scalar()
    except SQLAlchemyError:
        current_app.logger.warning(
            "Could not read max entry number while seeding %s; starting at 1", ENTRY_SEQUENCE
        )
        return 1
    return int(current_max or 0) + 1


def allocate_entry_numbers(count: int = 1) -> list[int]:
    """
    Reserve `count` consecutive entry numbers inside the current transaction.

    Must be called inside run_with_retry and before the new rows are added to
    the session: the UPDATE takes the write lock first, and a rollback releases
    the numbers with everything else.
    """
    if count < 1:
        raise ValidationError("count must be at least 1")

    stmt = (
        update(EntrySequence)
        .where(EntrySequence.name == ENTRY_SEQUENCE)
        .values(next_number=EntrySequence.next_number + count)
    )
    result = db.session.execute(stmt)

    if result.rowcount:
        current = (
            db.session.query(EntrySequence.next_number)
            .filter_by(name=ENTRY_SEQUENCE)
            .scalar()
        )
        first = current - count
    else:
        first = _seed_value()
        # A concurrent seed makes this flush fail with IntegrityError; the
        # caller's retry re-runs the UPDATE path.
        db.session.add(EntrySequence(name=ENTRY_SEQUENCE, next_number=first + count))
        db.session.flush()

    return list(range(first, first + count))


def peek_next_entry_number() -> int:
    seq = db.session.get(EntrySequence, ENTRY_SEQUENCE)
    if seq is not None:
        return seq.next_number
    return _seed_value()
