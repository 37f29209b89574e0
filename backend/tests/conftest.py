"""
Pytest fixtures for stock ledger backend tests.

Provides test database setup, an in-memory document store, and factories
for items and orders.
"""

import pytest
from stockledger import create_app
from stockledger.extensions import db
from stockledger.services import ledger_service, order_service
from stockledger.services.file_store import FileStore, StoredFile


class MemoryFileStore(FileStore):
    """Keeps uploaded documents in a dict; can be told to fail deletes."""

    def __init__(self):
        self.blobs = {}
        self.deleted = []
        self.fail_delete = False
        self._counter = 0

    def upload(self, data, metadata):
        self._counter += 1
        path = f"{metadata.get('kind')}/{metadata.get('order_number')}/{self._counter}_{metadata.get('filename')}"
        self.blobs[path] = data
        return StoredFile(url=f"memory://{path}", path=path)

    def delete(self, path):
        if self.fail_delete:
            raise OSError(f"cannot delete {path}")
        self.blobs.pop(path, None)
        self.deleted.append(path)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STORE_RETRY_BACKOFF_SECONDS': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def file_store(app):
    store = MemoryFileStore()
    app.extensions["stockledger.file_store"] = store
    return store


@pytest.fixture(scope='function')
def engine(app):
    return app.extensions["stockledger.reporting"]


@pytest.fixture(scope='function')
def db_session(app, file_store, engine):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        engine.cache.clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def stock_item(db_session):
    """Factory: stock in one unit (defaults to a 65" panel received 2024-01-10)."""
    def _stock_item(serial, category="Interactive Panel", size="65", date="2024-01-10T09:00:00", **kwargs):
        return ledger_service.stock_in(
            serial_number=serial,
            equipment_category=category,
            model=kwargs.pop("model", "IFP-" + (size or "X")),
            batch=kwargs.pop("batch", "B2024-01"),
            size=size,
            occurred_at=date,
            **kwargs,
        )
    return _stock_item


@pytest.fixture(scope='function')
def make_order(db_session):
    """Factory: reserve serials under an order (location SGR, dealer Acme)."""
    def _make_order(order_number, serials, date="2024-02-05T10:00:00", **kwargs):
        return order_service.create_order(
            order_number=order_number,
            dealer=kwargs.pop("dealer", "Acme Sdn Bhd"),
            client=kwargs.pop("client", "SMK Taman Jaya"),
            location=kwargs.pop("location", "SGR"),
            items=[
                s if isinstance(s, dict) else {"serial_number": s, "warranty_type": "1 year"}
                for s in serials
            ],
            occurred_at=date,
            **kwargs,
        )
    return _make_order


def deliver(order_number, date="2024-03-01T10:00:00"):
    """Walk an order through invoice, delivery order and signed delivery order."""
    order_service.attach_invoice(order_number=order_number, data=b"%PDF-invoice", filename="invoice.pdf")
    order_service.attach_delivery_order(order_number=order_number, data=b"%PDF-do", filename="do.pdf")
    return order_service.attach_signed_delivery_order(
        order_number=order_number,
        data=b"%PDF-signed",
        filename="signed.pdf",
        delivery_date=date,
    )
