import pytest

from conftest import deliver
from stockledger.errors import InvalidStateError, NotFoundError, ValidationError
from stockledger.models import StockTransaction
from stockledger.services import ledger_service, order_service, return_service
from stockledger.services.transaction_service import get_transaction_history


class TestProcessReturn:
    def test_swaps_statuses_with_one_transaction_each(self, stock_item, make_order, db_session):
        stock_item("A")
        stock_item("B")
        make_order("PO-1", ["A"])
        before = db_session.query(StockTransaction).count()

        result = return_service.process_return(returned_serial="A", replacement_serial="B", remarks="cracked")

        assert ledger_service.get_item("A").status == "Returned"
        assert ledger_service.get_item("B").status == "Reserved"
        assert db_session.query(StockTransaction).count() == before + 2
        assert get_transaction_history("A")[-1].status == "Returned"
        assert get_transaction_history("B")[-1].status == "Reserved"
        assert result["order_updated"] is True
        assert result["returned_transaction"]["type"] == "Stock_Out"

    def test_replacement_inherits_association_not_dealer_argument(self, stock_item, make_order):
        stock_item("A")
        stock_item("B")
        make_order("PO-1", [{"serial_number": "A", "warranty_type": "1+3 year"}],
                   dealer="Original Dealer", client="SK Bukit", location="JHR")

        return_service.process_return(returned_serial="A", replacement_serial="B", dealer="X")

        tx = get_transaction_history("B")[-1]
        assert tx.dealer == "Original Dealer"
        assert tx.client == "SK Bukit"
        assert tx.location == "JHR"
        assert tx.order_number == "PO-1"
        assert tx.warranty_type == "1+3 year"
        assert tx.warranty_period_years == 4

    def test_order_gains_both_entries(self, stock_item, make_order):
        stock_item("A")
        stock_item("B")
        order = make_order("PO-1", ["A"])
        original = list(order.transaction_ids)

        return_service.process_return(returned_serial="A", replacement_serial="B")

        entries = order_service.get_order("PO-1").transaction_ids
        returned_entry = get_transaction_history("A")[-1].entry_number
        replacement_entry = get_transaction_history("B")[-1].entry_number
        assert entries == original + [returned_entry, replacement_entry]

    def test_return_after_order_rename_follows_order_id(self, stock_item, make_order):
        stock_item("A")
        stock_item("B")
        make_order("PO-1", ["A"])
        order_service.rename_order(order_number="PO-1", new_order_number="PO-9")

        result = return_service.process_return(returned_serial="A", replacement_serial="B")

        assert result["order_number"] == "PO-9"
        assert len(order_service.get_order("PO-9").transaction_ids) == 3

    def test_delivered_item_can_be_returned(self, stock_item, make_order):
        stock_item("A")
        stock_item("B")
        make_order("PO-1", ["A"])
        deliver("PO-1")

        return_service.process_return(returned_serial="A", replacement_serial="B")

        assert ledger_service.get_item("A").status == "Returned"
        assert ledger_service.get_item("B").status == "Reserved"

    def test_active_item_cannot_be_returned(self, stock_item):
        stock_item("A")
        stock_item("B")
        with pytest.raises(InvalidStateError):
            return_service.process_return(returned_serial="A", replacement_serial="B", dealer="X")
        assert ledger_service.get_item("B").status == "Active"

    def test_replacement_must_be_active(self, stock_item, make_order):
        stock_item("A")
        stock_item("B")
        make_order("PO-1", ["A", "B"])
        with pytest.raises(InvalidStateError):
            return_service.process_return(returned_serial="A", replacement_serial="B")
        assert ledger_service.get_item("A").status == "Reserved"

    def test_unknown_serial(self, stock_item, make_order):
        stock_item("A")
        make_order("PO-1", ["A"])
        with pytest.raises(NotFoundError):
            return_service.process_return(returned_serial="A", replacement_serial="GHOST")

    def test_same_serial(self, stock_item):
        stock_item("A")
        with pytest.raises(ValidationError):
            return_service.process_return(returned_serial="A", replacement_serial="a")
