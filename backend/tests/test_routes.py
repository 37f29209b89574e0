"""
HTTP API tests: request parsing, status codes and error mapping.
"""

import io


def _stock_in(client, serial, **overrides):
    payload = {
        "serial_number": serial,
        "equipment_category": "Interactive Panel",
        "model": "IFP-65",
        "size": "65",
        "batch": "B1",
        "date": "2024-01-10T09:00:00Z",
    }
    payload.update(overrides)
    return client.post("/api/items", json=payload, headers={"X-User-Id": "u-1"})


def _upload(client, url, **form):
    data = {"file": (io.BytesIO(b"%PDF-1.4"), "doc.pdf"), **form}
    return client.post(url, data=data, content_type="multipart/form-data")


class TestItemRoutes:
    def test_stock_in_and_fetch(self, client, db_session):
        response = _stock_in(client, "sn-1")
        assert response.status_code == 201
        item = response.get_json()["item"]
        assert item["serial_number"] == "SN-1"
        assert item["status"] == "Active"
        assert item["created_by_uid"] == "u-1"

        response = client.get("/api/items/SN-1")
        assert response.status_code == 200
        assert response.get_json()["item"]["model"] == "IFP-65"

    def test_duplicate_serial_conflict(self, client, db_session):
        _stock_in(client, "SN-1")
        response = _stock_in(client, "SN-1")
        assert response.status_code == 409
        assert response.get_json()["code"] == "duplicate_serial"

    def test_missing_fields(self, client, db_session):
        response = _stock_in(client, "SN-1", model="")
        assert response.status_code == 400
        assert response.get_json()["code"] == "validation_error"

    def test_body_must_be_an_object(self, client, db_session):
        response = client.post("/api/items", json=["SN-1"])
        assert response.status_code == 400
        assert response.get_json()["code"] == "validation_error"

    def test_non_string_fields_are_rejected(self, client, db_session):
        response = _stock_in(client, "SN-1", model=["IFP"])
        assert response.status_code == 400
        assert "model" in response.get_json()["error"]

    def test_numeric_serial_is_accepted(self, client, db_session):
        response = _stock_in(client, 12345)
        assert response.status_code == 201
        assert response.get_json()["item"]["serial_number"] == "12345"

    def test_unknown_item(self, client, db_session):
        response = client.get("/api/items/NOPE")
        assert response.status_code == 404

    def test_transactions_and_summary(self, client, db_session):
        _stock_in(client, "SN-1")
        _stock_in(client, "SN-2", equipment_category="Others", size="")

        history = client.get("/api/items/SN-1/transactions").get_json()
        assert history["derived_status"] == "Active"
        assert [tx["type"] for tx in history["transactions"]] == ["Stock_In"]

        summary = client.get("/api/items/summary").get_json()
        assert summary["total"] == 2
        assert summary["by_status"]["Active"] == 2

        listed = client.get("/api/items?category=others").get_json()["items"]
        assert [i["serial_number"] for i in listed] == ["SN-2"]


class TestOrderRoutes:
    def test_full_workflow(self, client, db_session, file_store):
        _stock_in(client, "SN-1")
        _stock_in(client, "SN-2")

        response = client.post("/api/orders", json={
            "order_number": "PO-1",
            "dealer": "Acme",
            "location": "sgr",
            "items": [{"serial_number": "SN-1", "warranty_type": "1 year"}, "SN-2"],
        })
        assert response.status_code == 201
        order = response.get_json()["order"]
        assert order["client"] == "N/A"
        assert order["location"] == "SGR"
        assert len(order["items"]) == 2

        response = _upload(client, "/api/orders/PO-1/invoice", invoice_number="INV-1")
        assert response.status_code == 200
        assert response.get_json()["order"]["invoice_status"] == "Invoiced"

        response = _upload(client, "/api/orders/PO-1/delivery-order")
        assert response.get_json()["order"]["delivery_status"] == "Issued"

        response = _upload(client, "/api/orders/PO-1/signed-delivery-order", delivery_date="2024-03-01")
        assert response.status_code == 200
        delivered = response.get_json()["order"]
        assert delivered["delivery_status"] == "Delivered"
        assert {line["item_status"] for line in delivered["items"]} == {"Delivered"}
        assert len(delivered["transaction_ids"]) == 4

        files = client.get("/api/orders/PO-1/files").get_json()
        assert files["has_signed_delivery_order"] is True
        assert files["is_complete"] is True

        response = client.delete("/api/orders/PO-1/delivery")
        assert response.get_json()["order"]["delivery_status"] == "Pending"
        assert response.get_json()["order"]["invoice_status"] == "Invoiced"

    def test_unavailable_items_are_listed(self, client, db_session):
        _stock_in(client, "SN-1")
        client.post("/api/orders", json={"order_number": "PO-1", "dealer": "Acme", "location": "HQ", "items": ["SN-1"]})

        response = client.post("/api/orders", json={
            "order_number": "PO-2", "dealer": "Acme", "location": "HQ", "items": ["SN-1"],
        })
        assert response.status_code == 409
        body = response.get_json()
        assert body["code"] == "item_unavailable"
        assert body["serial_numbers"] == ["SN-1"]

    def test_delivery_before_invoice_is_conflict(self, client, db_session):
        _stock_in(client, "SN-1")
        client.post("/api/orders", json={"order_number": "PO-1", "dealer": "Acme", "location": "HQ", "items": ["SN-1"]})

        response = _upload(client, "/api/orders/PO-1/delivery-order")
        assert response.status_code == 409
        assert response.get_json()["code"] == "invalid_state"

    def test_order_lines_must_be_strings(self, client, db_session):
        response = client.post("/api/orders", json={
            "order_number": "PO-1", "dealer": "Acme", "location": "HQ", "items": [{"serial_number": 1.5}],
        })
        assert response.status_code == 400
        assert client.post("/api/orders", json="PO-1").status_code == 400

    def test_upload_requires_file(self, client, db_session):
        response = client.post("/api/orders/PO-1/invoice", data={}, content_type="multipart/form-data")
        assert response.status_code == 400

    def test_list_and_rename(self, client, db_session):
        _stock_in(client, "SN-1")
        client.post("/api/orders", json={"order_number": "PO-1", "dealer": "Acme", "location": "HQ", "items": ["SN-1"]})

        listed = client.get("/api/orders?view=invoicing").get_json()["orders"]
        assert [o["order_number"] for o in listed] == ["PO-1"]

        response = client.patch("/api/orders/PO-1", json={"order_number": "PO-1B"})
        assert response.status_code == 200
        assert client.get("/api/orders/PO-1").status_code == 404
        assert client.get("/api/orders/PO-1B").status_code == 200


class TestReturnAndReportRoutes:
    def test_return(self, client, db_session):
        _stock_in(client, "A")
        _stock_in(client, "B")
        client.post("/api/orders", json={"order_number": "PO-1", "dealer": "Acme", "location": "HQ", "items": ["A"]})

        response = client.post("/api/returns", json={
            "returned_serial": "A", "replacement_serial": "B", "dealer": "Other",
        })
        assert response.status_code == 201
        body = response.get_json()
        assert body["replacement_transaction"]["dealer"] == "Acme"
        assert body["order_number"] == "PO-1"

    def test_return_body_validation(self, client, db_session):
        assert client.post("/api/returns", json=[1, 2]).status_code == 400
        response = client.post("/api/returns", json={"returned_serial": {"sn": "A"}, "replacement_serial": "B"})
        assert response.status_code == 400

    def test_return_of_active_item(self, client, db_session):
        _stock_in(client, "A")
        _stock_in(client, "B")
        response = client.post("/api/returns", json={"returned_serial": "A", "replacement_serial": "B", "dealer": "X"})
        assert response.status_code == 409

    def test_monthly_report(self, client, db_session):
        _stock_in(client, "SN-1")
        response = client.get("/api/reports/monthly?year=2024&month=1")
        assert response.status_code == 200
        report = response.get_json()
        assert report["summary"]["totalStockIn"] == 1
        assert report["sizeBreakdown"][0]["size"] == "65"

        _stock_in(client, "SN-2", date="2024-01-11T09:00:00Z")
        cached = client.get("/api/reports/monthly?year=2024&month=1").get_json()
        assert cached["summary"]["totalStockIn"] == 1
        fresh = client.get("/api/reports/monthly?year=2024&month=1&refresh=true").get_json()
        assert fresh["summary"]["totalStockIn"] == 2

        assert client.delete("/api/reports/cache").get_json()["cleared"] == 1

    def test_monthly_report_requires_period(self, client, db_session):
        assert client.get("/api/reports/monthly?year=2024").status_code == 400
        assert client.get("/api/reports/monthly?year=2024&month=0").status_code == 400

    def test_sales_report(self, client, db_session):
        _stock_in(client, "SN-1")
        client.post("/api/orders", json={
            "order_number": "PO-1", "dealer": "Acme", "location": "HQ", "items": ["SN-1"],
            "date": "2024-02-05T10:00:00Z",
        })

        response = client.get("/api/reports/sales?start=2024-02-01&end=2024-02-29&dealer=Acme")
        assert response.status_code == 200
        report = response.get_json()
        assert report["summary"]["totalOrders"] == 1
        assert report["categoryBreakdown"] == [{"category": "Interactive Panel", "items": 1}]

        assert client.get("/api/reports/sales?start=yesterday").status_code == 400

    def test_details_and_months(self, client, db_session):
        _stock_in(client, "SN-1")
        rows = client.get("/api/reports/monthly/details?year=2024&month=1&kind=stock_in").get_json()["rows"]
        assert [r["serial_number"] for r in rows] == ["SN-1"]

        months = client.get("/api/reports/months").get_json()["months"]
        assert months[-1]["year"] == 2024 and months[-1]["month"] == 1


def test_health(client, db_session):
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "ok"
    assert body["checks"]["database"]["details"]["next_entry_number"] == 1
