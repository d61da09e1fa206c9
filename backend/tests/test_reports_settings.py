"""
Reports, settings and system endpoint tests.
"""

import io
import os
from datetime import datetime

from shopkeeper.extensions import db
from shopkeeper.models import Purchase, Sale
from shopkeeper.services import auth_service, reporting_service

from conftest import auth_headers, get_auth_token


def _sale(bill_id, total_cents, created_at, items=None):
    db.session.add(Sale(
        bill_id=bill_id,
        customer_name="Ravi",
        subtotal_cents=total_cents,
        total_cents=total_cents,
        items=items or [],
        created_at=created_at,
        updated_at=created_at,
    ))
    db.session.commit()


def _purchase(bill_id, total_cents, created_at):
    db.session.add(Purchase(
        bill_id=bill_id,
        subtotal_cents=total_cents,
        total_cents=total_cents,
        items=[],
        created_at=created_at,
        updated_at=created_at,
    ))
    db.session.commit()


class TestReports:
    def test_summary_over_whole_days(self, client, db_session):
        _sale("S-1", 10000, datetime(2024, 3, 1, 0, 0, 1))
        _sale("S-2", 5000, datetime(2024, 3, 2, 23, 59, 59))
        _sale("S-OUT", 99900, datetime(2024, 3, 3, 0, 0, 1))
        _purchase("P-1", 4000, datetime(2024, 3, 2, 12, 0))

        resp = client.get("/api/reports?startDate=2024-03-01&endDate=2024-03-02")

        assert resp.status_code == 200
        assert resp.json["summary"] == {
            "totalSales": 150,
            "totalPurchases": 40,
            "profit": 110,
            "salesCount": 2,
            "purchaseCount": 1,
        }
        assert [s["billId"] for s in resp.json["sales"]] == ["S-2", "S-1"]
        assert resp.json["purchases"][0]["supplierName"] == "Unknown Supplier"
        assert "orders" in resp.json["dashboard"]

    def test_report_rows_use_report_shape(self, client, db_session):
        _sale("S-1", 2000, datetime(2024, 3, 1, 10, 0), items=[{
            "product_id": "7", "product_name": "Tarp", "quantity": 2, "price_cents": 1000, "total_cents": 2000,
        }])

        row = client.get("/api/reports").json["sales"][0]

        assert row["date"] == "2024-03-01"
        assert row["customerName"] == "Ravi"
        assert row["products"] == [
            {"productId": "7", "productName": "Tarp", "quantity": 2, "price": 10, "total": 20}
        ]

    def test_bad_dates_are_ignored(self, client, db_session):
        _sale("S-1", 100, datetime(2020, 1, 1))

        resp = client.get("/api/reports?startDate=garbage")

        assert resp.json["summary"]["salesCount"] == 1

    def test_monthly_sales_window(self, db_session):
        _sale("S-OLD", 100, datetime(2023, 5, 20))
        _sale("S-1", 1000, datetime(2024, 2, 3))
        _sale("S-2", 500, datetime(2024, 2, 28))
        _sale("S-3", 250, datetime(2024, 6, 1))

        data = reporting_service.monthly_sales(now=datetime(2024, 6, 15))

        assert data == [
            {"month": "Feb", "year": 2024, "value": 15, "count": 2},
            {"month": "Jun", "year": 2024, "value": 2.5, "count": 1},
        ]

    def test_monthly_sales_endpoint(self, client, db_session):
        resp = client.get("/api/reports/monthly-sales")

        assert resp.status_code == 200
        assert resp.json == {"data": []}


class TestSettings:
    def test_defaults_are_created_on_first_read(self, client, db_session):
        resp = client.get("/api/settings")

        assert resp.status_code == 200
        assert resp.json["shopName"] == "Bala Tarpaulins"
        assert resp.json["shopLogo"] is None

    def test_update_requires_auth(self, client, db_session):
        resp = client.put("/api/settings", json={"shopName": "X", "address": "Y", "contact": "Z"})
        assert resp.status_code == 401

    def test_update_settings(self, client, admin_headers):
        resp = client.put("/api/settings", headers=admin_headers, json={
            "shopName": " Tarp House ", "address": "1 Market Rd", "contact": "555-0101",
        })

        assert resp.status_code == 200
        assert resp.json["shopName"] == "Tarp House"
        assert client.get("/api/settings").json["address"] == "1 Market Rd"

    def test_staff_cannot_change_settings(self, client, db_session):
        auth_service.create_user("Till", "till@shop.test", "till-pass", role="staff")
        token = get_auth_token(client, "till@shop.test", "till-pass")

        resp = client.put("/api/settings", headers=auth_headers(token), json={
            "shopName": "X", "address": "Y", "contact": "Z",
        })

        assert resp.status_code == 403

    def test_update_requires_all_fields(self, client, admin_headers):
        resp = client.put("/api/settings", headers=admin_headers, json={"shopName": "Only name"})

        assert resp.status_code == 400
        assert resp.json["error"] == "Missing required fields: shopName, address, contact"

    def test_logo_upload_is_stored_and_served(self, app, client, admin_headers, tmp_path, monkeypatch):
        monkeypatch.setitem(app.config, "UPLOAD_DIR", str(tmp_path))
        monkeypatch.setitem(app.config, "API_BASE_URL", "http://shop.test")

        resp = client.post(
            "/api/settings/logo",
            headers=admin_headers,
            data={"logo": (io.BytesIO(b"\x89PNG fake"), "My Logo.PNG")},
            content_type="multipart/form-data",
        )

        assert resp.status_code == 200
        url = resp.json["shopLogo"]
        assert url.startswith("http://shop.test/uploads/logo-")
        assert url.endswith(".png")
        filename = url.rsplit("/", 1)[1]
        assert os.path.exists(tmp_path / filename)

        served = client.get(f"/uploads/{filename}")
        assert served.status_code == 200
        assert served.data == b"\x89PNG fake"

    def test_logo_upload_without_file_is_400(self, client, admin_headers):
        resp = client.post("/api/settings/logo", headers=admin_headers, data={}, content_type="multipart/form-data")
        assert resp.status_code == 400


class TestSystem:
    def test_index_lists_endpoints(self, client):
        assert "sales" in client.get("/").json["endpoints"]

    def test_health(self, client):
        resp = client.get("/api/health")

        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["details"]["topology"] == "Single"

    def test_cors_for_known_origin(self, client):
        resp = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    def test_no_cors_for_unknown_origin(self, client):
        resp = client.get("/api/health", headers={"Origin": "http://evil.test"})
        assert "Access-Control-Allow-Origin" not in resp.headers
