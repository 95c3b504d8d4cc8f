"""End-to-end tests through the HTTP API."""

from npwt.core.exceptions import PersistenceError
from npwt.models import Product
from npwt.services.procedure_service import ProcedureService

API = "/api/v1"


def create_product(client, headers, code="ABC", stock=20, unit_price=1000):
    response = client.post(
        f"{API}/products",
        json={"name": f"Producto {code}", "code": code, "stock": stock, "unit_price": unit_price},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["product"]


def create_procedure(client, headers, machine, products=None, identification="CC-100"):
    response = client.post(
        f"{API}/procedures",
        json={
            "patient": {"name": "Juan Pérez", "identification": identification, "age": 54},
            "machine_id": str(machine.id),
            "surgeon_name": "Dra. Gómez",
            "start_time": "08:30:00",
            "diagnosis": "Úlcera por presión sacra",
            "products": products or {},
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:
    def test_root_and_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
        assert client.get("/").status_code == 200


class TestAuth:
    def test_login_returns_token(self, client, admin_user):
        response = client.post(f"{API}/auth/login", json={"email": "ADMIN@hospital.co", "password": "secret123"})

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["role"] == "administrador"

        me = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.json()["email"] == "admin@hospital.co"

    def test_bad_password(self, client, admin_user):
        response = client.post(f"{API}/auth/login", json={"email": "admin@hospital.co", "password": "nope"})
        assert response.status_code == 401

    def test_missing_or_invalid_token(self, client):
        assert client.get(f"{API}/products").status_code == 401
        assert client.get(f"{API}/products", headers={"Authorization": "Bearer abc"}).status_code == 401


class TestProductsApi:
    def test_create_edit_and_history(self, client, admin_headers):
        product = create_product(client, admin_headers, code="abc", stock=20)
        assert product["code"] == "ABC"
        assert product["stock_status"] == "normal"

        update = client.put(
            f"{API}/products/{product['id']}",
            json={"name": product["name"], "code": "ABC", "unit_price": 1000, "stock": 15},
            headers=admin_headers,
        )
        assert update.status_code == 200
        assert update.json()["product"]["stock"] == 15
        assert update.json()["movement_id"] is not None

        history = client.get(f"{API}/products/{product['id']}/movements", headers=admin_headers).json()
        assert [m["movement_type"] for m in history["movements"]] == ["out", "in"]
        assert history["movements"][0]["notes"] == "Modification manuelle : 20 → 15"
        assert history["summary"]["current_stock"] == 15

    def test_duplicate_code_is_a_conflict(self, client, admin_headers):
        create_product(client, admin_headers, code="DUP")

        response = client.post(
            f"{API}/products",
            json={"name": "Otro", "code": " dup ", "stock": 1},
            headers=admin_headers,
        )

        assert response.status_code == 409
        assert response.json()["code"] == "DUPLICATE_CODE"

    def test_surgeon_cannot_create_products(self, client, surgeon_headers):
        response = client.post(f"{API}/products", json={"name": "X", "code": "X"}, headers=surgeon_headers)
        assert response.status_code == 403
        assert response.json()["code"] == "PERMISSION_DENIED"

    def test_bulk_stock_entry(self, client, admin_headers):
        a = create_product(client, admin_headers, code="A", stock=1)
        b = create_product(client, admin_headers, code="B", stock=1)

        response = client.post(
            f"{API}/products/stock-entry",
            json={"entries": {a["id"]: {"quantity": 9, "reason": "Pedido #7"}, b["id"]: {"quantity": 0}}},
            headers=admin_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert [entry["product_id"] for entry in body["applied"]] == [a["id"]]
        assert body["skipped"] == [b["id"]]
        assert client.get(f"{API}/products/{a['id']}", headers=admin_headers).json()["stock"] == 10

    def test_unknown_product_is_404(self, client, admin_headers):
        response = client.get(f"{API}/products/00000000-0000-0000-0000-000000000000", headers=admin_headers)
        assert response.status_code == 404


class TestProceduresApi:
    def test_procedure_flow(self, client, db_session, admin_headers, surgeon_headers, machine):
        product = create_product(client, admin_headers, code="ABC", stock=15)

        procedure = create_procedure(client, surgeon_headers, machine, products={product["id"]: 3})
        assert procedure["status"] == "active"
        assert procedure["total_products_used"] == 3
        assert procedure["patient"]["name"] == "Juan Pérez"

        added = client.post(
            f"{API}/procedures/{procedure['id']}/products",
            json={"products": {product["id"]: 2}},
            headers=surgeon_headers,
        )
        assert added.status_code == 200
        assert added.json()["items"][0]["remaining_stock"] == 10

        closed = client.post(f"{API}/procedures/{procedure['id']}/close", headers=surgeon_headers)
        assert closed.status_code == 200
        assert closed.json()["procedure"]["status"] == "completed"

        after = client.post(
            f"{API}/procedures/{procedure['id']}/products",
            json={"products": {product["id"]: 1}},
            headers=surgeon_headers,
        )
        assert after.status_code == 409
        assert after.json()["code"] == "PROCEDURE_NOT_ACTIVE"

    def test_insufficient_stock_lists_products(self, client, admin_headers, surgeon_headers, machine):
        product = create_product(client, admin_headers, code="LOW", stock=2)
        procedure = create_procedure(client, surgeon_headers, machine)

        response = client.post(
            f"{API}/procedures/{procedure['id']}/products",
            json={"products": {product["id"]: 5}},
            headers=surgeon_headers,
        )

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["details"]["items"][0]["product_id"] == product["id"]
        assert body["details"]["items"][0]["available"] == 2
        assert client.get(f"{API}/products/{product['id']}", headers=admin_headers).json()["stock"] == 2

    def test_machine_in_use_is_refused(self, client, surgeon_headers, machine):
        create_procedure(client, surgeon_headers, machine, identification="CC-1")

        response = client.post(
            f"{API}/procedures",
            json={
                "patient": {"name": "Otra", "identification": "CC-2", "age": 40},
                "machine_id": str(machine.id),
                "surgeon_name": "Dra. Gómez",
                "start_time": "09:00:00",
                "diagnosis": "Dehiscencia",
            },
            headers=surgeon_headers,
        )

        assert response.status_code == 409
        assert response.json()["code"] == "MACHINE_UNAVAILABLE"

    def test_partial_close_is_reported(self, client, surgeon_headers, machine, monkeypatch):
        procedure = create_procedure(client, surgeon_headers, machine)

        def broken(self, patient_id):
            raise PersistenceError("Base de données indisponible", {})

        monkeypatch.setattr(ProcedureService, "_complete_patient", broken)
        response = client.post(f"{API}/procedures/{procedure['id']}/close", headers=surgeon_headers)

        assert response.status_code == 207
        body = response.json()
        assert body["code"] == "PARTIAL_FAILURE"
        assert body["details"]["completed"] == ["procedure"]
        assert body["details"]["failed"] == ["patient"]

        detail = client.get(f"{API}/procedures/{procedure['id']}", headers=surgeon_headers).json()
        assert detail["status"] == "completed"
        assert detail["patient"]["status"] == "active"


class TestMachinesApi:
    def test_available_excludes_machines_in_use(self, client, admin_headers, surgeon_headers, make_machine):
        busy = make_machine(name="VAC A")
        free = make_machine(name="VAC B")
        make_machine(name="VAC C", status="maintenance")
        create_procedure(client, surgeon_headers, busy)

        available = client.get(f"{API}/machines/available", headers=admin_headers).json()

        assert [m["id"] for m in available] == [str(free.id)]

    def test_delete_machine_in_use_is_refused(self, client, admin_headers, surgeon_headers, machine):
        create_procedure(client, surgeon_headers, machine)
        response = client.delete(f"{API}/machines/{machine.id}", headers=admin_headers)
        assert response.status_code == 409


class TestReportsApi:
    def test_surgeon_cannot_view_reports(self, client, surgeon_headers):
        response = client.get(f"{API}/reports/consumption", headers=surgeon_headers)
        assert response.status_code == 403

    def test_finance_views_consumption(self, client, admin_headers, surgeon_headers, finance_headers, machine):
        product = create_product(client, admin_headers, code="ABC", stock=15, unit_price=1000)
        create_procedure(client, surgeon_headers, machine, products={product["id"]: 3})

        response = client.get(f"{API}/reports/consumption", headers=finance_headers)

        assert response.status_code == 200
        row = response.json()["rows"][0]
        assert row["product_code"] == "ABC"
        assert row["total_consumed"] == 3
        assert row["total_value"] == 3000.0

    def test_inverted_period_is_rejected(self, client, finance_headers):
        response = client.get(
            f"{API}/reports/consumption",
            params={"start_date": "2024-05-02", "end_date": "2024-05-01"},
            headers=finance_headers,
        )
        assert response.status_code == 400

    def test_exports(self, client, admin_headers, finance_headers):
        create_product(client, admin_headers, code="EXP", stock=4)

        csv_response = client.get(f"{API}/reports/inventory/export", params={"format": "csv"}, headers=finance_headers)
        assert csv_response.status_code == 200
        assert csv_response.headers["content-type"].startswith("text/csv")
        assert "EXP" in csv_response.content.decode("utf-8-sig")

        xlsx_response = client.get(f"{API}/reports/consumption/export", params={"format": "excel"}, headers=finance_headers)
        assert xlsx_response.status_code == 200
        assert xlsx_response.headers["content-type"].startswith("application/vnd.openxmlformats")
        assert xlsx_response.content[:2] == b"PK"

    def test_reconciliation_requires_admin(self, client, admin_headers, finance_headers, db_session):
        create_product(client, admin_headers, code="REC", stock=4)

        assert client.get(f"{API}/reports/reconciliation", headers=finance_headers).status_code == 403

        response = client.get(f"{API}/reports/reconciliation", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["consistent"] is True
        assert response.json()["checked_products"] == db_session.query(Product).count()

    def test_single_product_reconciliation(self, client, admin_headers, finance_headers):
        product = create_product(client, admin_headers, code="ONE", stock=6)

        assert client.get(f"{API}/reports/reconciliation/{product['id']}", headers=finance_headers).status_code == 403

        row = client.get(f"{API}/reports/reconciliation/{product['id']}", headers=admin_headers).json()
        assert row["product_code"] == "ONE"
        assert row["cached_stock"] == 6
        assert row["ledger_stock"] == 6
        assert row["difference"] == 0

        missing = client.get(f"{API}/reports/reconciliation/00000000-0000-0000-0000-000000000000", headers=admin_headers)
        assert missing.status_code == 404

    def test_clear_report_cache(self, client, admin_headers, finance_headers):
        assert client.get(f"{API}/reports/consumption", headers=finance_headers).status_code == 200

        assert client.delete(f"{API}/reports/cache", headers=finance_headers).status_code == 403
        response = client.delete(f"{API}/reports/cache", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"cleared": 1}


class TestDashboardApi:
    def test_overview(self, client, admin_headers, surgeon_headers, machine):
        create_product(client, admin_headers, code="LOW", stock=1)
        create_procedure(client, surgeon_headers, machine)

        body = client.get(f"{API}/dashboard/overview", headers=surgeon_headers).json()

        assert body["active_patients"] == 1
        assert body["low_stock_count"] == 1
        assert len(body["active_procedures"]) == 1
        assert body["active_procedures"][0]["machine_name"] == machine.name
