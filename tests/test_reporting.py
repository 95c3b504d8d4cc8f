"""Tests for consumption / inventory reports and the dashboard overview."""

from datetime import date, datetime, timedelta

import pytest

from npwt.core.exceptions import ValidationError
from npwt.schemas.product import ProductUpdate
from npwt.services.reporting import ReportService, consumption_sort_key, day_range, name_sort_key


@pytest.fixture
def report_service(db_session):
    return ReportService(db_session)


@pytest.fixture
def period():
    today = datetime.utcnow().date()
    return today - timedelta(days=1), today + timedelta(days=1)


def row_for(report, code):
    return next(row for row in report.rows if row.product_code == code)


class TestConsumptionReport:
    def test_procedure_consumption_is_valued_at_current_price(self, make_product, make_procedure, procedure_service, surgeon_user, report_service, period):
        product = make_product(code="ABC", stock=15, unit_price="1000")
        procedure = make_procedure()
        procedure_service.consume_for_procedure(procedure.id, {product.id: 3}, surgeon_user)

        report = report_service.consumption_report(*period)

        row = row_for(report, "ABC")
        assert row.total_consumed == 3
        assert row.total_value == 3000.0
        assert row.procedures_count == 1
        assert row.patients_count == 1
        assert report.summary.total_procedures == 1
        assert report.summary.total_value == 3000.0
        assert report.summary.avg_value_per_procedure == 3000.0
        assert report.summary.most_used_product.name == product.name
        assert report.summary.most_used_product.quantity == 3

    def test_same_procedure_twice_counts_once(self, make_product, make_procedure, procedure_service, surgeon_user, report_service, period):
        product = make_product(code="ABC", stock=15, unit_price="1000")
        procedure = make_procedure()
        procedure_service.consume_for_procedure(procedure.id, {product.id: 3}, surgeon_user)
        procedure_service.consume_for_procedure(procedure.id, {product.id: 2}, surgeon_user)

        row = row_for(report_service.consumption_report(*period), "ABC")

        assert row.total_consumed == 5
        assert row.total_value == 5000.0
        assert row.procedures_count == 1
        assert row.patients_count == 1

    def test_manual_edit_outflow_counts_without_procedures(self, make_product, stock_service, admin_user, report_service, period):
        product = make_product(code="EDT", stock=20, unit_price="1000")
        stock_service.update_product(product.id, ProductUpdate(name=product.name, code=product.code, unit_price=product.unit_price, stock=15), admin_user)

        row = row_for(report_service.consumption_report(*period), "EDT")

        assert row.total_consumed == 5
        assert row.total_value == 5000.0
        assert row.procedures_count == 0
        assert row.patients_count == 0

    def test_rows_sorted_by_value_then_zero_rows_by_name(self, make_product, make_procedure, procedure_service, surgeon_user, report_service, period):
        cheap = make_product(code="Y", name="Tubo", stock=10, unit_price="1000")
        dear = make_product(code="X", name="Canister", stock=10, unit_price="5000")
        make_product(code="Z1", name="zeta espuma", stock=4)
        make_product(code="Z2", name="Alfa gasa", stock=4)
        procedure = make_procedure()
        procedure_service.consume_for_procedure(procedure.id, {cheap.id: 4, dear.id: 1}, surgeon_user)

        report = report_service.consumption_report(*period)

        assert [row.product_code for row in report.rows] == ["X", "Y", "Z2", "Z1"]
        assert report.summary.most_used_product.name == "Canister"

    def test_catalog_products_without_movements_appear_with_zeros(self, make_product, report_service, period):
        make_product(code="IDLE", stock=7)

        row = row_for(report_service.consumption_report(*period), "IDLE")

        assert row.total_consumed == 0
        assert row.total_value == 0.0
        assert row.procedures_count == 0

    def test_total_procedures_counts_every_procedure_in_range(self, make_product, make_procedure, procedure_service, surgeon_user, report_service, period):
        product = make_product(code="ABC", stock=15, unit_price="1000")
        used = make_procedure()
        make_procedure()
        procedure_service.consume_for_procedure(used.id, {product.id: 3}, surgeon_user)

        summary = report_service.consumption_report(*period).summary

        assert summary.total_procedures == 2
        assert summary.avg_value_per_procedure == 1500.0

    def test_empty_period(self, make_product, report_service):
        make_product(code="OLD", stock=3)

        report = report_service.consumption_report(date(2020, 1, 1), date(2020, 1, 31))

        assert report.summary.total_procedures == 0
        assert report.summary.total_value == 0.0
        assert report.summary.avg_value_per_procedure == 0.0
        assert report.summary.most_used_product.name == "-"
        assert report.summary.most_used_product.quantity == 0
        assert all(row.total_consumed == 0 for row in report.rows)

    def test_zero_rows_ignore_accents_when_sorting(self, make_product, report_service, period):
        make_product(code="T1", name="Tubo", stock=3)
        make_product(code="O1", name="Órtesis", stock=3)
        make_product(code="A1", name="apósito", stock=3)

        report = report_service.consumption_report(*period)

        assert [row.product_name for row in report.rows] == ["apósito", "Órtesis", "Tubo"]

    def test_open_ended_period_up_to_last_date(self, make_product, make_procedure, procedure_service, surgeon_user, report_service):
        product = make_product(code="MAX", stock=5, unit_price="100")
        procedure = make_procedure()
        procedure_service.consume_for_procedure(procedure.id, {product.id: 2}, surgeon_user)

        report = report_service.consumption_report(date(2020, 1, 1), date.max)

        assert row_for(report, "MAX").total_consumed == 2

    def test_start_after_end_is_rejected(self, report_service):
        with pytest.raises(ValidationError):
            report_service.consumption_report(date(2024, 5, 2), date(2024, 5, 1))

    def test_report_is_idempotent_without_writes(self, make_product, make_procedure, procedure_service, surgeon_user, report_service, period):
        product = make_product(code="ABC", stock=15)
        procedure = make_procedure()
        procedure_service.consume_for_procedure(procedure.id, {product.id: 3}, surgeon_user)

        first = report_service.consumption_report(*period, use_cache=False)
        second = report_service.consumption_report(*period, use_cache=False)

        assert first.rows == second.rows
        assert first.summary == second.summary

    def test_cached_report_is_served_until_ledger_changes(self, make_product, make_procedure, procedure_service, surgeon_user, report_service, period):
        product = make_product(code="ABC", stock=15, unit_price="1000")
        procedure = make_procedure()
        procedure_service.consume_for_procedure(procedure.id, {product.id: 3}, surgeon_user)

        first = report_service.consumption_report(*period)
        cached = report_service.consumption_report(*period)
        assert cached.generated_at == first.generated_at
        assert cached.rows == first.rows

        procedure_service.consume_for_procedure(procedure.id, {product.id: 2}, surgeon_user)
        fresh = report_service.consumption_report(*period)

        assert row_for(fresh, "ABC").total_consumed == 5
        assert row_for(fresh, "ABC").procedures_count == 1


class TestSortKey:
    def test_name_key_folds_accents_and_case(self):
        assert name_sort_key("Órtesis") == "ortesis"
        assert sorted(["Tubo", "Órtesis", "Éxito", "canister"], key=name_sort_key) == ["canister", "Éxito", "Órtesis", "Tubo"]

    def test_last_day_range_is_clamped(self):
        start, end = day_range(date(2024, 1, 1), date.max)
        assert start == datetime(2024, 1, 1)
        assert end == datetime.max

    def test_equal_value_orders_by_quantity(self):
        rows = [
            {"product_name": "a", "total_consumed": 1, "total_value": 100.0},
            {"product_name": "b", "total_consumed": 4, "total_value": 100.0},
        ]
        assert [r["product_name"] for r in sorted(rows, key=consumption_sort_key)] == ["b", "a"]


class TestInventoryReport:
    def test_totals_and_status(self, make_product, report_service):
        make_product(code="A", name="Alfa", stock=10, unit_price="100")
        make_product(code="B", name="Beta", stock=10, unit_price="50")
        make_product(code="C", name="Gamma", stock=0, unit_price="70")
        make_product(code="D", name="Delta", stock=3, unit_price="10", minimum_stock=5)

        report = report_service.inventory_report()

        assert [row.product_name for row in report.rows] == ["Alfa", "Beta", "Delta", "Gamma"]
        assert report.totals.total_inventory_value == 1530.0
        assert report.totals.low_stock_value == 30.0
        assert report.totals.total_products == 4
        assert report.totals.low_stock_count == 1
        assert report.totals.out_of_stock_count == 1
        # Égalité : le premier produit rencontré l'emporte
        assert report.totals.highest_stock_product.name == "Alfa"
        assert report.totals.highest_stock_product.quantity == 10
        assert {row.product_code: row.status for row in report.rows} == {
            "A": "normal", "B": "normal", "C": "out_of_stock", "D": "low_stock",
        }

    def test_all_zero_stock_has_no_highest_product(self, make_product, report_service):
        make_product(code="E1", stock=0)
        make_product(code="E2", stock=0)

        totals = report_service.inventory_report().totals

        assert totals.highest_stock_product.name == "-"
        assert totals.highest_stock_product.quantity == 0
        assert totals.total_inventory_value == 0.0

    def test_low_stock_products(self, make_product, report_service):
        make_product(code="OK", stock=50)
        make_product(code="LOW", stock=2, minimum_stock=5)
        make_product(code="OUT", stock=0)

        assert [p.code for p in report_service.low_stock_products()] == ["OUT", "LOW"]


class TestDashboard:
    def test_overview_counts(self, make_product, make_procedure, procedure_service, surgeon_user, report_service):
        make_product(code="LOW", stock=2, minimum_stock=5)
        make_product(code="OK", stock=50)
        active = make_procedure(patient_name="Ana Ruiz")
        closed = make_procedure(patient_name="Luis Mora")
        procedure_service.close_procedure(closed.id, surgeon_user)

        overview = report_service.dashboard_overview(today=date.today())

        assert overview["day"] == date.today()
        assert overview["active_patients"] == 1
        assert overview["today_procedures"] == 2
        assert overview["active_machines"] == 2
        assert overview["low_stock_count"] == 1
        assert [p["code"] for p in overview["low_stock_products"]] == ["LOW"]
        assert [c["id"] for c in overview["active_procedures"]] == [active.id]
        assert overview["active_procedures"][0]["patient_name"] == "Ana Ruiz"
        assert [c["id"] for c in overview["recent_closed_procedures"]] == [closed.id]
        assert overview["recent_closed_procedures"][0]["status"] == "completed"
