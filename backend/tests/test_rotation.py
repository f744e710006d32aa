"""Tests for rotation alerts and the molecule rotation report."""

import pytest
from datetime import date, datetime, timedelta, timezone

from app.models.delivery import DeliveryStatus
from app.models.warehouse import Warehouse, WarehouseType
from app.services.rotation_service import (
    average_rotation,
    days_in_range,
    generate_rotation_alerts,
    molecule_rotation_report,
)


API = "/api/v1"


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


class TestRotationAlerts:
    def test_no_consumption_no_alert(self, db_session, organization, dispensario, make_lot, test_product):
        make_lot(test_product, dispensario, quantity=0)
        assert generate_rotation_alerts(db_session, organization.id) == []

    def test_stock_above_weekly_rotation_no_alert(
        self, db_session, organization, dispensario, patient, test_product, make_lot, make_delivery, now
    ):
        # 40 units in 28 days -> 10 per week
        make_delivery(patient, dispensario, test_product, 40, when=now - timedelta(days=3))
        make_lot(test_product, dispensario, quantity=11)

        assert generate_rotation_alerts(db_session, organization.id, now=now) == []

    def test_stock_equal_to_weekly_rotation_alerts(
        self, db_session, organization, dispensario, patient, test_product, make_lot, make_delivery, now
    ):
        make_delivery(patient, dispensario, test_product, 40, when=now - timedelta(days=3))
        make_lot(test_product, dispensario, quantity=10)

        alerts = generate_rotation_alerts(db_session, organization.id, now=now)

        assert len(alerts) == 1
        assert alerts[0].current_stock == 10
        assert alerts[0].weekly_rotation == 10

    def test_warning_when_bodega_has_stock(
        self, db_session, organization, dispensario, bodega, patient, test_product, make_lot, make_delivery, now
    ):
        make_delivery(patient, dispensario, test_product, 40, when=now - timedelta(days=3))
        make_lot(test_product, dispensario, quantity=5)
        make_lot(test_product, bodega, lot_number="B-001", quantity=200)

        alerts = generate_rotation_alerts(db_session, organization.id, now=now)

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.type == "warning"
        assert alert.action == "TRANSFER"
        assert alert.supply_available == 200
        assert "Reponer desde Bodega (Disp: 200)" in alert.message
        assert f"to={dispensario.id}" in alert.href

    def test_danger_when_no_bodega_stock(
        self, db_session, organization, dispensario, bodega, patient, test_product, make_delivery, now
    ):
        make_delivery(patient, dispensario, test_product, 40, when=now - timedelta(days=3))

        alerts = generate_rotation_alerts(db_session, organization.id, now=now)

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.type == "danger"
        assert alert.action == "PURCHASE"
        assert alert.current_stock == 0
        assert alert.message.startswith("AGOTADO: Metformina 850mg")
        assert alert.href == f"/compras/nueva?product={test_product.id}"

    def test_old_and_cancelled_deliveries_ignored(
        self, db_session, organization, dispensario, patient, test_product, make_delivery, now
    ):
        make_delivery(patient, dispensario, test_product, 40, when=now - timedelta(days=29))
        make_delivery(
            patient, dispensario, test_product, 40, when=now - timedelta(days=2),
            status=DeliveryStatus.CANCELLED,
        )

        assert generate_rotation_alerts(db_session, organization.id, now=now) == []

    def test_bodegas_are_not_monitored(
        self, db_session, organization, bodega, patient, test_product, make_delivery, now
    ):
        make_delivery(patient, bodega, test_product, 40, when=now - timedelta(days=1))
        assert generate_rotation_alerts(db_session, organization.id, now=now) == []

    def test_danger_sorted_first(
        self, db_session, organization, dispensario, bodega, patient, test_product, make_lot, make_delivery, now
    ):
        second = Warehouse(
            organization_id=organization.id, code="DISP-02", name="Dispensario Sur",
            type=WarehouseType.DISPENSARIO,
        )
        db_session.add(second)
        db_session.commit()
        make_delivery(patient, dispensario, test_product, 40, when=now - timedelta(days=1))
        make_delivery(patient, second, test_product, 40, when=now - timedelta(days=1))
        make_lot(test_product, dispensario, quantity=2)

        alerts = generate_rotation_alerts(db_session, organization.id, now=now)
        assert {a.type for a in alerts} == {"danger"}

        make_lot(test_product, bodega, lot_number="B-001", quantity=50)
        alerts = generate_rotation_alerts(db_session, organization.id, now=now)
        assert [a.type for a in alerts] == ["warning", "warning"]
        # lowest coverage first
        assert alerts[0].warehouse_id == second.id

    def test_scoped_to_organization(
        self, db_session, other_organization, dispensario, patient, test_product, make_delivery, now
    ):
        make_delivery(patient, dispensario, test_product, 40, when=now - timedelta(days=1))
        assert generate_rotation_alerts(db_session, other_organization.id, now=now) == []

    def test_alerts_endpoint(self, client, auth_headers, dispensario, patient, test_product, make_delivery):
        make_delivery(patient, dispensario, test_product, 40, when=datetime.now(timezone.utc) - timedelta(days=1))

        response = client.get(f"{API}/reports/alerts", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["type"] == "danger"
        assert data["items"][0]["product_id"] == test_product.id


class TestRotationReport:
    def test_days_in_range_is_inclusive(self):
        assert days_in_range(date(2026, 1, 1), date(2026, 1, 1)) == 1
        assert days_in_range(date(2026, 1, 1), date(2026, 1, 7)) == 7

    def test_average_rotation_per_period(self):
        assert average_rotation(70, 7, "day") == 10
        assert average_rotation(70, 14, "week") == 35
        # fewer days than the period count as one period
        assert average_rotation(70, 7, "month") == 70

    def test_report_groups_by_molecule(
        self, db_session, organization, dispensario, patient, test_product, make_delivery, now
    ):
        make_delivery(patient, dispensario, test_product, 12, when=now - timedelta(days=1))
        make_delivery(patient, dispensario, test_product, 18, when=now - timedelta(days=2))
        make_delivery(
            patient, dispensario, test_product, 99, when=now - timedelta(days=1),
            status=DeliveryStatus.CANCELLED,
        )

        report = molecule_rotation_report(
            db_session, organization.id, "day", start=now.date() - timedelta(days=9), end=now.date()
        )

        assert report["meta"]["days_in_range"] == 10
        assert report["items"] == [
            {"molecule": "METFORMINA", "total_quantity": 30, "average_rotation": 3.0}
        ]

    def test_rotation_endpoint_rejects_unknown_period(self, client, auth_headers):
        response = client.get(f"{API}/reports/rotation?period=year", headers=auth_headers)
        assert response.status_code == 400
