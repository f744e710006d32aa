"""Tests for dispensation: delivering lots to patients."""

from app.models.audit import AuditLog
from app.models.delivery import Delivery
from app.models.inventory import Inventory
from app.models.prescription import Prescription


API = "/api/v1"


def _payload(patient, warehouse, *items, **extra):
    return {
        "patient_id": patient.id,
        "warehouse_id": warehouse.id,
        "items": [{"inventory_id": lot.id, "quantity": qty} for lot, qty in items],
        **extra,
    }


class TestCreateDelivery:
    def test_delivery_decrements_lot(self, client, auth_headers, db_session, patient, dispensario, lot, eps):
        response = client.post(
            f"{API}/deliveries/",
            json=_payload(patient, dispensario, (lot, 30), diagnosis_code="E119", moderator_fee=4500),
            headers=auth_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "COMPLETED"
        assert data["patient_name"] == "María Pérez"
        assert data["prescription_number"] == "RX-000001"
        assert data["moderator_fee"] == 4500
        assert data["items"][0]["quantity"] == 30
        assert data["items"][0]["unit_cost"] == 500

        db_session.expire_all()
        assert db_session.get(Inventory, lot.id).quantity == 70
        prescription = db_session.query(Prescription).one()
        # EPS comes from the patient's active contract
        assert prescription.eps_id == eps.id
        assert prescription.items[0].delivered_qty == 30
        assert db_session.query(AuditLog).filter(AuditLog.entity == "delivery").count() == 1

    def test_insufficient_stock_rejects_whole_delivery(
        self, client, auth_headers, db_session, patient, dispensario, test_product, make_lot
    ):
        plenty = make_lot(test_product, dispensario, lot_number="L-A", quantity=50)
        short = make_lot(test_product, dispensario, lot_number="L-B", quantity=3)

        response = client.post(
            f"{API}/deliveries/",
            json=_payload(patient, dispensario, (plenty, 10), (short, 5)),
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert "Stock insuficiente" in response.json()["detail"]
        db_session.expire_all()
        assert db_session.get(Inventory, plenty.id).quantity == 50
        assert db_session.get(Inventory, short.id).quantity == 3
        assert db_session.query(Delivery).count() == 0

    def test_repeated_lines_are_summed(self, client, auth_headers, patient, dispensario, test_product, make_lot):
        small = make_lot(test_product, dispensario, lot_number="L-S", quantity=8)

        response = client.post(
            f"{API}/deliveries/",
            json=_payload(patient, dispensario, (small, 5), (small, 5)),
            headers=auth_headers,
        )

        assert response.status_code == 400

    def test_lot_from_another_warehouse(self, client, auth_headers, patient, dispensario, bodega, test_product, make_lot):
        elsewhere = make_lot(test_product, bodega, lot_number="B-001", quantity=100)

        response = client.post(
            f"{API}/deliveries/", json=_payload(patient, dispensario, (elsewhere, 1)), headers=auth_headers
        )

        assert response.status_code == 400
        assert "no pertenece" in response.json()["detail"]

    def test_unknown_patient(self, client, auth_headers, dispensario, lot):
        response = client.post(
            f"{API}/deliveries/",
            json={"patient_id": 9999, "warehouse_id": dispensario.id, "items": [{"inventory_id": lot.id, "quantity": 1}]},
            headers=auth_headers,
        )
        assert response.status_code == 404

    def test_empty_items_is_validation_error(self, client, auth_headers, patient, dispensario):
        response = client.post(f"{API}/deliveries/", json=_payload(patient, dispensario), headers=auth_headers)

        assert response.status_code == 400
        body = response.json()
        assert "detail" in body
        assert body["errors"]

    def test_requires_token(self, client, patient, dispensario, lot):
        response = client.post(f"{API}/deliveries/", json=_payload(patient, dispensario, (lot, 1)))
        assert response.status_code == 401


class TestListDeliveries:
    def test_list_filters_by_patient(self, client, auth_headers, patient, dispensario, lot):
        client.post(f"{API}/deliveries/", json=_payload(patient, dispensario, (lot, 2)), headers=auth_headers)

        response = client.get(f"{API}/deliveries/?patient_id={patient.id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 1

        response = client.get(f"{API}/deliveries/?patient_id=9999", headers=auth_headers)
        assert response.json()["total"] == 0
