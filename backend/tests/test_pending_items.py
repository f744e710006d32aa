"""Tests for pending (owed) medication items."""

import pytest

from app.models.inventory import Inventory


API = "/api/v1"


@pytest.fixture
def pending_item(client, auth_headers, patient, test_product, dispensario):
    response = client.post(
        f"{API}/pending-items/",
        json={
            "patient_id": patient.id,
            "product_id": test_product.id,
            "warehouse_id": dispensario.id,
            "pending_qty": 10,
        },
        headers=auth_headers,
    )
    assert response.status_code == 201
    return response.json()


def _act(client, headers, item_id, **body):
    return client.patch(f"{API}/pending-items/{item_id}", json=body, headers=headers)


class TestPendingItems:
    def test_create(self, pending_item):
        assert pending_item["status"] == "PENDING"
        assert pending_item["reason"] == "SIN_STOCK"
        assert pending_item["remaining_qty"] == 10

    def test_list_with_stats(self, client, auth_headers, pending_item):
        response = client.get(f"{API}/pending-items/", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["stats"]["PENDING"] == 1
        assert data["stats"]["DELIVERED"] == 0

    def test_list_all_statuses(self, client, auth_headers, pending_item):
        _act(client, auth_headers, pending_item["id"], action="CANCEL")

        assert client.get(f"{API}/pending-items/", headers=auth_headers).json()["total"] == 0
        assert client.get(f"{API}/pending-items/?status=ALL", headers=auth_headers).json()["total"] == 1
        assert client.get(f"{API}/pending-items/?status=bogus", headers=auth_headers).status_code == 400

    def test_partial_then_full_delivery(self, client, auth_headers, pending_item):
        response = _act(client, auth_headers, pending_item["id"], action="DELIVER", delivered_qty=4)
        assert response.status_code == 200
        assert response.json()["status"] == "PARTIAL"
        assert response.json()["remaining_qty"] == 6

        response = _act(client, auth_headers, pending_item["id"], action="DELIVER", delivered_qty=6, notes="completo")
        data = response.json()
        assert data["status"] == "DELIVERED"
        assert data["delivered_qty"] == 10
        assert data["delivered_at"] is not None
        assert "ENTREGA: completo" in data["notes"]

    def test_delivery_from_lot_takes_stock(self, client, auth_headers, db_session, pending_item, lot):
        response = _act(
            client, auth_headers, pending_item["id"], action="DELIVER", delivered_qty=3, inventory_id=lot.id
        )

        assert response.status_code == 200
        db_session.expire_all()
        assert db_session.get(Inventory, lot.id).quantity == 97

    def test_over_delivery_rejected(self, client, auth_headers, pending_item):
        response = _act(client, auth_headers, pending_item["id"], action="DELIVER", delivered_qty=11)
        assert response.status_code == 400

    def test_deliver_requires_quantity(self, client, auth_headers, pending_item):
        assert _act(client, auth_headers, pending_item["id"], action="DELIVER").status_code == 400

    def test_closed_item_rejects_actions(self, client, auth_headers, pending_item):
        _act(client, auth_headers, pending_item["id"], action="CANCEL")

        response = _act(client, auth_headers, pending_item["id"], action="NOTIFY")

        assert response.status_code == 400

    def test_notify(self, client, auth_headers, pending_item):
        data = _act(client, auth_headers, pending_item["id"], action="NOTIFY", notes="llamada").json()
        assert data["status"] == "NOTIFIED"
        assert data["notified_at"] is not None
        assert data["notes"] == "NOTIFICADO: llamada"

    def test_unknown_item(self, client, auth_headers):
        assert _act(client, auth_headers, 999, action="NOTIFY").status_code == 404

    def test_unknown_patient(self, client, auth_headers, test_product):
        response = client.post(
            f"{API}/pending-items/",
            json={"patient_id": 999, "product_id": test_product.id, "pending_qty": 1},
            headers=auth_headers,
        )
        assert response.status_code == 404

    def test_deliver_from_lot_of_other_organization(
        self, client, auth_headers, db_session, pending_item, test_product, foreign_warehouse, make_lot
    ):
        outside = make_lot(test_product, foreign_warehouse, lot_number="EXT-L1", quantity=50)

        response = _act(
            client, auth_headers, pending_item["id"], action="DELIVER", delivered_qty=3, inventory_id=outside.id
        )

        assert response.status_code == 400
        db_session.expire_all()
        assert db_session.get(Inventory, outside.id).quantity == 50
