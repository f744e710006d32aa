"""Tests for warehouse transfers: PENDING -> IN_TRANSIT -> RECEIVED / CANCELLED."""

from datetime import date, timedelta

import pytest

from app.models.inventory import Inventory
from app.services.inventory_service import available_quantity


API = "/api/v1"


@pytest.fixture
def bodega_lots(make_lot, test_product, bodega):
    """Two lots in the bodega; B-EARLY expires first."""
    early = make_lot(
        test_product, bodega, lot_number="B-EARLY", quantity=30, unit_cost="400",
        expiry_date=date.today() + timedelta(days=60),
    )
    late = make_lot(
        test_product, bodega, lot_number="B-LATE", quantity=100, unit_cost="450",
        expiry_date=date.today() + timedelta(days=400),
    )
    return early, late


def _create(client, headers, source, target, product, quantity, lot_number=None):
    item = {"product_id": product.id, "quantity": quantity}
    if lot_number:
        item["lot_number"] = lot_number
    return client.post(
        f"{API}/transfers/",
        json={"from_warehouse_id": source.id, "to_warehouse_id": target.id, "items": [item]},
        headers=headers,
    )


def _action(client, headers, transfer_id, action):
    return client.patch(f"{API}/transfers/{transfer_id}", json={"action": action}, headers=headers)


class TestTransferLifecycle:
    def test_create_is_pending_and_keeps_stock(
        self, client, auth_headers, db_session, bodega, dispensario, test_product, bodega_lots
    ):
        response = _create(client, auth_headers, bodega, dispensario, test_product, 50)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["transfer_number"] == "TR-000001"
        assert available_quantity(db_session, test_product.id, bodega.id) == 130

    def test_send_splits_lots_fefo(
        self, client, auth_headers, db_session, bodega, dispensario, test_product, bodega_lots
    ):
        transfer_id = _create(client, auth_headers, bodega, dispensario, test_product, 50).json()["id"]

        response = _action(client, auth_headers, transfer_id, "SEND")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "IN_TRANSIT"
        assert data["sent_at"] is not None
        lines = sorted((i["lot_number"], i["quantity"], i["unit_cost"]) for i in data["items"])
        assert lines == [("B-EARLY", 30, 400.0), ("B-LATE", 20, 450.0)]
        db_session.expire_all()
        early, late = bodega_lots
        assert db_session.get(Inventory, early.id).quantity == 0
        assert db_session.get(Inventory, late.id).quantity == 80

    def test_receive_adds_stock_to_destination(
        self, client, auth_headers, db_session, bodega, dispensario, test_product, bodega_lots
    ):
        transfer_id = _create(client, auth_headers, bodega, dispensario, test_product, 50).json()["id"]
        _action(client, auth_headers, transfer_id, "SEND")

        response = _action(client, auth_headers, transfer_id, "RECEIVE")

        assert response.status_code == 200
        assert response.json()["status"] == "RECEIVED"
        assert available_quantity(db_session, test_product.id, dispensario.id) == 50
        received = (
            db_session.query(Inventory)
            .filter(Inventory.warehouse_id == dispensario.id, Inventory.lot_number == "B-EARLY")
            .one()
        )
        # cost and expiry travel with the lot
        assert float(received.unit_cost) == 400
        assert received.expiry_date == bodega_lots[0].expiry_date

    def test_explicit_lot_is_used(
        self, client, auth_headers, db_session, bodega, dispensario, test_product, bodega_lots
    ):
        transfer_id = _create(
            client, auth_headers, bodega, dispensario, test_product, 10, lot_number="B-LATE"
        ).json()["id"]

        data = _action(client, auth_headers, transfer_id, "SEND").json()

        assert [(i["lot_number"], i["quantity"]) for i in data["items"]] == [("B-LATE", 10)]
        db_session.expire_all()
        assert db_session.get(Inventory, bodega_lots[1].id).quantity == 90

    def test_cancel_in_transit_restores_source(
        self, client, auth_headers, db_session, bodega, dispensario, test_product, bodega_lots
    ):
        transfer_id = _create(client, auth_headers, bodega, dispensario, test_product, 50).json()["id"]
        _action(client, auth_headers, transfer_id, "SEND")

        response = _action(client, auth_headers, transfer_id, "CANCEL")

        assert response.json()["status"] == "CANCELLED"
        assert available_quantity(db_session, test_product.id, bodega.id) == 130
        assert available_quantity(db_session, test_product.id, dispensario.id) == 0

    def test_cannot_cancel_received(self, client, auth_headers, bodega, dispensario, test_product, bodega_lots):
        transfer_id = _create(client, auth_headers, bodega, dispensario, test_product, 5).json()["id"]
        _action(client, auth_headers, transfer_id, "SEND")
        _action(client, auth_headers, transfer_id, "RECEIVE")

        response = _action(client, auth_headers, transfer_id, "CANCEL")

        assert response.status_code == 400

    def test_cannot_receive_pending(self, client, auth_headers, bodega, dispensario, test_product, bodega_lots):
        transfer_id = _create(client, auth_headers, bodega, dispensario, test_product, 5).json()["id"]
        assert _action(client, auth_headers, transfer_id, "RECEIVE").status_code == 400


class TestTransferValidation:
    def test_same_warehouse_rejected(self, client, auth_headers, bodega, test_product, bodega_lots):
        response = _create(client, auth_headers, bodega, bodega, test_product, 5)
        assert response.status_code == 400

    def test_insufficient_stock_rejected(self, client, auth_headers, bodega, dispensario, test_product, bodega_lots):
        response = _create(client, auth_headers, bodega, dispensario, test_product, 500)
        assert response.status_code == 400
        assert "Stock insuficiente" in response.json()["detail"]

    def test_unknown_transfer(self, client, auth_headers):
        assert _action(client, auth_headers, 4242, "SEND").status_code == 404

    def test_dispenser_cannot_create(
        self, client, make_user, make_headers, organization, bodega, dispensario, test_product, bodega_lots
    ):
        from app.core.rbac import OrgRole
        user = make_user("dispensador@dispensario.co", organization, OrgRole.DISPENSER)
        headers = make_headers(user, organization, OrgRole.DISPENSER)

        response = _create(client, headers, bodega, dispensario, test_product, 5)

        assert response.status_code == 403
