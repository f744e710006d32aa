"""Tests for the report catalog and the per-EPS report."""

from datetime import date, datetime, timedelta, timezone

import pytest

from app.models.delivery import DeliveryStatus
from app.models.patient import EPS
from app.models.pending_item import PendingItem, PendingStatus
from app.models.transfer import Transfer, TransferItem
from app.services.report_service import REPORT_TYPES, ReportService, expiry_status, round_money


API = "/api/v1"

PERIOD = "start_date=2026-03-01&end_date=2026-03-31"


@pytest.fixture
def march_deliveries(make_delivery, patient, dispensario, test_product, eps):
    """Three completed deliveries on two days, plus one cancelled."""
    return [
        make_delivery(patient, dispensario, test_product, 6,
                      when=datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc), eps_id=eps.id),
        make_delivery(patient, dispensario, test_product, 4,
                      when=datetime(2026, 3, 2, 16, 0, tzinfo=timezone.utc), eps_id=eps.id),
        make_delivery(patient, dispensario, test_product, 5,
                      when=datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc), eps_id=eps.id),
        make_delivery(patient, dispensario, test_product, 99,
                      when=datetime(2026, 3, 3, tzinfo=timezone.utc), status=DeliveryStatus.CANCELLED,
                      eps_id=eps.id),
    ]


def _report(client, headers, report_type, query=PERIOD):
    return client.get(f"{API}/reports/?type={report_type}&{query}", headers=headers)


class TestReportHelpers:
    def test_round_money_half_up(self):
        assert round_money(2.5) == 3
        assert round_money(7499.49) == 7499
        assert round_money(None) == 0

    def test_expiry_status_thresholds(self):
        assert expiry_status(-3) == "VENCIDO"
        assert expiry_status(0) == "VENCIDO"
        assert expiry_status(30) == "CRITICO"
        assert expiry_status(60) == "ALERTA"
        assert expiry_status(61) == "PROXIMO"


class TestReportCatalog:
    def test_types_listed(self, client, auth_headers):
        response = client.get(f"{API}/reports/types", headers=auth_headers)

        assert response.status_code == 200
        types = [t["type"] for t in response.json()["items"]]
        assert types == list(REPORT_TYPES)
        assert "1604" in types and "traslados" in types

    def test_unknown_type(self, client, auth_headers):
        response = _report(client, auth_headers, "xyz")

        assert response.status_code == 400
        assert response.json()["detail"] == "Tipo de reporte no válido: xyz"

    def test_type_required(self, client, auth_headers):
        assert client.get(f"{API}/reports/", headers=auth_headers).status_code == 400

    def test_inverted_period(self, client, auth_headers):
        response = _report(client, auth_headers, "40", "start_date=2026-03-31&end_date=2026-03-01")
        assert response.status_code == 400

    def test_report_1604(self, client, auth_headers, march_deliveries):
        response = _report(client, auth_headers, "1604")

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 3
        assert len(body["headers"]) == 25
        assert body["start_date"] == "2026-03-01"
        row = body["data"][0]
        assert set(row) == set(body["headers"])
        assert row["fecha"] == "2026-03-05"
        assert row["Cantidad_sol"] == 5
        assert row["entidad"] == "Nueva EPS"
        assert row["Identificacion"] == "1020304050"
        assert row["codigo"] == "MED-001"
        assert row["REGIMEN"] == "CONTRIBUTIVO"
        assert row["bodega"] == "DISP-01"

    def test_report_40(self, client, auth_headers, march_deliveries):
        body = _report(client, auth_headers, "40").json()

        assert body["count"] == 3
        row = body["data"][0]
        assert row["hora"] == "09:00:00"
        assert row["valorven"] == 2500.0
        assert row["COSTO"] == 500.0
        assert row["Nombre_Bodega_Entrega"] == "Dispensario Norte"

    def test_cierre_diario(self, client, auth_headers, march_deliveries):
        data = _report(client, auth_headers, "cierre_diario").json()["data"]

        assert [r["fecha"] for r in data] == ["2026-03-05", "2026-03-02"]
        day = data[1]
        assert day["total_entregas"] == 2
        assert day["total_unidades"] == 10
        assert day["valor_total"] == 5000
        assert day["pacientes_atendidos"] == 1
        assert day["cuota_moderadora"] == 0

    def test_cierre_mensual(self, client, auth_headers, march_deliveries):
        data = _report(client, auth_headers, "cierre_mensual").json()["data"]

        assert len(data) == 1
        month = data[0]
        assert (month["año"], month["mes"]) == (2026, 3)
        assert month["total_entregas"] == 3
        assert month["total_unidades"] == 15
        assert month["valor_total"] == 7500
        assert month["dias_con_entregas"] == 2
        # 3 deliveries over 2 days, half up
        assert month["promedio_diario"] == 2

    def test_consumo_producto(self, client, auth_headers, march_deliveries):
        data = _report(client, auth_headers, "consumo_producto").json()["data"]

        assert data == [{
            "codigo": "MED-001",
            "producto": "Metformina 850mg",
            "molecula": "METFORMINA",
            "presentacion": "",
            "total_dispensado": 15,
            "total_entregas": 3,
            "valor_total": 7500,
        }]

    def test_entregas_paciente(self, client, auth_headers, march_deliveries):
        data = _report(client, auth_headers, "entregas_paciente").json()["data"]

        assert len(data) == 1
        assert data[0]["documento"] == "1020304050"
        assert data[0]["total_visitas"] == 3
        assert data[0]["valor_total"] == 7500
        assert data[0]["ultima_visita"] == "2026-03-05"

    def test_period_excludes_other_months(self, client, auth_headers, march_deliveries):
        body = _report(client, auth_headers, "40", "start_date=2026-04-01&end_date=2026-04-30").json()
        assert body["count"] == 0
        assert body["data"] == []

    def test_inventario_valorizado_scoped(
        self, client, auth_headers, make_lot, test_product, dispensario, foreign_product, foreign_warehouse
    ):
        make_lot(test_product, dispensario, lot_number="A", quantity=100, unit_cost="500")
        make_lot(test_product, dispensario, lot_number="EMPTY", quantity=0)
        make_lot(foreign_product, foreign_warehouse, lot_number="EXT", quantity=40)

        data = _report(client, auth_headers, "inventario_valorizado").json()["data"]

        assert len(data) == 1
        assert data[0]["lote"] == "A"
        assert data[0]["valor_total"] == 50000.0
        assert data[0]["molecula"] == "METFORMINA"

    def test_vencimientos(self, db_session, organization, make_lot, test_product, dispensario):
        today = date(2026, 3, 10)
        make_lot(test_product, dispensario, lot_number="OLD", quantity=5, expiry_date=today - timedelta(days=1))
        make_lot(test_product, dispensario, lot_number="SOON", quantity=8, expiry_date=today + timedelta(days=10))
        make_lot(test_product, dispensario, lot_number="LATER", quantity=8, expiry_date=today + timedelta(days=75))
        make_lot(test_product, dispensario, lot_number="FAR", quantity=8, expiry_date=today + timedelta(days=200))

        data = ReportService(db_session, organization.id, today=today).generate("vencimientos")["data"]

        assert [(r["lote"], r["estado"]) for r in data] == [
            ("OLD", "VENCIDO"), ("SOON", "CRITICO"), ("LATER", "PROXIMO"),
        ]
        assert data[1]["dias_para_vencer"] == 10
        assert data[1]["valor_en_riesgo"] == 4000.0

    def test_resumen_bodega(self, db_session, organization, make_lot, test_product, dispensario, bodega):
        today = date(2026, 3, 10)
        make_lot(test_product, bodega, lot_number="B1", quantity=200, expiry_date=today + timedelta(days=300))
        make_lot(test_product, dispensario, lot_number="D1", quantity=5, expiry_date=today + timedelta(days=20))
        make_lot(test_product, dispensario, lot_number="D2", quantity=50, expiry_date=today + timedelta(days=300))

        data = ReportService(db_session, organization.id, today=today).generate("resumen_bodega")["data"]

        assert [r["codigo_bodega"] for r in data] == ["BOD-01", "DISP-01"]
        disp = data[1]
        assert disp["tipo"] == "DISPENSARIO"
        assert disp["total_productos"] == 2
        assert disp["total_unidades"] == 55
        assert disp["valor_inventario"] == 27500
        assert disp["productos_stock_bajo"] == 1
        assert disp["productos_por_vencer"] == 1

    def test_pendientes(self, client, auth_headers, db_session, organization, patient, test_product, dispensario):
        db_session.add_all([
            PendingItem(organization_id=organization.id, patient_id=patient.id, product_id=test_product.id,
                        warehouse_id=dispensario.id, pending_qty=8, delivered_qty=3, status=PendingStatus.PARTIAL),
            PendingItem(organization_id=organization.id, patient_id=patient.id, product_id=test_product.id,
                        pending_qty=2, status=PendingStatus.CANCELLED),
        ])
        db_session.commit()

        data = _report(client, auth_headers, "pendientes").json()["data"]

        assert len(data) == 1
        assert data[0]["cantidad"] == 8
        assert data[0]["pendientes"] == 5
        assert data[0]["bodega"] == "DISP-01"
        assert data[0]["AfCodigo"] == "1020304050"

    def test_traslados(self, client, auth_headers, db_session, organization, bodega, dispensario, test_product):
        transfer = Transfer(organization_id=organization.id, transfer_number="TR-000001",
                            from_warehouse_id=bodega.id, to_warehouse_id=dispensario.id, notes="reposición")
        transfer.items.append(TransferItem(product_id=test_product.id, quantity=20))
        db_session.add(transfer)
        db_session.commit()

        response = client.get(f"{API}/reports/?type=traslados", headers=auth_headers)

        data = response.json()["data"]
        assert data == [{
            "numero": "TR-000001",
            "fecha": data[0]["fecha"],
            "bodega_origen": "Bodega Principal",
            "bodega_destino": "Dispensario Norte",
            "estado": "PENDING",
            "total_items": 1,
            "observaciones": "reposición",
        }]

    def test_requires_token(self, client):
        assert client.get(f"{API}/reports/?type=40").status_code == 401


class TestEpsReport:
    @pytest.fixture
    def second_eps(self, db_session, organization):
        entity = EPS(organization_id=organization.id, code="EPS005", name="Sanitas")
        db_session.add(entity)
        db_session.commit()
        return entity

    def test_summary(self, client, auth_headers, march_deliveries, second_eps):
        response = client.get(f"{API}/reports/eps?{PERIOD}", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert [e["name"] for e in body["eps_list"]] == ["Nueva EPS", "Sanitas"]
        assert len(body["eps_reports"]) == 1
        report = body["eps_reports"][0]
        assert report["eps_code"] == "EPS037"
        assert report["total_entregas"] == 3
        assert report["total_unidades"] == 15
        # valued at list price 1200
        assert report["valor_total"] == 18000.0
        assert report["pacientes_unicos"] == 1
        assert body["totales"]["unidades"] == 15

    def test_detail(self, client, auth_headers, march_deliveries, eps):
        response = client.get(f"{API}/reports/eps?{PERIOD}&eps_id={eps.id}", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["eps"]["code"] == "EPS037"
        assert body["estadisticas"]["total_entregas"] == 3
        assert body["estadisticas"]["productos_unicos"] == 1
        assert body["top_productos"][0]["cantidad"] == 15
        assert body["top_pacientes"][0]["entregas"] == 3
        assert body["entregas_por_dia"] == [
            {"fecha": "2026-03-02", "cantidad": 2, "valor": 12000.0},
            {"fecha": "2026-03-05", "cantidad": 1, "valor": 6000.0},
        ]
        assert body["detalle_entregas"][0]["unidades"] == 5

    def test_unknown_eps(self, client, auth_headers):
        response = client.get(f"{API}/reports/eps?{PERIOD}&eps_id=999", headers=auth_headers)
        assert response.status_code == 404

    def test_dates_required(self, client, auth_headers):
        assert client.get(f"{API}/reports/eps", headers=auth_headers).status_code == 400
