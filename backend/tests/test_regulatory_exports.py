"""Tests for RIPS generation, MUV submission and the Siigo invoice export."""

import json
from datetime import date, datetime, time, timezone

import httpx
import pytest

from app.core.config import Settings
from app.main import app
from app.models.audit import AuditLog
from app.models.delivery import DeliveryStatus
from app.services.muv_service import MUV_ENTITY, MUVClient, get_muv_client
from app.services.rips_service import validate_rips_structure
from app.services.siigo_service import first_consecutive


API = "/api/v1"

PERIOD = "start_date=2026-03-01&end_date=2026-03-31"


@pytest.fixture
def march_deliveries(make_delivery, patient, dispensario, test_product, eps):
    """Two completed deliveries and one cancelled delivery in March 2026."""
    first = make_delivery(
        patient, dispensario, test_product, 30,
        when=datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc), eps_id=eps.id,
    )
    # late on the last day still belongs to the period
    second = make_delivery(
        patient, dispensario, test_product, 10,
        when=datetime.combine(date(2026, 3, 31), time(23, 30), tzinfo=timezone.utc), eps_id=eps.id,
    )
    make_delivery(
        patient, dispensario, test_product, 99,
        when=datetime(2026, 3, 5, tzinfo=timezone.utc), status=DeliveryStatus.CANCELLED, eps_id=eps.id,
    )
    return first, second


def _valid_rips():
    return {
        "numDocumentoIdObligado": "900000000",
        "numFactura": "FAC-20260301-20260331",
        "usuarios": [{"tipoDocumentoIdentificacion": "CC", "numDocumentoIdentificacion": "1"}],
        "medicamentos": [{"codMedicamento": "MED-001", "numUnidades": 3}],
    }


class TestRipsValidation:
    def test_valid_structure(self):
        assert validate_rips_structure(_valid_rips()) == []

    def test_not_an_object(self):
        assert validate_rips_structure([]) == ["RIPS debe ser un objeto JSON"]

    def test_missing_fields(self):
        errors = validate_rips_structure({"usuarios": [{}], "medicamentos": [{"numUnidades": 0}]})
        assert "Falta numDocumentoIdObligado (NIT del prestador)" in errors
        assert "Falta numFactura" in errors
        assert "Usuario 1: falta tipoDocumentoIdentificacion" in errors
        assert "Medicamento 1: falta codMedicamento" in errors
        assert "Medicamento 1: numUnidades debe ser mayor a 0" in errors

    def test_missing_arrays(self):
        errors = validate_rips_structure({"numDocumentoIdObligado": "1", "numFactura": "F"})
        assert errors == ["Falta array de usuarios", "Falta array de medicamentos"]


class TestRipsExport:
    def test_preview(self, client, auth_headers, march_deliveries):
        response = client.get(f"{API}/rips/?{PERIOD}&preview=true", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["stats"]["total_entregas"] == 2
        assert data["stats"]["total_usuarios"] == 1
        rips = data["rips"]
        assert rips["numFactura"] == "FAC-20260301-20260331"
        assert [m["numUnidades"] for m in rips["medicamentos"]] == [30, 10]
        med = rips["medicamentos"][0]
        assert med["codMedicamento"] == "MED-001"
        assert med["codDiagnosticoPrincipal"] == "E119"
        assert med["vrServicio"] == 15000.0
        assert med["consecutivo"] == 1
        assert rips["usuarios"][0]["fechaNacimiento"] == "1975-03-14"
        assert validate_rips_structure(rips) == []

    def test_download(self, client, auth_headers, march_deliveries):
        response = client.get(f"{API}/rips/?{PERIOD}", headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert 'filename="RIPS_2026-03-01_2026-03-31.json"' in response.headers["content-disposition"]
        assert json.loads(response.content)["numDocumentoIdObligado"]

    def test_empty_period(self, client, auth_headers, march_deliveries):
        response = client.get(f"{API}/rips/?start_date=2025-01-01&end_date=2025-01-31", headers=auth_headers)
        assert response.status_code == 404

    def test_inverted_period(self, client, auth_headers):
        response = client.get(f"{API}/rips/?start_date=2026-03-31&end_date=2026-03-01", headers=auth_headers)
        assert response.status_code == 400


def _muv_client(handler):
    config = Settings(
        muv_api_url="https://muv.minsalud.test",
        muv_username="usuario",
        muv_password="clave",
        _env_file=None,
    )
    return MUVClient(config=config, transport=httpx.MockTransport(handler))


def _muv_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/auth/token":
        return httpx.Response(200, json={"token": "tok"})
    if request.url.path == "/validacion/rips":
        assert request.headers["Authorization"] == "Bearer tok"
        return httpx.Response(200, json={"cuv": "CUV-0001", "fechaValidacion": "2026-04-01T10:00:00"})
    if request.url.path.startswith("/validacion/estado/"):
        return httpx.Response(200, json={"estado": "VALIDADO", "mensaje": "OK"})
    return httpx.Response(404)


class TestMUV:
    @pytest.fixture(autouse=True)
    def _clear_overrides(self):
        yield
        app.dependency_overrides.pop(get_muv_client, None)

    def test_status_unconfigured(self, client, auth_headers):
        app.dependency_overrides[get_muv_client] = lambda: MUVClient(config=Settings(_env_file=None))

        data = client.get(f"{API}/muv/", headers=auth_headers).json()

        assert data["configurado"] is False
        assert data["detalles"]["MUV_API_URL"] is False

    def test_local_validation_failure(self, client, auth_headers):
        response = client.post(f"{API}/muv/", json={"rips_json": {"usuarios": []}}, headers=auth_headers)

        data = response.json()
        assert data["success"] is False
        assert data["etapa"] == "VALIDACION_LOCAL"
        assert data["errores"]

    def test_validate_only(self, client, auth_headers):
        response = client.post(
            f"{API}/muv/", json={"rips_json": _valid_rips(), "validar_solo": True}, headers=auth_headers
        )
        assert response.json() == {
            "success": True,
            "etapa": "VALIDACION_LOCAL",
            "mensaje": "RIPS válidos para envío al MUV",
            "errores": [],
        }

    def test_submit_and_history(self, client, auth_headers, db_session):
        app.dependency_overrides[get_muv_client] = lambda: _muv_client(_muv_handler)

        response = client.post(f"{API}/muv/", json={"rips_json": _valid_rips()}, headers=auth_headers)

        data = response.json()
        assert data["etapa"] == "MUV"
        assert data["success"] is True
        assert data["cuv"] == "CUV-0001"
        assert data["estado"] == "VALIDADO"
        assert db_session.query(AuditLog).filter(AuditLog.entity == MUV_ENTITY).count() == 1

        history = client.get(f"{API}/muv/?action=historial", headers=auth_headers).json()
        assert history["envios"][0]["cuv"] == "CUV-0001"
        assert history["envios"][0]["num_factura"] == "FAC-20260301-20260331"

    def test_submit_rejected(self, client, auth_headers):
        def handler(request):
            if request.url.path == "/auth/token":
                return httpx.Response(200, json={"token": "tok"})
            return httpx.Response(422, json={"mensaje": "Factura no existe", "errores": ["FEV no encontrada"]})

        app.dependency_overrides[get_muv_client] = lambda: _muv_client(handler)

        data = client.post(f"{API}/muv/", json={"rips_json": _valid_rips()}, headers=auth_headers).json()

        assert data["success"] is False
        assert data["estado"] == "RECHAZADO"
        assert data["errores"] == ["FEV no encontrada"]

    def test_submit_unconfigured(self, client, auth_headers):
        app.dependency_overrides[get_muv_client] = lambda: MUVClient(config=Settings(_env_file=None))

        data = client.post(f"{API}/muv/", json={"rips_json": _valid_rips()}, headers=auth_headers).json()

        assert data["success"] is False
        assert data["mensaje"].startswith("Configuración MUV incompleta")

    def test_query_cuv(self, client, auth_headers):
        app.dependency_overrides[get_muv_client] = lambda: _muv_client(_muv_handler)

        data = client.get(f"{API}/muv/?action=consultar&cuv=CUV-0001", headers=auth_headers).json()

        assert data["cuv"] == "CUV-0001"
        assert data["estado"] == "VALIDADO"

    def test_query_requires_cuv(self, client, auth_headers):
        app.dependency_overrides[get_muv_client] = lambda: _muv_client(_muv_handler)
        assert client.get(f"{API}/muv/?action=consultar", headers=auth_headers).status_code == 400


class TestSiigoExport:
    def test_first_consecutive_from_start_date(self):
        assert first_consecutive(date(2026, 3, 1)) == 301

    def test_preview(self, client, auth_headers, march_deliveries):
        response = client.get(f"{API}/siigo/?{PERIOD}&format=preview", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["stats"]["total_entregas"] == 2
        assert data["stats"]["total_eps"] == 1
        assert data["stats"]["valor_total"] == 20000.0
        line = data["lineas"][0]
        assert line["tipo_comprobante"] == "FV"
        assert line["consecutivo"] == 301
        assert line["nombre_tercero"] == "Nueva EPS"
        assert line["identificacion_tercero"] == "EPS037"
        assert line["fecha_elaboracion"] == "02/03/2026"
        assert data["facturas_por_eps"] == [{"eps": "Nueva EPS", "entregas": 2, "items": 2}]

    def test_csv_download(self, client, auth_headers, march_deliveries):
        response = client.get(f"{API}/siigo/?{PERIOD}", headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.content.startswith(b"\xef\xbb\xbf")
        text = response.content.decode("utf-8-sig")
        header, *rows = text.strip().splitlines()
        assert header.startswith("Tipo Comprobante,Consecutivo")
        assert len(rows) == 2

    def test_filter_by_other_eps_is_empty(self, client, auth_headers, march_deliveries, eps):
        response = client.get(f"{API}/siigo/?{PERIOD}&eps_id={eps.id + 100}", headers=auth_headers)
        assert response.status_code == 404
