"""Tests for the INVIMA CUM catalog and the product molecule list."""

import io
from datetime import date

import pytest

from app.models.invima import InvimaDrug
from app.models.product import Product
from app.services.invima_service import import_invima_csv, parse_cum_date, row_to_fields


API = "/api/v1"

CUM_HEADER = (
    "EXPEDIENTE,PRODUCTO,TITULAR,REGISTROSANITARIO,FECHAEXPEDICION,FECHAVENCIMIENTO,ESTADOREGISTRO,"
    "EXPEDIENTECUM,CONSECUTIVOCUM,ESTADOCUM,FECHAACTIVO,FECHAINACTIVO,MUESTRAMEDICA,ATC,DESCRIPCIONATC,"
    "VIAADMINISTRACION,CONCENTRACION,PRINCIPIOACTIVO,UNIDADMEDIDA,CANTIDAD,FORMAFARMACEUTICA,NOMBREROL\n"
)
CUM_ROWS = [
    '19901234,METFORMINA 850 MG,"LABORATORIOS ANDINOS, S.A.",INVIMA 2015M-001,03/15/2015,03/15/2030,Vigente,'
    "19901234,1,Activo,03/20/2015,,NO,A10BA02,METFORMINA,ORAL,A,METFORMINA CLORHIDRATO,mg,850,"
    "TABLETA RECUBIERTA,FABRICANTE\n",
    "19901234,METFORMINA 850 MG,LABORATORIOS ANDINOS,INVIMA 2015M-001,03/15/2015,03/15/2030,Vigente,"
    "19901234,2,Inactivo,03/20/2015,01/10/2020,SI,A10BA02,METFORMINA,ORAL,A,METFORMINA CLORHIDRATO,mg,850,"
    "TABLETA RECUBIERTA,FABRICANTE\n",
    "20005555,LOSARTAN 50 MG,FARMA SAS,INVIMA 2010M-777,01/01/2010,01/01/3000,Vigente,"
    "20005555,1,Activo,02/01/2010,,NO,C09CA01,LOSARTAN,ORAL,A,LOSARTAN POTASICO,mg,50,TABLETA,IMPORTADOR\n",
    ",SIN EXPEDIENTE,,,,,,,,,,,,,,,,,,,,\n",
]


def _csv(*rows):
    return io.StringIO(CUM_HEADER + "".join(rows))


@pytest.fixture
def catalog(db_session):
    return import_invima_csv(db_session, _csv(*CUM_ROWS))


class TestCumParsing:
    def test_parse_dates(self):
        assert parse_cum_date("03/15/2015") == date(2015, 3, 15)
        assert parse_cum_date("01/01/3000") is None
        assert parse_cum_date("") is None
        assert parse_cum_date("13/45/2015") is None
        assert parse_cum_date("2015-03-15") is None
        assert parse_cum_date("01/01/1850") is None

    def test_row_fields(self):
        fields = row_to_fields({"EXPEDIENTECUM": "123", "CONSECUTIVOCUM": "", "PRODUCTO": "", "MUESTRAMEDICA": "SI"})

        assert fields["cum"] == "123-1"
        assert fields["product_name"] == "Sin nombre"
        assert fields["medical_sample"] is True
        assert fields["atc"] is None

    def test_row_without_file_number(self):
        assert row_to_fields({"PRODUCTO": "X"}) is None


class TestCumImport:
    def test_import_counts(self, db_session, catalog):
        assert (catalog.imported, catalog.skipped) == (3, 1)
        drug = db_session.query(InvimaDrug).filter(InvimaDrug.cum == "19901234-1").one()
        assert drug.holder == "LABORATORIOS ANDINOS, S.A."
        assert drug.issued_on == date(2015, 3, 15)
        assert drug.active_ingredient == "METFORMINA CLORHIDRATO"
        assert drug.medical_sample is False
        losartan = db_session.query(InvimaDrug).filter(InvimaDrug.cum == "20005555-1").one()
        assert losartan.expires_on is None

    def test_reimport_updates_in_place(self, db_session, catalog):
        renamed = CUM_ROWS[2].replace("LOSARTAN 50 MG", "LOSARTAN POTASICO 50 MG")

        result = import_invima_csv(db_session, _csv(renamed), batch_size=1)

        assert result.imported == 1
        assert db_session.query(InvimaDrug).count() == 3
        drug = db_session.query(InvimaDrug).filter(InvimaDrug.cum == "20005555-1").one()
        assert drug.product_name == "LOSARTAN POTASICO 50 MG"

    def test_clear_replaces_catalog(self, db_session, catalog):
        result = import_invima_csv(db_session, _csv(CUM_ROWS[2]), clear=True)

        assert result.imported == 1
        assert db_session.query(InvimaDrug).count() == 1


class TestCumRoutes:
    def test_search_by_name(self, client, auth_headers, catalog):
        response = client.get(f"{API}/invima/?q=metf", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        # active registrations first
        assert [d["cum_status"] for d in body["items"]] == ["Activo", "Inactivo"]

    def test_short_query_ignored(self, client, auth_headers, catalog):
        assert client.get(f"{API}/invima/?q=m", headers=auth_headers).json()["total"] == 3

    def test_filters(self, client, auth_headers, catalog):
        assert client.get(f"{API}/invima/?estado=Activo", headers=auth_headers).json()["total"] == 2
        assert client.get(f"{API}/invima/?atc=C09", headers=auth_headers).json()["total"] == 1
        assert client.get(f"{API}/invima/?forma=recubierta", headers=auth_headers).json()["total"] == 2
        assert client.get(f"{API}/invima/?via=oral", headers=auth_headers).json()["total"] == 3

    def test_pagination(self, client, auth_headers, catalog):
        body = client.get(f"{API}/invima/?page=2&limit=2", headers=auth_headers).json()

        assert body["total"] == 3
        assert body["pages"] == 2
        assert len(body["items"]) == 1
        assert client.get(f"{API}/invima/?limit=500", headers=auth_headers).status_code == 400

    def test_stats(self, client, auth_headers, catalog):
        body = client.get(f"{API}/invima/stats", headers=auth_headers).json()

        assert body["summary"] == {"total": 3, "activos": 2, "inactivos": 1}
        assert body["via_administracion"] == [{"via": "ORAL", "count": 3}]
        assert body["top_atc"][0] == {"atc": "A10BA02", "count": 2}

    def test_detail_by_cum(self, client, auth_headers, catalog):
        response = client.get(f"{API}/invima/19901234-2", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["inactive_since"] == "2020-01-10"
        assert client.get(f"{API}/invima/000-1", headers=auth_headers).status_code == 404

    def test_user_without_organization(self, client, make_user, make_headers, catalog):
        user = make_user("consulta@dispensario.co")

        response = client.get(f"{API}/invima/?q=losartan", headers=make_headers(user))

        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_requires_token(self, client):
        assert client.get(f"{API}/invima/").status_code == 401


class TestMolecules:
    def test_distinct_sorted_active_only(self, client, auth_headers, db_session, organization, test_product,
                                         foreign_product):
        db_session.add_all([
            Product(organization_id=organization.id, code="MED-002", name="Metformina 500mg", molecule="METFORMINA"),
            Product(organization_id=organization.id, code="MED-003", name="Acetaminofén", molecule="ACETAMINOFEN"),
            Product(organization_id=organization.id, code="MED-004", name="Gasa", molecule=None),
            Product(organization_id=organization.id, code="MED-005", name="Retirado", molecule="RANITIDINA",
                    is_active=False),
        ])
        db_session.commit()

        response = client.get(f"{API}/products/molecules", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == ["ACETAMINOFEN", "METFORMINA"]
