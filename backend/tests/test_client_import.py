"""
Rutero - Client Import Tests
Cargas CSV: registro de clientes, ubicaciones y base telefónica.
"""

import pytest

from services.client_import import (
    ImportFormatError, normalize_header, parse_decimal,
    parse_clients_csv, parse_locations_csv, parse_phone_contacts_csv,
    import_clients, import_locations,
)
from tests.factories import make_client

CLIENTS_CSV = (
    "Ejecutivo,RUC,Nombre Cliente,Nombre_Comercial,Provincia,Canton,Direccion,Latitud TRZ,Longitud TRZ\n"
    "Juan Pérez,0990001,Farmacias Sana S.A.,Farmacia Sana,Guayas,Guayaquil,Av. 9 de Octubre,\"-2,1894\",-79.8891\n"
    "Juan Pérez,,Sin RUC,Sin RUC,Guayas,Guayaquil,Calle 1,,\n"
    "Ana Vera,0990002,Botica Central,Central,Pichincha,Quito,Av. Amazonas,,\n"
)

LOCATIONS_CSV = (
    "RUC,Provincia,Canton,Direccion,Latitud,Longitud\n"
    "0990001,Guayas,Daule,Km 10 vía Daule,\"-1,86\",-79.97\n"
    "0999999,Guayas,Daule,Km 11,-1.8,-79.9\n"
    "0990002,Pichincha,Quito,Av. Amazonas,abc,-78.5\n"
)


class TestParsing:

    def test_normalize_header(self):
        assert normalize_header(" Nombre_Comercial ") == "nombrecomercial"
        assert normalize_header("Latitud TRZ") == "latitudtrz"

    def test_parse_decimal(self):
        assert parse_decimal("-2,1894") == -2.1894
        assert parse_decimal("") is None
        assert parse_decimal("n/a") is None
        assert parse_decimal(None) is None

    def test_clients_csv(self):
        clients, skipped = parse_clients_csv(CLIENTS_CSV.encode("utf-8-sig"))
        assert skipped == 1
        assert [c["ruc"] for c in clients] == ["0990001", "0990002"]
        assert clients[0]["latitud"] == -2.1894
        assert clients[0]["nombre_comercial"] == "Farmacia Sana"
        assert clients[1]["latitud"] == 0.0

    def test_missing_columns(self):
        with pytest.raises(ImportFormatError) as exc_info:
            parse_clients_csv("RUC,Nombre Cliente\n0990001,Sana\n")
        assert "ejecutivo" in str(exc_info.value)

    def test_locations_skip_bad_coordinates(self):
        locations, skipped = parse_locations_csv(LOCATIONS_CSV)
        assert [l["ruc"] for l in locations] == ["0990001", "0999999"]
        assert locations[0]["latitud"] == -1.86
        assert skipped == 1

    def test_phone_contacts_default_state(self):
        content = (
            "cedula,nombre_del_cliente,nombre_comercial,ciudad,regional,nombre_del_vendedor,"
            "direccion_del_cliente,telefono1,estado_cliente\n"
            "0912345678,Pedro Díaz,Farmacia Díaz,Quito,Sierra,Ana Vera,Av. Colón,0991234567,Suspendido\n"
            ",Sin cédula,,,,,,,\n"
        )
        contacts, skipped = parse_phone_contacts_csv(content)
        assert skipped == 1
        assert contacts[0]["estado_cliente"] == "Activo"
        assert contacts[0]["nombre_cliente"] == "Pedro Díaz"


class TestImport:

    @pytest.mark.asyncio
    async def test_import_clients_upserts_by_ruc(self, mock_db):
        await make_client(mock_db, "0990001", "Nombre Viejo")

        result = await import_clients(CLIENTS_CSV, {"email": "admin@rutero.test"})
        assert result == {"added": 1, "updated": 1, "skipped": 1}

        updated = await mock_db.clients.find_one({"ruc": "0990001"})
        assert updated["nombre_comercial"] == "Farmacia Sana"
        assert await mock_db.clients.count_documents({}) == 2
        print(f"✅ Import: {result}")

    @pytest.mark.asyncio
    async def test_import_locations_reports_unknown_rucs(self, mock_db):
        await make_client(mock_db, "0990001")

        result = await import_locations(LOCATIONS_CSV, {"email": "admin@rutero.test"})
        assert result["updated"] == 1
        assert result["not_found"] == ["0999999"]

        client = await mock_db.clients.find_one({"ruc": "0990001"})
        assert client["canton"] == "Daule"
        assert client["longitud"] == -79.97
