"""
Rutero - Route Recovery Tests
Reconstrucción de rutas predichas vacías desde el servicio de predicción
(httpx.MockTransport en lugar del servicio real).
"""

import httpx
import pytest

from services.prediction_client import PredictionServiceError
from services.route_recovery import (
    RecoveryError, parse_executive, format_fecha_larga, predicted_route_name,
    is_recoverable, map_prediction, recover_route_clients,
)
from tests.factories import make_user, make_route, make_client, entry

PREDICTIONS = [
    {"RUC": "0990001", "nombre_comercial": "Farmacia Sana", "fecha_predicha": "2024-01-01", "Venta": "150.5", "Cobro": 80},
    {"ruc": "0990002", "fecha": "2024-01-02T00:00:00", "ventas": 99},
    {"RUC": "0990003", "Cliente": "Botica Central", "promociones": "12,5"},
    {"Ruc": 990004, "Venta": None},
]


def _predicted_route_doc(owner, clients=None):
    return dict(
        route_name="Ruta Predicha para Juan Pérez - 1 de enero de 2024",
        origin="predicted",
        clients=clients or [],
    )


class TestNames:

    def test_parse_executive(self):
        assert parse_executive("Ruta Predicha para Juan Pérez - Semana 5") == "Juan Pérez"
        assert parse_executive("Ruta Predicha para Ana - 1 de enero de 2024") == "Ana"
        assert parse_executive("Ruta Norte") is None
        assert parse_executive("") is None

    def test_long_date(self):
        assert format_fecha_larga("2024-01-05") == "5 de enero de 2024"
        assert format_fecha_larga("2024-12-31T10:00:00") == "31 de diciembre de 2024"

    def test_name_round_trip(self):
        name = predicted_route_name("María José Vera", "2024-03-04")
        assert name == "Ruta Predicha para María José Vera - 4 de marzo de 2024"
        assert parse_executive(name) == "María José Vera"


class TestMapping:

    def test_map_prediction_key_variants(self):
        first = map_prediction(PREDICTIONS[0], "2024-01-01")
        assert first["ruc"] == "0990001"
        assert first["nombre_comercial"] == "Farmacia Sana"
        assert first["valor_venta"] == 150.5
        assert first["valor_cobro"] == 80.0
        assert (first["origin"], first["status"], first["visit_status"]) == ("predicted", "Activo", "Pendiente")

        second = map_prediction(PREDICTIONS[1], "2024-01-01", {"0990002": "Farmacia Registro"})
        assert second["date"] == "2024-01-02"
        assert second["nombre_comercial"] == "Farmacia Registro"

        third = map_prediction(PREDICTIONS[2], "2024-01-01")
        assert third["date"] == "2024-01-01"
        assert third["promociones"] == 12.5

    def test_prediction_without_ruc_skipped(self):
        assert map_prediction({"nombre_comercial": "Sin RUC"}, "2024-01-01") is None

    def test_recoverable_only_when_no_active_entries(self):
        route = {"origin": "predicted", "clients": [entry("1", "2024-01-01", status="Eliminado")]}
        assert is_recoverable(route)
        route["clients"].append(entry("2", "2024-01-01"))
        assert not is_recoverable(route)
        assert not is_recoverable({"origin": "manual", "route_name": "Ruta Norte", "clients": []})


class TestRecovery:

    @pytest.mark.asyncio
    async def test_recovers_all_predictions(self, mock_db, prediction_service):
        calls = prediction_service(lambda request: httpx.Response(200, json=PREDICTIONS))
        seller = await make_user(mock_db, name="Juan Pérez")
        await make_client(mock_db, "0990002", "Farmacia del Registro")
        removed = entry("0980000", "2024-01-01", status="Eliminado", removal_observation="Cerró")
        route = await make_route(mock_db, seller, **_predicted_route_doc(seller, [removed]))

        clients = await recover_route_clients(route)

        assert len(clients) == 5
        assert clients[0]["ruc"] == "0980000"
        assert clients[0]["status"] == "Eliminado"
        rebuilt = clients[1:]
        assert [c["ruc"] for c in rebuilt] == ["0990001", "0990002", "0990003", "990004"]
        assert all(c["origin"] == "predicted" for c in rebuilt)
        assert all(c["status"] == "Activo" and c["visit_status"] == "Pendiente" for c in rebuilt)
        assert rebuilt[1]["nombre_comercial"] == "Farmacia del Registro"

        params = calls[0].url.params
        assert params["ejecutivo"] == "Juan Pérez"
        assert params["fecha_inicio"] == "2024-01-01"
        assert params["dias"] == "7"
        assert calls[0].headers["X-API-Key"] == "test-token"

        # Nada se guarda hasta que el cliente envíe la lista
        stored = await mock_db.routes.find_one({"id": route["id"]})
        assert len(stored["clients"]) == 1
        print(f"✅ Recuperadas {len(rebuilt)} entradas")

    @pytest.mark.asyncio
    async def test_empty_predictions_fail(self, mock_db, prediction_service):
        prediction_service(lambda request: httpx.Response(200, json=[]))
        seller = await make_user(mock_db)
        route = await make_route(mock_db, seller, **_predicted_route_doc(seller))

        with pytest.raises(RecoveryError):
            await recover_route_clients(route)

    @pytest.mark.asyncio
    async def test_manual_route_not_recoverable(self, mock_db, prediction_service):
        calls = prediction_service(lambda request: httpx.Response(200, json=PREDICTIONS))
        seller = await make_user(mock_db)
        route = await make_route(mock_db, seller, clients=[])

        with pytest.raises(RecoveryError):
            await recover_route_clients(route)
        assert calls == []

    @pytest.mark.asyncio
    async def test_upstream_error_propagates(self, mock_db, prediction_service):
        prediction_service(lambda request: httpx.Response(503, text="maintenance"))
        seller = await make_user(mock_db)
        route = await make_route(mock_db, seller, **_predicted_route_doc(seller))

        with pytest.raises(PredictionServiceError) as exc_info:
            await recover_route_clients(route)
        assert exc_info.value.status_code == 503
