"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Rutero - API Routes E2E                                                     ║
║                                                                              ║
║  Flujo completo por HTTP:                                                    ║
║  1. Creación (Usuario → Pendiente + notificación al supervisor)              ║
║  2. Aprobación / rechazo                                                     ║
║  3. Baja lógica de clientes con observación                                  ║
║  4. Conflicto de versión (409)                                               ║
║  5. Jornada: inicio, check-in, gestión, check-out                            ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import pytest

from tests.factories import make_user, make_client, make_route, auth_headers, entry


async def _team(db):
    supervisor = await make_user(db, "Supervisor", name="Carla Supervisora")
    seller = await make_user(db, "Usuario", name="Juan Pérez", supervisor_id=supervisor["id"])
    for ruc in ("0990001", "0990002", "0990003"):
        await make_client(db, ruc, ejecutivo="Juan Pérez")
    return supervisor, seller


def _route_body(supervisor_id, **extra):
    body = {
        "route_name": "Ruta Norte",
        "date": "2024-01-01",
        "supervisor_id": supervisor_id,
        "clients": [
            {"ruc": "0990001", "date": "2024-01-01", "valor_venta": 100},
            {"ruc": "0990002", "date": "2024-01-02"},
        ],
    }
    body.update(extra)
    return body


# ═══════════════════════════════════════════════════════════════
# 1. CREACIÓN Y APROBACIÓN
# ═══════════════════════════════════════════════════════════════

class TestRouteCreation:

    @pytest.mark.asyncio
    async def test_seller_route_goes_to_approval(self, api, mock_db):
        supervisor, seller = await _team(mock_db)

        resp = await api.post(
            "/api/routes", json=_route_body(supervisor["id"]),
            headers=await auth_headers(mock_db, seller)
        )
        assert resp.status_code == 200
        route = resp.json()["route"]
        assert route["status"] == "Pendiente de Aprobación"
        assert route["version"] == 0
        assert [c["status"] for c in route["clients"]] == ["Activo", "Activo"]
        assert route["clients"][0]["valor_venta"] == 100.0

        resp = await api.get("/api/notifications", headers=await auth_headers(mock_db, supervisor))
        assert resp.json()["unread"] == 1
        assert resp.json()["notifications"][0]["title"] == "Nueva ruta para aprobar"
        print(f"✅ Ruta creada: {route['id']} -> {route['status']}")

    @pytest.mark.asyncio
    async def test_supervisor_route_is_planned(self, api, mock_db):
        supervisor, _ = await _team(mock_db)
        resp = await api.post(
            "/api/routes", json=_route_body(supervisor["id"]),
            headers=await auth_headers(mock_db, supervisor)
        )
        assert resp.json()["route"]["status"] == "Planificada"

    @pytest.mark.asyncio
    async def test_validation_errors(self, api, mock_db):
        supervisor, seller = await _team(mock_db)
        headers = await auth_headers(mock_db, seller)

        resp = await api.post("/api/routes", json=_route_body(supervisor["id"], clients=[]), headers=headers)
        assert resp.status_code == 400

        resp = await api.post("/api/routes", json=_route_body("", route_name="X"), headers=headers)
        assert resp.status_code == 400

        body = _route_body(supervisor["id"], clients=[{"ruc": "0000000"}])
        resp = await api.post("/api/routes", json=body, headers=headers)
        assert resp.status_code == 400
        assert "0000000" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_unauthenticated(self, api, mock_db):
        resp = await api.get("/api/routes")
        assert resp.status_code == 401


class TestReview:

    @pytest.mark.asyncio
    async def test_reject_then_resubmit_then_approve(self, api, mock_db):
        supervisor, seller = await _team(mock_db)
        seller_headers = await auth_headers(mock_db, seller)
        sup_headers = await auth_headers(mock_db, supervisor)

        route = (await api.post("/api/routes", json=_route_body(supervisor["id"]), headers=seller_headers)).json()["route"]

        team = (await api.get("/api/routes/team", headers=sup_headers)).json()
        assert [r["id"] for r in team["routes"]] == [route["id"]]

        resp = await api.post(f"/api/routes/{route['id']}/reject", json={"observation": ""}, headers=sup_headers)
        assert resp.status_code == 409

        resp = await api.post(
            f"/api/routes/{route['id']}/reject",
            json={"observation": "Agrega clientes de Samborondón"},
            headers=sup_headers
        )
        assert resp.status_code == 200
        assert resp.json()["route"]["status"] == "Rechazada"

        resp = await api.post(f"/api/routes/{route['id']}/submit", headers=seller_headers)
        assert resp.json()["route"]["status"] == "Pendiente de Aprobación"

        resp = await api.post(f"/api/routes/{route['id']}/approve", headers=sup_headers)
        assert resp.status_code == 200
        assert resp.json()["route"]["status"] == "Planificada"

        notes = (await api.get("/api/notifications", headers=seller_headers)).json()["notifications"]
        assert {n["title"] for n in notes} == {"Ruta Rechazada", "Ruta Aprobada"}

    @pytest.mark.asyncio
    async def test_seller_cannot_approve(self, api, mock_db):
        supervisor, seller = await _team(mock_db)
        route = await make_route(mock_db, seller, status="Pendiente de Aprobación", supervisor_id=supervisor["id"])

        resp = await api.post(f"/api/routes/{route['id']}/approve", headers=await auth_headers(mock_db, seller))
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_other_seller_cannot_view(self, api, mock_db):
        supervisor, seller = await _team(mock_db)
        other = await make_user(mock_db)
        route = await make_route(mock_db, seller, supervisor_id=supervisor["id"])

        resp = await api.get(f"/api/routes/{route['id']}", headers=await auth_headers(mock_db, other))
        assert resp.status_code == 403
        resp = await api.get("/api/routes/missing", headers=await auth_headers(mock_db, other))
        assert resp.status_code == 404


# ═══════════════════════════════════════════════════════════════
# 2. CLIENTES DE LA RUTA
# ═══════════════════════════════════════════════════════════════

class TestRouteClients:

    @pytest.mark.asyncio
    async def test_removal_requires_observation_and_keeps_entry(self, api, mock_db):
        supervisor, seller = await _team(mock_db)
        route = await make_route(mock_db, seller, status="Planificada", supervisor_id=supervisor["id"], clients=[
            entry("0990001", "2024-01-01"),
            entry("0990002", "2024-01-02"),
        ])
        headers = await auth_headers(mock_db, seller)

        resp = await api.post(
            f"/api/routes/{route['id']}/clients/0990001/remove", json={"observation": "  "}, headers=headers
        )
        assert resp.status_code == 400

        resp = await api.post(
            f"/api/routes/{route['id']}/clients/0990001/remove",
            json={"observation": "Cliente cerró el local"},
            headers=headers
        )
        assert resp.status_code == 200
        clients = resp.json()["route"]["clients"]
        assert len(clients) == 2
        removed = clients[0]
        assert removed["status"] == "Eliminado"
        assert removed["removal_observation"] == "Cliente cerró el local"

        resp = await api.post(
            f"/api/routes/{route['id']}/clients/0990001/remove", json={"observation": "otra vez"}, headers=headers
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_add_clients_skips_duplicates(self, api, mock_db):
        supervisor, seller = await _team(mock_db)
        route = await make_route(mock_db, seller, status="Planificada", supervisor_id=supervisor["id"],
                                 clients=[entry("0990001", "2024-01-01")])

        resp = await api.post(
            f"/api/routes/{route['id']}/clients",
            json={"rucs": ["0990001", "0990003"], "date": "2024-01-01"},
            headers=await auth_headers(mock_db, seller)
        )
        assert resp.status_code == 200
        assert [c["ruc"] for c in resp.json()["route"]["clients"]] == ["0990001", "0990003"]

    @pytest.mark.asyncio
    async def test_pending_route_not_editable_by_owner(self, api, mock_db):
        supervisor, seller = await _team(mock_db)
        route = await make_route(mock_db, seller, status="Pendiente de Aprobación", supervisor_id=supervisor["id"],
                                 clients=[entry("0990001", "2024-01-01")])

        resp = await api.patch(
            f"/api/routes/{route['id']}/clients/0990001",
            json={"valor_venta": 10},
            headers=await auth_headers(mock_db, seller)
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_stale_version_conflict(self, api, mock_db):
        supervisor, seller = await _team(mock_db)
        route = await make_route(mock_db, seller, status="Planificada", supervisor_id=supervisor["id"],
                                 clients=[entry("0990001", "2024-01-01")])
        headers = await auth_headers(mock_db, seller)

        resp = await api.patch(
            f"/api/routes/{route['id']}/clients/0990001",
            json={"valor_venta": 55.5, "expected_version": 0},
            headers=headers
        )
        assert resp.status_code == 200
        assert resp.json()["route"]["version"] == 1

        resp = await api.patch(
            f"/api/routes/{route['id']}/clients/0990001",
            json={"valor_venta": 70, "expected_version": 0},
            headers=headers
        )
        assert resp.status_code == 409

        stored = (await api.get(f"/api/routes/{route['id']}", headers=headers)).json()
        assert stored["clients"][0]["valor_venta"] == 55.5
        print("✅ Escritura con versión vieja -> 409")

    @pytest.mark.asyncio
    async def test_recover_and_save(self, api, mock_db, prediction_service):
        import httpx

        prediction_service(lambda request: httpx.Response(200, json=[
            {"RUC": "0990001"}, {"RUC": "0990002"}, {"RUC": "0990003"}, {"RUC": "0990004"},
        ]))
        supervisor, seller = await _team(mock_db)
        route = await make_route(
            mock_db, seller, status="Planificada", supervisor_id=supervisor["id"],
            route_name="Ruta Predicha para Juan Pérez - Semana 1", origin="predicted", clients=[]
        )
        headers = await auth_headers(mock_db, seller)

        resp = await api.post(f"/api/routes/{route['id']}/recover", headers=headers)
        assert resp.status_code == 200
        recovered = resp.json()
        assert len(recovered["clients"]) == 4

        resp = await api.put(
            f"/api/routes/{route['id']}/clients",
            json={"clients": recovered["clients"], "expected_version": recovered["version"]},
            headers=headers
        )
        assert resp.status_code == 200
        assert len(resp.json()["route"]["clients"]) == 4

        # Ya no está vacía: no se puede volver a recuperar
        resp = await api.post(f"/api/routes/{route['id']}/recover", headers=headers)
        assert resp.status_code == 422


# ═══════════════════════════════════════════════════════════════
# 3. CLIENTES DEL REGISTRO
# ═══════════════════════════════════════════════════════════════

class TestClientRegistry:

    @pytest.mark.asyncio
    async def test_duplicate_ruc(self, api, mock_db):
        admin = await make_user(mock_db, "Administrador")
        headers = await auth_headers(mock_db, admin)
        body = {
            "ruc": "0991112223001",
            "nombre_cliente": "Farmacias del Sur S.A.",
            "nombre_comercial": "Farmacia del Sur",
            "ejecutivo": "Juan Pérez",
            "provincia": "Guayas",
            "canton": "Guayaquil",
            "direccion": "Av. 25 de Julio",
        }
        assert (await api.post("/api/clients", json=body, headers=headers)).status_code == 200
        resp = await api.post("/api/clients", json=body, headers=headers)
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_my_clients(self, api, mock_db):
        _, seller = await _team(mock_db)
        await make_client(mock_db, "0995555", ejecutivo="Otra Persona")
        resp = await api.get("/api/clients/mine", headers=await auth_headers(mock_db, seller))
        assert resp.json()["count"] == 3


# ═══════════════════════════════════════════════════════════════
# 4. JORNADA
# ═══════════════════════════════════════════════════════════════

class TestVisitDay:

    @pytest.mark.asyncio
    async def test_full_visit(self, api, mock_db):
        from config import local_today

        today = local_today().isoformat()
        supervisor, seller = await _team(mock_db)
        route = await make_route(mock_db, seller, status="Planificada", day=today, supervisor_id=supervisor["id"],
                                 clients=[entry("0990001", today), entry("0990002", today)])
        headers = await auth_headers(mock_db, seller)
        base = f"/api/routes/{route['id']}"

        resp = await api.post(f"{base}/visits/check-in", json={"ruc": "0990001"}, headers=headers)
        assert resp.status_code == 400

        assert (await api.post(f"{base}/start", headers=headers)).json()["route"]["status"] == "En Progreso"

        day = (await api.get(f"{base}/today", headers=headers)).json()
        assert [c["ruc"] for c in day["clients"]] == ["0990001", "0990002"]

        resp = await api.post(
            f"{base}/visits/check-in",
            json={"ruc": "0990001", "location": {"lat": -2.17, "lng": -79.92}, "operation_id": "op-1"},
            headers=headers
        )
        assert resp.status_code == 200

        resp = await api.post(f"{base}/visits/check-in", json={"ruc": "0990002"}, headers=headers)
        assert resp.status_code == 409

        resp = await api.post(f"{base}/visits/check-out", json={"ruc": "0990001"}, headers=headers)
        assert resp.status_code == 400

        resp = await api.post(
            f"{base}/visits/gesture",
            json={"ruc": "0990001", "visit_type": "presencial", "valor_venta": 80, "tipo_cobro": "Transferencia"},
            headers=headers
        )
        assert resp.status_code == 200

        resp = await api.post(f"{base}/visits/check-out", json={"ruc": "0990001"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["route_completed"] is False

        await api.post(f"{base}/visits/check-in", json={"ruc": "0990002"}, headers=headers)
        await api.post(
            f"{base}/visits/gesture",
            json={"ruc": "0990002", "visit_type": "telefonica", "call_observation": "Confirmó pedido"},
            headers=headers
        )
        resp = await api.post(f"{base}/visits/check-out", json={"ruc": "0990002"}, headers=headers)
        assert resp.json()["route_completed"] is True
        assert resp.json()["route"]["status"] == "Completada"
        print("✅ Jornada completa: ruta Completada")

    @pytest.mark.asyncio
    async def test_admin_override_endpoints(self, api, mock_db):
        admin = await make_user(mock_db, "Administrador")
        supervisor, seller = await _team(mock_db)
        route = await make_route(mock_db, seller, status="Incompleta", supervisor_id=supervisor["id"],
                                 clients=[entry("0990001", "2024-01-01")])

        resp = await api.post(f"/api/routes/{route['id']}/force-complete", headers=await auth_headers(mock_db, supervisor))
        assert resp.status_code == 403

        admin_headers = await auth_headers(mock_db, admin)
        resp = await api.post(f"/api/routes/{route['id']}/force-complete", headers=admin_headers)
        assert resp.json()["route"]["status"] == "Completada"

        resp = await api.post(f"/api/routes/{route['id']}/reopen", headers=admin_headers)
        assert resp.json()["route"]["status"] == "En Progreso"
        assert resp.json()["route"]["clients"][0]["visit_status"] == "Pendiente"

    @pytest.mark.asyncio
    async def test_history_lists_status_changes(self, api, mock_db):
        supervisor, seller = await _team(mock_db)
        route = await make_route(mock_db, seller, status="Planificada", supervisor_id=supervisor["id"])
        headers = await auth_headers(mock_db, seller)

        await api.post(f"/api/routes/{route['id']}/start", headers=headers)
        resp = await api.get(f"/api/routes/{route['id']}/history", headers=headers)
        assert resp.status_code == 200
        events = resp.json()["events"]
        assert [e["action"] for e in events] == ["route_status_change"]
        assert events[0]["details"]["to"] == "En Progreso"


# ═══════════════════════════════════════════════════════════════
# 6. GUARDADO DE LA LISTA COMPLETA (PUT /routes/{id}/clients)
# ═══════════════════════════════════════════════════════════════

class TestReplaceClients:

    async def _route(self, db):
        supervisor, seller = await _team(db)
        route = await make_route(db, seller, supervisor_id=supervisor["id"], clients=[
            entry("0990001", "2024-01-01"),
            entry("0990002", "2024-01-02"),
            entry("0990003", "2024-01-03"),
        ])
        return seller, route, await auth_headers(db, seller)

    @pytest.mark.asyncio
    async def test_omitted_active_entry_is_not_deleted(self, api, mock_db):
        seller, route, headers = await self._route(mock_db)

        resp = await api.put(f"/api/routes/{route['id']}/clients", json={"clients": []}, headers=headers)
        assert resp.status_code == 400
        stored = await mock_db.routes.find_one({"id": route["id"]})
        assert len(stored["clients"]) == 3

        # Solo dos de tres: también se rechaza
        resp = await api.put(
            f"/api/routes/{route['id']}/clients", json={"clients": route["clients"][1:]}, headers=headers
        )
        assert resp.status_code == 400
        print("✅ Una entrada activa omitida no se borra")

    @pytest.mark.asyncio
    async def test_removal_through_full_list_needs_observation(self, api, mock_db):
        seller, route, headers = await self._route(mock_db)
        clients = [dict(c) for c in route["clients"]]
        clients[0]["status"] = "Eliminado"

        resp = await api.put(f"/api/routes/{route['id']}/clients", json={"clients": clients}, headers=headers)
        assert resp.status_code == 400

        clients[0]["removal_observation"] = "Farmacia cerrada"
        resp = await api.put(f"/api/routes/{route['id']}/clients", json={"clients": clients}, headers=headers)
        assert resp.status_code == 200
        saved = resp.json()["route"]["clients"]
        assert len(saved) == 3
        removed = [c for c in saved if c["status"] == "Eliminado"]
        assert [c["ruc"] for c in removed] == ["0990001"]
        assert removed[0]["removed_by"] == seller["id"]

        event = await mock_db.event_log.find_one({"action": "route_client_removed", "entity_id": route["id"]})
        assert event is not None
        assert event["details"]["observation"] == "Farmacia cerrada"

    @pytest.mark.asyncio
    async def test_unknown_entry_status_rejected(self, api, mock_db):
        seller, route, headers = await self._route(mock_db)
        clients = [dict(c) for c in route["clients"]]
        clients[2]["status"] = "Borrado"

        resp = await api.put(f"/api/routes/{route['id']}/clients", json={"clients": clients}, headers=headers)
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_check_out_without_check_in_rejected(self, api, mock_db):
        seller, route, headers = await self._route(mock_db)
        clients = [dict(c) for c in route["clients"]]
        clients[0].update(visit_status="Completado", check_out_time="2024-01-01T10:00:00", visit_type="presencial")

        resp = await api.put(f"/api/routes/{route['id']}/clients", json={"clients": clients}, headers=headers)
        assert resp.status_code == 400

        clients[0].update(check_in_time="2024-01-01T09:00:00", visit_type=None)
        resp = await api.put(f"/api/routes/{route['id']}/clients", json={"clients": clients}, headers=headers)
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_completed_without_check_out_rejected(self, api, mock_db):
        seller, route, headers = await self._route(mock_db)
        clients = [dict(c, visit_status="Completado") for c in route["clients"]]

        resp = await api.put(f"/api/routes/{route['id']}/clients", json={"clients": clients}, headers=headers)
        assert resp.status_code == 400
        stored = await mock_db.routes.find_one({"id": route["id"]})
        assert stored["status"] == "En Progreso"
        assert {c["visit_status"] for c in stored["clients"]} == {"Pendiente"}

    @pytest.mark.asyncio
    async def test_all_completed_list_closes_route(self, api, mock_db):
        seller, route, headers = await self._route(mock_db)
        clients = [
            dict(c, visit_status="Completado", visit_type="presencial",
                 check_in_time=f"{c['date']}T09:00:00", check_out_time=f"{c['date']}T09:30:00")
            for c in route["clients"]
        ]

        resp = await api.put(f"/api/routes/{route['id']}/clients", json={"clients": clients}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["route"]["status"] == "Completada"
        print("✅ Lista completa con todas las visitas cerradas → Completada")
