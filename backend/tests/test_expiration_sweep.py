"""
Rutero - Expiration Sweep Tests
Una ruta En Progreso vence 7 días después de su fecha base y se cierra
como Completada o Incompleta según sus visitas.
"""

import pytest
from datetime import datetime

from services.route_store import get_route
from services.expiration_sweep import route_expiry, is_expired, sweep_owner, sweep_all
from tests.factories import make_user, make_route, entry

AFTER_WINDOW = datetime(2024, 1, 9, 8, 0, 0)
INSIDE_WINDOW = datetime(2024, 1, 7, 18, 0, 0)


def _week(completed: int, total: int = 5):
    return [
        entry(f"09{i}", f"2024-01-0{i + 1}", visit_status="Completado" if i < completed else "Pendiente")
        for i in range(total)
    ]


class TestExpiry:

    def test_expiry_is_start_of_day_plus_seven(self):
        expiry = route_expiry({"date": "2024-01-01T15:30:00"})
        assert (expiry.year, expiry.month, expiry.day, expiry.hour) == (2024, 1, 8, 0)
        assert expiry.tzinfo is not None

    def test_boundary(self):
        route = {"status": "En Progreso", "date": "2024-01-01"}
        assert not is_expired(route, datetime(2024, 1, 8, 0, 0, 0))
        assert is_expired(route, datetime(2024, 1, 8, 0, 0, 1))

    def test_only_in_progress_routes_expire(self):
        for status in ("Planificada", "Pendiente de Aprobación", "Completada", "Incompleta"):
            assert not is_expired({"status": status, "date": "2023-01-01"}, AFTER_WINDOW)

    def test_route_without_date_never_expires(self):
        assert not is_expired({"status": "En Progreso", "date": None}, AFTER_WINDOW)


class TestSweep:

    @pytest.mark.asyncio
    async def test_partial_week_closes_incomplete(self, mock_db):
        seller = await make_user(mock_db)
        route = await make_route(mock_db, seller, clients=_week(3))

        stats = await sweep_owner(seller["id"], AFTER_WINDOW)
        assert stats == {"checked": 1, "closed": {"Completada": 0, "Incompleta": 1}}

        stored = await get_route(route["id"])
        assert stored["status"] == "Incompleta"
        assert stored["closed_by"] == "expiration_sweep"
        print("✅ 3/5 visitas -> Incompleta")

    @pytest.mark.asyncio
    async def test_full_week_closes_completed(self, mock_db):
        seller = await make_user(mock_db)
        route = await make_route(mock_db, seller, clients=_week(5))

        await sweep_all(AFTER_WINDOW)
        stored = await get_route(route["id"])
        assert stored["status"] == "Completada"

    @pytest.mark.asyncio
    async def test_removed_entries_do_not_count(self, mock_db):
        seller = await make_user(mock_db)
        clients = _week(2, total=2) + [
            entry("0999", "2024-01-03", status="Eliminado", removal_observation="Cerrado"),
        ]
        route = await make_route(mock_db, seller, clients=clients)

        await sweep_all(AFTER_WINDOW)
        stored = await get_route(route["id"])
        assert stored["status"] == "Completada"

    @pytest.mark.asyncio
    async def test_route_inside_window_untouched(self, mock_db):
        seller = await make_user(mock_db)
        route = await make_route(mock_db, seller, clients=_week(1))

        stats = await sweep_all(INSIDE_WINDOW)
        assert stats["closed"] == {"Completada": 0, "Incompleta": 0}
        stored = await get_route(route["id"])
        assert stored["status"] == "En Progreso"
        assert stored["version"] == 0

    @pytest.mark.asyncio
    async def test_sweep_is_idempotent(self, mock_db):
        seller = await make_user(mock_db)
        route = await make_route(mock_db, seller, clients=_week(3))

        await sweep_all(AFTER_WINDOW)
        first = await get_route(route["id"])
        stats = await sweep_all(datetime(2024, 2, 1))
        second = await get_route(route["id"])

        assert stats["checked"] == 0
        assert second["status"] == first["status"] == "Incompleta"
        assert second["version"] == first["version"]

    @pytest.mark.asyncio
    async def test_owner_sweep_leaves_other_sellers(self, mock_db):
        seller = await make_user(mock_db)
        other = await make_user(mock_db)
        mine = await make_route(mock_db, seller, clients=_week(0))
        theirs = await make_route(mock_db, other, clients=_week(0))

        await sweep_owner(seller["id"], AFTER_WINDOW)
        assert (await get_route(mine["id"]))["status"] == "Incompleta"
        assert (await get_route(theirs["id"]))["status"] == "En Progreso"
