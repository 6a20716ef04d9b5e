"""
Fixtures compartidas: base MongoDB en memoria (mongomock-motor) y
cliente HTTP sobre la app sin arrancar el scheduler.
"""

import sys
import uuid

import httpx
import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient

import server  # noqa: F401  carga todos los routers y services


def _patched_modules():
    for name, module in list(sys.modules.items()):
        if module is None:
            continue
        if name in ("config", "scheduler_service") or name.startswith(("services.", "routes.")):
            if hasattr(module, "db"):
                yield module


@pytest.fixture
def mock_db(monkeypatch):
    """Sustituye `db` en cada módulo que lo importó"""
    db = AsyncMongoMockClient()[f"rutero_test_{uuid.uuid4().hex[:8]}"]
    for module in _patched_modules():
        monkeypatch.setattr(module, "db", db)
    return db


@pytest_asyncio.fixture
async def api(mock_db):
    transport = httpx.ASGITransport(app=server.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def prediction_service(monkeypatch):
    """
    Sustituye el servicio externo de predicción por un handler httpx.MockTransport.
    install(handler) devuelve la lista de requests recibidas.
    """
    import config
    from services import prediction_client

    monkeypatch.setattr(config, "PREDICTION_API_TOKEN", "test-token")

    def install(handler):
        calls = []

        def recording(request):
            calls.append(request)
            return handler(request)

        monkeypatch.setattr(
            prediction_client, "http_client",
            lambda: httpx.AsyncClient(transport=httpx.MockTransport(recording))
        )
        return calls

    return install
