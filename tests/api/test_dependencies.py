from unittest.mock import AsyncMock, MagicMock

import pytest

from app.api import dependencies
from app.providers import mosaic, movement, shinami


def _client():
    client = MagicMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def singletons(monkeypatch):
    store = MagicMock()
    store.close = AsyncMock()
    clients = {
        "mosaic": _client(),
        "movement": _client(),
        "gas_station": _client(),
    }
    monkeypatch.setattr(dependencies, "_store", store)
    monkeypatch.setattr(dependencies, "_service", MagicMock())
    monkeypatch.setattr(mosaic, "_mosaic_client", clients["mosaic"])
    monkeypatch.setattr(movement, "_movement_client", clients["movement"])
    monkeypatch.setattr(shinami, "_gas_station_client", clients["gas_station"])
    return store, clients


@pytest.mark.asyncio
async def test_shutdown_closes_store_and_provider_clients(singletons):
    store, clients = singletons

    await dependencies.shutdown_dependencies()

    store.close.assert_awaited_once()
    for client in clients.values():
        client.aclose.assert_awaited_once()
    assert dependencies._store is None
    assert dependencies._service is None
    assert mosaic._mosaic_client is None
    assert movement._movement_client is None
    assert shinami._gas_station_client is None


@pytest.mark.asyncio
async def test_provider_clients_closed_when_store_close_fails(singletons):
    store, clients = singletons
    store.close.side_effect = RuntimeError("pool gone")

    with pytest.raises(RuntimeError, match="pool gone"):
        await dependencies.shutdown_dependencies()

    for client in clients.values():
        client.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_shutdown_without_clients_is_noop(monkeypatch):
    monkeypatch.setattr(dependencies, "_store", None)
    monkeypatch.setattr(mosaic, "_mosaic_client", None)
    monkeypatch.setattr(movement, "_movement_client", None)
    monkeypatch.setattr(shinami, "_gas_station_client", None)

    await dependencies.shutdown_dependencies()

    assert mosaic._mosaic_client is None
