import pytest

from app.config import Settings
from app.core.twap.service import TWAPSessionService
from app.core.twap.store import InMemorySessionStore

TEST_PRIVATE_KEY = "0x" + "11" * 32
USER_ADDRESS = "0x" + "ab" * 32
OTHER_ADDRESS = "0x" + "cd" * 32
DEPOSIT_TX = "0x" + "ef" * 32


@pytest.fixture
def test_settings():
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        environment="test",
        executor_private_key=TEST_PRIVATE_KEY,
        mosaic_api_key="mosaic-test-key",
        shinami_gas_station_api_key="",
        cron_secret="cron-secret",
        admin_secret="admin-secret",
        database_url="",
        movement_rpc_url="https://rpc.test/v1",
        mosaic_api_url="https://mosaic.test/v1",
    )


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def service(store, test_settings):
    return TWAPSessionService(store, test_settings)
