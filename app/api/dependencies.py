"""
FastAPI dependencies for the TWAP engine.

Components are built once per process and shared. Tests replace them
through `app.dependency_overrides`.
"""

from typing import Optional

from app.config import settings
from app.core.execution.executor_wallet import ExecutorWallet, get_executor_wallet
from app.core.twap.executor import TradeExecutor
from app.core.twap.scheduler import TWAPScheduler
from app.core.twap.service import TWAPSessionService
from app.core.twap.store import SessionStore, build_session_store
from app.providers.mosaic import close_mosaic_client, get_mosaic_client
from app.providers.movement import close_movement_client
from app.providers.shinami import close_gas_station_client

_store: Optional[SessionStore] = None
_service: Optional[TWAPSessionService] = None
_scheduler: Optional[TWAPScheduler] = None


def get_session_store() -> SessionStore:
    global _store
    if _store is None:
        _store = build_session_store(settings)
    return _store


def get_twap_service() -> TWAPSessionService:
    global _service
    if _service is None:
        _service = TWAPSessionService(get_session_store(), settings)
    return _service


def get_wallet() -> ExecutorWallet:
    return get_executor_wallet()


def get_twap_scheduler() -> TWAPScheduler:
    global _scheduler
    if _scheduler is None:
        service = get_twap_service()
        wallet = get_executor_wallet()
        executor = TradeExecutor(service, wallet, get_mosaic_client(), settings)
        _scheduler = TWAPScheduler(service, executor, wallet, settings)
    return _scheduler


async def shutdown_dependencies() -> None:
    global _store, _service, _scheduler
    try:
        if _store is not None:
            await _store.close()
    finally:
        _store = None
        _service = None
        _scheduler = None
        await close_mosaic_client()
        await close_movement_client()
        await close_gas_station_client()
