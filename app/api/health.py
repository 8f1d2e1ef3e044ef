from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends

from ..config import settings
from ..core.execution.executor_wallet import ExecutorWallet
from ..core.twap.store import SessionStore
from ..providers.mosaic import get_mosaic_client
from ..providers.shinami import get_gas_station_client
from .dependencies import get_session_store, get_wallet

logger = structlog.stdlib.get_logger(__name__)

router = APIRouter()


@router.get("/healthz")
async def health_check(
    store: SessionStore = Depends(get_session_store),
    wallet: ExecutorWallet = Depends(get_wallet),
) -> Dict[str, Any]:
    """Health check: store reachability and provider configuration"""

    try:
        store_ok = await store.ping()
    except Exception:
        logger.exception("health_store_unreachable")
        store_ok = False

    providers = {
        "executor": {"status": "configured" if wallet.is_configured() else "disabled"},
        "mosaic": await get_mosaic_client().health_check(),
        "gasStation": await get_gas_station_client().health_check(),
    }

    ready = store_ok and wallet.is_configured() and providers["mosaic"]["status"] == "configured"

    return {
        "status": "healthy" if ready else "degraded",
        "environment": settings.environment,
        "store": {"status": "healthy" if store_ok else "error", "durable": settings.has_database},
        "providers": providers,
    }
