"""
Scheduler trigger endpoint.

Called by the hosting platform's cron (or an operator with the cron
secret) to run one TWAP scheduler pass.
"""

import hmac
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from app.api.dependencies import get_twap_scheduler
from app.config import settings
from app.core.twap.errors import ExecutorNotConfiguredError, SchedulerRateLimitedError
from app.core.twap.scheduler import TWAPScheduler

logger = structlog.stdlib.get_logger(__name__)

router = APIRouter(prefix="/cron", tags=["Scheduler"])


def bearer_matches(authorization: Optional[str], secret: str) -> bool:
    """Constant-time check of an `Authorization: Bearer <secret>` header."""
    if not secret or not authorization:
        return False
    return hmac.compare_digest(authorization, f"Bearer {secret}")


def is_authorized_trigger(request: Request) -> bool:
    if request.headers.get(settings.scheduler_trigger_header) == "true":
        return True
    if bearer_matches(request.headers.get("authorization"), settings.cron_secret):
        return True
    # Local development runs the trigger by hand
    return not settings.is_production


async def _run(scheduler: TWAPScheduler):
    try:
        result = await scheduler.run_once()
    except SchedulerRateLimitedError as e:
        return JSONResponse(
            status_code=429,
            content={"success": False, "error": "Rate limited", "retryAfter": e.retry_after_seconds},
            headers={"Retry-After": str(e.retry_after_seconds)},
        )
    except ExecutorNotConfiguredError:
        logger.error("twap_scheduler_executor_not_configured")
        return JSONResponse(status_code=503, content={"success": False, "error": "Service unavailable"})
    except Exception:
        logger.exception("twap_scheduler_pass_failed")
        return JSONResponse(status_code=500, content={"success": False, "error": "Internal error"})

    body = result.to_dict()
    if result.executed == 0:
        body["message"] = "No trades to execute"
    return body


@router.get("/twap")
async def trigger_twap(
    request: Request,
    scheduler: TWAPScheduler = Depends(get_twap_scheduler),
):
    """Run one scheduler pass."""
    if not is_authorized_trigger(request):
        logger.warning(
            "twap_scheduler_unauthorized",
            client=request.client.host if request.client else None,
        )
        raise HTTPException(status_code=401, detail="Unauthorized")
    return await _run(scheduler)


@router.post("/twap")
async def trigger_twap_post(
    request: Request,
    scheduler: TWAPScheduler = Depends(get_twap_scheduler),
):
    """Manual trigger; only accepted with valid credentials."""
    if not is_authorized_trigger(request):
        raise HTTPException(status_code=405, detail="Method not allowed")
    return await _run(scheduler)
