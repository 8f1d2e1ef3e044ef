"""
TWAP Scheduler

One pass of the trade loop, invoked by an external timer through the cron
endpoint. State lives entirely in the session store: the last-run marker
that spaces passes out, and the sessions themselves.
"""

from __future__ import annotations

import asyncio
import math
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from app.config import Settings, settings as default_settings
from app.core.execution.executor_wallet import ExecutorWallet

from .errors import ExecutorNotConfiguredError, SchedulerRateLimitedError
from .executor import TradeExecutor
from .models import TWAPSession, now_ms
from .service import TWAPSessionService

logger = structlog.stdlib.get_logger(__name__)

RUN_NAME = "twap"


@dataclass
class SchedulerRunResult:
    """Aggregate outcome of one scheduler pass."""
    executed: int = 0
    successful: int = 0
    failed: int = 0
    cleaned: int = 0
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "executed": self.executed,
            "successful": self.successful,
            "failed": self.failed,
            "cleaned": self.cleaned,
            "duration": self.duration_ms,
        }


class TWAPScheduler:
    """Runs due TWAP trades, one independent attempt per session."""

    def __init__(
        self,
        service: TWAPSessionService,
        executor: TradeExecutor,
        wallet: ExecutorWallet,
        settings: Optional[Settings] = None,
    ):
        self._service = service
        self._executor = executor
        self._wallet = wallet
        self._settings = settings or default_settings

    async def run_once(self) -> SchedulerRunResult:
        """
        Execute one scheduler pass.

        Raises:
            SchedulerRateLimitedError: Previous pass was too recent
            ExecutorNotConfiguredError: No usable executor key
        """
        started = time.perf_counter()
        run_id = uuid.uuid4().hex[:12]

        with structlog.contextvars.bound_contextvars(run_id=run_id):
            now = now_ms()
            acquired, retry_after_ms = await self._service.store.try_acquire_run(
                RUN_NAME, now, self._settings.scheduler_min_interval_seconds * 1000
            )
            if not acquired:
                retry_after = max(1, math.ceil(retry_after_ms / 1000))
                logger.info("twap_scheduler_rate_limited", retry_after=retry_after)
                raise SchedulerRateLimitedError(retry_after)

            if not self._wallet.is_configured():
                raise ExecutorNotConfiguredError()
            # Parses the key; raises on a malformed one
            executor_address = self._wallet.address

            result = SchedulerRunResult()
            result.cleaned = await self._service.cleanup_expired_sessions(now)

            due = await self._service.get_active_sessions_for_execution(now)
            logger.info(
                "twap_scheduler_pass_started",
                due=len(due),
                cleaned=result.cleaned,
                executor=executor_address,
            )

            if due:
                outcomes = await self._execute_all(due)
                for outcome in outcomes:
                    if outcome is None:
                        continue
                    result.executed += 1
                    if outcome:
                        result.successful += 1
                    else:
                        result.failed += 1

            result.duration_ms = int((time.perf_counter() - started) * 1000)
            logger.info(
                "twap_scheduler_pass_completed",
                executed=result.executed,
                successful=result.successful,
                failed=result.failed,
                cleaned=result.cleaned,
                duration_ms=result.duration_ms,
            )
            return result

    async def _execute_all(self, sessions: List[TWAPSession]) -> List[Optional[bool]]:
        semaphore = asyncio.Semaphore(self._settings.scheduler_max_concurrency)

        async def run(candidate: TWAPSession) -> Optional[bool]:
            async with semaphore:
                return await self._execute_one(candidate)

        return await asyncio.gather(*(run(s) for s in sessions))

    async def _execute_one(self, candidate: TWAPSession) -> Optional[bool]:
        """Returns None when the session is no longer due, else the trade outcome."""
        try:
            # Another pass may have traded or changed it since the scan
            session = await self._service.get_session(candidate.id)
            if session is None or not session.is_due(now_ms()):
                logger.info("twap_session_skipped", session_id=candidate.id)
                return None
            result = await self._executor.execute_trade(session)
            return result.success
        except Exception:
            logger.exception("twap_session_execution_error", session_id=candidate.id)
            return False
