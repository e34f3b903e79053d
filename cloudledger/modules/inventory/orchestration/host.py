"""
Unit Host

In-process execution of registered units with:
- bounded retries for transient failures (tenacity, see ``RetryPolicy``)
- a start-to-close timeout per attempt
- a heartbeat timeout: a unit that stops calling ``ctx.heartbeat()`` is cancelled

Cancellation propagates into the unit task, so any open ``transaction()`` guard
rolls back before the timeout error is raised.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any

import structlog

from cloudledger.modules.inventory.orchestration.registry import UnitFn, UnitRegistry
from cloudledger.shared.core.exceptions import UnitTimeoutError
from cloudledger.shared.core.ops_metrics import UNIT_DURATION, UNIT_RUNS
from cloudledger.shared.core.retry import RetryPolicy, async_retrying

logger = structlog.get_logger()


class UnitContext:
    """Handed to every unit attempt; the unit reports liveness through it."""

    def __init__(self, unit: str, attempt: int, host: "UnitHost", parent: str | None = None):
        self.unit = unit
        self.attempt = attempt
        self.host = host
        self.parent = parent
        self.heartbeats = 0
        self.last_heartbeat = time.monotonic()

    def heartbeat(self) -> None:
        self.heartbeats += 1
        self.last_heartbeat = time.monotonic()

    async def execute_child_unit(self, name: str, payload: dict[str, Any] | None = None, **options: Any) -> Any:
        return await self.host.execute_child_unit(self.unit, name, payload, **options)


class UnitHost:
    def __init__(
        self,
        registry: UnitRegistry,
        *,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
        heartbeat_timeout: float | None = None,
        check_interval: float = 1.0,
    ):
        self.registry = registry
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self.heartbeat_timeout = heartbeat_timeout
        self.check_interval = check_interval

    async def execute_unit(
        self,
        name: str,
        payload: dict[str, Any] | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
        heartbeat_timeout: float | None = None,
        parent: str | None = None,
    ) -> Any:
        """
        Run unit ``name`` to completion or failure.

        Unknown units raise ``UnitNotFoundError`` without any attempt. The last
        error is re-raised once retries are exhausted or the error is not transient.
        """
        unit_fn = self.registry.get(name)
        policy = retry_policy or self.retry_policy
        timeout = timeout if timeout is not None else self.timeout
        heartbeat_timeout = heartbeat_timeout if heartbeat_timeout is not None else self.heartbeat_timeout

        started = time.perf_counter()
        result: Any = None
        try:
            async for attempt in async_retrying(policy, operation=name):
                with attempt:
                    result = await self._run_attempt(
                        unit_fn,
                        name,
                        dict(payload or {}),
                        attempt=attempt.retry_state.attempt_number,
                        timeout=timeout,
                        heartbeat_timeout=heartbeat_timeout,
                        parent=parent,
                    )
        except Exception as exc:
            UNIT_RUNS.labels(unit=name, status="failure").inc()
            logger.error(
                "unit_failed",
                unit=name,
                parent=parent,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise
        finally:
            UNIT_DURATION.labels(unit=name).observe(time.perf_counter() - started)

        UNIT_RUNS.labels(unit=name, status="success").inc()
        return result

    async def execute_child_unit(
        self,
        parent: str,
        name: str,
        payload: dict[str, Any] | None = None,
        **options: Any,
    ) -> Any:
        logger.debug("child_unit_dispatched", parent=parent, unit=name)
        return await self.execute_unit(name, payload, parent=parent, **options)

    async def _run_attempt(
        self,
        unit_fn: UnitFn,
        name: str,
        payload: dict[str, Any],
        *,
        attempt: int,
        timeout: float | None,
        heartbeat_timeout: float | None,
        parent: str | None,
    ) -> Any:
        ctx = UnitContext(name, attempt, self, parent=parent)
        with structlog.contextvars.bound_contextvars(unit=name, attempt=attempt):
            logger.info("unit_attempt_started")
            task = asyncio.create_task(unit_fn(ctx, payload))
            started = time.monotonic()
            try:
                while True:
                    now = time.monotonic()
                    wait_for = self.check_interval
                    if timeout is not None:
                        remaining = started + timeout - now
                        if remaining <= 0:
                            raise UnitTimeoutError(
                                f"Unit '{name}' exceeded {timeout}s",
                                timeout_type="start_to_close",
                                details={"unit": name, "attempt": attempt},
                            )
                        wait_for = min(wait_for, remaining)
                    if heartbeat_timeout is not None:
                        remaining = ctx.last_heartbeat + heartbeat_timeout - now
                        if remaining <= 0:
                            raise UnitTimeoutError(
                                f"Unit '{name}' missed its heartbeat for {heartbeat_timeout}s",
                                timeout_type="heartbeat",
                                details={"unit": name, "attempt": attempt, "heartbeats": ctx.heartbeats},
                            )
                        wait_for = min(wait_for, remaining)

                    done, _ = await asyncio.wait({task}, timeout=wait_for)
                    if task in done:
                        result = task.result()
                        logger.info(
                            "unit_attempt_succeeded",
                            duration_seconds=round(time.monotonic() - started, 3),
                        )
                        return result
            finally:
                if not task.done():
                    task.cancel()
                    # Wait for the unit to unwind (rollbacks) before surfacing the timeout.
                    await asyncio.gather(task, return_exceptions=True)
                    logger.warning("unit_attempt_cancelled")
