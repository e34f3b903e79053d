import asyncio
from collections.abc import Awaitable, Callable

import httpx
import structlog

from cloudledger.shared.core.exceptions import AdapterError, ExternalAPIError

logger = structlog.get_logger()

DEFAULT_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def retry_after_seconds(response: httpx.Response, cap: float) -> float | None:
    """Delay requested by a ``Retry-After`` header in seconds, capped; None if absent or not numeric."""
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        delay = float(value)
    except ValueError:
        return None
    return min(max(delay, 0.0), cap)


async def execute_with_http_retry(
    *,
    request: Callable[[], Awaitable[httpx.Response]],
    url: str,
    max_retries: int,
    retryable_status_codes: set[int] | frozenset[int] = DEFAULT_RETRYABLE_STATUS_CODES,
    retry_http_status_log_event: str = "http_status_retry",
    retry_transport_log_event: str = "http_transport_retry",
    status_error_prefix: str = "request failed",
    transport_error_prefix: str = "request transport failed",
    retry_sleep_base_seconds: float = 0.5,
    max_retry_after_seconds: float = 30.0,
) -> httpx.Response:
    """
    Issue one provider request, retrying throttling and server errors in place.

    Retryable statuses and transport failures that survive every attempt raise
    ``ExternalAPIError`` (transient, eligible for unit-level retry). Any other
    HTTP error status raises ``AdapterError`` immediately. A ``Retry-After``
    header on a retryable response overrides the linear backoff.
    """
    attempts = max(1, int(max_retries))

    for attempt in range(1, attempts + 1):
        try:
            response = await request()
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            retryable = status_code in retryable_status_codes
            if retryable and attempt < attempts:
                delay = retry_after_seconds(exc.response, max_retry_after_seconds)
                if delay is None:
                    delay = retry_sleep_base_seconds * attempt
                logger.warning(
                    retry_http_status_log_event,
                    attempt=attempt,
                    max_attempts=attempts,
                    status_code=status_code,
                    delay_seconds=delay,
                    url=url,
                )
                await asyncio.sleep(delay)
                continue
            message = f"{status_error_prefix} with status {status_code}"
            details = {"url": url, "status_code": status_code, "attempts": attempt}
            if retryable:
                raise ExternalAPIError(message, details=details) from exc
            raise AdapterError(message, details=details) from exc
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            if attempt < attempts:
                logger.warning(
                    retry_transport_log_event,
                    attempt=attempt,
                    max_attempts=attempts,
                    url=url,
                    error=str(exc),
                )
                await asyncio.sleep(retry_sleep_base_seconds * attempt)
                continue
            raise ExternalAPIError(
                f"{transport_error_prefix}: {exc}", details={"url": url, "attempts": attempt}
            ) from exc

    # Unreachable: the final attempt either returns or raises.
    raise AssertionError("retry loop exited without a result")
