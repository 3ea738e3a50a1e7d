import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional

from loguru import logger
from contentgem_client.exceptions import (
    APIError,
    JobFailedError,
    JobTimeoutError,
    PollCancelledError,
)
from contentgem_client.models import JobKind, PollConfig, StatusCheck

# One status check for a job handle, e.g. ContentGemClient.check_generation_status
StatusFetcher = Callable[[str], Awaitable[dict]]


class JobPoller:
    """Waits for an asynchronous generation job by polling its status.

    Every attempt fetches the status once. A ``completed`` status returns the
    payload, a ``failed`` status raises ``JobFailedError``, anything else
    waits ``config.delay`` seconds and tries again until ``max_attempts`` is
    used up, at which point ``JobTimeoutError`` is raised. Errors raised by
    the fetcher are never retried.
    """

    def __init__(
        self,
        fetch_status: StatusFetcher,
        job_kind: JobKind,
        config: Optional[PollConfig] = None,
        on_status_change: Optional[Callable[[StatusCheck], Any]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.fetch_status = fetch_status
        self.job_kind = job_kind
        self.config = config or job_kind.default_config
        self.on_status_change = on_status_change
        self.sleep = sleep
        self.logger = logger

    def _check_cancelled(
        self, handle: str, cancel_event: Optional[asyncio.Event]
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            self.logger.debug(f"Polling {self.job_kind.name} {handle} cancelled")
            raise PollCancelledError(handle)

    async def _handle_status_change(
        self, status_check: StatusCheck, changed: bool
    ) -> None:
        """Invoke the status change callback if the status has changed"""
        if changed and self.on_status_change is not None:
            self.logger.debug(
                f"{self.job_kind.name.capitalize()} status changed to {status_check.status}"
            )
            result = self.on_status_change(status_check)
            if inspect.isawaitable(result):
                await result

    def _raise_for_unsuccessful(self, status_check: StatusCheck) -> None:
        payload = status_check.raw_response
        message = payload.get("message") or payload.get("error") or "status check failed"
        raise APIError(message, payload=payload)

    async def wait_for(
        self, handle: str, cancel_event: Optional[asyncio.Event] = None
    ) -> dict:
        """Poll ``handle`` until it reaches a terminal status and return the final payload"""
        if not handle:
            raise ValueError("Job handle must be a non-empty string")

        start_time = asyncio.get_running_loop().time()
        max_attempts = self.config.max_attempts
        last_status = None

        for attempt in range(max_attempts):
            self._check_cancelled(handle, cancel_event)

            payload = await self.fetch_status(handle)
            status_check = StatusCheck.from_payload(payload)

            await self._handle_status_change(
                status_check, attempt == 0 or status_check.status != last_status
            )
            last_status = status_check.status

            if status_check.is_completed:
                elapsed_time = asyncio.get_running_loop().time() - start_time
                self.logger.info(
                    f"{self.job_kind.name.capitalize()} {handle} completed after "
                    f"{attempt + 1} attempt(s) in {elapsed_time:.2f}s"
                )
                return payload

            if status_check.is_failed:
                self.logger.error(f"{self.job_kind.failed_message}: {handle}")
                raise JobFailedError(self.job_kind.failed_message, handle, payload)

            if not status_check.success and not self.config.pending_on_unsuccessful:
                self._raise_for_unsuccessful(status_check)

            if attempt < max_attempts - 1:
                self._check_cancelled(handle, cancel_event)
                self.logger.debug(
                    f"{self.job_kind.name.capitalize()} {handle} still {status_check.status}, "
                    f"waiting {self.config.delay:.2f}s before attempt {attempt + 2}/{max_attempts}"
                )
                await self.sleep(self.config.delay)

        self.logger.error(
            f"{self.job_kind.timeout_message}: {handle} after {max_attempts} attempt(s)"
        )
        raise JobTimeoutError(self.job_kind.timeout_message, handle, max_attempts)
