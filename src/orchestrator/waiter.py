"""Run completion waiter.

Drives a single run from "just started" to a terminal outcome by
polling the gateway until the run completes, fails, or the attempt
budget runs out.
"""

import asyncio
from collections.abc import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from shared.errors import (
    AIChatError,
    ConfigurationError,
    RunCancelled,
    RunExpired,
    RunFailed,
    RunRequiresAction,
    RunTimeout,
)
from shared.logging import get_logger
from shared.models import RunState, RunStatus
from assistant_client.gateway import ConversationGateway

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


def _is_pending(state: RunState) -> bool:
    return not state.is_terminal


def raise_for_run_state(state: RunState) -> None:
    """Raise the error matching a failure terminal; other states pass."""
    status = state.status
    if status == RunStatus.FAILED.value:
        raise RunFailed(state.last_error)
    if status == RunStatus.CANCELLED.value:
        raise RunCancelled()
    if status == RunStatus.EXPIRED.value:
        raise RunExpired()
    if status == RunStatus.REQUIRES_ACTION.value:
        raise RunRequiresAction()


class RunCompletionWaiter:
    """
    Polls a run until it reaches a terminal state.

    - completed returns immediately
    - queued / in_progress sleep for the interval, unless no attempt is left
    - a failure terminal raises at once without using further attempts
    - exhausting the attempts raises RunTimeout

    The wait is a non-busy asyncio sleep: cancelling the awaiting task
    cancels the wait. The sleep callable can be replaced to layer other
    cancellation signals on the loop.
    """

    def __init__(
        self,
        gateway: ConversationGateway,
        max_attempts: int = 60,
        interval: float = 1.0,
        sleep: SleepFunc = asyncio.sleep
    ) -> None:
        """
        Initialize the waiter.

        Args:
            gateway: Gateway used to fetch run status
            max_attempts: Maximum number of status fetches
            interval: Seconds to wait between fetches
            sleep: Coroutine function performing the wait
        """
        if max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be at least 1, got {max_attempts}")
        if interval < 0:
            raise ConfigurationError(f"interval must not be negative, got {interval}")

        self.gateway = gateway
        self.max_attempts = max_attempts
        self.interval = interval
        self._sleep = sleep

    async def wait_for_completion(self, thread_id: str, run_id: str) -> RunState:
        """
        Wait for a run to complete.

        Args:
            thread_id: Thread the run belongs to
            run_id: Run to wait for

        Returns:
            The completed run state

        Raises:
            RunFailed, RunCancelled, RunExpired, RunRequiresAction: On a failure terminal
            RunTimeout: If the run is still pending after max_attempts fetches
            GatewayError: If a status fetch fails
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.interval),
            retry=retry_if_result(_is_pending),
            before_sleep=self._log_pending,
            sleep=self._sleep,
        )

        try:
            state = await retrying(self._poll, thread_id, run_id)
        except RetryError:
            logger.warning(
                "Run timed out",
                thread_id=thread_id,
                run_id=run_id,
                attempts=self.max_attempts
            )
            raise RunTimeout(self.max_attempts) from None
        except AIChatError as e:
            logger.error("Run did not complete", thread_id=thread_id, run_id=run_id, error=e.message)
            raise

        logger.info("Run completed", thread_id=thread_id, run_id=run_id)
        return state

    async def _poll(self, thread_id: str, run_id: str) -> RunState:
        state = await self.gateway.fetch_run(thread_id, run_id)
        raise_for_run_state(state)
        return state

    def _log_pending(self, retry_state: RetryCallState) -> None:
        state = retry_state.outcome.result() if retry_state.outcome else None
        logger.debug(
            "Run pending",
            attempt=retry_state.attempt_number,
            max_attempts=self.max_attempts,
            status=state.status if state else None
        )
