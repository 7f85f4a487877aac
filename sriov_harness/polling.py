# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */


"""Poll-Until primitive and readiness targets."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from tenacity import RetryCallState, RetryError, Retrying, retry_if_result, wait_fixed

from sriov_harness import logger
from sriov_harness.errors import PollCancelledError, PollTimeoutError

Predicate = Callable[[], bool]


@dataclass(frozen=True)
class ReadinessTarget:
    """What "done" means for one polling operation.

    Attributes:
        predicate: Returns True when done; raises PredicateError when unreachable.
        interval: Seconds between evaluations.
        timeout: Total time budget in seconds.
        description: Names the predicate and resource in errors and logs.
        on_retry_log: Message logged before each sleep, or None for a default.
    """

    predicate: Predicate
    interval: float
    timeout: float
    description: str
    on_retry_log: str | None = None


def poll_until(
    predicate: Predicate,
    interval: float,
    timeout: float,
    *,
    cancel: threading.Event | None = None,
    description: str = "condition",
    on_retry_log: str | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] | None = None,
) -> None:
    """Evaluate *predicate* now and every *interval* seconds until it holds.

    Exceptions raised by the predicate (PredicateError for terminal
    conditions) propagate immediately without further attempts.

    Args:
        predicate: Zero-argument callable returning True when done.
        interval: Seconds to wait between evaluations.
        timeout: Total time budget in seconds.
        cancel: Event that aborts the wait when set, including mid-sleep.
        description: Human readable name of what is being awaited.
        on_retry_log: Message logged at DEBUG before each sleep.
        clock: Monotonic time source.
        sleep: Sleep function; defaults to waiting on *cancel* or ``time.sleep``.

    Raises:
        PollTimeoutError: If the budget is exhausted before the predicate holds.
        PollCancelledError: If *cancel* is set.
    """
    if cancel is not None and cancel.is_set():
        raise PollCancelledError(description)

    start = clock()

    def _stop(retry_state: RetryCallState) -> bool:
        if cancel is not None and cancel.is_set():
            return True
        return clock() - start >= timeout

    def _sleep(seconds: float) -> None:
        if sleep is not None:
            sleep(seconds)
        elif cancel is not None:
            cancel.wait(seconds)
        else:
            time.sleep(seconds)
        if cancel is not None and cancel.is_set():
            raise PollCancelledError(description)

    def _log_retry(retry_state: RetryCallState) -> None:
        logger.debug("%s (attempt %d, %.1fs elapsed)",
                     on_retry_log or f"Waiting for {description}",
                     retry_state.attempt_number, clock() - start)

    retryer = Retrying(
        stop=_stop,
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda done: not done),
        sleep=_sleep,
        before_sleep=_log_retry,
        reraise=True,
    )
    try:
        retryer(predicate)
    except RetryError as err:
        if cancel is not None and cancel.is_set():
            raise PollCancelledError(description) from err
        raise PollTimeoutError(description, timeout, err.last_attempt.attempt_number) from err


def wait_for(target: ReadinessTarget, cancel: threading.Event | None = None) -> None:
    """Poll a ReadinessTarget to completion.

    Raises:
        PollTimeoutError: If the target's budget is exhausted.
        PollCancelledError: If *cancel* is set.
    """
    poll_until(
        target.predicate,
        target.interval,
        target.timeout,
        cancel=cancel,
        description=target.description,
        on_retry_log=target.on_retry_log,
    )
