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


import math
import threading

import pytest

from sriov_harness.errors import PollCancelledError, PollTimeoutError, PredicateError
from sriov_harness.polling import ReadinessTarget, poll_until, wait_for


class FakeClock:
    """Deterministic time source advanced only by sleeping."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def counting(result=False):
    calls = []

    def predicate():
        calls.append(1)
        return result(len(calls)) if callable(result) else result

    return predicate, calls


def test_predicate_true_immediately_is_called_once():
    clock = FakeClock()
    predicate, calls = counting(True)
    poll_until(predicate, 1, 10, clock=clock, sleep=clock.sleep)
    assert len(calls) == 1
    assert clock.sleeps == []


def test_never_true_predicate_times_out_after_at_least_floor_attempts():
    clock = FakeClock()
    predicate, calls = counting(False)
    with pytest.raises(PollTimeoutError) as exc:
        poll_until(predicate, 3, 30, clock=clock, sleep=clock.sleep, description="widget")
    assert len(calls) >= math.floor(30 / 3)
    assert exc.value.attempts == len(calls)
    assert "widget" in str(exc.value)
    assert all(s == 3 for s in clock.sleeps)


def test_predicate_becomes_true_midway():
    clock = FakeClock()
    predicate, calls = counting(lambda n: n == 4)
    poll_until(predicate, 2, 60, clock=clock, sleep=clock.sleep)
    assert len(calls) == 4
    assert clock.now == 6


def test_terminal_error_stops_without_further_attempts():
    clock = FakeClock()
    calls = []

    def predicate():
        calls.append(1)
        raise PredicateError("unreachable")

    with pytest.raises(PredicateError):
        poll_until(predicate, 1, 100, clock=clock, sleep=clock.sleep)
    assert len(calls) == 1


def test_cancel_mid_wait_is_distinct_from_timeout():
    clock = FakeClock()
    cancel = threading.Event()

    def sleep(seconds):
        clock.sleep(seconds)
        if clock.now >= 3:
            cancel.set()

    predicate, calls = counting(False)
    with pytest.raises(PollCancelledError):
        poll_until(predicate, 1, 100, cancel=cancel, clock=clock, sleep=sleep)
    assert len(calls) == 3


def test_already_cancelled_never_evaluates():
    cancel = threading.Event()
    cancel.set()
    predicate, calls = counting(True)
    with pytest.raises(PollCancelledError):
        poll_until(predicate, 1, 10, cancel=cancel)
    assert calls == []


def test_cancel_interrupts_real_sleep():
    cancel = threading.Event()
    timer = threading.Timer(0.05, cancel.set)
    timer.start()
    try:
        with pytest.raises(PollCancelledError):
            poll_until(lambda: False, 30, 60, cancel=cancel)
    finally:
        timer.cancel()


def test_wait_for_runs_readiness_target():
    predicate, calls = counting(lambda n: n >= 2)
    wait_for(ReadinessTarget(predicate, 0.001, 1, "two calls"))
    assert len(calls) == 2
