"""
Pausable countdowns for the Stroop task.

Everything here runs on a ``Scheduler``: any object with ``time()`` (seconds)
and ``call_later(delay_seconds, callback)`` returning a handle with
``cancel()``. A running ``asyncio`` event loop already satisfies it.
``VirtualScheduler`` is a discrete-event implementation used by the
simulator and the tests.
"""
import heapq
import itertools
from typing import Callable, Optional, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def time(self) -> float:
        ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class VirtualTimer:
    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualScheduler:
    """
    Discrete-event scheduler with a virtual clock.

    Time only moves when ``advance`` or ``run`` is called; callbacks due at the
    same instant fire in the order they were scheduled.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: list = []
        self._counter = itertools.count()

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> VirtualTimer:
        timer = VirtualTimer(self._now + max(0.0, delay), callback)
        heapq.heappush(self._queue, (timer.when, next(self._counter), timer))
        return timer

    def pending(self) -> int:
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every callback that falls due."""
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = when
            timer.callback()
        self._now = target

    def run(self, until: Optional[float] = None) -> None:
        """Fire callbacks until the queue is empty or virtual time reaches ``until``."""
        while self._queue:
            when, _, timer = self._queue[0]
            if until is not None and when > until:
                break
            heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = when
            timer.callback()
        if until is not None:
            self._now = max(self._now, until)


class Countdown:
    """
    A single-shot timer that can be frozen and thawed.

    Pausing records the exact remaining time and drops the underlying timer;
    resuming re-arms it for that remainder, however long the pause lasted.
    """

    def __init__(self, scheduler: Scheduler, duration_ms: float, on_elapsed: Callable[[], None]):
        self._scheduler = scheduler
        self._remaining_ms = float(duration_ms)
        self._on_elapsed = on_elapsed
        self._handle: Optional[TimerHandle] = None
        self._armed_at: Optional[float] = None
        self.paused = False
        self.finished = False

    @property
    def running(self) -> bool:
        return self._handle is not None

    @property
    def remaining_ms(self) -> float:
        if self._handle is None:
            return self._remaining_ms
        elapsed_ms = (self._scheduler.time() - self._armed_at) * 1000
        return max(0.0, self._remaining_ms - elapsed_ms)

    def start(self, paused: bool = False) -> None:
        if self.finished or self.running:
            return
        if paused:
            self.paused = True
            return
        self._arm()

    def pause(self) -> None:
        if self._handle is None:
            self.paused = not self.finished
            return
        self._remaining_ms = self.remaining_ms
        self._handle.cancel()
        self._handle = None
        self.paused = True

    def resume(self) -> None:
        if not self.paused or self.finished:
            return
        self.paused = False
        self._arm()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.paused = False
        self.finished = True

    def _arm(self) -> None:
        self._armed_at = self._scheduler.time()
        self._handle = self._scheduler.call_later(self._remaining_ms / 1000, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self._remaining_ms = 0.0
        self.finished = True
        self._on_elapsed()


class TrialClock:
    """
    The three countdowns a Stroop session needs: inter-trial interval,
    response window and feedback delay.

    A duration of 0 disables the phase: ``start_*`` schedules nothing and
    returns False so the caller can move on immediately.
    """

    def __init__(self, scheduler: Scheduler):
        self.scheduler = scheduler
        self.paused = False
        self._iti: Optional[Countdown] = None
        self._response: Optional[Countdown] = None
        self._feedback: Optional[Countdown] = None

    def start_iti(self, duration_ms: int, on_elapsed: Callable[[], None]) -> bool:
        self.cancel_iti()
        self._iti = self._start(duration_ms, on_elapsed)
        return self._iti is not None

    def start_response_window(self, duration_ms: int, on_elapsed: Callable[[], None]) -> bool:
        self.cancel_response_window()
        self._response = self._start(duration_ms, on_elapsed)
        return self._response is not None

    def start_feedback(self, duration_ms: int, on_elapsed: Callable[[], None]) -> bool:
        self.cancel_feedback()
        self._feedback = self._start(duration_ms, on_elapsed)
        return self._feedback is not None

    def cancel_iti(self) -> None:
        if self._iti is not None:
            self._iti.cancel()
            self._iti = None

    def cancel_response_window(self) -> None:
        if self._response is not None:
            self._response.cancel()
            self._response = None

    def cancel_feedback(self) -> None:
        if self._feedback is not None:
            self._feedback.cancel()
            self._feedback = None

    def cancel_all(self) -> None:
        self.cancel_iti()
        self.cancel_response_window()
        self.cancel_feedback()

    def pause(self) -> None:
        self.paused = True
        for countdown in self._active():
            countdown.pause()

    def resume(self) -> None:
        self.paused = False
        for countdown in self._active():
            countdown.resume()

    @property
    def iti_remaining_ms(self) -> Optional[float]:
        return self._remaining(self._iti)

    @property
    def response_remaining_ms(self) -> Optional[float]:
        return self._remaining(self._response)

    @property
    def feedback_remaining_ms(self) -> Optional[float]:
        return self._remaining(self._feedback)

    def _start(self, duration_ms: int, on_elapsed: Callable[[], None]) -> Optional[Countdown]:
        if duration_ms <= 0:
            return None
        countdown = Countdown(self.scheduler, duration_ms, on_elapsed)
        countdown.start(paused=self.paused)
        return countdown

    def _active(self):
        return [c for c in (self._iti, self._response, self._feedback) if c is not None and not c.finished]

    @staticmethod
    def _remaining(countdown: Optional[Countdown]) -> Optional[float]:
        if countdown is None or countdown.finished:
            return None
        return countdown.remaining_ms
