"""Adaptive polling: fast while something is happening, cheap when idle.

The policy lives in :class:`PollingStateMachine`, a plain object advanced
one tick at a time, so it can be exercised without a clock.
:class:`AdaptiveScheduler` drives that machine with asyncio one-shot timers.

State transitions per tick::

    idle      + activity -> active (counter reset)
    active    + activity -> active (counter reset)
    active    + nothing  -> counter += 1, cooldown[0] once counter hits the max
    cooldown  + activity -> active
    cooldown  + nothing  -> next cooldown step, idle after the last one
    idle      + nothing  -> idle
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

from notifydeck.logging import get_logger

log = get_logger("notifydeck.capture.scheduler")

CheckFn = Callable[[], Awaitable[bool]]


class PollingState(StrEnum):
    IDLE = "idle"
    ACTIVE = "active"
    COOLDOWN = "cooldown"


@dataclass(frozen=True)
class PollingConfig:
    """Intervals (seconds) for one scheduler instance."""

    idle_interval: float
    active_interval: float
    cooldown_intervals: tuple[float, ...]
    max_active_cycles: int

    def __post_init__(self) -> None:
        if self.idle_interval <= 0 or self.active_interval <= 0:
            raise ValueError("polling intervals must be positive")
        if not self.cooldown_intervals:
            raise ValueError("cooldown_intervals must not be empty")
        steps = self.cooldown_intervals
        if any(later < earlier for earlier, later in zip(steps, steps[1:])):
            raise ValueError("cooldown_intervals must be ascending")
        if self.max_active_cycles < 1:
            raise ValueError("max_active_cycles must be >= 1")


class PollingStateMachine:
    """Deterministic idle/active/cooldown policy."""

    def __init__(self, config: PollingConfig) -> None:
        self._config = config
        self.state = PollingState.IDLE
        self.active_cycles = 0
        self.cooldown_step = 0
        self.interval = config.idle_interval

    @property
    def config(self) -> PollingConfig:
        return self._config

    def reset(self) -> None:
        """Return to the initial idle state."""
        self.state = PollingState.IDLE
        self.active_cycles = 0
        self.cooldown_step = 0
        self.interval = self._config.idle_interval

    def record(self, activity: bool) -> bool:
        """Advance one tick.

        Returns:
            True if the polling interval changed.
        """
        previous = self.interval

        if activity:
            self._enter_active()
            return self.interval != previous

        if self.state is PollingState.ACTIVE:
            self.active_cycles += 1
            if self.active_cycles >= self._config.max_active_cycles:
                self.state = PollingState.COOLDOWN
                self.cooldown_step = 0
                self.interval = self._config.cooldown_intervals[0]
        elif self.state is PollingState.COOLDOWN:
            self.cooldown_step += 1
            if self.cooldown_step < len(self._config.cooldown_intervals):
                self.interval = self._config.cooldown_intervals[self.cooldown_step]
            else:
                self.state = PollingState.IDLE
                self.interval = self._config.idle_interval

        return self.interval != previous

    def force_active(self) -> bool:
        """Jump straight to the active state.

        Returns:
            True if the state changed; when already active only the cycle
            counter is reset, extending the active window.
        """
        if self.state is PollingState.ACTIVE:
            self.active_cycles = 0
            return False
        self._enter_active()
        return True

    def _enter_active(self) -> None:
        self.state = PollingState.ACTIVE
        self.active_cycles = 0
        self.cooldown_step = 0
        self.interval = self._config.active_interval


class AdaptiveScheduler:
    """Runs an async check function at the rate chosen by a state machine.

    Exactly one timer handle is pending at a time (cancel-then-arm).  The
    check runs as a task; its boolean result ("activity seen") feeds the
    state machine before the next timer is armed.  A check that raises is
    logged and counted as no activity, so a bad cycle never stops polling.
    """

    def __init__(self, name: str, config: PollingConfig, check: CheckFn) -> None:
        self._name = name
        self._machine = PollingStateMachine(config)
        self._check = check
        self._handle: asyncio.TimerHandle | None = None
        self._tick_task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._running

    @property
    def state(self) -> PollingState:
        return self._machine.state

    @property
    def interval(self) -> float:
        return self._machine.interval

    @property
    def machine(self) -> PollingStateMachine:
        return self._machine

    def start(self) -> None:
        """Arm the first tick at the idle interval."""
        if self._running:
            return
        self._running = True
        self._machine.reset()
        self._arm(self._machine.interval)
        log.info(
            "scheduler_started",
            scheduler=self._name,
            idle_interval=self._machine.config.idle_interval,
            active_interval=self._machine.config.active_interval,
        )

    def stop(self) -> None:
        """Disarm the timer.  A check already in flight finishes but never re-arms."""
        if not self._running:
            return
        self._running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        log.info("scheduler_stopped", scheduler=self._name)

    def force_active(self) -> None:
        """Promote to the active rate now instead of at the next tick."""
        if not self._running:
            return
        if self._machine.force_active():
            log.debug("scheduler_forced_active", scheduler=self._name)
            if self._tick_task is None or self._tick_task.done():
                self._arm(self._machine.interval)

    async def wait_for_tick(self) -> None:
        """Wait for the tick currently in flight, if any."""
        task = self._tick_task
        if task is not None and not task.done():
            await asyncio.shield(task)

    def _arm(self, interval: float) -> None:
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(interval, self._on_timer)

    def _on_timer(self) -> None:
        self._handle = None
        if not self._running:
            return
        self._tick_task = asyncio.get_running_loop().create_task(
            self._tick(), name=f"{self._name}-tick"
        )

    async def _tick(self) -> None:
        try:
            activity = bool(await self._check())
        except Exception as exc:
            log.error("scheduler_check_failed", scheduler=self._name, error=str(exc))
            activity = False

        if not self._running:
            return

        previous_state = self._machine.state
        self._machine.record(activity)
        if self._machine.state is not previous_state:
            log.debug(
                "scheduler_transition",
                scheduler=self._name,
                from_state=previous_state.value,
                to_state=self._machine.state.value,
                interval=self._machine.interval,
            )
        self._arm(self._machine.interval)
