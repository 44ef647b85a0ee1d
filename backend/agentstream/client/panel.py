"""Auto-minimize behaviour for a progress panel.

``PanelStateMachine`` is pure: each transition returns the timer effect the
caller must apply. ``AutoMinimizePanel`` drives it with an asyncio timer and
derives discrete events from (step count, activity flag) observations.

One panel, one machine. Nothing is shared between panels.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

logger = logging.getLogger(__name__)

AUTO_MINIMIZE_DELAY = 2.0


class PanelState(str, Enum):
    HIDDEN = "hidden"
    ACTIVE = "active"
    IDLE = "idle"
    SCHEDULED = "scheduled"
    AUTO_MINIMIZED = "auto_minimized"
    REOPENED = "reopened"
    COLLAPSED = "collapsed"


class PanelEvent(str, Enum):
    STEP_ARRIVED = "step_arrived"
    ACTIVITY_STARTED = "activity_started"
    ACTIVITY_ENDED = "activity_ended"
    USER_TOGGLED = "user_toggled"
    TIMER_FIRED = "timer_fired"


class TimerEffect(str, Enum):
    NONE = "none"
    SCHEDULE = "schedule"
    CANCEL = "cancel"


_EXPANDED = {PanelState.ACTIVE, PanelState.IDLE, PanelState.SCHEDULED, PanelState.REOPENED}


class PanelStateMachine:
    def __init__(self) -> None:
        self.state = PanelState.HIDDEN
        self.has_steps = False
        self.is_active = False
        self.has_auto_minimized = False

    @property
    def expanded(self) -> bool:
        return self.state in _EXPANDED

    @property
    def show_reopened_marker(self) -> bool:
        return self.state is PanelState.REOPENED

    def reset(self) -> TimerEffect:
        """Start a new cycle (next message)."""
        effect = TimerEffect.CANCEL if self.state is PanelState.SCHEDULED else TimerEffect.NONE
        self.state = PanelState.HIDDEN
        self.has_steps = False
        self.is_active = False
        self.has_auto_minimized = False
        return effect

    def handle(self, event: PanelEvent) -> TimerEffect:
        handler = {
            PanelEvent.STEP_ARRIVED: self._step_arrived,
            PanelEvent.ACTIVITY_STARTED: self._activity_started,
            PanelEvent.ACTIVITY_ENDED: self._activity_ended,
            PanelEvent.USER_TOGGLED: self._user_toggled,
            PanelEvent.TIMER_FIRED: self._timer_fired,
        }[event]
        before = self.state
        effect = handler()
        if before is not self.state:
            logger.debug("Panel %s -> %s on %s", before.value, self.state.value, event.value)
        return effect

    def _step_arrived(self) -> TimerEffect:
        self.has_steps = True
        state = self.state
        if state is PanelState.SCHEDULED:
            self.state = PanelState.ACTIVE
            return TimerEffect.CANCEL
        if state in (PanelState.HIDDEN, PanelState.IDLE, PanelState.ACTIVE):
            self.state = PanelState.ACTIVE
        elif state is PanelState.AUTO_MINIMIZED:
            self.state = PanelState.REOPENED
        return TimerEffect.NONE

    def _activity_started(self) -> TimerEffect:
        self.is_active = True
        if self.state is PanelState.SCHEDULED:
            self.state = PanelState.ACTIVE
            return TimerEffect.CANCEL
        if self.state is PanelState.IDLE:
            self.state = PanelState.ACTIVE
        return TimerEffect.NONE

    def _activity_ended(self) -> TimerEffect:
        self.is_active = False
        if self.state not in (PanelState.ACTIVE, PanelState.IDLE):
            return TimerEffect.NONE
        if self.has_steps and not self.has_auto_minimized:
            self.state = PanelState.SCHEDULED
            return TimerEffect.SCHEDULE
        self.state = PanelState.IDLE
        return TimerEffect.NONE

    def _timer_fired(self) -> TimerEffect:
        # A stale timer after a cancel or toggle is ignored
        if self.state is PanelState.SCHEDULED:
            self.state = PanelState.AUTO_MINIMIZED
            self.has_auto_minimized = True
        return TimerEffect.NONE

    def _user_toggled(self) -> TimerEffect:
        state = self.state
        if state is PanelState.SCHEDULED:
            self.state = PanelState.COLLAPSED
            return TimerEffect.CANCEL
        if state in (PanelState.ACTIVE, PanelState.IDLE, PanelState.REOPENED):
            self.state = PanelState.COLLAPSED
        elif state is PanelState.AUTO_MINIMIZED:
            self.state = PanelState.REOPENED
        elif state is PanelState.COLLAPSED:
            if self.has_auto_minimized:
                self.state = PanelState.REOPENED
            else:
                self.state = PanelState.ACTIVE if self.is_active else PanelState.IDLE
        return TimerEffect.NONE


class AutoMinimizePanel:
    """Runs a ``PanelStateMachine`` on the event loop with a cancelable timer."""

    def __init__(self, delay: float = AUTO_MINIMIZE_DELAY) -> None:
        self.delay = delay
        self.machine = PanelStateMachine()
        self._timer: asyncio.TimerHandle | None = None
        self._step_count = 0
        self._active = False
        self._ended = False

    @property
    def state(self) -> PanelState:
        return self.machine.state

    @property
    def expanded(self) -> bool:
        return self.machine.expanded

    @property
    def show_reopened_marker(self) -> bool:
        return self.machine.show_reopened_marker

    @property
    def timer_pending(self) -> bool:
        return self._timer is not None

    def observe(self, total_steps: int, is_active: bool) -> None:
        """Feed the latest aggregator snapshot; emits the implied events.

        Activity that has already ended by the first snapshot with steps
        (a whole stream read in one chunk) still schedules the minimize.
        """
        if total_steps > self._step_count:
            self._step_count = total_steps
            self.dispatch(PanelEvent.STEP_ARRIVED)
        if is_active:
            if not self._active:
                self._active = True
                self._ended = False
                self.dispatch(PanelEvent.ACTIVITY_STARTED)
        elif not self._ended and (self._active or self._step_count > 0):
            self._active = False
            self._ended = self._step_count > 0
            self.dispatch(PanelEvent.ACTIVITY_ENDED)

    def toggle(self) -> None:
        self.dispatch(PanelEvent.USER_TOGGLED)

    def dispatch(self, event: PanelEvent) -> None:
        self._apply(self.machine.handle(event))

    def reset(self) -> None:
        self._apply(self.machine.reset())
        self._cancel()
        self._step_count = 0
        self._active = False
        self._ended = False

    def close(self) -> None:
        self._cancel()

    def _apply(self, effect: TimerEffect) -> None:
        if effect is TimerEffect.SCHEDULE:
            self._cancel()
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.delay, self._fire)
        elif effect is TimerEffect.CANCEL:
            self._cancel()

    def _cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        self.dispatch(PanelEvent.TIMER_FIRED)
