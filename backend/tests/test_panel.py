"""Tests for the auto-minimize panel state machine."""

from __future__ import annotations

import asyncio
import json

from agentstream.client import ClientEventAggregator
from agentstream.client.panel import (
    AutoMinimizePanel,
    PanelEvent,
    PanelState,
    PanelStateMachine,
    TimerEffect,
)


def machine_in(*events: PanelEvent) -> PanelStateMachine:
    machine = PanelStateMachine()
    for event in events:
        machine.handle(event)
    return machine


class TestPanelStateMachine:
    def test_starts_hidden(self):
        machine = PanelStateMachine()
        assert machine.state is PanelState.HIDDEN
        assert not machine.expanded

    def test_first_step_expands(self):
        machine = PanelStateMachine()
        assert machine.handle(PanelEvent.STEP_ARRIVED) is TimerEffect.NONE
        assert machine.state is PanelState.ACTIVE
        assert machine.expanded

    def test_activity_end_schedules_minimize(self):
        machine = machine_in(PanelEvent.STEP_ARRIVED, PanelEvent.ACTIVITY_STARTED)
        assert machine.handle(PanelEvent.ACTIVITY_ENDED) is TimerEffect.SCHEDULE
        assert machine.state is PanelState.SCHEDULED
        assert machine.expanded

    def test_activity_end_without_steps_does_not_schedule(self):
        machine = machine_in(PanelEvent.ACTIVITY_STARTED)
        assert machine.handle(PanelEvent.ACTIVITY_ENDED) is TimerEffect.NONE
        assert machine.state is PanelState.HIDDEN

    def test_timer_collapses(self):
        machine = machine_in(PanelEvent.STEP_ARRIVED, PanelEvent.ACTIVITY_ENDED)
        machine.handle(PanelEvent.TIMER_FIRED)
        assert machine.state is PanelState.AUTO_MINIMIZED
        assert machine.has_auto_minimized
        assert not machine.expanded

    def test_new_step_cancels_schedule(self):
        machine = machine_in(PanelEvent.STEP_ARRIVED, PanelEvent.ACTIVITY_ENDED)
        assert machine.handle(PanelEvent.STEP_ARRIVED) is TimerEffect.CANCEL
        assert machine.state is PanelState.ACTIVE

    def test_stale_timer_ignored(self):
        machine = machine_in(
            PanelEvent.STEP_ARRIVED, PanelEvent.ACTIVITY_ENDED, PanelEvent.STEP_ARRIVED
        )
        machine.handle(PanelEvent.TIMER_FIRED)
        assert machine.state is PanelState.ACTIVE
        assert not machine.has_auto_minimized

    def test_user_toggle_always_honored(self):
        machine = machine_in(PanelEvent.STEP_ARRIVED)
        machine.handle(PanelEvent.USER_TOGGLED)
        assert machine.state is PanelState.COLLAPSED
        machine.handle(PanelEvent.USER_TOGGLED)
        assert machine.expanded

    def test_user_toggle_while_scheduled_cancels(self):
        machine = machine_in(PanelEvent.STEP_ARRIVED, PanelEvent.ACTIVITY_ENDED)
        assert machine.handle(PanelEvent.USER_TOGGLED) is TimerEffect.CANCEL
        assert machine.state is PanelState.COLLAPSED

    def test_reopen_after_auto_minimize(self):
        machine = machine_in(
            PanelEvent.STEP_ARRIVED, PanelEvent.ACTIVITY_ENDED, PanelEvent.TIMER_FIRED
        )
        machine.handle(PanelEvent.USER_TOGGLED)
        assert machine.state is PanelState.REOPENED
        assert machine.show_reopened_marker
        assert machine.expanded

    def test_reopened_marker_survives_toggles(self):
        machine = machine_in(
            PanelEvent.STEP_ARRIVED,
            PanelEvent.ACTIVITY_ENDED,
            PanelEvent.TIMER_FIRED,
            PanelEvent.USER_TOGGLED,
            PanelEvent.USER_TOGGLED,
        )
        assert machine.state is PanelState.COLLAPSED
        machine.handle(PanelEvent.USER_TOGGLED)
        assert machine.show_reopened_marker

    def test_no_second_auto_minimize_in_cycle(self):
        machine = machine_in(
            PanelEvent.STEP_ARRIVED,
            PanelEvent.ACTIVITY_ENDED,
            PanelEvent.TIMER_FIRED,
            PanelEvent.USER_TOGGLED,
        )
        assert machine.handle(PanelEvent.ACTIVITY_ENDED) is TimerEffect.NONE
        assert machine.state is PanelState.REOPENED

    def test_step_after_auto_minimize_reopens(self):
        machine = machine_in(
            PanelEvent.STEP_ARRIVED, PanelEvent.ACTIVITY_ENDED, PanelEvent.TIMER_FIRED
        )
        machine.handle(PanelEvent.STEP_ARRIVED)
        assert machine.state is PanelState.REOPENED

    def test_reset_starts_new_cycle(self):
        machine = machine_in(
            PanelEvent.STEP_ARRIVED, PanelEvent.ACTIVITY_ENDED, PanelEvent.TIMER_FIRED
        )
        machine.reset()
        assert machine.state is PanelState.HIDDEN
        assert not machine.has_auto_minimized
        machine.handle(PanelEvent.STEP_ARRIVED)
        assert machine.handle(PanelEvent.ACTIVITY_ENDED) is TimerEffect.SCHEDULE

    def test_reset_while_scheduled_cancels(self):
        machine = machine_in(PanelEvent.STEP_ARRIVED, PanelEvent.ACTIVITY_ENDED)
        assert machine.reset() is TimerEffect.CANCEL


class TestAutoMinimizePanel:
    async def test_minimizes_after_delay(self):
        panel = AutoMinimizePanel(delay=0.01)
        panel.observe(total_steps=1, is_active=True)
        assert panel.state is PanelState.ACTIVE
        panel.observe(total_steps=1, is_active=False)
        assert panel.timer_pending

        await asyncio.sleep(0.05)
        assert panel.state is PanelState.AUTO_MINIMIZED
        assert not panel.timer_pending

    async def test_new_step_cancels_timer(self):
        panel = AutoMinimizePanel(delay=0.01)
        panel.observe(total_steps=1, is_active=True)
        panel.observe(total_steps=1, is_active=False)
        panel.observe(total_steps=2, is_active=False)
        assert not panel.timer_pending

        await asyncio.sleep(0.05)
        assert panel.state is PanelState.ACTIVE

    async def test_toggle_cancels_timer(self):
        panel = AutoMinimizePanel(delay=0.01)
        panel.observe(total_steps=1, is_active=True)
        panel.observe(total_steps=1, is_active=False)
        panel.toggle()

        await asyncio.sleep(0.05)
        assert panel.state is PanelState.COLLAPSED

    async def test_reopened_marker(self):
        panel = AutoMinimizePanel(delay=0.01)
        panel.observe(total_steps=3, is_active=True)
        panel.observe(total_steps=3, is_active=False)
        await asyncio.sleep(0.05)
        panel.toggle()
        assert panel.show_reopened_marker

        panel.reset()
        assert not panel.show_reopened_marker
        assert panel.state is PanelState.HIDDEN

    async def test_close_cancels_timer(self):
        panel = AutoMinimizePanel(delay=0.01)
        panel.observe(total_steps=1, is_active=True)
        panel.observe(total_steps=1, is_active=False)
        panel.close()

        await asyncio.sleep(0.05)
        assert panel.state is PanelState.SCHEDULED

    async def test_panels_are_independent(self):
        first = AutoMinimizePanel(delay=0.01)
        second = AutoMinimizePanel(delay=0.01)
        first.observe(total_steps=1, is_active=True)
        first.observe(total_steps=1, is_active=False)
        second.observe(total_steps=1, is_active=True)

        await asyncio.sleep(0.05)
        assert first.state is PanelState.AUTO_MINIMIZED
        assert second.state is PanelState.ACTIVE

    async def test_already_finished_snapshot_minimizes(self):
        panel = AutoMinimizePanel(delay=0.01)
        panel.observe(total_steps=3, is_active=False)
        assert panel.state is PanelState.SCHEDULED
        assert panel.timer_pending

        await asyncio.sleep(0.05)
        assert panel.state is PanelState.AUTO_MINIMIZED

    async def test_no_steps_no_schedule_until_first_step(self):
        panel = AutoMinimizePanel(delay=0.01)
        panel.observe(total_steps=0, is_active=True)
        panel.observe(total_steps=0, is_active=False)
        assert panel.state is PanelState.HIDDEN
        assert not panel.timer_pending

        panel.observe(total_steps=1, is_active=False)
        assert panel.timer_pending

    async def test_whole_stream_in_one_chunk(self):
        def frame(event_type: str, data: dict) -> bytes:
            return f"data: {json.dumps({'type': event_type, 'data': data})}\n\n".encode()

        aggregator = ClientEventAggregator()
        aggregator.feed(
            frame("user_message", {"id": "m1", "content": "Hi"})
            + frame("thinking_stream", {"content": "Thinking", "metadata": {"phase": "initial_analysis"}})
            + frame("ai_chunk", {"content": "Answer"})
            + frame("complete", {"success": True})
        )
        panel = AutoMinimizePanel(delay=0.01)
        panel.observe(aggregator.total_steps, aggregator.is_active)

        await asyncio.sleep(0.05)
        assert panel.state is PanelState.AUTO_MINIMIZED
