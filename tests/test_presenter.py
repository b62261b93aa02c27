"""Tests for the backup presentation state machine."""

from unittest.mock import MagicMock

from packages.core.monitor.presenter import BackupStateMachine
from packages.core.monitor.types import LineEvent

from conftest import event_types


class TestJobStarted:
    def test_first_status_shows_indicator_and_notifies(self, machine, events):
        machine.handle(LineEvent.JOB_STARTED)

        assert machine.status == "RUNNING"
        assert machine.in_progress is True
        assert machine.indicator.visible is True
        assert event_types(events, include_indicator=True) == ["INDICATOR_CHANGED", "BACKUP_STARTED"]

    def test_started_event_names_the_service(self, machine, events):
        machine.job_started()

        started = [e for e in events if e["type"] == "BACKUP_STARTED"][0]
        assert started["service"] == "nas"
        assert started["unit"] == "restic-backups-nas.service"
        assert "at" in started

    def test_repeated_status_notifies_once(self, machine, events):
        machine.handle(LineEvent.JOB_STARTED)
        machine.handle(LineEvent.JOB_STARTED)
        machine.handle(LineEvent.JOB_STARTED)

        assert event_types(events) == ["BACKUP_STARTED"]
        assert machine.status == "RUNNING"

    def test_noise_changes_nothing(self, machine, events):
        machine.handle(LineEvent.NOISE)

        assert events == []
        assert machine.status == "IDLE"
        assert machine.indicator.visible is False


class TestJobFinished:
    def test_finish_after_start_notifies_and_keeps_indicator(self, machine, events, scheduler):
        machine.handle(LineEvent.JOB_STARTED)
        machine.handle(LineEvent.JOB_FINISHED)

        assert machine.status == "IDLE"
        assert machine.indicator.visible is True
        assert machine.indicator.hide_deadline is not None
        assert event_types(events) == ["BACKUP_STARTED", "BACKUP_FINISHED"]
        assert len(scheduler.pending) == 1

    def test_finish_while_idle_does_not_notify(self, machine, events):
        machine.handle(LineEvent.JOB_FINISHED)
        machine.handle(LineEvent.JOB_FINISHED)

        assert event_types(events) == []

    def test_finish_while_idle_still_flashes_indicator(self, machine, events, scheduler):
        machine.handle(LineEvent.JOB_FINISHED)

        assert machine.indicator.visible is True
        scheduler.advance(2.0)
        assert machine.indicator.visible is False
        assert [e["visible"] for e in events] == [True, False]

    def test_repeated_finish_keeps_a_single_timer(self, machine, scheduler):
        machine.handle(LineEvent.JOB_FINISHED)
        scheduler.advance(1.5)
        machine.handle(LineEvent.JOB_FINISHED)

        assert len(scheduler.pending) == 1
        scheduler.advance(1.5)
        assert machine.indicator.visible is True
        scheduler.advance(0.5)
        assert machine.indicator.visible is False


class TestDebounce:
    def test_indicator_hides_exactly_at_deadline(self, machine, scheduler):
        machine.job_started()
        machine.job_finished()

        scheduler.advance(1.5)
        assert machine.indicator.visible is True
        scheduler.advance(0.5)
        assert machine.indicator.visible is False
        assert machine.indicator.hide_deadline is None
        assert scheduler.pending == []

    def test_start_before_deadline_cancels_hide(self, machine, scheduler, events):
        machine.job_started()
        machine.job_finished()
        scheduler.advance(1.0)
        machine.job_started()

        scheduler.advance(5.0)
        assert machine.indicator.visible is True
        assert machine.status == "RUNNING"
        assert event_types(events) == ["BACKUP_STARTED", "BACKUP_FINISHED", "BACKUP_STARTED"]

    def test_custom_hide_delay(self, scheduler):
        m = BackupStateMachine(hide_delay_ms=500, scheduler=scheduler)
        m.job_finished()

        scheduler.advance(0.25)
        assert m.indicator.visible is True
        scheduler.advance(0.25)
        assert m.indicator.visible is False

    def test_stale_timer_callback_is_ignored(self, machine, scheduler):
        machine.job_finished()
        stale = scheduler.pending[0]
        machine.job_started()

        stale.callback()
        assert machine.indicator.visible is True


class TestReset:
    def test_stream_end_forces_idle_without_notification(self, machine, events, scheduler):
        machine.job_started()
        events.clear()

        machine.stream_ended()

        assert machine.status == "IDLE"
        assert machine.indicator.visible is False
        assert event_types(events) == []
        assert [e["visible"] for e in events] == [False]

    def test_reset_cancels_pending_hide(self, machine, scheduler, events):
        machine.job_started()
        machine.job_finished()

        machine.reset()

        assert scheduler.pending == []
        assert machine.indicator.visible is False
        scheduler.advance(10.0)
        assert [e["visible"] for e in events if e["type"] == "INDICATOR_CHANGED"] == [True, False]

    def test_reset_when_idle_emits_nothing(self, machine, events):
        machine.reset()
        assert events == []


class TestCallbacks:
    def test_failing_callback_does_not_break_transitions(self, scheduler):
        m = BackupStateMachine(scheduler=scheduler)
        cb = MagicMock(side_effect=RuntimeError("notification daemon gone"))
        m.on_event(cb)

        m.job_started()
        m.job_finished()

        assert m.status == "IDLE"
        assert cb.call_count == 3  # shown, started, finished

    def test_events_without_target(self, scheduler, events):
        m = BackupStateMachine(scheduler=scheduler)
        m.on_event(events.append)
        m.job_started()

        assert events[-1]["service"] is None


class TestEndToEnd:
    def test_status_then_plain_success_then_debounce(self, machine, events, scheduler):
        from packages.core.monitor.classifier import classify_line

        machine.handle(classify_line('{"message_type":"status"}'))
        assert machine.indicator.visible is True
        assert machine.status == "RUNNING"
        assert event_types(events) == ["BACKUP_STARTED"]

        machine.handle(classify_line("Backup Succeeded."))
        assert event_types(events) == ["BACKUP_STARTED", "BACKUP_FINISHED"]
        assert machine.status == "IDLE"
        assert machine.indicator.visible is True

        scheduler.advance(2.0)
        assert machine.indicator.visible is False
