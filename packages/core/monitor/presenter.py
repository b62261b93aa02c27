"""
Backup presentation state machine.

State machine: IDLE <-> RUNNING, plus a debounced indicator.

The indicator is shown as soon as a job reports progress and stays shown for
``hide_delay_ms`` after a completion signal, so short jobs still flash the
icon. Every call is expected on the event loop thread.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from .types import BackupStatus, IndicatorState, LineEvent, WatchTarget

log = logging.getLogger(__name__)

# (delay_seconds, callback) -> handle with cancel()
Scheduler = Callable[[float, Callable[[], None]], Any]

DEFAULT_HIDE_DELAY_MS = 2000


def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%S", time.localtime())


def _loop_scheduler(delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


class BackupStateMachine:
    """
    Turns classified log events into BACKUP_STARTED / BACKUP_FINISHED
    notifications and INDICATOR_CHANGED visibility updates.
    """

    def __init__(
        self,
        hide_delay_ms: int = DEFAULT_HIDE_DELAY_MS,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self._hide_delay_ms = hide_delay_ms
        self._schedule = scheduler or _loop_scheduler

        self._status: BackupStatus = "IDLE"
        self._visible = False
        self._hide_handle: Optional[Any] = None
        self._hide_token: Optional[object] = None
        self._hide_deadline: Optional[float] = None
        self._target: Optional[WatchTarget] = None

        self._event_cb: Optional[Callable[[dict], None]] = None

    def on_event(self, cb: Callable[[dict], None]) -> None:
        self._event_cb = cb

    @property
    def status(self) -> BackupStatus:
        return self._status

    @property
    def in_progress(self) -> bool:
        return self._status == "RUNNING"

    @property
    def indicator(self) -> IndicatorState:
        return IndicatorState(visible=self._visible, hide_deadline=self._hide_deadline)

    @property
    def target(self) -> Optional[WatchTarget]:
        return self._target

    def set_target(self, target: Optional[WatchTarget]) -> None:
        self._target = target

    def set_hide_delay(self, hide_delay_ms: int) -> None:
        """Takes effect from the next completion signal."""
        self._hide_delay_ms = hide_delay_ms

    def handle(self, event: LineEvent) -> None:
        if event is LineEvent.JOB_STARTED:
            self.job_started()
        elif event is LineEvent.JOB_FINISHED:
            self.job_finished()

    def job_started(self) -> None:
        self._show_indicator()
        if self._status == "IDLE":
            self._status = "RUNNING"
            self._emit_lifecycle("BACKUP_STARTED")

    def job_finished(self) -> None:
        if self._status == "RUNNING":
            self._status = "IDLE"
            self._emit_lifecycle("BACKUP_FINISHED")
        # A finish while already idle still re-arms the hide timer
        self._show_indicator()
        self._schedule_hide()

    def stream_ended(self) -> None:
        """End of the follower's output: no notification, just go quiet."""
        self.reset()

    def reset(self) -> None:
        self._cancel_hide()
        self._status = "IDLE"
        self._set_visible(False)

    def _show_indicator(self) -> None:
        self._cancel_hide()
        self._set_visible(True)

    def _schedule_hide(self) -> None:
        self._cancel_hide()
        token = object()
        delay = self._hide_delay_ms / 1000.0
        self._hide_token = token
        self._hide_deadline = time.monotonic() + delay
        self._hide_handle = self._schedule(delay, lambda: self._on_hide_timeout(token))

    def _cancel_hide(self) -> None:
        if self._hide_handle is not None:
            self._hide_handle.cancel()
        self._hide_handle = None
        self._hide_token = None
        self._hide_deadline = None

    def _on_hide_timeout(self, token: object) -> None:
        if token is not self._hide_token:
            return
        self._hide_handle = None
        self._hide_token = None
        self._hide_deadline = None
        self._set_visible(False)

    def _set_visible(self, visible: bool) -> None:
        if self._visible == visible:
            return
        self._visible = visible
        self._emit({"type": "INDICATOR_CHANGED", "visible": visible, "at": _now_iso()})

    def _emit_lifecycle(self, event_type: str) -> None:
        target = self._target
        self._emit({
            "type": event_type,
            "service": target.name if target else None,
            "unit": target.unit_id if target else None,
            "at": _now_iso(),
        })

    def _emit(self, evt: dict) -> None:
        if not self._event_cb:
            return
        try:
            self._event_cb(evt)
        except Exception:
            log.exception("Event callback failed for %s", evt.get("type"))
