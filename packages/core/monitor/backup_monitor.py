"""
Background backup monitor.

Runs the log tail supervisor and the presentation state machine on a private
asyncio event loop in a daemon thread. Everything on that loop is
single-threaded; the methods here are the only entry points from other
threads and hand work over with ``run_coroutine_threadsafe``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future
from typing import Callable, Optional

from packages.shared.config import DEFAULT_FOLLOW_COMMAND

from .log_tail import LogTailSupervisor
from .presenter import BackupStateMachine
from .service_name import resolve_target
from .types import MonitorConfig, MonitorState, WatchTarget

log = logging.getLogger(__name__)


class BackupMonitor:
    """
    Emits BACKUP_STARTED / BACKUP_FINISHED / INDICATOR_CHANGED events for the
    configured restic unit. Callbacks run on the monitor thread.
    """

    def __init__(self, config: dict, host: Optional[str] = None) -> None:
        self._cfg = self._parse_config(config)
        self._host = host
        self._state = MonitorState()
        self._lock = threading.Lock()

        self._event_cb: Optional[Callable[[dict], None]] = None
        self._error_cb: Optional[Callable[[str], None]] = None

        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ready = threading.Event()
        self._machine: Optional[BackupStateMachine] = None
        self._supervisor: Optional[LogTailSupervisor] = None

    @staticmethod
    def _parse_config(config: dict) -> MonitorConfig:
        return MonitorConfig(
            service_name=config.get("service_name", ""),
            follow_command=tuple(config.get("follow_command", DEFAULT_FOLLOW_COMMAND)),
            hide_delay_ms=config.get("hide_delay_ms", 2000),
            max_line_bytes=config.get("max_line_bytes", 1024 * 1024),
        )

    def on_event(self, cb: Callable[[dict], None]) -> None:
        self._event_cb = cb

    def on_error(self, cb: Callable[[str], None]) -> None:
        self._error_cb = cb

    def target(self) -> WatchTarget:
        with self._lock:
            name = self._cfg.service_name
        return resolve_target(name, self._host)

    def get_state(self) -> MonitorState:
        with self._lock:
            return MonitorState(
                status=self._state.status,
                unit_id=self._state.unit_id,
                backup_in_progress=self._state.backup_in_progress,
                indicator_visible=self._state.indicator_visible,
            )

    def start(self) -> None:
        with self._lock:
            if self._state.status == "RUNNING":
                return
            self._state = MonitorState(status="RUNNING")

        self._ready.clear()
        self._thread = threading.Thread(target=self._run, name="BackupMonitor", daemon=True)
        self._thread.start()
        self._ready.wait()
        self.on_target_changed(self._cfg.service_name)

    def stop(self, timeout: float = 5.0) -> None:
        loop, thread = self._loop, self._thread
        with self._lock:
            self._state = MonitorState(status="STOPPED")
        if loop is None or thread is None:
            return

        if loop.is_running():
            future = asyncio.run_coroutine_threadsafe(self._shutdown(), loop)
            try:
                future.result(timeout=timeout)
            except Exception:
                log.exception("Backup monitor did not shut down cleanly")
            loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout=timeout)
        self._thread = None
        self._loop = None

    def update_config(self, config: dict) -> None:
        """Apply a new configuration; a running monitor restarts on the new target."""
        with self._lock:
            self._cfg = self._parse_config(config)
            running = self._state.status == "RUNNING"
        if running:
            self.on_target_changed(self._cfg.service_name)

    def on_target_changed(self, service_name: str) -> Optional[Future]:
        """Re-resolve the unit for ``service_name`` and restart the follower."""
        target = resolve_target(service_name, self._host)
        loop = self._loop
        running = loop is not None and loop.is_running()
        with self._lock:
            if self._cfg.service_name != service_name:
                self._cfg = MonitorConfig(
                    service_name=service_name,
                    follow_command=self._cfg.follow_command,
                    hide_delay_ms=self._cfg.hide_delay_ms,
                    max_line_bytes=self._cfg.max_line_bytes,
                )
            if running:
                # get_state() reports the new unit before the restart lands
                self._state.unit_id = target.unit_id
        if not running:
            return None
        log.info("Watching %s", target.unit_id)
        return asyncio.run_coroutine_threadsafe(self._restart(target), loop)

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        try:
            self._machine = BackupStateMachine(hide_delay_ms=self._cfg.hide_delay_ms)
            self._machine.on_event(self._on_machine_event)
            self._supervisor = LogTailSupervisor(
                self._machine,
                command=self._cfg.follow_command,
                max_line_bytes=self._cfg.max_line_bytes,
            )
            self._supervisor.on_error(self._emit_error)
            loop.call_soon(self._ready.set)
            loop.run_forever()
        except Exception as e:
            log.exception("Monitor loop error")
            self._emit_error(str(e))
        finally:
            self._ready.set()
            self._drain(loop)
            loop.close()

    @staticmethod
    def _drain(loop: asyncio.AbstractEventLoop) -> None:
        """Cancel whatever is still scheduled (late restarts, reapers) and let it unwind."""
        try:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
        except Exception:
            log.exception("Failed to drain monitor loop")

    async def _restart(self, target: WatchTarget) -> bool:
        if self._supervisor is None:
            return False
        with self._lock:
            cfg = self._cfg
        self._machine.set_hide_delay(cfg.hide_delay_ms)
        self._supervisor.configure(cfg.follow_command, cfg.max_line_bytes)
        return await self._supervisor.restart(target)

    async def _shutdown(self) -> None:
        if self._supervisor is not None:
            await self._supervisor.aclose()

    def _on_machine_event(self, evt: dict) -> None:
        with self._lock:
            if evt["type"] == "INDICATOR_CHANGED":
                self._state.indicator_visible = evt["visible"]
            self._state.backup_in_progress = bool(self._machine and self._machine.in_progress)
        self._emit(evt)

    def _emit(self, evt: dict) -> None:
        if self._event_cb:
            self._event_cb(evt)

    def _emit_error(self, msg: str) -> None:
        if self._error_cb:
            self._error_cb(msg)
