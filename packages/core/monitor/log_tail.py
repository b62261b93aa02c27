"""
Log tail supervisor.

Keeps exactly one follower process (``journalctl -f -u <unit> -n0 -o cat`` by
default) alive for the watched unit and feeds its stdout, line by line, into
the classifier and the presentation state machine.

Each session gets a generation number. The reader task re-checks that its
session is still the current one after every ``await``, so a restart never
lets output from an old follower reach the new session.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Sequence, Set

from packages.shared.config import DEFAULT_FOLLOW_COMMAND

from .classifier import classify_line
from .presenter import BackupStateMachine
from .types import MonitorSession, SessionStatus, WatchTarget

log = logging.getLogger(__name__)

DEFAULT_MAX_LINE_BYTES = 1024 * 1024


def build_follow_argv(command: Sequence[str], unit_id: str) -> List[str]:
    return [arg.replace("{unit}", unit_id) for arg in command]


class LogTailSupervisor:
    """Owns the follower subprocess and its asynchronous line reader."""

    def __init__(
        self,
        machine: BackupStateMachine,
        command: Sequence[str] = tuple(DEFAULT_FOLLOW_COMMAND),
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
    ) -> None:
        self._machine = machine
        self._command = tuple(command)
        self._max_line_bytes = max_line_bytes

        self._session: Optional[MonitorSession] = None
        self._generation = 0
        self._reapers: Set[asyncio.Task] = set()
        self._error_cb: Optional[Callable[[str], None]] = None

    def on_error(self, cb: Callable[[str], None]) -> None:
        self._error_cb = cb

    def configure(self, command: Sequence[str], max_line_bytes: int) -> None:
        """Used by the next restart; the live session keeps its settings."""
        self._command = tuple(command)
        self._max_line_bytes = max_line_bytes

    @property
    def session(self) -> Optional[MonitorSession]:
        return self._session

    @property
    def status(self) -> SessionStatus:
        return self._session.status if self._session else "STOPPED"

    async def restart(self, target: WatchTarget) -> bool:
        """
        Tear down the current session and start following ``target``.

        Returns True when a follower is streaming. On failure the session
        stays stopped until the next restart.
        """
        self.stop()

        self._generation += 1
        session = MonitorSession(generation=self._generation, target=target)
        self._session = session
        self._machine.set_target(target)

        argv = build_follow_argv(self._command, target.unit_id)
        log.info("Starting log follower for %s (session %d)", target.unit_id, session.generation)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
                limit=self._max_line_bytes,
            )
        except OSError as e:
            log.error("Failed to start log follower %s: %s", argv[0], e)
            if self._session is session:
                self._session = None
            session.status = "STOPPED"
            self._emit_error(f"Failed to start log follower: {e}")
            return False

        if self._session is not session:
            # Superseded by a restart or stop while spawning
            log.debug("Session %d superseded during spawn", session.generation)
            self._release(process)
            return False

        session.process = process
        if process.stdout is None:
            log.error("Log follower for %s has no stdout", target.unit_id)
            self.stop()
            self._emit_error("Log follower has no output stream")
            return False

        session.status = "STREAMING"
        session.reader = asyncio.create_task(
            self._consume(session), name=f"log-tail-{session.generation}"
        )
        return True

    def stop(self) -> None:
        """Tear down any live session. Safe to call repeatedly."""
        session, self._session = self._session, None
        if session is not None:
            log.info("Stopping log follower for %s (session %d)", session.target.unit_id, session.generation)
            session.status = "STOPPED"
            if session.reader is not None and not session.reader.done():
                session.reader.cancel()
            if session.process is not None:
                self._release(session.process)
        self._machine.reset()

    async def wait(self) -> None:
        """Wait for the current session's reader to finish."""
        session = self._session
        if session is None or session.reader is None:
            return
        try:
            await asyncio.shield(session.reader)
        except asyncio.CancelledError:
            if not session.reader.cancelled():
                raise

    async def aclose(self) -> None:
        """Stop and wait for every follower process to be reaped."""
        self.stop()
        if self._reapers:
            await asyncio.gather(*self._reapers, return_exceptions=True)

    async def _consume(self, session: MonitorSession) -> None:
        stdout = session.process.stdout
        unit_id = session.target.unit_id
        try:
            while True:
                raw = await stdout.readline()
                if session is not self._session:
                    return
                if not raw:
                    log.info("Log follower for %s ended", unit_id)
                    break
                line = raw.decode("utf-8", errors="replace")
                event = classify_line(line)
                log.debug("%s: %s -> %s", unit_id, line.rstrip(), event.value)
                self._machine.handle(event)
        except (OSError, ValueError) as e:
            if session is not self._session:
                return
            log.error("Failed reading log follower output for %s: %s", unit_id, e)
            self._emit_error(f"Failed reading log output: {e}")

        self._session = None
        session.status = "STOPPED"
        self._release(session.process)
        self._machine.stream_ended()

    def _release(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
        reaper = asyncio.ensure_future(process.wait())
        self._reapers.add(reaper)
        reaper.add_done_callback(self._reapers.discard)

    def _emit_error(self, msg: str) -> None:
        if not self._error_cb:
            return
        try:
            self._error_cb(msg)
        except Exception:
            log.exception("Error callback failed")
