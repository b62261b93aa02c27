from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, Set

from desktop_notifier import DesktopNotifier, Urgency

log = logging.getLogger(__name__)

APP_NAME = "Restic Indicator"
ICON_NAME = "emblem-synchronizing-symbolic"


class Notifier(Protocol):
    def notify(self, title: str, body: str) -> None:
        ...


class LogNotifier:
    def notify(self, title: str, body: str) -> None:
        log.info("%s: %s", title, body)


class DesktopNotifierBackend:
    """
    Desktop notifications through ``desktop_notifier``.

    On an event loop thread (the monitor's) the send is scheduled as a task
    and never awaited by the caller. Elsewhere it runs on a short-lived loop.
    """

    def __init__(self, app_name: str = APP_NAME) -> None:
        self._app_name = app_name
        self._notifier: Optional[DesktopNotifier] = None
        self._pending: Set[asyncio.Task] = set()

    def notify(self, title: str, body: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            # The notifier binds to the loop it first sends on, so use a fresh one
            try:
                asyncio.run(self._send(DesktopNotifier(app_name=self._app_name), title, body))
            except Exception:
                log.exception("Failed to send desktop notification")
            return

        if self._notifier is None:
            self._notifier = DesktopNotifier(app_name=self._app_name)
        task = loop.create_task(self._send(self._notifier, title, body))
        self._pending.add(task)
        task.add_done_callback(self._finished)

    async def _send(self, notifier: DesktopNotifier, title: str, body: str) -> None:
        await notifier.send(title=title, message=body, urgency=Urgency.Normal)

    def _finished(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("Failed to send desktop notification: %s", exc)
