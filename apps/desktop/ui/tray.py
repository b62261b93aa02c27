"""
Status-area indicator for the restic backup monitor.

The tray icon is only shown while the monitor reports the indicator as
visible. Monitor callbacks arrive on the monitor thread and are forwarded to
the GUI thread through queued Qt signals.
"""

from __future__ import annotations

import logging
from typing import Optional

from PySide6.QtCore import QObject, Signal
from PySide6.QtGui import QAction, QIcon
from PySide6.QtWidgets import QApplication, QMenu, QStyle, QSystemTrayIcon

from packages.shared.config import AppConfig
from packages.shared.store import ConfigStore
from packages.core.monitor.backup_monitor import BackupMonitor
from packages.core.notify.messages import build_notification_payload
from packages.core.notify.notifier import ICON_NAME, Notifier, DesktopNotifierBackend

from .preferences import PreferencesDialog

log = logging.getLogger(__name__)


class TrayNotifier:
    """Notifications as tray balloon messages."""

    def __init__(self, tray: QSystemTrayIcon) -> None:
        self._tray = tray

    def notify(self, title: str, body: str) -> None:
        self._tray.showMessage(title, body, self._tray.icon(), 6000)


class BackupTray(QObject):
    monitor_event = Signal(object)
    monitor_error = Signal(str)

    def __init__(self, app: QApplication, store: ConfigStore, cfg: AppConfig) -> None:
        super().__init__()
        self.app = app
        self.store = store
        self.cfg = cfg

        icon = QIcon.fromTheme(ICON_NAME)
        if icon.isNull():
            icon = app.style().standardIcon(QStyle.StandardPixmap.SP_BrowserReload)
        self.tray = QSystemTrayIcon(icon, self)
        self.tray.setToolTip("Restic backup")
        self.tray.setContextMenu(self._build_menu())

        self.notifier: Notifier = (
            DesktopNotifierBackend() if cfg.notifier == "desktop" else TrayNotifier(self.tray)
        )

        self.monitor_event.connect(self._handle_event)
        self.monitor_error.connect(self._handle_error)

        self.monitor = BackupMonitor(config=self.cfg.to_monitor_config())
        self.monitor.on_event(self.monitor_event.emit)
        self.monitor.on_error(self.monitor_error.emit)

        self._prefs: Optional[PreferencesDialog] = None

    def _build_menu(self) -> QMenu:
        menu = QMenu()
        self._status_action = QAction("Idle", menu)
        self._status_action.setEnabled(False)
        menu.addAction(self._status_action)
        menu.addSeparator()

        prefs = QAction("Preferences…", menu)
        prefs.triggered.connect(self.show_preferences)
        menu.addAction(prefs)

        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.app.quit)
        menu.addAction(quit_action)
        return menu

    def start(self) -> None:
        self.monitor.start()
        self._refresh_status()

    def shutdown(self) -> None:
        self.monitor.stop()
        self.tray.hide()

    def show_preferences(self) -> None:
        if self._prefs is not None:
            self._prefs.raise_()
            return
        self._prefs = PreferencesDialog(self.cfg.service_name)
        try:
            if self._prefs.exec():
                self.apply_service_name(self._prefs.service_name())
        finally:
            self._prefs = None

    def apply_service_name(self, name: str) -> None:
        if name == self.cfg.service_name:
            return
        self.cfg.service_name = name
        self.store.save(self.cfg)
        log.info("Service name changed to %r", name)
        self.monitor.on_target_changed(name)
        self._refresh_status()

    def _refresh_status(self) -> None:
        state = self.monitor.get_state()
        unit = state.unit_id or self.monitor.target().unit_id
        label = "Backup running" if state.backup_in_progress else "Idle"
        self._status_action.setText(f"{label} ({unit})")
        self.tray.setToolTip(f"Restic backup: {label.lower()}\n{unit}")

    def _handle_event(self, evt: dict) -> None:
        t = evt.get("type")
        if t == "INDICATOR_CHANGED":
            self.tray.setVisible(bool(evt.get("visible")))
        elif self.cfg.notifications_enabled:
            payload = build_notification_payload(evt)
            if payload is not None:
                self.notifier.notify(payload["title"], payload["body"])
        self._refresh_status()

    def _handle_error(self, msg: str) -> None:
        log.error("Monitor error: %s", msg)
        self.tray.setToolTip(f"Restic backup: monitoring unavailable\n{msg}")
