import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from packages.shared.paths import ensure_app_dirs
from packages.shared.store import ConfigStore
from packages.core.logging_ import setup_logging
from packages.core.monitor.backup_monitor import BackupMonitor
from packages.core.notify.messages import build_notification_payload
from packages.core.notify.notifier import LogNotifier, Notifier, DesktopNotifierBackend

log = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Status indicator for restic backup services")
    parser.add_argument("--service", "-s", help="Backup name or full unit for this run (not saved)")
    parser.add_argument("--headless", action="store_true", help="Run without a tray icon")
    parser.add_argument("--no-notify", action="store_true", help="Headless: log events instead of notifying")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def run_headless(config: dict, notifier: Notifier) -> int:
    monitor = BackupMonitor(config=config)
    done = threading.Event()

    def on_event(evt: dict) -> None:
        payload = build_notification_payload(evt)
        if payload is not None:
            notifier.notify(payload["title"], payload["body"])

    def on_error(msg: str) -> None:
        log.error("Monitor error: %s", msg)

    def signal_handler(sig, frame):
        log.info("Received signal %s, shutting down...", sig)
        done.set()

    monitor.on_event(on_event)
    monitor.on_error(on_error)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    monitor.start()
    log.info("Watching %s", monitor.target().unit_id)
    # wait() with a timeout keeps the main thread responsive to signals
    while not done.wait(1.0):
        pass
    monitor.stop()
    return 0


def run_tray(store: ConfigStore, cfg) -> int:
    from PySide6.QtCore import QTimer
    from PySide6.QtWidgets import QApplication, QSystemTrayIcon

    from .ui.tray import BackupTray

    app = QApplication(sys.argv)
    app.setQuitOnLastWindowClosed(False)

    if not QSystemTrayIcon.isSystemTrayAvailable():
        log.warning("No system tray available; the indicator will not be visible")

    tray = BackupTray(app, store, cfg)
    tray.start()
    app.aboutToQuit.connect(tray.shutdown)

    # Handle Ctrl+C gracefully; the idle timer hands control back to Python
    # so the handler gets a chance to run
    wakeup = QTimer()
    wakeup.timeout.connect(lambda: None)
    wakeup.start(500)

    def signal_handler(sig, frame):
        print("\nReceived interrupt signal (Ctrl+C), shutting down...")
        app.quit()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    return app.exec()


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)

    ensure_app_dirs()
    setup_logging(verbose=args.verbose)

    store = ConfigStore()
    cfg = store.load()
    if args.service is not None:
        cfg = cfg.model_copy(update={"service_name": args.service})

    if args.headless:
        notifier: Notifier = LogNotifier()
        if cfg.notifications_enabled and not args.no_notify:
            notifier = DesktopNotifierBackend()
        sys.exit(run_headless(cfg.to_monitor_config(), notifier))

    sys.exit(run_tray(store, cfg))


if __name__ == "__main__":
    main()
