"""Preferences dialog: the one setting is the name of the backup to watch."""

from __future__ import annotations

from PySide6.QtWidgets import (
    QDialog,
    QDialogButtonBox,
    QFormLayout,
    QLabel,
    QLineEdit,
    QVBoxLayout,
)

from packages.core.monitor.service_name import FALLBACK_NAME


class PreferencesDialog(QDialog):
    def __init__(self, service_name: str, parent=None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Restic Indicator Preferences")
        self.setMinimumWidth(380)

        self.edit_name = QLineEdit(service_name)
        self.edit_name.setPlaceholderText(FALLBACK_NAME)

        hint = QLabel("Used to build restic-backups-{name}.service")
        hint.setEnabled(False)

        form = QFormLayout()
        form.addRow("Backup name", self.edit_name)
        form.addRow("", hint)

        buttons = QDialogButtonBox(
            QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel
        )
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)

        layout = QVBoxLayout(self)
        layout.addLayout(form)
        layout.addWidget(buttons)

    def service_name(self) -> str:
        return self.edit_name.text().strip()
