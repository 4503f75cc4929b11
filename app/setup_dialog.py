"""Open-project dialog: pick a directory and check its config.json before use."""
import os
from typing import Optional

from PySide6.QtWidgets import (
    QDialog, QDialogButtonBox, QFileDialog, QFormLayout,
    QHBoxLayout, QLabel, QLineEdit, QPushButton, QVBoxLayout,
)

import data_store
from data_store import GradebookSettings


class SetupDialog(QDialog):
    def __init__(self, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Gradebook - Open Project")
        self.setMinimumWidth(540)

        self._project_dir = ""
        self._settings: Optional[GradebookSettings] = None

        config = data_store.load_session_config()
        last_dir = config.get("project_dir", "") if config else ""

        layout = QVBoxLayout(self)
        layout.addWidget(QLabel(
            "Choose the directory of the class to grade.<br>"
            "Its <tt>config.json</tt> names the server, the group and the subject; "
            "exports are written next to it."
        ))

        form = QFormLayout()
        layout.addLayout(form)

        self._dir_edit = QLineEdit(last_dir)
        self._dir_edit.textChanged.connect(self._check)
        browse_btn = QPushButton("Browse…")
        browse_btn.clicked.connect(self._browse)
        dir_row = QHBoxLayout()
        dir_row.addWidget(self._dir_edit)
        dir_row.addWidget(browse_btn)
        form.addRow("Project directory:", dir_row)

        self._server_label = QLabel("–")
        self._group_label = QLabel("–")
        self._subject_label = QLabel("–")
        form.addRow("Server:", self._server_label)
        form.addRow("Group:", self._group_label)
        form.addRow("Subject:", self._subject_label)

        self._error_label = QLabel("")
        self._error_label.setWordWrap(True)
        self._error_label.setStyleSheet("color: #b00020;")
        layout.addWidget(self._error_label)

        self._buttons = QDialogButtonBox()
        self._open_btn = self._buttons.addButton(
            "Open Project", QDialogButtonBox.ButtonRole.AcceptRole)
        self._buttons.addButton("Cancel", QDialogButtonBox.ButtonRole.RejectRole)
        self._buttons.accepted.connect(self._on_accept)
        self._buttons.rejected.connect(self.reject)
        layout.addWidget(self._buttons)

        self._check()

    def _browse(self):
        path = QFileDialog.getExistingDirectory(self, "Select Project Directory",
                                                self._dir_edit.text())
        if path:
            self._dir_edit.setText(path)

    def _check(self) -> bool:
        """Re-read config.json for the typed directory and show what it points at."""
        project_dir = self._dir_edit.text().strip()
        if not project_dir:
            settings, problems = None, []
        else:
            settings, problems = data_store.inspect_project(project_dir)
        self._settings = settings

        if settings is None:
            for label in (self._server_label, self._group_label, self._subject_label):
                label.setText("–")
        else:
            self._server_label.setText(settings.base_url)
            self._group_label.setText(f"{settings.group_name} (id {settings.group_id})")
            self._subject_label.setText(f"{settings.subject_name} (id {settings.subject_id})")

        self._error_label.setText("<br>".join(problems))
        ok = settings is not None and not problems
        self._open_btn.setEnabled(ok)
        return ok

    def _on_accept(self):
        if not self._check():
            return
        project_dir = os.path.abspath(self._dir_edit.text().strip())
        data_store.save_session_config(project_dir)
        self._project_dir = project_dir
        self.accept()

    def project_dir(self) -> str:
        return self._project_dir
