"""Main entry point for the Gradebook desktop client."""
import logging
import os
import subprocess
import sys
from typing import List, Optional

import requests
from PySide6.QtCore import QThread, Signal
from PySide6.QtWidgets import (
    QApplication,
    QComboBox,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

import data_store
import exporter
from api_client import ApiError, GradesApi, submit_batch
from gradebook import Gradebook
from grades_panel import GradesPanel
from models import GradeUpdate, SaveStatus
from setup_dialog import SetupDialog

logger = logging.getLogger(__name__)


class _SaveWorker(QThread):
    """Runs the batch PUT off the UI thread; emits None or the error message."""
    done = Signal(object)

    def __init__(self, api: GradesApi, updates: List[GradeUpdate], parent=None):
        super().__init__(parent)
        self._api = api
        self._updates = updates

    def run(self):
        self.done.emit(submit_batch(self._api, self._updates))


class MainWindow(QMainWindow):
    def __init__(self):
        super().__init__()
        self.setWindowTitle("Gradebook")
        self.resize(1100, 750)

        self._project_config: dict = {}
        self._settings = data_store.GradebookSettings()
        self._api: Optional[GradesApi] = None
        self._gradebook: Optional[Gradebook] = None
        self._save_worker: Optional[_SaveWorker] = None

        self._setup_ui()
        self._load_session()

    def _setup_ui(self):
        file_menu = self.menuBar().addMenu("File")
        file_menu.addAction("Open Project…").triggered.connect(self._show_setup)
        self._reload_action = file_menu.addAction("Reload from Server")
        self._reload_action.triggered.connect(self._on_reload_requested)
        file_menu.addSeparator()
        file_menu.addAction("Quit").triggered.connect(self.close)

        grades_menu = self.menuBar().addMenu("Grades")
        grades_menu.addAction("Save Changes").triggered.connect(self._save)
        grades_menu.addSeparator()
        grades_menu.addAction("Export as PDF").triggered.connect(self._export_pdf)
        grades_menu.addAction("Export as XLSX").triggered.connect(self._export_xlsx)
        grades_menu.addAction("Export as CSV").triggered.connect(self._export_csv)

        central = QWidget()
        layout = QVBoxLayout(central)
        self.setCentralWidget(central)

        bar = QHBoxLayout()
        self._title = QLabel("")
        bar.addWidget(self._title)
        bar.addStretch(1)
        bar.addWidget(QLabel("Period:"))
        self._period_combo = QComboBox()
        self._period_combo.currentTextChanged.connect(self._on_period_changed)
        bar.addWidget(self._period_combo)
        self._save_btn = QPushButton("Save")
        self._save_btn.clicked.connect(self._save)
        bar.addWidget(self._save_btn)
        layout.addLayout(bar)

        self._grades_panel = GradesPanel()
        self._grades_panel.grid_changed.connect(self._update_save_state)
        layout.addWidget(self._grades_panel)

    # ── Project / session ─────────────────────────────────────────────────────

    def _load_session(self):
        data_store.dbg("Loading previous session…")
        config = data_store.load_session_config()
        if config:
            project_dir = config.get("project_dir", "")
            if os.path.isdir(project_dir):
                try:
                    self._apply_project(project_dir)
                    return
                except Exception as exc:
                    QMessageBox.warning(
                        self, "Load Error",
                        f"Could not restore previous session:\n{exc}\n\nPlease open a project."
                    )
        data_store.dbg("No previous session found, showing setup dialog")
        self._show_setup()

    def _show_setup(self):
        if self._gradebook is not None and self._gradebook.is_saving:
            return
        if not self._confirm_discard():
            return
        dlg = SetupDialog(self)
        if dlg.exec():
            try:
                self._apply_project(dlg.project_dir())
            except (OSError, ValueError) as exc:
                QMessageBox.warning(self, "Load Error", f"Could not open project:\n{exc}")

    def _apply_project(self, project_dir: str):
        data_store.dbg(f"Applying project: {project_dir}")
        self._project_config = data_store.load_project_config(project_dir)
        self._settings = data_store.load_settings_from_config(self._project_config)
        problems = data_store.settings_problems(self._settings)
        if problems:
            raise ValueError("\n".join(problems))
        data_store.set_debug(self._settings.debug_mode)
        data_store.set_project_dir(project_dir, self._settings.export_dir)

        s = self._settings
        self._api = GradesApi(s.base_url, token=s.token, timeout=s.timeout)
        self._gradebook = Gradebook(s.group_id, s.subject_id, s.subject_name,
                                    period=s.default_period)
        self._title.setText(f"<b>{s.subject_name} - {s.group_name}</b>")

        self._period_combo.blockSignals(True)
        self._period_combo.clear()
        self._period_combo.addItems(s.periods)
        self._period_combo.setCurrentText(s.default_period)
        self._period_combo.blockSignals(False)

        self._grades_panel.set_gradebook(self._gradebook, s.rubrics)
        self._reload()

    def _on_reload_requested(self):
        if self._gradebook is None or self._gradebook.is_saving:
            return
        if not self._confirm_discard():
            return
        self._reload()

    def _reload(self, keep_edits: bool = False):
        """Fetch authoritative data and rebuild the grid.

        With *keep_edits* the pending edits are re-applied on top of the fresh
        data; a failed fetch then leaves the grid as it is.
        """
        if self._gradebook is None or self._api is None:
            return
        s = self._settings
        try:
            students = self._api.fetch_students(s.group_id)
            grades = self._api.fetch_grades(s.group_id, s.subject_id)
        except (ApiError, requests.RequestException) as exc:
            logger.error("Could not load data: %s", exc)
            QMessageBox.warning(self, "Load Error", f"Could not load grades:\n{exc}")
            if keep_edits:
                self._update_save_state()
                return
            students, grades = [], []
        if keep_edits:
            self._gradebook.merge_server_data(students, grades)
        else:
            self._gradebook.initialize(students, grades)
        self._grades_panel.refresh()
        self._update_save_state()

    def _confirm_discard(self) -> bool:
        if self._gradebook is None or not self._gradebook.has_unsaved_changes:
            return True
        answer = QMessageBox.question(
            self, "Unsaved changes",
            "There are unsaved changes. Continue without saving?",
        )
        return answer == QMessageBox.StandardButton.Yes

    # ── Period ────────────────────────────────────────────────────────────────

    def _on_period_changed(self, period: str):
        if self._gradebook is None or not period:
            return
        if not self._gradebook.switch_period(period, self._confirm_discard):
            # Cancelled: put the combo back on the active period
            self._period_combo.blockSignals(True)
            self._period_combo.setCurrentText(self._gradebook.period)
            self._period_combo.blockSignals(False)
            return
        self._grades_panel.refresh()
        self._update_save_state()

    # ── Save ──────────────────────────────────────────────────────────────────

    def _update_save_state(self):
        gb = self._gradebook
        enabled = gb is not None and not gb.is_saving
        self._save_btn.setEnabled(enabled)
        self._reload_action.setEnabled(enabled)
        self._save_btn.setText("Saving…" if gb is not None and gb.is_saving else "Save")

    def _save(self):
        if self._gradebook is None or self._api is None:
            QMessageBox.warning(self, "Save", "No project open.")
            return
        result = self._gradebook.begin_save()
        if result.status is SaveStatus.REJECTED:
            QMessageBox.warning(self, "Invalid grades", result.message)
            return
        if result.status is SaveStatus.NOTHING_TO_SAVE:
            QMessageBox.information(self, "No changes", result.message)
            return
        if result.status is SaveStatus.BUSY:
            return
        if result.status is SaveStatus.NEEDS_RELOAD:
            self._reload(keep_edits=True)
            result = self._gradebook.begin_save()
            if result.status is not SaveStatus.READY:
                QMessageBox.warning(self, "Save", result.message)
                return
        self._update_save_state()
        self._save_worker = _SaveWorker(self._api, result.updates, self)
        self._save_worker.done.connect(self._on_save_done)
        self._save_worker.start()

    def _on_save_done(self, error):
        result = self._gradebook.finish_save(error)
        self._save_worker = None
        self._update_save_state()
        if result.status is SaveStatus.FAILED:
            QMessageBox.critical(self, "Save failed",
                                 f"Grades could not be saved:\n{result.message}")
            self._grades_panel.refresh()
            return
        if self._gradebook.has_unsaved_changes:
            # Edits made while saving: refresh ids without dropping them
            self._reload(keep_edits=True)
            self.statusBar().showMessage(
                "Grades saved. Newer edits are still pending.", 5000)
            return
        self.statusBar().showMessage(result.message, 5000)
        self._reload()

    # ── Export ────────────────────────────────────────────────────────────────

    def _export_path(self, ext: str) -> Optional[str]:
        if self._gradebook is None:
            QMessageBox.warning(self, "Export", "No project open.")
            return None
        out_dir = data_store.ensure_export_dir()
        s = self._settings
        return os.path.join(out_dir, exporter.export_filename(
            s.group_name, s.subject_name, self._gradebook.period, ext))

    def _export_done(self, path: str):
        dlg = QMessageBox(QMessageBox.Icon.Information, "Export",
                          f"Grades exported to:\n{path}", parent=self)
        open_btn = dlg.addButton("Open File", QMessageBox.ButtonRole.ActionRole)
        dlg.addButton(QMessageBox.StandardButton.Ok)
        dlg.exec()
        if dlg.clickedButton() is open_btn:
            _open_path(path)

    def _export(self, ext: str, write):
        path = self._export_path(ext)
        if path is None:
            return
        try:
            write(path)
        except (OSError, RuntimeError) as exc:
            logger.error("Export to %s failed: %s", path, exc)
            QMessageBox.warning(self, "Export Error", f"Export failed:\n{exc}")
            return
        self._export_done(path)

    def _export_csv(self):
        s = self._settings
        self._export("csv", lambda path: exporter.export_csv(
            path, self._grades_panel.visible_rows(), s.subject_id, s.rubrics))

    def _export_xlsx(self):
        s = self._settings
        self._export("xlsx", lambda path: exporter.export_xlsx(
            path, self._grades_panel.visible_rows(), s.subject_id, s.rubrics,
            self._gradebook.period))

    def _export_pdf(self):
        s = self._settings
        self._export("pdf", lambda path: exporter.export_pdf(
            path, self._grades_panel.visible_rows(), s.subject_id, s.rubrics,
            self._gradebook.period, s.group_name, s.subject_name))

    def closeEvent(self, event):
        if self._gradebook is not None and self._gradebook.is_saving:
            QMessageBox.information(self, "Saving", "Please wait for the save to finish.")
            event.ignore()
            return
        if not self._confirm_discard():
            event.ignore()
            return
        event.accept()


def _open_path(path: str) -> None:
    """Open *path* with the platform's default handler (file or directory)."""
    if not os.path.exists(path):
        return
    try:
        if sys.platform == "darwin":
            subprocess.Popen(["open", path])
        elif sys.platform == "win32":
            os.startfile(path)  # type: ignore[attr-defined]
        else:
            subprocess.Popen(["xdg-open", path])
    except OSError as exc:
        logger.warning("Could not open %s: %s", path, exc)


def main():
    data_store.configure_logging()
    app = QApplication(sys.argv)
    app.setApplicationName("Gradebook")
    window = MainWindow()
    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
