"""Grade-entry spreadsheet for one group, subject and period."""
from typing import List, Optional

from PySide6.QtCore import Qt, Signal
from PySide6.QtGui import QColor, QFont
from PySide6.QtWidgets import (
    QAbstractItemView,
    QComboBox,
    QHBoxLayout,
    QHeaderView,
    QInputDialog,
    QLabel,
    QLineEdit,
    QMenu,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from gradebook import ALL_RUBRICS, SORT_ASC, SORT_DESC, Gradebook, next_sort_order
from models import GRADE_MAX, StudentRow, format_grade, parse_grade_text
from validation import REASON_TEXT, cell_error_reasons, validation_summary

_NAME_COL = 0
_RUBRIC_START = 1

_BG_ERROR = QColor(255, 205, 210)
_BG_DIRTY = QColor(255, 243, 205)
_BG_EMPTY = QColor(232, 232, 232)
_BG_AVG = QColor(215, 215, 215)

_SORT_LABELS = {None: "Sort", SORT_DESC: "↓ Avg", SORT_ASC: "↑ Avg"}


class GradesPanel(QWidget):
    grid_changed = Signal()        # any cell edit; listeners re-read the gradebook

    def __init__(self, parent=None):
        super().__init__(parent)
        self._gradebook: Optional[Gradebook] = None
        self._rubrics: List[str] = []
        self._visible: List[StudentRow] = []
        self._sort: Optional[str] = None
        self._rebuilding = False

        layout = QVBoxLayout(self)
        layout.setContentsMargins(4, 4, 4, 4)

        # ── Top bar: search + rubric filter + sort ────────────────────────────
        top = QHBoxLayout()
        self._search = QLineEdit()
        self._search.setPlaceholderText("Search student…")
        self._search.textChanged.connect(self.refresh)
        top.addWidget(self._search)

        clear_btn = QPushButton("✕")
        clear_btn.setToolTip("Clear search")
        clear_btn.setFixedWidth(28)
        clear_btn.clicked.connect(self._search.clear)
        top.addWidget(clear_btn)

        self._rubric_filter = QComboBox()
        self._rubric_filter.setToolTip("Only show students graded in this rubric")
        self._rubric_filter.currentIndexChanged.connect(self.refresh)
        top.addWidget(self._rubric_filter)

        self._sort_btn = QPushButton(_SORT_LABELS[None])
        self._sort_btn.setToolTip("Sort by average")
        self._sort_btn.clicked.connect(self._on_sort_clicked)
        top.addWidget(self._sort_btn)

        expand_btn = QPushButton("Expand all")
        expand_btn.setToolTip("Show comments under every grade")
        expand_btn.clicked.connect(lambda: self._expand_all(True))
        top.addWidget(expand_btn)
        collapse_btn = QPushButton("Collapse all")
        collapse_btn.clicked.connect(lambda: self._expand_all(False))
        top.addWidget(collapse_btn)
        layout.addLayout(top)

        self._banner = QLabel("")
        self._banner.setWordWrap(True)
        self._banner.hide()
        layout.addWidget(self._banner)

        self._table = QTableWidget()
        self._table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectItems)
        self._table.setEditTriggers(
            QAbstractItemView.EditTrigger.DoubleClicked |
            QAbstractItemView.EditTrigger.AnyKeyPressed
        )
        self._table.horizontalHeader().setSectionResizeMode(
            QHeaderView.ResizeMode.ResizeToContents)
        self._table.verticalHeader().setVisible(False)
        self._table.setContextMenuPolicy(Qt.ContextMenuPolicy.CustomContextMenu)
        self._table.customContextMenuRequested.connect(self._on_context_menu)
        self._table.itemChanged.connect(self._on_item_changed)
        self._table.cellClicked.connect(self._on_cell_clicked)
        layout.addWidget(self._table)

    # ── Public API ────────────────────────────────────────────────────────────

    def set_gradebook(self, gradebook: Gradebook, rubrics: List[str]):
        self._gradebook = gradebook
        self._rubrics = list(rubrics)
        self._rubric_filter.blockSignals(True)
        self._rubric_filter.clear()
        self._rubric_filter.addItem("All rubrics", ALL_RUBRICS)
        for rubric in self._rubrics:
            self._rubric_filter.addItem(rubric, rubric)
        self._rubric_filter.blockSignals(False)
        self.refresh()

    def visible_rows(self) -> List[StudentRow]:
        """Rows currently shown, in display order (used by the exports)."""
        return list(self._visible)

    def refresh(self):
        self._rebuilding = True
        self._table.blockSignals(True)
        try:
            self._build_table_contents()
        finally:
            self._table.blockSignals(False)
            self._rebuilding = False
        self._update_banner()

    # ── Internal ──────────────────────────────────────────────────────────────

    def _on_sort_clicked(self):
        self._sort = next_sort_order(self._sort)
        self._sort_btn.setText(_SORT_LABELS[self._sort])
        self.refresh()

    def _expand_all(self, expanded: bool):
        if self._gradebook is not None:
            self._gradebook.expand_all(expanded)
            self.refresh()

    def _on_cell_clicked(self, row: int, col: int):
        # Clicking a name shows or hides that student's comments
        if col != _NAME_COL or self._gradebook is None or not (0 <= row < len(self._visible)):
            return
        self._gradebook.toggle_expanded(self._visible[row].student.id)
        self.refresh()

    def _grade_color(self, val: float) -> QColor:
        pct = min(1.0, max(0.0, val / GRADE_MAX))
        g = int(249 + (255 - 249) * pct)
        b = int(196 + (255 - 196) * pct)
        return QColor(255, g, b)

    def _build_table_contents(self):
        gb = self._gradebook
        if gb is None:
            self._visible = []
            self._table.setRowCount(0)
            return
        rubric = self._rubric_filter.currentData() or ALL_RUBRICS
        self._visible = gb.filtered_rows(self._search.text(), rubric, self._sort)

        self._table.setColumnCount(len(self._rubrics) + 2)
        self._table.setHorizontalHeaderLabels(["Student"] + self._rubrics + ["Average"])
        self._table.setRowCount(len(self._visible))

        for r, row in enumerate(self._visible):
            arrow = "▾" if row.expanded else "▸"
            name_item = QTableWidgetItem(f"{arrow} {row.student.nombre_completo}")
            name_item.setFlags(Qt.ItemFlag.ItemIsEnabled | Qt.ItemFlag.ItemIsSelectable)
            self._table.setItem(r, _NAME_COL, name_item)
            for c, rubric_name in enumerate(self._rubrics):
                self._table.setItem(r, _RUBRIC_START + c, self._grade_item(row, rubric_name))
            self._table.setItem(r, _RUBRIC_START + len(self._rubrics), self._average_item(row))
        self._table.resizeRowsToContents()

    def _grade_item(self, row: StudentRow, rubric: str) -> QTableWidgetItem:
        gb = self._gradebook
        sid = row.student.id
        cell = gb.cell(sid, rubric)
        value = cell.value if cell is not None else None
        text = "" if value is None else f"{value:g}"
        item = QTableWidgetItem()
        item.setTextAlignment(Qt.AlignmentFlag.AlignCenter)

        reasons = cell_error_reasons(gb.validation, (sid, rubric))
        tips = [REASON_TEXT[r] for r in reasons]
        if cell is not None and cell.comment:
            tips.append(f"Comment: {cell.comment}")
        if reasons:
            text = f"{text} !".strip()
        if row.expanded and cell is not None and cell.comment:
            text = f"{text}\n{cell.comment}"
        item.setText(text)
        if reasons:
            item.setBackground(_BG_ERROR)
        elif gb.is_dirty(sid, rubric):
            item.setBackground(_BG_DIRTY)
        elif value is None:
            item.setBackground(_BG_EMPTY)
        else:
            item.setBackground(self._grade_color(value))
        if cell is not None and cell.comment:
            f = item.font(); f.setItalic(True); item.setFont(f)
        item.setToolTip("\n".join(tips))
        return item

    def _average_item(self, row: StudentRow) -> QTableWidgetItem:
        block = row.subjects.get(self._gradebook.subject_id)
        text = format_grade(block.average) if block is not None else "–"
        item = QTableWidgetItem(text)
        item.setFlags(Qt.ItemFlag.ItemIsEnabled)
        item.setTextAlignment(Qt.AlignmentFlag.AlignCenter)
        item.setBackground(_BG_AVG)
        bold = QFont(); bold.setBold(True)
        item.setFont(bold)
        return item

    def _update_banner(self):
        gb = self._gradebook
        if gb is None:
            self._banner.hide()
            return
        lines = validation_summary(gb.validation)
        if lines:
            self._banner.setStyleSheet("color: #b00020;")
            self._banner.setText("<b>Validation error</b><br>" + "<br>".join(lines))
            self._banner.show()
        elif gb.has_unsaved_changes:
            self._banner.setStyleSheet("color: #8a6d00;")
            self._banner.setText(f"<b>Unsaved changes</b><br>"
                                 f"{len(gb.dirty)} change(s) have not been saved")
            self._banner.show()
        else:
            self._banner.hide()

    def _cell_at(self, row: int, col: int):
        """Map a table position to *(StudentRow, rubric)* or None."""
        if not (0 <= row < len(self._visible)):
            return None
        if not (_RUBRIC_START <= col < _RUBRIC_START + len(self._rubrics)):
            return None
        return self._visible[row], self._rubrics[col - _RUBRIC_START]

    def _on_item_changed(self, item: QTableWidgetItem):
        if self._rebuilding or self._gradebook is None:
            return
        target = self._cell_at(item.row(), item.column())
        if target is None:
            return
        row, rubric = target
        gb = self._gradebook
        sid = row.student.id
        cell = gb.cell(sid, rubric)
        # First line is the grade; an expanded cell shows its comment below
        first_line = item.text().split("\n", 1)[0]
        accepted, value = parse_grade_text(first_line.rstrip("!").strip())
        if not accepted:
            # Not a number: put the previous value back
            self.refresh()
            return
        gb.edit_cell(sid, gb.subject_id, rubric, value,
                     cell.comment if cell is not None else None)
        self.refresh()
        self.grid_changed.emit()

    def _on_context_menu(self, pos):
        index = self._table.indexAt(pos)
        target = self._cell_at(index.row(), index.column())
        if target is None or self._gradebook is None:
            return
        row, rubric = target
        menu = QMenu(self)
        comment_action = menu.addAction("Edit comment…")
        expand_action = menu.addAction("Hide comments" if row.expanded else "Show comments")
        chosen = menu.exec(self._table.viewport().mapToGlobal(pos))
        if chosen is expand_action:
            self._gradebook.set_expanded(row.student.id, not row.expanded)
            self.refresh()
            return
        if chosen is not comment_action:
            return
        cell = self._gradebook.cell(row.student.id, rubric)
        text, ok = QInputDialog.getText(
            self, "Comment", f"Comment for {row.student.nombre_completo} — {rubric}:",
            text=(cell.comment if cell is not None and cell.comment else ""),
        )
        if ok:
            self._gradebook.edit_comment(row.student.id, rubric, text.strip())
            self.refresh()
            self.grid_changed.emit()
