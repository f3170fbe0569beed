from functools import partial
from typing import List, Tuple

from PySide6.QtCore import Qt, Signal
from PySide6.QtGui import QColor, QFont
from PySide6.QtWidgets import (
    QAbstractItemView, QAbstractSpinBox, QCheckBox, QHBoxLayout, QHeaderView, QLabel, QLineEdit,
    QListWidget, QMessageBox, QPushButton, QSpinBox, QTableWidget, QTableWidgetItem,
    QVBoxLayout, QWidget
)

from order_reconciler import OrderLineReconciler
from product_catalog import ProductCatalogEntry

STATUS_COLORS = {
    "idle": "gray",
    "scanning": "orange",
    "found": "green",
    "not-found": "red",
}

COL_NAME, COL_SKU, COL_EAN, COL_PACK, COL_QTY, COL_ACTION = range(6)


class OrderEntryWidget(QWidget):
    """
    The order entry screen: product table for one brand plus the order summary.

    The widget only renders state and reports user intent through signals;
    the main window forwards them to the reconciler and scan controller.

    Attributes:
        search_changed (Signal): Search text edited
        hide_out_of_stock_changed (Signal): Stock filter toggled
        selection_toggled (Signal): Add/Remove clicked for a product id
        increment_requested (Signal): + clicked for a product id
        decrement_requested (Signal): - clicked for a product id
        quantity_entered (Signal): Quantity typed for a product id
        scanner_toggled (Signal): Scanner button toggled
        clear_order_requested (Signal): Clear Order clicked
        export_requested (Signal): Export clicked
        manual_barcode_entered (Signal): Code typed into the manual entry box
    """
    search_changed = Signal(str)
    hide_out_of_stock_changed = Signal(bool)
    selection_toggled = Signal(str)
    increment_requested = Signal(str)
    decrement_requested = Signal(str)
    quantity_entered = Signal(str, int)
    scanner_toggled = Signal(bool)
    clear_order_requested = Signal()
    export_requested = Signal()
    manual_barcode_entered = Signal(str)

    def __init__(self, parent: QWidget = None):
        super().__init__(parent)

        main_layout = QHBoxLayout(self)

        # --- Left: filters + product table ---
        left_widget = QWidget()
        left_layout = QVBoxLayout(left_widget)

        filter_row = QHBoxLayout()
        self.search_input = QLineEdit()
        self.search_input.setPlaceholderText("Search by product name, SKU, or scan barcode...")
        self.search_input.textChanged.connect(self.search_changed.emit)
        self.hide_out_of_stock_checkbox = QCheckBox("Hide out of stock")
        self.hide_out_of_stock_checkbox.toggled.connect(self.hide_out_of_stock_changed.emit)
        filter_row.addWidget(self.search_input, stretch=1)
        filter_row.addWidget(self.hide_out_of_stock_checkbox)
        left_layout.addLayout(filter_row)

        self.table = QTableWidget()
        self.table.setColumnCount(6)
        self.table.setHorizontalHeaderLabels(["Product Name", "SKU", "EAN", "Pack", "Quantity", "Action"])
        self.table.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeToContents)
        self.table.horizontalHeader().setStretchLastSection(True)
        self.table.setEditTriggers(QTableWidget.NoEditTriggers)
        self.table.setSelectionMode(QAbstractItemView.NoSelection)
        self.table.setFocusPolicy(Qt.NoFocus)
        left_layout.addWidget(self.table)

        # --- Right: scanner, confirmation banner, order summary ---
        right_widget = QWidget()
        right_layout = QVBoxLayout(right_widget)

        scanner_row = QHBoxLayout()
        self.scanner_button = QPushButton("Scanner")
        self.scanner_button.setCheckable(True)
        self.scanner_button.setChecked(True)
        self.scanner_button.setFocusPolicy(Qt.NoFocus)
        self.scanner_button.toggled.connect(self.scanner_toggled.emit)
        self.scan_status_label = QLabel("idle")
        self.scan_status_label.setObjectName("ScanStatusLabel")
        scanner_row.addWidget(self.scanner_button)
        scanner_row.addWidget(self.scan_status_label, stretch=1)
        right_layout.addLayout(scanner_row)

        raw_scan_title = QLabel("Last Scan:")
        self.raw_scan_label = QLabel("-")
        self.raw_scan_label.setObjectName("RawScanLabel")
        right_layout.addWidget(raw_scan_title)
        right_layout.addWidget(self.raw_scan_label)

        self.manual_barcode_input = QLineEdit()
        self.manual_barcode_input.setPlaceholderText("Enter barcode manually")
        self.manual_barcode_input.returnPressed.connect(self._on_manual_barcode)
        right_layout.addWidget(self.manual_barcode_input)

        self.confirmation_label = QLabel("")
        banner_font = QFont(); banner_font.setPointSize(16); banner_font.setBold(True)
        self.confirmation_label.setFont(banner_font)
        self.confirmation_label.setStyleSheet("color: green;")
        self.confirmation_label.setWordWrap(True)
        self.confirmation_label.setAlignment(Qt.AlignCenter)
        right_layout.addWidget(self.confirmation_label)

        right_layout.addWidget(QLabel("Order:"))
        self.summary_list = QListWidget()
        self.summary_list.setFocusPolicy(Qt.NoFocus)
        right_layout.addWidget(self.summary_list)

        self.total_label = QLabel("Total: £0.00")
        total_font = QFont(); total_font.setPointSize(14)
        self.total_label.setFont(total_font)
        right_layout.addWidget(self.total_label)

        buttons_row = QHBoxLayout()
        self.export_button = QPushButton("Export...")
        self.export_button.clicked.connect(self.export_requested.emit)
        self.clear_button = QPushButton("Clear Order")
        self.clear_button.clicked.connect(self.clear_order_requested.emit)
        buttons_row.addWidget(self.export_button)
        buttons_row.addWidget(self.clear_button)
        right_layout.addLayout(buttons_row)

        main_layout.addWidget(left_widget, stretch=3)
        main_layout.addWidget(right_widget, stretch=1)

    def _on_manual_barcode(self):
        text = self.manual_barcode_input.text().strip()
        self.manual_barcode_input.clear()
        if text:
            self.manual_barcode_entered.emit(text)

    def display_products(self, products: List[ProductCatalogEntry], reconciler: OrderLineReconciler):
        """
        Fill the product table.

        Args:
            products: Visible products, already filtered and sorted
            reconciler: Source of selection and quantity state
        """
        self.table.setRowCount(len(products))

        for row, product in enumerate(products):
            self.table.setItem(row, COL_NAME, QTableWidgetItem(product.name))
            self.table.setItem(row, COL_SKU, QTableWidgetItem(product.sku))
            self.table.setItem(row, COL_EAN, QTableWidgetItem(product.ean or ""))
            self.table.setItem(row, COL_PACK, QTableWidgetItem(str(product.packing_unit)))
            self.table.setCellWidget(row, COL_QTY, self._make_quantity_cell(product, reconciler))

            selected = reconciler.is_selected(product.id)
            action_button = QPushButton("Remove" if selected else "Add to Order")
            action_button.setFocusPolicy(Qt.NoFocus)
            action_button.clicked.connect(lambda *_, pid=product.id: self.selection_toggled.emit(pid))
            self.table.setCellWidget(row, COL_ACTION, action_button)

            if selected:
                for col in (COL_NAME, COL_SKU, COL_EAN, COL_PACK):
                    self.table.item(row, col).setBackground(QColor("lightgreen"))

    def _make_quantity_cell(self, product: ProductCatalogEntry, reconciler: OrderLineReconciler) -> QWidget:
        cell = QWidget()
        layout = QHBoxLayout(cell)
        layout.setContentsMargins(0, 0, 0, 0)

        minus_button = QPushButton("-")
        minus_button.setFocusPolicy(Qt.NoFocus)
        minus_button.setEnabled(reconciler.can_decrement(product.id))
        minus_button.clicked.connect(lambda *_, pid=product.id: self.decrement_requested.emit(pid))

        spin = QSpinBox()
        spin.setRange(1, 999999)
        spin.setSingleStep(product.packing_unit)
        spin.setKeyboardTracking(False)
        spin.setButtonSymbols(QAbstractSpinBox.ButtonSymbols.NoButtons)
        spin.setValue(reconciler.quantity_for(product.id))
        spin.editingFinished.connect(partial(self._on_quantity_edited, product.id, spin))

        plus_button = QPushButton("+")
        plus_button.setFocusPolicy(Qt.NoFocus)
        plus_button.clicked.connect(lambda *_, pid=product.id: self.increment_requested.emit(pid))

        layout.addWidget(minus_button)
        layout.addWidget(spin)
        layout.addWidget(plus_button)
        return cell

    def _on_quantity_edited(self, product_id: str, spin: QSpinBox):
        self.quantity_entered.emit(product_id, spin.value())

    def update_summary(self, lines: List[Tuple[ProductCatalogEntry, int]], total: float):
        self.summary_list.clear()
        for product, quantity in lines:
            self.summary_list.addItem(f"{product.sku}  {quantity} × £{product.cost_price:.2f}")
        self.total_label.setText(f"Total: £{total:.2f}")
        self.export_button.setEnabled(bool(lines))
        self.clear_button.setEnabled(bool(lines))

    def set_scan_status(self, status: str):
        self.scan_status_label.setText(status)
        self.scan_status_label.setStyleSheet(f"color: {STATUS_COLORS.get(status, 'gray')};")

    def update_raw_scan_display(self, text: str):
        self.raw_scan_label.setText(text)

    def set_scanner_active(self, active: bool):
        self.scanner_button.blockSignals(True)
        self.scanner_button.setChecked(active)
        self.scanner_button.blockSignals(False)
        self.scanner_button.setText("Scanner (on)" if active else "Scanner (off)")

    def set_search_text(self, text: str):
        """Set search text without re-emitting search_changed."""
        self.search_input.blockSignals(True)
        self.search_input.setText(text)
        self.search_input.blockSignals(False)

    def show_confirmation(self, name: str, sku: str):
        self.confirmation_label.setText(f"Added to order\n{name}\nSKU: {sku}")

    def clear_confirmation(self):
        self.confirmation_label.setText("")

    def show_alert(self, title: str, message: str):
        QMessageBox.warning(self, title, message)
