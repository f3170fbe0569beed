import argparse
import sys
from pathlib import Path
from typing import List, Optional

from PySide6.QtCore import QSettings, QThread, Signal
from PySide6.QtWidgets import (
    QApplication, QFileDialog, QHBoxLayout, QLabel, QLineEdit, QMainWindow, QMessageBox,
    QPushButton, QVBoxLayout, QWidget
)

from app_config import AppConfig, load_config
from barcode_resolver import BarcodeResolver
from catalog_client import CatalogClient
from exceptions import CatalogLookupError, ConfigurationError, StorageError
from logger import clear_logging_context, get_logger, set_agent_context, set_brand_context
from order_entry_widget import OrderEntryWidget
from order_export import export_order_to_excel
from order_reconciler import OrderLineReconciler
from order_store import LocalOrderStore
from product_catalog import CatalogView, ProductCatalogEntry
from scan_buffer import ScanBuffer, ScannerKeyFilter
from scan_controller import ScanController
from scan_event_log import ScanEventLog

logger = get_logger(__name__)


class CatalogLoadWorker(QThread):
    """
    Background worker that pages through one brand's catalog.

    Signals:
        page_loaded: Emitted with each page of ProductCatalogEntry objects
        load_failed: Emitted with an error message if a page request fails
    """
    page_loaded = Signal(list)
    load_failed = Signal(str)

    def __init__(self, client: CatalogClient, brand_id: str):
        super().__init__()
        self.client = client
        self.brand_id = brand_id
        self._abort = False

    def abort(self):
        """Request worker to stop after the current page."""
        self._abort = True

    def run(self):
        try:
            for page in self.client.iter_brand_catalog(self.brand_id):
                if self._abort:
                    logger.info(f"Catalog load for {self.brand_id} aborted")
                    return
                self.page_loaded.emit(page)
        except CatalogLookupError as e:
            self.load_failed.emit(str(e))


class MainWindow(QMainWindow):
    """
    Main application window for the order entry station.

    Owns the long-lived collaborators (catalog client, local store, scan event
    log, scan buffer and controller) and re-creates the catalog view whenever
    the agent opens another customer/brand pair.
    """

    def __init__(self, config: AppConfig, customer_id: Optional[str] = None, brand_id: Optional[str] = None,
                 agent_id: Optional[str] = None):
        super().__init__()
        self.setWindowTitle("Order Desk")
        self.resize(1280, 800)
        self.config = config

        self.settings = QSettings("OrderDesk", "OrderSelection")

        # Agent id tags every log line written by this session
        self.agent_id = agent_id or self.settings.value("last_agent_id", "") or None
        set_agent_context(self.agent_id)
        if self.agent_id:
            self.settings.setValue("last_agent_id", self.agent_id)

        logger.info("Initializing MainWindow")

        if not config.catalog.base_url:
            logger.warning("No catalog BaseUrl configured; lookups will fail")

        self.catalog_client = CatalogClient(
            config.catalog.base_url,
            config.catalog.api_key,
            page_size=config.catalog.page_size,
            timeout=config.catalog.timeout_seconds,
        )
        self.event_log = ScanEventLog(self.catalog_client.insert_scan_event)
        self.store = LocalOrderStore(config.db_path)
        self.reconciler = OrderLineReconciler(self.store, save_debounce_ms=config.save_debounce_ms, parent=self)
        self.resolver = BarcodeResolver(self.catalog_client, self.event_log)

        self.scan_buffer = ScanBuffer(
            min_length=config.scanner.min_length,
            max_length=config.scanner.max_length,
            timeout_ms=config.scanner.timeout_ms,
            parent=self,
        )
        self.key_filter = ScannerKeyFilter(
            self.scan_buffer,
            capture_in_text_fields=config.scanner.capture_in_text_fields,
            parent=self,
        )

        self.catalog_view = CatalogView(brand_id or "")
        self.controller = ScanController(
            self.scan_buffer, self.resolver, self.reconciler, self.catalog_view, parent=self
        )
        self.loader: Optional[CatalogLoadWorker] = None

        self._init_ui()
        self._connect_signals()

        self.key_filter.install(QApplication.instance())

        customer_id = customer_id or self.settings.value("last_customer_id", "")
        brand_id = brand_id or self.settings.value("last_brand_id", "")
        self.customer_input.setText(customer_id or "")
        self.brand_input.setText(brand_id or "")
        if customer_id and brand_id:
            self.open_order(customer_id, brand_id)

        logger.info("MainWindow initialized successfully")

    def _init_ui(self):
        central = QWidget()
        layout = QVBoxLayout(central)

        header = QHBoxLayout()
        header.addWidget(QLabel("Customer:"))
        self.customer_input = QLineEdit()
        header.addWidget(self.customer_input)
        header.addWidget(QLabel("Brand:"))
        self.brand_input = QLineEdit()
        header.addWidget(self.brand_input)
        self.open_button = QPushButton("Open")
        self.open_button.clicked.connect(self._on_open_clicked)
        header.addWidget(self.open_button)
        self.loading_label = QLabel("")
        header.addWidget(self.loading_label, stretch=1)
        layout.addLayout(header)

        self.order_widget = OrderEntryWidget()
        layout.addWidget(self.order_widget)

        self.setCentralWidget(central)

    def _connect_signals(self):
        w = self.order_widget
        w.search_changed.connect(self._on_search_changed)
        w.hide_out_of_stock_changed.connect(self._on_hide_out_of_stock_changed)
        w.selection_toggled.connect(self._on_selection_toggled)
        w.increment_requested.connect(self.reconciler.increment)
        w.decrement_requested.connect(self.reconciler.decrement)
        w.quantity_entered.connect(self.reconciler.set_quantity)
        w.scanner_toggled.connect(self.controller.set_scanner_active)
        w.clear_order_requested.connect(self._on_clear_order)
        w.export_requested.connect(self._on_export)
        w.manual_barcode_entered.connect(self.controller.handle_scan)

        self.reconciler.order_changed.connect(self.refresh)

        c = self.controller
        c.scan_status_changed.connect(w.set_scan_status)
        c.scan_status_changed.connect(lambda _: w.update_raw_scan_display(c.last_scanned_barcode))
        c.confirmation_shown.connect(w.show_confirmation)
        c.confirmation_cleared.connect(w.clear_confirmation)
        c.alert_raised.connect(w.show_alert)
        c.search_requested.connect(w.set_search_text)
        c.search_requested.connect(lambda _: self.refresh())
        c.scanner_active_changed.connect(w.set_scanner_active)

    # ------------------------------------------------------------------
    # Customer / brand
    # ------------------------------------------------------------------

    def _on_open_clicked(self):
        customer_id = self.customer_input.text().strip()
        brand_id = self.brand_input.text().strip()
        if not customer_id or not brand_id:
            QMessageBox.warning(self, "Missing Input", "Please enter both a customer and a brand.")
            return
        self.open_order(customer_id, brand_id)

    def open_order(self, customer_id: str, brand_id: str):
        """Load the customer's saved order and start loading the brand catalog."""
        logger.info(f"Opening order: customer={customer_id} brand={brand_id}")
        set_brand_context(brand_id)

        self.settings.setValue("last_customer_id", customer_id)
        self.settings.setValue("last_brand_id", brand_id)

        self.catalog_view = CatalogView(brand_id)
        self.controller.set_catalog_view(self.catalog_view)
        self.order_widget.set_search_text("")
        self.reconciler.load_customer(customer_id)

        if self.loader is not None and self.loader.isRunning():
            self.loader.abort()
            self.loader.wait(5000)

        self.loader = CatalogLoadWorker(self.catalog_client, brand_id)
        self.loader.page_loaded.connect(self._on_page_loaded)
        self.loader.load_failed.connect(self._on_load_failed)
        self.loader.finished.connect(lambda: self.loading_label.setText(""))
        self.loading_label.setText("Loading catalog...")
        self.loader.start()

    def _on_page_loaded(self, products: List[ProductCatalogEntry]):
        if products and products[0].brand_id != self.catalog_view.brand_id:
            return  # Page from a brand the agent already left
        self.catalog_view.add_products(products)
        self.reconciler.register_products(products)
        self.refresh()

    def _on_load_failed(self, message: str):
        logger.error(f"Catalog load failed: {message}")
        QMessageBox.warning(self, "Catalog Error", f"Could not load the catalog:\n\n{message}")

    # ------------------------------------------------------------------
    # Filters and order actions
    # ------------------------------------------------------------------

    def _on_search_changed(self, text: str):
        self.catalog_view.search = text
        self.refresh()

    def _on_hide_out_of_stock_changed(self, hide: bool):
        self.catalog_view.hide_out_of_stock = hide
        self.refresh()

    def _on_selection_toggled(self, product_id: str):
        product = self.catalog_view.get(product_id)
        if product is not None:
            self.reconciler.toggle_selected(product)

    def _on_clear_order(self):
        reply = QMessageBox.question(
            self, "Clear Order", "Remove all items from this order?",
            QMessageBox.Yes | QMessageBox.No, QMessageBox.No
        )
        if reply == QMessageBox.Yes:
            self.reconciler.clear_order()

    def _on_export(self):
        lines = self.reconciler.selected_lines(self.catalog_view.products)
        if not lines:
            QMessageBox.information(self, "Export", "The order is empty.")
            return

        default_name = f"order_{self.reconciler.customer_id}_{self.catalog_view.brand_id}.xlsx"
        file_path, _ = QFileDialog.getSaveFileName(self, "Export Order", default_name, "Excel Files (*.xlsx)")
        if not file_path:
            return

        try:
            export_order_to_excel(
                lines, Path(file_path),
                customer_name=self.reconciler.customer_id,
                brand_name=lines[0][0].brand_name or self.catalog_view.brand_id,
            )
        except (OSError, ValueError) as e:
            logger.error(f"Export failed: {e}", exc_info=True)
            QMessageBox.critical(self, "Export Error", f"Failed to export order:\n\n{e}")
            return
        QMessageBox.information(self, "Export", f"Order exported to:\n{file_path}")

    def refresh(self):
        """Re-render the product table and order summary."""
        products = self.catalog_view.products
        self.order_widget.display_products(self.catalog_view.visible(), self.reconciler)
        self.order_widget.update_summary(
            self.reconciler.selected_lines(products),
            self.reconciler.order_total(products),
        )

    def closeEvent(self, event):
        logger.info("Closing MainWindow")
        self.key_filter.uninstall()
        if self.loader is not None and self.loader.isRunning():
            self.loader.abort()
            self.loader.wait(5000)
        self.reconciler.flush()
        self.controller.shutdown()
        self.event_log.shutdown()
        clear_logging_context()
        super().closeEvent(event)


def parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Order Desk - barcode order entry")
    parser.add_argument("--config", type=Path, default=Path("config.ini"), help="Path to config.ini")
    parser.add_argument("--customer", help="Customer id to open on start")
    parser.add_argument("--brand", help="Brand id to open on start")
    parser.add_argument("--agent", help="Sales agent id recorded in the log (remembered between runs)")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    app = QApplication(sys.argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        QMessageBox.critical(None, "Configuration Error", str(e))
        return 1

    try:
        window = MainWindow(config, customer_id=args.customer, brand_id=args.brand, agent_id=args.agent)
    except StorageError as e:
        logger.error(f"Cannot open local order store: {e}", exc_info=True)
        QMessageBox.critical(None, "Storage Error", f"Cannot open the local order store:\n\n{e}")
        return 1

    window.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
