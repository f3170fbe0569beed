"""
Scan flow coordination: buffer -> resolver -> reconciler -> UI feedback.

The controller owns the transient scan feedback (status, confirmation banner,
alerts) and the threading of remote lookups. Lookups run on a QThread so the
keystroke buffer keeps working while the backend answers. Every scan gets a
sequence number; a lookup answer that arrives after a newer scan started is
logged but not applied, so a slow response can never overwrite the result of
a later scan.
"""

from typing import Optional, Set

from PySide6.QtCore import QObject, QThread, QTimer, Signal

from barcode_resolver import BarcodeResolver, ScanOutcome, ScanOutcomeKind
from exceptions import CatalogLookupError, OrderDeskError
from logger import get_logger
from order_reconciler import OrderLineReconciler
from product_catalog import CatalogView, ProductCatalogEntry
from scan_buffer import ScanBuffer

logger = get_logger(__name__)

STATUS_IDLE = "idle"
STATUS_SCANNING = "scanning"
STATUS_FOUND = "found"
STATUS_NOT_FOUND = "not-found"

STATUS_RESET_MS = 2000
CONFIRMATION_MS = 3000


def as_lookup_error(error: OrderDeskError, barcode: str) -> CatalogLookupError:
    """Any application error during a lookup is reported as a failed lookup."""
    if isinstance(error, CatalogLookupError):
        return error
    return CatalogLookupError(str(error), barcode=barcode)


class LookupWorker(QThread):
    """
    Background thread for one remote barcode lookup.

    Signals:
        lookup_finished: (sequence, barcode, brand_id at scan time, product or None)
        lookup_failed: (sequence, barcode, CatalogLookupError)
    """
    lookup_finished = Signal(int, str, str, object)
    lookup_failed = Signal(int, str, object)

    def __init__(self, resolver: BarcodeResolver, sequence: int, barcode: str, brand_id: str,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self.resolver = resolver
        self.sequence = sequence
        self.barcode = barcode
        self.brand_id = brand_id

    def run(self):
        try:
            product = self.resolver.lookup(self.barcode)
        except OrderDeskError as e:
            self.lookup_failed.emit(self.sequence, self.barcode, as_lookup_error(e, self.barcode))
            return
        self.lookup_finished.emit(self.sequence, self.barcode, self.brand_id, product)


class ScanController(QObject):
    """
    Wires the scan buffer, resolver and reconciler together.

    Attributes:
        scan_status_changed (Signal): "idle" | "scanning" | "found" | "not-found"
        confirmation_shown (Signal): (product name, sku) for the success banner
        confirmation_cleared (Signal): Banner auto-dismissed
        alert_raised (Signal): (title, message) for a blocking alert
        search_requested (Signal): SKU to put in the catalog search field
        outcome_resolved (Signal): Every applied ScanOutcome
        scanner_active_changed (Signal): Scanner toggled on/off
        sync_mode (bool): Run lookups inline instead of on a QThread (tests)
    """
    scan_status_changed = Signal(str)
    confirmation_shown = Signal(str, str)
    confirmation_cleared = Signal()
    alert_raised = Signal(str, str)
    search_requested = Signal(str)
    outcome_resolved = Signal(object)
    scanner_active_changed = Signal(bool)

    def __init__(
        self,
        scan_buffer: ScanBuffer,
        resolver: BarcodeResolver,
        reconciler: OrderLineReconciler,
        catalog_view: CatalogView,
        sync_mode: bool = False,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self.scan_buffer = scan_buffer
        self.resolver = resolver
        self.reconciler = reconciler
        self.catalog_view = catalog_view
        self.sync_mode = sync_mode

        self.scanner_active = True
        self.status = STATUS_IDLE
        self.last_scanned_barcode = ""
        self._sequence = 0
        self._workers: Set[LookupWorker] = set()

        self._status_timer = QTimer(self)
        self._status_timer.setSingleShot(True)
        self._status_timer.setInterval(STATUS_RESET_MS)
        self._status_timer.timeout.connect(lambda: self._set_status(STATUS_IDLE))

        self._confirmation_timer = QTimer(self)
        self._confirmation_timer.setSingleShot(True)
        self._confirmation_timer.setInterval(CONFIRMATION_MS)
        self._confirmation_timer.timeout.connect(self.confirmation_cleared.emit)

        self.scan_buffer.scan_completed.connect(self.handle_scan)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def set_catalog_view(self, catalog_view: CatalogView):
        """Switch to another brand; in-flight lookups become stale."""
        self.catalog_view = catalog_view
        self._sequence += 1

    def set_scanner_active(self, active: bool):
        if active == self.scanner_active:
            return
        self.scanner_active = active
        if not active:
            self.scan_buffer.clear()
        logger.info(f"Scanner {'activated' if active else 'deactivated'}")
        self.scanner_active_changed.emit(active)

    def handle_scan(self, barcode: str):
        """
        Resolve one completed scan.

        Called by the scan buffer, and directly for codes entered by hand.
        """
        if not self.scanner_active:
            logger.debug(f"Scanner inactive, ignoring {barcode}")
            return

        self._sequence += 1
        sequence = self._sequence
        brand_id = self.catalog_view.brand_id
        self.last_scanned_barcode = barcode
        self._set_status(STATUS_SCANNING)

        outcome = self.resolver.resolve_local(barcode, self.catalog_view.visible())
        if outcome is not None:
            self._apply_outcome(outcome)
            return

        if self.sync_mode:
            try:
                product = self.resolver.lookup(barcode)
            except OrderDeskError as e:
                self._on_lookup_failed(sequence, barcode, as_lookup_error(e, barcode))
                return
            self._on_lookup_finished(sequence, barcode, brand_id, product)
            return

        worker = LookupWorker(self.resolver, sequence, barcode, brand_id, parent=self)
        worker.lookup_finished.connect(self._on_lookup_finished)
        worker.lookup_failed.connect(self._on_lookup_failed)
        worker.finished.connect(lambda: self._release_worker(worker))
        self._workers.add(worker)
        worker.start()

    def shutdown(self):
        """Wait for in-flight lookups before the application exits."""
        for worker in list(self._workers):
            worker.wait(5000)

    # ------------------------------------------------------------------
    # Lookup results (UI thread)
    # ------------------------------------------------------------------

    def _release_worker(self, worker: LookupWorker):
        self._workers.discard(worker)
        worker.deleteLater()

    def _on_lookup_finished(self, sequence: int, barcode: str, brand_id: str,
                            product: Optional[ProductCatalogEntry]):
        # Classified against the brand browsed when the scan happened
        outcome = self.resolver.classify_lookup(barcode, product, brand_id)
        if sequence != self._sequence:
            logger.info(f"Dropping stale lookup result for {barcode} (scan {sequence}, latest {self._sequence})")
            return
        self._apply_outcome(outcome)

    def _on_lookup_failed(self, sequence: int, barcode: str, error: CatalogLookupError):
        logger.error(f"Barcode scan error for {barcode}: {error}")
        if sequence != self._sequence:
            return
        self._set_status(STATUS_NOT_FOUND)
        self.alert_raised.emit("Scan Error", error.get_display_message())
        self._status_timer.start()

    # ------------------------------------------------------------------
    # Applying outcomes
    # ------------------------------------------------------------------

    def _apply_outcome(self, outcome: ScanOutcome):
        product = outcome.product

        if outcome.kind is ScanOutcomeKind.FOUND_IN_VIEW:
            self.reconciler.apply_found_in_view(product)
            self._set_status(STATUS_FOUND)
            self._show_confirmation(product)

        elif outcome.kind is ScanOutcomeKind.FOUND_VIA_LOOKUP:
            self.reconciler.apply_found_via_lookup(product)
            self.catalog_view.add_products([product])
            self.catalog_view.search = product.sku
            self.search_requested.emit(product.sku)
            self._set_status(STATUS_FOUND)
            self._show_confirmation(product)

        elif outcome.kind is ScanOutcomeKind.WRONG_BRAND:
            self._set_status(STATUS_FOUND)
            brand_name = product.brand_name or 'Unknown'
            self.alert_raised.emit(
                "Wrong Brand",
                f"Product found but belongs to different brand: {brand_name}"
            )

        else:
            self._set_status(STATUS_NOT_FOUND)
            self.alert_raised.emit("Not Found", f"Product not found for barcode: {outcome.barcode}")

        self.outcome_resolved.emit(outcome)
        self._status_timer.start()

    def _show_confirmation(self, product: ProductCatalogEntry):
        self.confirmation_shown.emit(product.name, product.sku)
        self._confirmation_timer.start()

    def _set_status(self, status: str):
        if status == self.status:
            return
        self.status = status
        self.scan_status_changed.emit(status)
