"""
Order-in-progress state: which products are selected and in what quantity.

All quantity changes, whether from a scan, the +/- buttons or a typed value,
go through round_to_packing_unit, so a selected product's quantity is always a
positive multiple of its packing unit.

The state is mirrored to the local order store per customer. Writes are
debounced: a burst of scans within the debounce interval produces one write
per key carrying the final state.
"""

import math
from typing import Dict, Iterable, List, Optional, Tuple

from PySide6.QtCore import QObject, QTimer, Signal

from exceptions import StorageError
from logger import get_logger, set_customer_context
from order_store import LocalOrderStore, quantities_key, selected_key
from product_catalog import ProductCatalogEntry

logger = get_logger(__name__)

DEFAULT_SAVE_DEBOUNCE_MS = 100


def round_to_packing_unit(requested_qty: int, packing_unit: int) -> int:
    """
    Round a requested quantity up to a whole number of packing units.

    The result is never below one packing unit, so zero and negative
    requests become one packing unit.

    Examples (packing_unit=6):
        1 -> 6, 6 -> 6, 7 -> 12, 0 -> 6, -5 -> 6

    Raises:
        ValueError: If packing_unit is less than 1
    """
    if packing_unit < 1:
        raise ValueError(f"packing_unit must be at least 1, got {packing_unit}")
    return max(packing_unit, math.ceil(requested_qty / packing_unit) * packing_unit)


class OrderLineReconciler(QObject):
    """
    Selection and quantity maps for the active customer's order.

    Attributes:
        order_changed (Signal): Emitted after every mutation
        selected (Dict[str, bool]): Product id -> in order
        quantities (Dict[str, int]): Product id -> quantity. Kept for products
                                     removed from the order so re-adding them
                                     restores the previous quantity.
        customer_id (str | None): Customer whose order this is; no writes
                                  happen while it is None
    """
    order_changed = Signal()

    def __init__(self, store: LocalOrderStore, save_debounce_ms: int = DEFAULT_SAVE_DEBOUNCE_MS,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self.store = store
        self.customer_id: Optional[str] = None
        self.selected: Dict[str, bool] = {}
        self.quantities: Dict[str, int] = {}
        self._products: Dict[str, ProductCatalogEntry] = {}

        self._save_timer = QTimer(self)
        self._save_timer.setSingleShot(True)
        self._save_timer.setInterval(save_debounce_ms)
        self._save_timer.timeout.connect(self._persist)

    # ------------------------------------------------------------------
    # Products and customers
    # ------------------------------------------------------------------

    def register_products(self, products: Iterable[ProductCatalogEntry]):
        """
        Make packing units of loaded products known.

        Quantities restored before the product was loaded are re-rounded to
        its packing unit; any adjustment is saved.
        """
        adjusted = False
        for product in products:
            self._products[product.id] = product
            qty = self.quantities.get(product.id)
            if qty is None:
                continue
            rounded = round_to_packing_unit(qty, product.packing_unit)
            if rounded != qty:
                logger.info(f"Adjusted stored quantity of {product.sku} from {qty} to {rounded} "
                            f"(packing unit {product.packing_unit})")
                self.quantities[product.id] = rounded
                adjusted = True

        if adjusted:
            self._changed()

    def packing_unit_for(self, product_id: str) -> int:
        product = self._products.get(product_id)
        return product.packing_unit if product else 1

    def quantity_for(self, product_id: str) -> int:
        """Current quantity, defaulting to one packing unit when unset."""
        return self.quantities.get(product_id) or self.packing_unit_for(product_id)

    def is_selected(self, product_id: str) -> bool:
        return bool(self.selected.get(product_id))

    def load_customer(self, customer_id: Optional[str]):
        """
        Switch to another customer's order.

        Any pending write for the previous customer is flushed first, then the
        stored maps of the new customer are restored.
        """
        self.flush()
        self.customer_id = customer_id
        set_customer_context(customer_id)
        self.selected = {}
        self.quantities = {}

        if customer_id is not None:
            try:
                stored_selected = self.store.get_json(selected_key(customer_id), {})
                stored_quantities = self.store.get_json(quantities_key(customer_id), {})
            except StorageError as e:
                logger.error(f"Could not restore order for customer {customer_id}: {e}")
                stored_selected, stored_quantities = {}, {}

            if isinstance(stored_selected, dict):
                self.selected = {str(k): bool(v) for k, v in stored_selected.items()}
            else:
                logger.warning(f"Ignoring malformed stored selection for {customer_id}")

            if isinstance(stored_quantities, dict):
                for product_id, raw_qty in stored_quantities.items():
                    product_id = str(product_id)
                    try:
                        qty = int(raw_qty)
                    except (TypeError, ValueError):
                        qty = 0
                    if qty <= 0:
                        logger.warning(f"Ignoring stored quantity {raw_qty!r} for {product_id}")
                        continue
                    self.quantities[product_id] = round_to_packing_unit(qty, self.packing_unit_for(product_id))

            logger.info(f"Restored order for customer {customer_id}: "
                        f"{sum(self.selected.values())} selected")

        self.order_changed.emit()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def apply_found_in_view(self, product: ProductCatalogEntry) -> int:
        """
        A scan matched a visible product: add one more packing unit.

        Returns:
            The new quantity
        """
        self.register_products([product])
        new_qty = self.quantity_for(product.id) + product.packing_unit
        self.quantities[product.id] = new_qty
        self.selected[product.id] = True
        logger.debug(f"Scan added {product.sku}: quantity {new_qty}")
        self._changed()
        return new_qty

    def apply_found_via_lookup(self, product: ProductCatalogEntry) -> int:
        """
        A scan matched a product of this brand that was not visible:
        select it with exactly one packing unit.

        Returns:
            The new quantity
        """
        self.register_products([product])
        self.quantities[product.id] = product.packing_unit
        self.selected[product.id] = True
        logger.debug(f"Scan selected {product.sku} via lookup: quantity {product.packing_unit}")
        self._changed()
        return product.packing_unit

    def set_quantity(self, product_id: str, requested_qty: int) -> int:
        """
        Store a typed quantity, rounded to the packing unit.

        Returns:
            The stored quantity
        """
        qty = round_to_packing_unit(int(requested_qty), self.packing_unit_for(product_id))
        self.quantities[product_id] = qty
        self._changed()
        return qty

    def increment(self, product_id: str) -> int:
        return self.set_quantity(product_id, self.quantity_for(product_id) + self.packing_unit_for(product_id))

    def can_decrement(self, product_id: str) -> bool:
        """The - control is disabled at exactly one packing unit."""
        return self.quantity_for(product_id) > self.packing_unit_for(product_id)

    def decrement(self, product_id: str) -> int:
        if not self.can_decrement(product_id):
            return self.quantity_for(product_id)
        return self.set_quantity(product_id, self.quantity_for(product_id) - self.packing_unit_for(product_id))

    def toggle_selected(self, product: ProductCatalogEntry) -> bool:
        """
        Add to / remove from order.

        Adding initializes the quantity to one packing unit only if none is
        set; removing keeps the quantity for a later re-add.

        Returns:
            The new selected flag
        """
        self.register_products([product])
        now_selected = not self.is_selected(product.id)
        self.selected[product.id] = now_selected
        if now_selected and not self.quantities.get(product.id):
            self.quantities[product.id] = product.packing_unit
        self._changed()
        return now_selected

    def clear_order(self):
        """Empty both maps and delete the customer's stored entries."""
        self._save_timer.stop()
        self.selected = {}
        self.quantities = {}

        if self.customer_id is not None:
            try:
                self.store.remove(selected_key(self.customer_id))
                self.store.remove(quantities_key(self.customer_id))
            except StorageError as e:
                logger.error(f"Failed to clear stored order: {e}")
            logger.info(f"Order cleared for customer {self.customer_id}")

        self.order_changed.emit()

    # ------------------------------------------------------------------
    # Review summary
    # ------------------------------------------------------------------

    def selected_lines(self, products: Iterable[ProductCatalogEntry]) -> List[Tuple[ProductCatalogEntry, int]]:
        """(product, quantity) for every selected product among products."""
        return [(p, self.quantity_for(p.id)) for p in products if self.is_selected(p.id)]

    def order_total(self, products: Iterable[ProductCatalogEntry]) -> float:
        return sum(p.cost_price * qty for p, qty in self.selected_lines(products))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _changed(self):
        if self.customer_id is not None:
            self._save_timer.start()  # restart: bursts coalesce
        self.order_changed.emit()

    def flush(self):
        """Write any pending debounced state immediately."""
        if self._save_timer.isActive():
            self._save_timer.stop()
            self._persist()

    def _persist(self):
        if self.customer_id is None:
            return

        selected_quantities = {
            product_id: self.quantity_for(product_id)
            for product_id, is_selected in self.selected.items()
            if is_selected
        }
        try:
            self.store.set_json(selected_key(self.customer_id), self.selected)
            self.store.set_json(quantities_key(self.customer_id), selected_quantities)
            logger.debug(f"Order saved: {len(selected_quantities)} selected lines")
        except StorageError as e:
            logger.error(f"CRITICAL: Failed to save order locally: {e}", exc_info=True)
