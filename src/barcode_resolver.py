"""
Classification of completed scans against the product catalog.

A scanned code is first matched against the products the agent can currently
see. Only when none matches is the backend asked, across every brand, and
the answer classified by brand. Every terminal outcome is written to the scan
event log.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from catalog_client import CatalogClient
from logger import get_logger
from product_catalog import ProductCatalogEntry
from scan_event_log import ScanEventLog

logger = get_logger(__name__)


class ScanOutcomeKind(Enum):
    FOUND_IN_VIEW = "found_in_view"
    FOUND_VIA_LOOKUP = "found_via_lookup"
    WRONG_BRAND = "wrong_brand"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ScanOutcome:
    """
    Result of resolving one scanned code.

    Attributes:
        kind: Which of the four terminal outcomes applies
        barcode: The scanned code
        product: The matched product (None only for NOT_FOUND)
    """
    kind: ScanOutcomeKind
    barcode: str
    product: Optional[ProductCatalogEntry] = None

    @property
    def is_success(self) -> bool:
        """True when the outcome changes the order."""
        return self.kind in (ScanOutcomeKind.FOUND_IN_VIEW, ScanOutcomeKind.FOUND_VIA_LOOKUP)


def match_local(barcode: str, visible: Iterable[ProductCatalogEntry]) -> Optional[ProductCatalogEntry]:
    """First visible product whose SKU or EAN equals the code exactly."""
    for product in visible:
        if product.matches_barcode(barcode):
            return product
    return None


class BarcodeResolver:
    """
    Resolves scanned codes to ScanOutcome values.

    The local match and the remote lookup are exposed separately so the
    controller can run the lookup off the UI thread; resolve() chains both.

    Attributes:
        catalog_client: Backend used for remote lookups
        event_log: Scan event sink (fire-and-forget)
    """

    def __init__(self, catalog_client: CatalogClient, event_log: ScanEventLog):
        self.catalog_client = catalog_client
        self.event_log = event_log

    def resolve_local(self, barcode: str, visible: Iterable[ProductCatalogEntry]) -> Optional[ScanOutcome]:
        """
        Step 1: match against the visible products.

        Returns:
            FOUND_IN_VIEW outcome (already logged), or None if a lookup is needed
        """
        product = match_local(barcode, visible)
        if product is None:
            return None
        outcome = ScanOutcome(ScanOutcomeKind.FOUND_IN_VIEW, barcode, product)
        self._record(outcome)
        return outcome

    def lookup(self, barcode: str) -> Optional[ProductCatalogEntry]:
        """
        Step 2a: ask the backend, across all brands.

        Runs on a worker thread. Does not log anything to the scan event log.

        Raises:
            CatalogLookupError: If the backend cannot be reached
        """
        return self.catalog_client.find_product_by_barcode(barcode)

    def classify_lookup(self, barcode: str, product: Optional[ProductCatalogEntry], brand_id: str) -> ScanOutcome:
        """
        Step 2b: classify the lookup answer against the brand being browsed.

        Returns:
            NOT_FOUND, WRONG_BRAND or FOUND_VIA_LOOKUP outcome (already logged)
        """
        if product is None:
            outcome = ScanOutcome(ScanOutcomeKind.NOT_FOUND, barcode)
        elif product.brand_id != brand_id:
            outcome = ScanOutcome(ScanOutcomeKind.WRONG_BRAND, barcode, product)
        else:
            outcome = ScanOutcome(ScanOutcomeKind.FOUND_VIA_LOOKUP, barcode, product)
        self._record(outcome)
        return outcome

    def resolve(self, barcode: str, visible: Iterable[ProductCatalogEntry], brand_id: str) -> ScanOutcome:
        """
        Resolve a scan synchronously: local match, then remote lookup.

        Raises:
            CatalogLookupError: If the remote lookup fails
        """
        outcome = self.resolve_local(barcode, visible)
        if outcome is not None:
            return outcome
        product = self.lookup(barcode)
        return self.classify_lookup(barcode, product, brand_id)

    def _record(self, outcome: ScanOutcome):
        product_id = outcome.product.id if outcome.product else None
        logger.info(f"Scan resolved: {outcome.kind.name} {outcome.barcode} product={product_id}")
        self.event_log.record(outcome.barcode, outcome.product is not None, product_id)
