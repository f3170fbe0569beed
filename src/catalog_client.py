"""
HTTP client for the hosted catalog backend.

The backend exposes a PostgREST-style REST API (the one Supabase serves under
/rest/v1). Order Desk only needs three things from it:
- find one active product by a scanned barcode, across all brands
- page through one brand's active catalog, 200 products at a time
- append scan events to the scan_logs table

Every request failure is turned into CatalogLookupError so callers only have
one exception type to handle.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

import requests

from exceptions import CatalogLookupError, ValidationError
from logger import get_logger
from product_catalog import ProductCatalogEntry

logger = get_logger(__name__)

ITEMS_PATH = "/rest/v1/items"
SCAN_LOGS_PATH = "/rest/v1/scan_logs"
ITEM_SELECT = "*,brand:brands(id,brand_name)"
DEFAULT_PAGE_SIZE = 200


class CatalogClient:
    """
    Thin wrapper over the catalog REST endpoints.

    Attributes:
        base_url (str): Backend root, e.g. https://example.supabase.co
        page_size (int): Products per brand catalog page
        timeout (float): Per-request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.page_size = page_size
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            'apikey': api_key,
            'Authorization': f'Bearer {api_key}',
            'Accept': 'application/json',
        })

    # ------------------------------------------------------------------
    # Low-level request helpers
    # ------------------------------------------------------------------

    def _get_rows(self, path: str, params: Dict[str, Any], barcode: Optional[str] = None) -> List[Dict[str, Any]]:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            rows = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Catalog request failed: {url} {params}: {e}")
            raise CatalogLookupError(f"Catalog request failed: {e}", barcode=barcode, url=url) from e
        except ValueError as e:
            # Body was not JSON (proxy error page, captive portal)
            logger.error(f"Catalog returned invalid JSON: {url}: {e}")
            raise CatalogLookupError("Catalog returned an invalid response", barcode=barcode, url=url) from e

        if not isinstance(rows, list):
            raise CatalogLookupError("Catalog returned an unexpected payload", barcode=barcode, url=url)
        return rows

    def _to_entry(self, row: Dict[str, Any], barcode: Optional[str] = None) -> ProductCatalogEntry:
        try:
            return ProductCatalogEntry.from_record(row)
        except ValidationError as e:
            logger.error(f"Catalog returned an unusable record: {e}")
            raise CatalogLookupError(f"Catalog returned an unusable record: {e}",
                                     barcode=barcode, url=f"{self.base_url}{ITEMS_PATH}") from e

    # ------------------------------------------------------------------
    # Barcode lookup
    # ------------------------------------------------------------------

    def find_product_by_barcode(self, barcode: str) -> Optional[ProductCatalogEntry]:
        """
        Find an active product whose EAN or SKU equals the scanned code.

        Search order, first hit wins:
        1. ean = code
        2. ean = code + ".0"  (EANs stored as numeric text)
        3. sku = code

        The search spans all brands; classifying the brand is the resolver's job.

        Args:
            barcode: Scanned code

        Returns:
            The matching product, or None

        Raises:
            CatalogLookupError: If any request fails
        """
        clean = str(barcode).strip()
        filters = [
            ('ean', f'eq.{clean}'),
            ('ean', f'eq.{clean}.0'),
            ('sku', f'eq.{clean}'),
        ]

        for column, condition in filters:
            params = {
                'select': ITEM_SELECT,
                column: condition,
                'status': 'eq.active',
                'limit': 1,
            }
            rows = self._get_rows(ITEMS_PATH, params, barcode=clean)
            if rows:
                product = self._to_entry(rows[0], barcode=clean)
                logger.debug(f"Barcode {clean} matched product {product.id} by {column}")
                return product

        logger.debug(f"Barcode {clean} not found in catalog")
        return None

    # ------------------------------------------------------------------
    # Brand catalog paging
    # ------------------------------------------------------------------

    def fetch_brand_page(self, brand_id: str, page: int) -> List[ProductCatalogEntry]:
        """
        Fetch one page of a brand's active products, ordered by id.

        Args:
            brand_id: Brand to fetch
            page: Zero-based page index
        """
        params = {
            'select': ITEM_SELECT,
            'brand_id': f'eq.{brand_id}',
            'status': 'eq.active',
            'order': 'id',
            'offset': page * self.page_size,
            'limit': self.page_size,
        }
        rows = self._get_rows(ITEMS_PATH, params)
        return [self._to_entry(row) for row in rows]

    def iter_brand_catalog(self, brand_id: str) -> Iterator[List[ProductCatalogEntry]]:
        """Yield pages of a brand's catalog until a short (or empty) page."""
        page = 0
        while True:
            products = self.fetch_brand_page(brand_id, page)
            if products:
                yield products
            if len(products) < self.page_size:
                logger.info(f"Loaded {page + 1} catalog page(s) for brand {brand_id}")
                return
            page += 1

    # ------------------------------------------------------------------
    # Scan event sink
    # ------------------------------------------------------------------

    def insert_scan_event(self, event: Dict[str, Any]) -> None:
        """
        Append one scan event row.

        Args:
            event: {"barcode", "success", "matched_product_id", "timestamp"}

        Raises:
            CatalogLookupError: If the insert fails
        """
        url = f"{self.base_url}{SCAN_LOGS_PATH}"
        timestamp = event.get('timestamp') or datetime.now(timezone.utc).isoformat()
        payload = {
            'barcode': event['barcode'],
            'found': bool(event['success']),
            'product_id': event.get('matched_product_id'),
            'scanned_at': timestamp,
        }
        try:
            response = self._session.post(
                url,
                json=payload,
                headers={'Prefer': 'return=minimal'},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise CatalogLookupError(f"Scan event insert failed: {e}", barcode=payload['barcode'], url=url) from e
