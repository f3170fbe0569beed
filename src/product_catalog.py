"""
Product records and the filtered catalog view for one brand.

The catalog view holds every product page loaded so far for the brand being
browsed. Its filtered list is what the agent sees on screen, and it is the
list a scanned barcode is matched against before the backend is asked.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from exceptions import ValidationError
from logger import get_logger

logger = get_logger(__name__)

SORT_OPTIONS = ('none', 'price-asc', 'price-desc')


def _normalize_ean(value: Any) -> Optional[str]:
    """
    Normalize an EAN value from the backend to its plain digit text.

    EANs imported from spreadsheets are often stored as numbers, so the
    backend returns 5012345678900.0 or "5012345678900.0".

    Examples:
        5012345678900.0 -> "5012345678900"
        "5012345678900.0" -> "5012345678900"
        " 0701197 " -> "0701197"
        "" -> None
    """
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    if text.endswith('.0') and text[:-2].isdigit():
        text = text[:-2]
    return text or None


def _to_int(value: Any, default: int) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass(frozen=True)
class ProductCatalogEntry:
    """
    One product as loaded from the catalog backend.

    Attributes:
        id: Stable backend identifier
        sku: Supplier stock keeping unit code
        ean: Barcode value, if the product has one
        packing_unit: Multiple the product is ordered in (boxes of 6 -> 6)
        brand_id: Brand (catalog partition) the product belongs to
    """
    id: str
    sku: str
    ean: Optional[str]
    packing_unit: int
    brand_id: str
    name: str = ""
    brand_name: Optional[str] = None
    cost_price: float = 0.0
    retail_price: float = 0.0
    net_stock_level: int = 0
    category: Optional[str] = None
    colour: Optional[str] = None
    status: str = "active"

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'ProductCatalogEntry':
        """
        Build an entry from a backend row.

        Missing, zero or garbage packing units fall back to 1. The brand name
        comes from the embedded brand object when the query selected it.

        Raises:
            ValidationError: If the record has no id
        """
        product_id = record.get('id')
        if product_id in (None, ''):
            raise ValidationError(f"Catalog record without id: {record!r}")

        packing_unit = _to_int(record.get('packing_unit'), 1)
        if packing_unit < 1:
            packing_unit = 1

        brand = record.get('brand') or {}

        return cls(
            id=str(product_id),
            sku=str(record.get('sku') or ''),
            ean=_normalize_ean(record.get('ean')),
            packing_unit=packing_unit,
            brand_id=str(record.get('brand_id') or brand.get('id') or ''),
            name=str(record.get('name') or ''),
            brand_name=brand.get('brand_name'),
            cost_price=_to_float(record.get('cost_price')),
            retail_price=_to_float(record.get('retail_price')),
            net_stock_level=_to_int(record.get('net_stock_level'), 0),
            category=record.get('category'),
            colour=record.get('colour'),
            status=str(record.get('status') or 'active'),
        )

    def matches_barcode(self, barcode: str) -> bool:
        """Exact, case-sensitive match against SKU or EAN."""
        return self.sku == barcode or (self.ean is not None and self.ean == barcode)


class CatalogView:
    """
    Products loaded for one brand plus the agent's current filters.

    Attributes:
        brand_id: Brand being browsed
        search: Free-text filter on name or SKU (case-insensitive)
        category: Category filter, 'all' for no filter
        colour: Colour filter, 'all' for no filter
        hide_out_of_stock: Hide products with no net stock
        sort_by: One of SORT_OPTIONS
    """

    def __init__(self, brand_id: str):
        self.brand_id = brand_id
        self.search = ""
        self.category = 'all'
        self.colour = 'all'
        self.hide_out_of_stock = False
        self.sort_by = 'none'
        self._products: Dict[str, ProductCatalogEntry] = {}

    @property
    def products(self) -> List[ProductCatalogEntry]:
        return list(self._products.values())

    def add_products(self, products: Iterable[ProductCatalogEntry]) -> int:
        """
        Add a loaded page. Products already present are replaced.

        Returns:
            Number of products that were not loaded before
        """
        added = 0
        for product in products:
            if product.id not in self._products:
                added += 1
            self._products[product.id] = product
        logger.debug(f"Catalog view {self.brand_id}: +{added} products, {len(self._products)} total")
        return added

    def get(self, product_id: str) -> Optional[ProductCatalogEntry]:
        return self._products.get(product_id)

    def categories(self) -> List[str]:
        return sorted({p.category for p in self._products.values() if p.category})

    def colours(self) -> List[str]:
        return sorted({p.colour for p in self._products.values() if p.colour})

    def visible(self) -> List[ProductCatalogEntry]:
        """
        Apply search, stock, category and colour filters, then sort.

        'none' sorts by id descending so newly created products come first.
        """
        term = self.search.lower()
        result = [
            p for p in self._products.values()
            if term in p.name.lower() or term in p.sku.lower()
        ]

        if self.hide_out_of_stock:
            result = [p for p in result if p.net_stock_level > 0]

        if self.category != 'all':
            result = [p for p in result if p.category == self.category]

        if self.colour != 'all':
            result = [p for p in result if p.colour == self.colour]

        if self.sort_by == 'price-asc':
            result.sort(key=lambda p: p.retail_price)
        elif self.sort_by == 'price-desc':
            result.sort(key=lambda p: p.retail_price, reverse=True)
        else:
            result.sort(key=lambda p: p.id, reverse=True)

        return result
