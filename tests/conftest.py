"""
Pytest configuration file for Order Desk tests.

Puts the 'src' directory on sys.path so tests import modules the same way
the application does (from logger import get_logger), and provides shared
product fixtures.
"""

import os
import sys
from pathlib import Path

import pytest

# Run Qt headless so the suite works without a display server.
os.environ.setdefault('QT_QPA_PLATFORM', 'offscreen')

repo_root = Path(__file__).parent.parent

src_dir = repo_root / 'src'
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

from product_catalog import ProductCatalogEntry  # noqa: E402


def make_product(
    product_id: str,
    sku: str,
    ean: str = None,
    packing_unit: int = 1,
    brand_id: str = "elvang",
    name: str = None,
    brand_name: str = None,
    cost_price: float = 10.0,
    retail_price: float = 20.0,
    net_stock_level: int = 5,
    category: str = None,
):
    """Helper to build a ProductCatalogEntry with sensible defaults."""
    return ProductCatalogEntry(
        id=product_id,
        sku=sku,
        ean=ean,
        packing_unit=packing_unit,
        brand_id=brand_id,
        name=name or f"Product {sku}",
        brand_name=brand_name,
        cost_price=cost_price,
        retail_price=retail_price,
        net_stock_level=net_stock_level,
        category=category,
    )


@pytest.fixture
def blanket():
    """Elvang blanket sold in boxes of 6."""
    return make_product("p-100", "ELV-BLANKET-01", ean="5701581000001", packing_unit=6,
                        name="Alpaca Blanket", brand_name="Elvang", cost_price=45.0)


@pytest.fixture
def cushion():
    """Elvang cushion sold singly."""
    return make_product("p-200", "ELV-CUSHION-02", ean="5701581000002", packing_unit=1,
                        name="Cushion Cover", brand_name="Elvang", cost_price=12.5)


@pytest.fixture
def rader_vase():
    """Product from another brand."""
    return make_product("p-900", "RAD-VASE-09", ean="4021213000009", packing_unit=4,
                        brand_id="rader", name="Porcelain Vase", brand_name="Räder")
