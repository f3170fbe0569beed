"""
Review-order export to Excel.

Writes the selected order lines to an .xlsx file the agent can attach to an
email or hand to the office when the backend is unreachable.
"""

from pathlib import Path
from typing import List, Optional, Tuple

import pandas as pd
from openpyxl.styles import Font, PatternFill

from logger import get_logger
from product_catalog import ProductCatalogEntry

logger = get_logger(__name__)

EXPORT_COLUMNS = ['SKU', 'Product_Name', 'Packing_Unit', 'Quantity', 'Unit_Cost', 'Line_Total']
SHEET_NAME = 'Order'


def build_order_dataframe(lines: List[Tuple[ProductCatalogEntry, int]]) -> pd.DataFrame:
    """One row per order line, with the line total computed."""
    rows = [
        {
            'SKU': product.sku,
            'Product_Name': product.name,
            'Packing_Unit': product.packing_unit,
            'Quantity': quantity,
            'Unit_Cost': round(product.cost_price, 2),
            'Line_Total': round(product.cost_price * quantity, 2),
        }
        for product, quantity in lines
    ]
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def export_order_to_excel(
    lines: List[Tuple[ProductCatalogEntry, int]],
    output_path: Path,
    customer_name: Optional[str] = None,
    brand_name: Optional[str] = None,
) -> Path:
    """
    Write order lines plus a total row to an Excel file.

    Args:
        lines: (product, quantity) pairs from OrderLineReconciler.selected_lines
        output_path: Destination .xlsx path
        customer_name: Shown in the sheet title row
        brand_name: Shown in the sheet title row

    Returns:
        The written path

    Raises:
        ValueError: If there are no lines to export
    """
    if not lines:
        raise ValueError("The order is empty, nothing to export.")

    df = build_order_dataframe(lines)
    total = round(float(df['Line_Total'].sum()), 2)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    # Data starts on row 3: title row, blank row, header
    start_row = 2
    with pd.ExcelWriter(output_path, engine='openpyxl') as writer:
        df.to_excel(writer, index=False, sheet_name=SHEET_NAME, startrow=start_row)
        worksheet = writer.sheets[SHEET_NAME]

        title = " / ".join(part for part in (customer_name, brand_name) if part) or "Order"
        worksheet.cell(row=1, column=1, value=title).font = Font(bold=True, size=14)

        header_fill = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
        for col_idx in range(1, len(EXPORT_COLUMNS) + 1):
            cell = worksheet.cell(row=start_row + 1, column=col_idx)
            cell.fill = header_fill
            cell.font = Font(bold=True)

        total_row = start_row + len(df) + 2
        worksheet.cell(row=total_row, column=len(EXPORT_COLUMNS) - 1, value='Total').font = Font(bold=True)
        worksheet.cell(row=total_row, column=len(EXPORT_COLUMNS), value=total).font = Font(bold=True)

    logger.info(f"Exported {len(df)} order lines (total {total:.2f}) to {output_path}")
    return output_path
